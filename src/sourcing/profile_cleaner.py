"""Reduce raw scraper payloads to the fields that matter for parsing and scoring."""

import logging
import re
from datetime import date
from typing import Any

from src.core.schemas import (
    CertificationEntry,
    EducationEntry,
    ExperienceEntry,
    LanguageEntry,
    ScrapedProfile,
    StructuredProfile,
)

logger = logging.getLogger(__name__)

MAX_EXPERIENCES = 10
MAX_SKILLS = 50
MAX_EDUCATIONS = 3
MAX_CERTIFICATIONS = 5
MAX_LANGUAGES = 5
MAX_COMPANY_CHARS = 100
MAX_HEADLINE_CHARS = 200
MAX_ABOUT_CHARS = 500

_YEARS_RE = re.compile(r"(\d+)\s*(?:yrs?|years?)\b", re.IGNORECASE)
_MONTHS_RE = re.compile(r"(\d+)\s*(?:mos?|months?)\b", re.IGNORECASE)
_RANGE_RE = re.compile(r"(\d{4})\s*[-–]\s*(?:present|(\d{4}))", re.IGNORECASE)


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, "", []):
            return value
    return None


def _text(value: Any, limit: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:limit] if limit else text


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.replace(",", "").strip().isdigit():
        return int(value.replace(",", "").strip())
    return None


def _year(period: Any, key: str) -> str | None:
    if isinstance(period, dict) and isinstance(period.get(key), dict):
        year = period[key].get("year")
        return str(year) if year else None
    return None


def _experiences(raw: dict[str, Any]) -> list[ExperienceEntry]:
    entries: list[ExperienceEntry] = []
    for exp in _first(raw, "experiences", "experience") or []:
        if not isinstance(exp, dict):
            continue
        title = _first(exp, "title", "jobTitle", "position")
        if not title:
            continue
        duration = _first(exp, "currentJobDuration", "duration")
        if duration is None:
            start = _first(exp, "jobStartedOn", "startDate") or ""
            end = _first(exp, "jobEndedOn", "endDate") or "Present"
            duration = f"{start} - {end}"
        entries.append(
            ExperienceEntry(
                title=str(title),
                company=str(_first(exp, "companyName", "company") or "")[:MAX_COMPANY_CHARS],
                duration=str(duration),
                location=_text(exp.get("jobLocation")),
            )
        )
        if len(entries) == MAX_EXPERIENCES:
            break
    return entries


def _skills(raw: dict[str, Any]) -> list[str]:
    skills: list[str] = []
    for skill in raw.get("skills") or []:
        name = skill if isinstance(skill, str) else (
            _first(skill, "title", "name") if isinstance(skill, dict) else None
        )
        if name and str(name).strip():
            skills.append(str(name).strip())
        if len(skills) == MAX_SKILLS:
            break
    return skills


def _education(raw: dict[str, Any]) -> list[EducationEntry]:
    entries = []
    for edu in _first(raw, "educations", "education") or []:
        if not isinstance(edu, dict) or not _first(edu, "title", "degree", "schoolName"):
            continue
        entries.append(
            EducationEntry(
                degree=str(_first(edu, "title", "degree", "subtitle") or ""),
                school=str(_first(edu, "schoolName", "school", "companyName") or ""),
                year=_year(edu.get("period"), "endedOn"),
            )
        )
    return entries[:MAX_EDUCATIONS]


def _certifications(raw: dict[str, Any]) -> list[CertificationEntry]:
    entries = []
    for cert in _first(raw, "licenseAndCertificates", "certifications") or []:
        if not isinstance(cert, dict):
            continue
        name = _first(cert, "title", "name")
        if not name:
            continue
        entries.append(
            CertificationEntry(
                name=str(name),
                issuer=_text(_first(cert, "companyName", "issuedBy")),
                year=_year(cert.get("period"), "startedOn"),
            )
        )
    return entries[:MAX_CERTIFICATIONS]


def _languages(raw: dict[str, Any]) -> list[LanguageEntry]:
    entries = []
    for lang in (raw.get("languages") or [])[:MAX_LANGUAGES]:
        if isinstance(lang, str):
            entries.append(LanguageEntry(name=lang))
        elif isinstance(lang, dict) and _first(lang, "name", "title"):
            entries.append(
                LanguageEntry(name=str(_first(lang, "name", "title")), level=_text(lang.get("proficiency")))
            )
    return entries


def estimate_experience_years(experience: list[ExperienceEntry], *, today: date | None = None) -> float:
    """Sum durations like "2 yrs 3 mos" or "2019 - Present" across entries, to one decimal."""
    current_year = (today or date.today()).year
    total = 0.0
    for entry in experience:
        if not entry.duration:
            continue
        years = _YEARS_RE.search(entry.duration)
        months = _MONTHS_RE.search(entry.duration)
        if years:
            total += int(years.group(1))
        if months:
            total += int(months.group(1)) / 12
        if not years and not months:
            span = _RANGE_RE.search(entry.duration)
            if span:
                end = int(span.group(2)) if span.group(2) else current_year
                total += max(end - int(span.group(1)), 0)
    return round(total, 1)


def clean_profile(scraped: ScrapedProfile) -> StructuredProfile:
    """Map a raw payload onto ``StructuredProfile``, truncating noisy fields.

    The profile URL is always the scraped URL, so records stay keyed by the
    URL that was requested.
    """
    raw = scraped.data
    experience = _experiences(raw)
    full_name = _first(raw, "fullName") or (
        f"{raw.get('firstName') or ''} {raw.get('lastName') or ''}".strip()
    )
    total_years = raw.get("totalExperienceYears")
    return StructuredProfile(
        full_name=str(full_name or ""),
        profile_url=scraped.url,
        headline=_text(raw.get("headline"), MAX_HEADLINE_CHARS),
        location=_text(_first(raw, "addressWithCountry", "addressWithoutCountry", "location")),
        photo_url=_text(_first(raw, "profilePicHighQuality", "profilePic", "photoUrl")),
        about=_text(raw.get("about"), MAX_ABOUT_CHARS),
        current_position=_text(_first(raw, "jobTitle")) or (experience[0].title if experience else None),
        current_company=_text(_first(raw, "companyName")) or (experience[0].company or None if experience else None),
        experience_years=(
            float(total_years) if isinstance(total_years, (int, float)) and not isinstance(total_years, bool)
            else estimate_experience_years(experience)
        ),
        skills=_skills(raw),
        experience=experience,
        education=_education(raw),
        certifications=_certifications(raw),
        languages=_languages(raw),
        email=_text(raw.get("email")),
        phone=_text(_first(raw, "mobileNumber", "phone")),
        connections=_int(raw.get("connections")),
        followers=_int(raw.get("followers")),
        is_premium=bool(raw.get("isPremium")),
        is_verified=bool(raw.get("isVerified")),
        is_open_to_work=bool(raw.get("isJobSeeker") or raw.get("isOpenToWork")),
    )


def is_valid_profile(profile: StructuredProfile) -> bool:
    """A profile needs a name, a URL and at least one piece of career content."""
    has_identity = bool(profile.full_name and profile.profile_url)
    has_content = bool(
        profile.headline or profile.current_position or profile.experience or profile.skills
    )
    return has_identity and has_content
