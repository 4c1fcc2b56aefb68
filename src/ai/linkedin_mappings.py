"""Requirement values mapped to LinkedIn search filter ids."""

import logging

logger = logging.getLogger(__name__)

# None means "do not filter by industry".
INDUSTRY_TO_LINKEDIN_ID: dict[str, list[int] | None] = {
    "software development": [4],
    "saas": [4, 6],
    "fintech": [43, 4],
    "e-commerce": [6],
    "healthcare": [14],
    "education": [69],
    "finance": [43],
    "consulting": [11],
    "cloud": [96, 4],
    "ai/ml": [4, 6],
    "cybersecurity": [96, 122],
    "gaming": [4, 6],
    "marketing": [80],
    "any": None,
}

YEARS_OF_EXPERIENCE_IDS: dict[str, list[str]] = {
    "internship": ["1"],
    "entry": ["1", "2"],
    "associate": ["2", "3"],
    "mid-senior": ["3", "4"],
    "director": ["4", "5"],
    "executive": ["5"],
}

SENIORITY_LEVEL_IDS: dict[str, list[str]] = {
    "internship": ["100"],
    "entry": ["110"],
    "associate": ["110", "120"],
    "mid-senior": ["120", "130"],
    "director": ["200", "210", "220"],
    "executive": ["300", "310", "320"],
}


def _lookup(mapping: dict[str, list[str]], value: str, kind: str) -> list[str]:
    key = value.strip().lower()
    if not key:
        return []
    if key not in mapping:
        logger.warning("Unknown %s value '%s', not filtering on it", kind, value)
        return []
    return list(mapping[key])


def years_of_experience_ids(level: str) -> list[str]:
    return _lookup(YEARS_OF_EXPERIENCE_IDS, level, "experience level")


def seniority_level_ids(level: str) -> list[str]:
    return _lookup(SENIORITY_LEVEL_IDS, level, "seniority level")


def industry_ids(industry: str) -> list[int]:
    key = industry.strip().lower()
    if not key:
        return []
    if key not in INDUSTRY_TO_LINKEDIN_ID:
        logger.warning("Unknown industry '%s', not filtering on it", industry)
        return []
    return list(INDUSTRY_TO_LINKEDIN_ID[key] or [])
