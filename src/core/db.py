"""SQLite database layer for sourcing jobs, candidates and batch payloads."""

import sqlite3
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS sourcing_jobs (
    id                   TEXT    PRIMARY KEY,
    user_id              TEXT    NOT NULL,
    title                TEXT    NOT NULL DEFAULT '',
    raw_job_description  TEXT    NOT NULL,
    job_requirements     TEXT    NOT NULL DEFAULT '{}',
    max_candidates       INTEGER NOT NULL,
    status               TEXT    NOT NULL DEFAULT 'CREATED',
    current_stage        TEXT    NOT NULL DEFAULT 'CREATED',
    last_completed_stage TEXT,
    search_variants      TEXT    NOT NULL DEFAULT '[]',
    discovered_urls      TEXT    NOT NULL DEFAULT '[]',
    enriched_urls        TEXT    NOT NULL DEFAULT '[]',
    used_query_ids       TEXT    NOT NULL DEFAULT '[]',
    search_iterations    INTEGER NOT NULL DEFAULT 0,
    last_scraped_batch   INTEGER NOT NULL DEFAULT 0,
    scrape_batch_total   INTEGER NOT NULL DEFAULT 0,
    last_parsed_batch    INTEGER NOT NULL DEFAULT 0,
    parse_batch_total    INTEGER NOT NULL DEFAULT 0,
    total_profiles_found INTEGER NOT NULL DEFAULT 0,
    profiles_scraped     INTEGER NOT NULL DEFAULT 0,
    profiles_parsed      INTEGER NOT NULL DEFAULT 0,
    profiles_saved       INTEGER NOT NULL DEFAULT 0,
    profiles_scored      INTEGER NOT NULL DEFAULT 0,
    error_message        TEXT,
    rate_limit_hit_at    TEXT,
    rate_limit_reset_at  TEXT,
    rate_limit_provider  TEXT,
    retry_count          INTEGER NOT NULL DEFAULT 0,
    max_retries          INTEGER NOT NULL DEFAULT 3,
    created_at           TEXT    NOT NULL,
    last_activity_at     TEXT    NOT NULL,
    completed_at         TEXT,
    failed_at            TEXT
);
"""

_CANDIDATES_TABLE = """
CREATE TABLE IF NOT EXISTS candidates (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id            TEXT    NOT NULL REFERENCES sourcing_jobs(id) ON DELETE CASCADE,
    profile_url       TEXT    NOT NULL,
    full_name         TEXT    NOT NULL DEFAULT 'Unknown',
    headline          TEXT,
    location          TEXT,
    photo_url         TEXT,
    email             TEXT,
    phone             TEXT,
    has_contact_info  INTEGER NOT NULL DEFAULT 0,
    email_source      TEXT,
    enriched_at       TEXT,
    scraping_status   TEXT    NOT NULL DEFAULT 'PENDING',
    scraped_at        TEXT,
    profile_json      TEXT,
    is_duplicate      INTEGER NOT NULL DEFAULT 0,
    first_seen_job_id TEXT,
    is_scored         INTEGER NOT NULL DEFAULT 0,
    match_score       REAL,
    score_json        TEXT,
    scored_at         TEXT,
    raw_data          TEXT    NOT NULL DEFAULT '{}',
    created_at        TEXT    NOT NULL,
    UNIQUE(job_id, profile_url)
);
"""

_CANDIDATES_URL_INDEX = """
CREATE INDEX IF NOT EXISTS idx_candidates_profile_url ON candidates (profile_url);
"""

_BATCH_PAYLOADS_TABLE = """
CREATE TABLE IF NOT EXISTS batch_payloads (
    job_id      TEXT    NOT NULL REFERENCES sourcing_jobs(id) ON DELETE CASCADE,
    kind        TEXT    NOT NULL,
    batch_index INTEGER NOT NULL,
    payload     TEXT    NOT NULL,
    created_at  TEXT    NOT NULL,
    PRIMARY KEY (job_id, kind, batch_index)
);
"""

JOB_COLUMNS = frozenset({
    "title", "raw_job_description", "job_requirements", "max_candidates", "status",
    "current_stage", "last_completed_stage", "search_variants", "discovered_urls",
    "enriched_urls", "used_query_ids", "search_iterations", "last_scraped_batch",
    "scrape_batch_total", "last_parsed_batch", "parse_batch_total",
    "total_profiles_found", "profiles_scraped", "profiles_parsed", "profiles_saved",
    "profiles_scored", "error_message", "rate_limit_hit_at", "rate_limit_reset_at",
    "rate_limit_provider", "retry_count", "max_retries", "last_activity_at",
    "completed_at", "failed_at",
})

CANDIDATE_COLUMNS = frozenset({
    "full_name", "headline", "location", "photo_url", "email", "phone",
    "has_contact_info", "email_source", "enriched_at", "scraping_status", "scraped_at",
    "profile_json", "is_duplicate", "first_seen_job_id", "is_scored", "match_score",
    "score_json", "scored_at", "raw_data",
})


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(_JOBS_TABLE)
    conn.execute(_CANDIDATES_TABLE)
    conn.execute(_CANDIDATES_URL_INDEX)
    conn.execute(_BATCH_PAYLOADS_TABLE)
    conn.commit()
    return conn


def _assignments(fields: Mapping[str, Any], allowed: frozenset[str]) -> tuple[str, list[Any]]:
    unknown = set(fields) - allowed
    if unknown:
        msg = f"Unknown columns: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    columns = sorted(fields)
    clause = ", ".join(f"{col} = ?" for col in columns)
    return clause, [fields[col] for col in columns]


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def insert_job(conn: sqlite3.Connection, job_id: str, fields: Mapping[str, Any]) -> None:
    """Insert a new job row. ``fields`` must hold every NOT NULL column without a default."""
    columns = ["id", *sorted(fields)]
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        f"INSERT INTO sourcing_jobs ({', '.join(columns)}) VALUES ({placeholders})",
        [job_id, *(fields[col] for col in columns[1:])],
    )
    conn.commit()


def get_job(conn: sqlite3.Connection, job_id: str) -> sqlite3.Row | None:
    return conn.execute("SELECT * FROM sourcing_jobs WHERE id = ?", (job_id,)).fetchone()  # type: ignore[no-any-return]


def update_job(
    conn: sqlite3.Connection,
    job_id: str,
    fields: Mapping[str, Any],
    *,
    increments: Iterable[str] = (),
) -> int:
    """Write ``fields`` onto a job row in one transaction.

    Columns named in ``increments`` are bumped by one in the same statement.
    Returns the number of rows touched.
    """
    clause, values = _assignments(fields, JOB_COLUMNS)
    bumps = [f"{col} = {col} + 1" for col in increments if col in JOB_COLUMNS]
    set_clause = ", ".join(part for part in [clause, *bumps] if part)
    cursor = conn.execute(
        f"UPDATE sourcing_jobs SET {set_clause} WHERE id = ?",
        [*values, job_id],
    )
    conn.commit()
    return cursor.rowcount


def delete_job(conn: sqlite3.Connection, job_id: str) -> bool:
    """Delete a job; candidates and batch payloads cascade."""
    cursor = conn.execute("DELETE FROM sourcing_jobs WHERE id = ?", (job_id,))
    conn.commit()
    return cursor.rowcount > 0


def find_stale_jobs(
    conn: sqlite3.Connection,
    statuses: Iterable[str],
    inactive_before: str,
) -> list[sqlite3.Row]:
    """Jobs in one of ``statuses`` with no activity since ``inactive_before``."""
    wanted = list(statuses)
    if not wanted:
        return []
    placeholders = ", ".join("?" for _ in wanted)
    return conn.execute(
        f"""
        SELECT * FROM sourcing_jobs
        WHERE status IN ({placeholders}) AND last_activity_at < ?
        ORDER BY last_activity_at ASC
        """,
        [*wanted, inactive_before],
    ).fetchall()


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


def insert_candidate(
    conn: sqlite3.Connection,
    job_id: str,
    profile_url: str,
    fields: Mapping[str, Any],
) -> bool:
    """Insert a candidate, ignoring if (job_id, profile_url) already exists.

    Returns True if a new row was inserted, False if it was a duplicate.
    """
    _assignments(fields, CANDIDATE_COLUMNS | {"created_at"})
    columns = ["job_id", "profile_url", *sorted(fields)]
    placeholders = ", ".join("?" for _ in columns)
    try:
        conn.execute(
            f"INSERT INTO candidates ({', '.join(columns)}) VALUES ({placeholders})",
            [job_id, profile_url, *(fields[col] for col in columns[2:])],
        )
        conn.commit()
        return True
    except sqlite3.IntegrityError:
        conn.rollback()
        return False


def get_candidate(conn: sqlite3.Connection, job_id: str, profile_url: str) -> sqlite3.Row | None:
    return conn.execute(  # type: ignore[no-any-return]
        "SELECT * FROM candidates WHERE job_id = ? AND profile_url = ?",
        (job_id, profile_url),
    ).fetchone()


def update_candidate(conn: sqlite3.Connection, candidate_id: int, fields: Mapping[str, Any]) -> int:
    clause, values = _assignments(fields, CANDIDATE_COLUMNS)
    cursor = conn.execute(
        f"UPDATE candidates SET {clause} WHERE id = ?",
        [*values, candidate_id],
    )
    conn.commit()
    return cursor.rowcount


def _candidate_filters(
    job_id: str,
    *,
    scraping_status: str | None = None,
    is_scored: bool | None = None,
    has_contact_info: bool | None = None,
    exclude_ids: Iterable[int] = (),
) -> tuple[str, list[Any]]:
    clauses = ["job_id = ?"]
    params: list[Any] = [job_id]
    if scraping_status is not None:
        clauses.append("scraping_status = ?")
        params.append(scraping_status)
    if is_scored is not None:
        clauses.append("is_scored = ?")
        params.append(int(is_scored))
    if has_contact_info is not None:
        clauses.append("has_contact_info = ?")
        params.append(int(has_contact_info))
    excluded = list(exclude_ids)
    if excluded:
        clauses.append(f"id NOT IN ({', '.join('?' for _ in excluded)})")
        params.extend(excluded)
    return " AND ".join(clauses), params


def count_candidates(conn: sqlite3.Connection, job_id: str, **filters: Any) -> int:
    where, params = _candidate_filters(job_id, **filters)
    row = conn.execute(f"SELECT COUNT(*) FROM candidates WHERE {where}", params).fetchone()
    return int(row[0])


def list_candidates(
    conn: sqlite3.Connection,
    job_id: str,
    *,
    limit: int | None = None,
    **filters: Any,
) -> list[sqlite3.Row]:
    """Candidates of a job in insertion order, optionally filtered."""
    where, params = _candidate_filters(job_id, **filters)
    sql = f"SELECT * FROM candidates WHERE {where} ORDER BY id ASC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return conn.execute(sql, params).fetchall()


def find_first_seen_job(
    conn: sqlite3.Connection,
    user_id: str,
    profile_url: str,
    exclude_job_id: str,
    before_id: int | None = None,
) -> str | None:
    """Earliest other job of the same owner that already holds this profile.

    With ``before_id``, only records inserted before that candidate count.
    """
    row = conn.execute(
        """
        SELECT c.job_id FROM candidates c
        JOIN sourcing_jobs j ON j.id = c.job_id
        WHERE j.user_id = ? AND c.profile_url = ? AND c.job_id != ?
          AND (? IS NULL OR c.id < ?)
        ORDER BY c.id ASC
        LIMIT 1
        """,
        (user_id, profile_url, exclude_job_id, before_id, before_id),
    ).fetchone()
    return None if row is None else str(row["job_id"])


def top_scored_candidates(conn: sqlite3.Connection, job_id: str, limit: int) -> list[sqlite3.Row]:
    return conn.execute(
        """
        SELECT * FROM candidates
        WHERE job_id = ? AND is_scored = 1
        ORDER BY match_score DESC, id ASC
        LIMIT ?
        """,
        (job_id, limit),
    ).fetchall()


# ---------------------------------------------------------------------------
# Batch payloads
# ---------------------------------------------------------------------------


def save_batch_payload(
    conn: sqlite3.Connection,
    job_id: str,
    kind: str,
    batch_index: int,
    payload: str,
    created_at: str,
) -> None:
    """Store (or replace) the payload of one processed batch.

    Does not commit: the caller commits together with the job's batch pointer.
    """
    conn.execute(
        """
        INSERT INTO batch_payloads (job_id, kind, batch_index, payload, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(job_id, kind, batch_index)
        DO UPDATE SET payload = excluded.payload, created_at = excluded.created_at
        """,
        (job_id, kind, batch_index, payload, created_at),
    )


def load_batch_payloads(conn: sqlite3.Connection, job_id: str, kind: str) -> list[sqlite3.Row]:
    return conn.execute(
        """
        SELECT batch_index, payload FROM batch_payloads
        WHERE job_id = ? AND kind = ?
        ORDER BY batch_index ASC
        """,
        (job_id, kind),
    ).fetchall()
