import sqlite3, json
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from ..utils import now_utc_iso
from .aggregate import DayAggregate
from .breakdown import (
    ClientBreakdown,
    DailyRecord,
    OwnerTotals,
    breakdown_from_dict,
    breakdown_to_dict,
    to_cost,
    UsageCounts,
)

_DAILY_COLUMNS = """
  date, tokens, cost, input_tokens, output_tokens, cache_read_tokens,
  cache_write_tokens, reasoning_tokens, messages, timestamp_ms,
  client_breakdown, model_breakdown
"""


class ProfileCreateConflict(Exception):
    """Another submission created the owner's profile first."""


def find_submission(conn: sqlite3.Connection, user_id: int):
    row = conn.execute(
        "SELECT id, submit_count, schema_version FROM submissions WHERE user_id=?",
        (user_id,),
    ).fetchone()
    if not row:
        return None
    return {"id": row[0], "submit_count": row[1], "schema_version": row[2]}


def insert_placeholder_submission(conn: sqlite3.Connection, user_id: int) -> int:
    now = now_utc_iso()
    try:
        cur = conn.execute(
            "INSERT INTO submissions(user_id, created_at_utc, updated_at_utc) VALUES(?,?,?)",
            (user_id, now, now),
        )
    except sqlite3.IntegrityError as e:
        if "submissions.user_id" not in str(e):
            raise
        raise ProfileCreateConflict(str(e)) from e
    return cur.lastrowid


def _row_to_record(row) -> DailyRecord:
    return DailyRecord(
        date=row[0],
        totals=UsageCounts(
            input=row[3],
            output=row[4],
            cache_read=row[5],
            cache_write=row[6],
            reasoning=row[7],
            cost=to_cost(row[2]),
            messages=row[8],
        ),
        timestamp_ms=row[9],
        clients=breakdown_from_dict(json.loads(row[10] or "{}")),
        model_breakdown=json.loads(row[11] or "{}"),
    )


def load_daily_records(conn: sqlite3.Connection, submission_id: int, dates: Iterable[str] | None = None) -> dict[str, DailyRecord]:
    if dates is None:
        rows = conn.execute(
            f"SELECT {_DAILY_COLUMNS} FROM daily_breakdown WHERE submission_id=? ORDER BY date",
            (submission_id,),
        ).fetchall()
    else:
        dates = sorted(set(dates))
        if not dates:
            return {}
        rows = []
        # stay under SQLite's bound-parameter limit
        for i in range(0, len(dates), 500):
            chunk = dates[i:i + 500]
            marks = ",".join("?" for _ in chunk)
            rows.extend(conn.execute(
                f"SELECT {_DAILY_COLUMNS} FROM daily_breakdown WHERE submission_id=? AND date IN ({marks})",
                (submission_id, *chunk),
            ).fetchall())
    return {row[0]: _row_to_record(row) for row in rows}


def upsert_daily_record(conn: sqlite3.Connection, submission_id: int, date: str, clients: ClientBreakdown, day: DayAggregate):
    totals = day.totals
    conn.execute(
        """
        INSERT INTO daily_breakdown (
          submission_id, date, tokens, cost, input_tokens, output_tokens,
          cache_read_tokens, cache_write_tokens, reasoning_tokens, messages,
          timestamp_ms, client_breakdown, model_breakdown, updated_at_utc
        ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        ON CONFLICT(submission_id, date) DO UPDATE SET
          tokens=excluded.tokens,
          cost=excluded.cost,
          input_tokens=excluded.input_tokens,
          output_tokens=excluded.output_tokens,
          cache_read_tokens=excluded.cache_read_tokens,
          cache_write_tokens=excluded.cache_write_tokens,
          reasoning_tokens=excluded.reasoning_tokens,
          messages=excluded.messages,
          timestamp_ms=excluded.timestamp_ms,
          client_breakdown=excluded.client_breakdown,
          model_breakdown=excluded.model_breakdown,
          updated_at_utc=excluded.updated_at_utc
        """,
        (
            submission_id, date, totals.tokens, str(totals.cost), totals.input, totals.output,
            totals.cache_read, totals.cache_write, totals.reasoning, totals.messages,
            day.timestamp_ms, json.dumps(breakdown_to_dict(clients)), json.dumps(day.model_breakdown),
            now_utc_iso(),
        ),
    )


def update_submission(
    conn: sqlite3.Connection,
    submission_id: int,
    owner: OwnerTotals,
    submission_hash: str,
    submit_count: int,
    schema_version: int,
):
    totals = owner.totals
    conn.execute(
        """
        UPDATE submissions SET
          total_tokens=?, total_cost=?, input_tokens=?, output_tokens=?,
          cache_read_tokens=?, cache_write_tokens=?, reasoning_tokens=?,
          date_start=?, date_end=?, active_days=?, sources_used=?, models_used=?,
          submission_hash=?, submit_count=?, schema_version=?, updated_at_utc=?
        WHERE id=?
        """,
        (
            totals.tokens, str(totals.cost), totals.input, totals.output,
            totals.cache_read, totals.cache_write, totals.reasoning,
            owner.date_start, owner.date_end, owner.active_days,
            json.dumps(owner.sources_used), json.dumps(owner.models_used),
            submission_hash, submit_count, schema_version, now_utc_iso(),
            submission_id,
        ),
    )


def get_profile(conn: sqlite3.Connection, username: str):
    row = conn.execute(
        """
        SELECT s.id, u.username, s.total_tokens, s.total_cost, s.input_tokens, s.output_tokens,
               s.cache_read_tokens, s.cache_write_tokens, s.reasoning_tokens,
               s.date_start, s.date_end, s.active_days, s.sources_used, s.models_used,
               s.submission_hash, s.submit_count, s.schema_version, s.updated_at_utc
        FROM submissions s JOIN users u ON u.id = s.user_id
        WHERE u.username=?
        """,
        (username,),
    ).fetchone()
    if not row:
        return None
    return {
        "submissionId": row[0],
        "username": row[1],
        "totalTokens": row[2],
        "totalCost": row[3],
        "inputTokens": row[4],
        "outputTokens": row[5],
        "cacheReadTokens": row[6],
        "cacheWriteTokens": row[7],
        "reasoningTokens": row[8],
        "dateRange": {"start": row[9], "end": row[10]},
        "activeDays": row[11],
        "sources": json.loads(row[12]),
        "models": json.loads(row[13]),
        "submissionHash": row[14],
        "submitCount": row[15],
        "schemaVersion": row[16],
        "updatedAt": row[17],
    }


LEADERBOARD_PERIOD_DAYS = {"all": None, "month": 30, "week": 7}
LEADERBOARD_SORTS = {
    "tokens": ("tokens", "tokens DESC, cost DESC"),
    "cost": ("cost", "cost DESC, tokens DESC"),
}


def _ranked_sql(period: str, sort_by: str, today: date | None):
    """CTE ranking every profile by the chosen value; rank is NULL when that value is 0."""
    if period not in LEADERBOARD_PERIOD_DAYS:
        raise ValueError(f"unknown period {period!r}")
    if sort_by not in LEADERBOARD_SORTS:
        raise ValueError(f"unknown sort {sort_by!r}")
    value, order = LEADERBOARD_SORTS[sort_by]
    days = LEADERBOARD_PERIOD_DAYS[period]
    if days is None:
        source = """
            SELECT u.username, s.total_tokens AS tokens, CAST(s.total_cost AS REAL) AS cost,
                   s.submit_count, s.updated_at_utc
            FROM submissions s JOIN users u ON u.id = s.user_id
        """
        params = ()
    else:
        today = today or datetime.now(timezone.utc).date()
        cutoff = (today - timedelta(days=days - 1)).isoformat()
        source = """
            SELECT u.username, COALESCE(SUM(d.tokens), 0) AS tokens,
                   COALESCE(SUM(CAST(d.cost AS REAL)), 0) AS cost,
                   s.submit_count, s.updated_at_utc
            FROM submissions s
            JOIN users u ON u.id = s.user_id
            LEFT JOIN daily_breakdown d ON d.submission_id = s.id AND d.date >= ?
            GROUP BY s.id
        """
        params = (cutoff,)
    sql = f"""
        WITH totals AS ({source}),
        ranked AS (
            SELECT username, tokens, cost, submit_count, updated_at_utc,
                   CASE WHEN {value} > 0 THEN RANK() OVER (ORDER BY {order}) END AS user_rank
            FROM totals
        )
    """
    return sql, params


def _leaderboard_row(row) -> dict:
    return {
        "rank": row[5],
        "username": row[0],
        "totalTokens": row[1],
        "totalCost": round(row[2], 4),
        "submissionCount": row[3],
        "updatedAt": row[4],
    }


def get_leaderboard(
    conn: sqlite3.Connection,
    *,
    sort_by: str = "tokens",
    period: str = "all",
    page: int = 1,
    limit: int = 50,
    today: date | None = None,
):
    """One page of ranked profiles plus the number of ranked profiles overall."""
    ranked, params = _ranked_sql(period, sort_by, today)
    total = conn.execute(
        ranked + "SELECT COUNT(*) FROM ranked WHERE user_rank IS NOT NULL", params
    ).fetchone()[0]
    rows = conn.execute(
        ranked
        + """
        SELECT username, tokens, cost, submit_count, updated_at_utc, user_rank
        FROM ranked WHERE user_rank IS NOT NULL
        ORDER BY user_rank, username
        LIMIT ? OFFSET ?
        """,
        params + (limit, (page - 1) * limit),
    ).fetchall()
    return [_leaderboard_row(r) for r in rows], total


def get_user_rank(
    conn: sqlite3.Connection,
    username: str,
    *,
    sort_by: str = "tokens",
    period: str = "all",
    today: date | None = None,
):
    """Rank entry for one user, or None when the user has no profile."""
    ranked, params = _ranked_sql(period, sort_by, today)
    row = conn.execute(
        ranked
        + """
        SELECT username, tokens, cost, submit_count, updated_at_utc, user_rank
        FROM ranked WHERE username=?
        """,
        params + (username,),
    ).fetchone()
    return _leaderboard_row(row) if row else None
