import sqlite3, json

from .aggregate import aggregate_day, aggregate_owner
from .breakdown import to_cost
from .store import load_daily_records


def check_profile_invariants(conn: sqlite3.Connection, submission_id: int) -> list[str]:
    """Recompute every aggregate of one profile and report stored values that drifted."""
    problems = []
    records = load_daily_records(conn, submission_id)
    for date, record in records.items():
        day = aggregate_day(record.clients)
        if day.totals != record.totals:
            problems.append(f"{date}: day totals differ from client breakdown sum")
        if day.model_breakdown != record.model_breakdown:
            problems.append(f"{date}: model breakdown differs from client models")
        if day.timestamp_ms != record.timestamp_ms:
            problems.append(f"{date}: timestamp_ms {record.timestamp_ms} vs earliest client {day.timestamp_ms}")

    row = conn.execute(
        """
        SELECT total_tokens, total_cost, input_tokens, output_tokens, cache_read_tokens,
               cache_write_tokens, reasoning_tokens, date_start, date_end, active_days,
               sources_used, models_used
        FROM submissions WHERE id=?
        """,
        (submission_id,),
    ).fetchone()
    if not row:
        return problems + [f"submission {submission_id} not found"]
    owner = aggregate_owner(records.values())
    totals = owner.totals
    expected = {
        "total_tokens": (row[0], totals.tokens),
        "total_cost": (to_cost(row[1]), totals.cost),
        "input_tokens": (row[2], totals.input),
        "output_tokens": (row[3], totals.output),
        "cache_read_tokens": (row[4], totals.cache_read),
        "cache_write_tokens": (row[5], totals.cache_write),
        "reasoning_tokens": (row[6], totals.reasoning),
        "date_start": (row[7], owner.date_start),
        "date_end": (row[8], owner.date_end),
        "active_days": (row[9], owner.active_days),
        "sources_used": (json.loads(row[10]), owner.sources_used),
        "models_used": (json.loads(row[11]), owner.models_used),
    }
    for column, (stored, computed) in expected.items():
        if stored != computed:
            problems.append(f"submissions.{column}: stored {stored!r} vs recomputed {computed!r}")
    return problems
