import sqlite3
import time
from dataclasses import dataclass, field

import structlog

from ..config import settings
from .aggregate import aggregate_day, aggregate_owner
from .breakdown import OwnerTotals, build_day_breakdowns
from .fingerprint import submission_fingerprint
from .locking import owner_transaction
from .merge import collect_submitted_clients, merge_client_breakdowns
from .store import (
    ProfileCreateConflict,
    find_submission,
    insert_placeholder_submission,
    load_daily_records,
    update_submission,
    upsert_daily_record,
)
from .validation import SubmissionValidationError, submission_warnings, validate_submission

log = structlog.get_logger()

MODE_CREATE = "create"
MODE_MERGE = "merge"


@dataclass(frozen=True)
class IngestResult:
    submission_id: int
    mode: str
    owner: OwnerTotals
    submission_hash: str
    warnings: list[str] = field(default_factory=list)


def ingest_submission(
    conn: sqlite3.Connection,
    user_id: int,
    payload,
    *,
    max_days: int | None = None,
    retry_attempts: int | None = None,
) -> IngestResult:
    ok, reasons = validate_submission(payload, max_days or settings.max_submission_days)
    if not ok:
        log.info("submission_rejected", user_id=user_id, reasons=reasons)
        raise SubmissionValidationError(reasons)

    started = time.monotonic()
    attempts = max(1, retry_attempts or settings.merge_retry_attempts)
    try:
        submitted = collect_submitted_clients(payload.summary.clients, payload.contributions)
        incoming_days = build_day_breakdowns(payload.contributions)
        date_range = (payload.meta.date_range.start, payload.meta.date_range.end)
        submission_hash = submission_fingerprint(submitted, date_range, incoming_days.keys())
        has_timestamps = any(
            item.timestamp_ms is not None for day in payload.contributions for item in day.clients
        )
        warnings = submission_warnings(payload)
        log.info(
            "submission_ingest_started",
            user_id=user_id,
            days=len(incoming_days),
            clients=sorted(submitted),
        )

        for attempt in range(1, attempts + 1):
            try:
                with owner_transaction(conn, user_id):
                    submission_id, mode, owner = _apply_submission(
                        conn, user_id, submitted, incoming_days, submission_hash, has_timestamps
                    )
                break
            except ProfileCreateConflict as e:
                # Lost a first-submission race: the row exists now, retry as a merge.
                log.warning("submission_create_conflict", user_id=user_id, attempt=attempt, err=str(e))
                if attempt >= attempts:
                    raise
    except Exception as e:
        log.error("submission_ingest_failed", user_id=user_id, err=str(e), exc_info=True)
        raise

    log.info(
        "submission_ingest_finished",
        user_id=user_id,
        submission_id=submission_id,
        mode=mode,
        total_tokens=owner.totals.tokens,
        active_days=owner.active_days,
        elapsed_sec=round(time.monotonic() - started, 3),
    )
    return IngestResult(
        submission_id=submission_id,
        mode=mode,
        owner=owner,
        submission_hash=submission_hash,
        warnings=warnings,
    )


def _apply_submission(conn, user_id, submitted, incoming_days, submission_hash, has_timestamps):
    profile = find_submission(conn, user_id)
    if profile is None:
        submission_id = insert_placeholder_submission(conn, user_id)
        mode, submit_count, schema_version = MODE_CREATE, 0, 0
    else:
        submission_id = profile["id"]
        mode, submit_count, schema_version = MODE_MERGE, profile["submit_count"], profile["schema_version"]

    existing = load_daily_records(conn, submission_id, incoming_days.keys())
    for date in sorted(incoming_days):
        stored = existing.get(date)
        merged = merge_client_breakdowns(stored.clients if stored else None, incoming_days[date], submitted)
        day = aggregate_day(merged)
        upsert_daily_record(conn, submission_id, date, merged, day)
        log.debug(
            "submission_day_merged",
            user_id=user_id,
            date=date,
            clients=sorted(merged),
            tokens=day.totals.tokens,
        )

    owner = aggregate_owner(load_daily_records(conn, submission_id).values())
    update_submission(
        conn,
        submission_id,
        owner,
        submission_hash,
        submit_count=submit_count + 1,
        schema_version=max(schema_version, 1 if has_timestamps else 0),
    )
    return submission_id, mode, owner
