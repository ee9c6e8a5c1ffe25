import math
import re
from fastapi import APIRouter, Depends, HTTPException, Query, Request
import structlog
from .auth import AuthenticatedUser, get_database, require_user
from .schemas import SubmissionPayload, SubmitResponse, SubmitMetrics, DateRange
from ..db import Database
from ..pipeline.orchestrator import ingest_submission
from ..pipeline.store import (
    LEADERBOARD_PERIOD_DAYS,
    LEADERBOARD_SORTS,
    get_leaderboard,
    get_profile,
    get_user_rank,
    load_daily_records,
)
from ..pipeline.validation import SubmissionValidationError

log = structlog.get_logger()

router = APIRouter()

USERNAME_RE = re.compile(r"^[a-zA-Z0-9-]{1,39}$")
MAX_LEADERBOARD_LIMIT = 100
MAX_LEADERBOARD_PAGE = 10**6

def _check_ranking_params(sort_by: str, period: str):
    if sort_by not in LEADERBOARD_SORTS:
        raise HTTPException(400, {'error': f"sortBy must be one of {', '.join(LEADERBOARD_SORTS)}"})
    if period not in LEADERBOARD_PERIOD_DAYS:
        raise HTTPException(400, {'error': f"period must be one of {', '.join(LEADERBOARD_PERIOD_DAYS)}"})

@router.get(
    '/health',
    summary="Health check",
    description="Returns service and DB connectivity.",
    tags=["Health"],
)
def health(database: Database = Depends(get_database)):
    try:
        conn = database.connect()
        try:
            profiles = conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]
        finally:
            conn.close()
        return {'ok': True, 'db': 'ok', 'profiles': profiles}
    except Exception as e:
        log.error("health_db_error", err=str(e))
        raise HTTPException(503, 'db_error')

@router.post(
    '/api/submit',
    response_model=SubmitResponse,
    summary="Submit usage",
    description=(
        "Merges a per-day usage report into the caller's profile. "
        "Only clients named in the submission are replaced or cleared for the submitted dates."
    ),
    tags=["Submit"],
)
def submit(
    payload: SubmissionPayload,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
    database: Database = Depends(get_database),
):
    app_settings = request.app.state.settings
    conn = database.connect()
    try:
        with structlog.contextvars.bound_contextvars(username=user.username, route='submit'):
            result = ingest_submission(
                conn,
                user.id,
                payload,
                max_days=app_settings.max_submission_days,
                retry_attempts=app_settings.merge_retry_attempts,
            )
    except SubmissionValidationError as e:
        raise HTTPException(400, {'error': 'Invalid submission data', 'details': e.reasons})
    except Exception:
        # already logged with context by the orchestrator
        raise HTTPException(500, {'error': 'Internal server error'})
    finally:
        conn.close()

    owner = result.owner
    date_range = None
    if owner.date_start and owner.date_end:
        date_range = DateRange(start=owner.date_start, end=owner.date_end)
    return SubmitResponse(
        submission_id=result.submission_id,
        username=user.username,
        mode=result.mode,
        metrics=SubmitMetrics(
            total_tokens=owner.totals.tokens,
            total_cost=float(owner.totals.cost),
            date_range=date_range,
            active_days=owner.active_days,
            sources=owner.sources_used,
        ),
        warnings=result.warnings,
    )

@router.get(
    '/api/users/{username}',
    summary="Get usage profile",
    description="Returns the merged profile and its daily breakdown for a user.",
    tags=["Profiles"],
)
def user_profile(username: str, database: Database = Depends(get_database)):
    conn = database.connect()
    try:
        profile = get_profile(conn, username)
        if not profile:
            raise HTTPException(404, 'profile not found')
        records = load_daily_records(conn, profile["submissionId"])
    finally:
        conn.close()
    profile["daily"] = [
        {
            "date": record.date,
            "timestampMs": record.timestamp_ms,
            "totals": record.totals.to_dict(),
            "clients": {client: entry.to_dict() for client, entry in sorted(record.clients.items())},
            "models": record.model_breakdown,
        }
        for record in records.values()
    ]
    return profile

@router.get(
    '/api/leaderboard',
    summary="Leaderboard",
    description="Profiles ranked by total tokens or cost; ties fall back to the other value.",
    tags=["Leaderboard"],
)
def leaderboard(
    page: int = Query(1),
    limit: int = Query(50),
    sort_by: str = Query('tokens', alias='sortBy'),
    period: str = Query('all'),
    database: Database = Depends(get_database),
):
    _check_ranking_params(sort_by, period)
    page = min(MAX_LEADERBOARD_PAGE, max(1, page))
    limit = min(MAX_LEADERBOARD_LIMIT, max(1, limit))
    conn = database.connect()
    try:
        users, total = get_leaderboard(conn, sort_by=sort_by, period=period, page=page, limit=limit)
    finally:
        conn.close()
    return {
        'users': users,
        'pagination': {
            'page': page,
            'limit': limit,
            'totalUsers': total,
            'totalPages': math.ceil(total / limit),
            'hasNext': page * limit < total,
            'hasPrev': page > 1,
        },
        'period': period,
        'sortBy': sort_by,
    }

@router.get(
    '/api/leaderboard/user/{username}',
    summary="Leaderboard rank",
    description="Rank and totals of one user; rank is null while the ranking value is 0.",
    tags=["Leaderboard"],
)
def leaderboard_user(
    username: str,
    sort_by: str = Query('tokens', alias='sortBy'),
    period: str = Query('all'),
    database: Database = Depends(get_database),
):
    if not USERNAME_RE.match(username):
        raise HTTPException(400, {'error': 'Invalid username'})
    _check_ranking_params(sort_by, period)
    conn = database.connect()
    try:
        entry = get_user_rank(conn, username, sort_by=sort_by, period=period)
    finally:
        conn.close()
    if not entry:
        raise HTTPException(404, {'error': 'User not found or has no submissions'})
    return {**entry, 'period': period, 'sortBy': sort_by}
