import hashlib, json
from datetime import date, datetime, timezone

def sha256_json(obj) -> str:
    return hashlib.sha256(json.dumps(obj, sort_keys=True, default=str).encode()).hexdigest()

def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def parse_iso_date(value) -> date | None:
    """Strict YYYY-MM-DD parse; anything else (including datetimes) is None."""
    if not isinstance(value, str) or len(value) != 10:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
