import math
from typing import Tuple, List

from ..utils import parse_iso_date

# Upper bounds per contribution entry; sums must stay within SQLite INTEGER and Decimal quantize range.
MAX_TOKENS_PER_ENTRY = 10**12
MAX_COST_PER_ENTRY = 10**9


class SubmissionValidationError(ValueError):
    def __init__(self, reasons: List[str]):
        super().__init__("; ".join(reasons))
        self.reasons = list(reasons)


def validate_submission(payload, max_days: int = 3660) -> Tuple[bool, List[str]]:
    reasons = []
    date_range = payload.meta.date_range
    start = parse_iso_date(date_range.start)
    end = parse_iso_date(date_range.end)
    if start is None:
        reasons.append("meta.dateRange.start must be YYYY-MM-DD")
    if end is None:
        reasons.append("meta.dateRange.end must be YYYY-MM-DD")
    if start and end and start > end:
        reasons.append("meta.dateRange.start must be <= meta.dateRange.end")

    contributions = payload.contributions
    if not contributions:
        reasons.append("contributions must not be empty")
    elif len(contributions) > max_days:
        reasons.append(f"contributions has {len(contributions)} days (max {max_days})")

    seen = set()
    for idx, day in enumerate(contributions):
        if parse_iso_date(day.date) is None:
            reasons.append(f"contributions[{idx}].date must be YYYY-MM-DD")
        elif day.date in seen:
            reasons.append(f"contributions[{idx}].date duplicates {day.date}")
        seen.add(day.date)
        for cidx, item in enumerate(day.clients):
            if not item.client.strip():
                reasons.append(f"contributions[{idx}].clients[{cidx}].client is blank")
            if not item.model_id.strip():
                reasons.append(f"contributions[{idx}].clients[{cidx}].modelId is blank")
            cost = float(item.cost)
            if not math.isfinite(cost) or cost < 0 or cost > MAX_COST_PER_ENTRY:
                reasons.append(
                    f"contributions[{idx}].clients[{cidx}].cost must be between 0 and {MAX_COST_PER_ENTRY}"
                )
            counts = item.tokens
            for field in ("input", "output", "cache_read", "cache_write", "reasoning"):
                value = getattr(counts, field)
                if value < 0 or value > MAX_TOKENS_PER_ENTRY:
                    reasons.append(
                        f"contributions[{idx}].clients[{cidx}].tokens.{field} must be between 0 and {MAX_TOKENS_PER_ENTRY}"
                    )
            if item.messages < 0 or item.messages > MAX_TOKENS_PER_ENTRY:
                reasons.append(f"contributions[{idx}].clients[{cidx}].messages out of range")
    for name in payload.summary.clients:
        if not name or not name.strip():
            reasons.append("summary.clients contains a blank name")
            break
    return (len(reasons) == 0), reasons


def submission_warnings(payload) -> List[str]:
    """Non-fatal inconsistencies between the summary metadata and the day data."""
    warnings = []
    declared = set(payload.summary.clients)
    undeclared = sorted({
        item.client
        for day in payload.contributions
        for item in day.clients
        if item.client not in declared
    })
    if undeclared:
        warnings.append(f"summary.clients is missing {', '.join(undeclared)}; treated as submitted")

    date_range = payload.meta.date_range
    outside = [
        day.date for day in payload.contributions
        if not (date_range.start <= day.date <= date_range.end)
    ]
    if outside:
        warnings.append(f"{len(outside)} contribution date(s) fall outside meta.dateRange")
    return warnings
