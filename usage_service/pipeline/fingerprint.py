from typing import Iterable

from ..utils import sha256_json


def submission_fingerprint(submitted_clients: Iterable[str], date_range: tuple[str, str], dates: Iterable[str]) -> str:
    # Scope only: totals are recomputed after the merge and stay out of the hash.
    dates = sorted(set(dates))
    return sha256_json({
        "clients": sorted(set(submitted_clients)),
        "date_range": {"start": date_range[0], "end": date_range[1]},
        "days": len(dates),
        "first": dates[0] if dates else None,
        "last": dates[-1] if dates else None,
    })
