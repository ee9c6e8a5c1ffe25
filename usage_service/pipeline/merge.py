from typing import Iterable

from .breakdown import ClientBreakdown


def collect_submitted_clients(summary_clients: Iterable[str], contributions) -> frozenset[str]:
    """Clients this submission is authoritative for.

    The summary list is metadata; any client present in the per-day data is
    submitted too, even when the summary forgot it.
    """
    submitted = {name for name in summary_clients if name}
    for day in contributions:
        for item in day.clients:
            submitted.add(item.client)
    return frozenset(submitted)


def merge_client_breakdowns(
    existing: ClientBreakdown | None,
    incoming: ClientBreakdown,
    submitted_clients: Iterable[str],
) -> ClientBreakdown:
    """Merge one day's stored client map with the incoming one.

    A submitted client either replaces its stored entry for the day or, when
    it reported nothing for this date, loses it. Clients outside
    ``submitted_clients`` are carried over untouched. Entries are never summed.
    """
    merged = dict(existing or {})
    for client in submitted_clients:
        if client in incoming:
            merged[client] = incoming[client]
        else:
            merged.pop(client, None)
    return merged
