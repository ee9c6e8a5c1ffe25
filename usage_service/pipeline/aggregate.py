from dataclasses import dataclass
from typing import Iterable

from .breakdown import ClientBreakdown, DailyRecord, OwnerTotals, UsageCounts, earliest, sum_counts


@dataclass(frozen=True)
class DayAggregate:
    totals: UsageCounts
    model_breakdown: dict[str, int]
    timestamp_ms: int | None = None


def aggregate_day(clients: ClientBreakdown) -> DayAggregate:
    totals = sum_counts(entry.totals for entry in clients.values())
    model_breakdown: dict[str, int] = {}
    timestamp_ms = None
    for entry in clients.values():
        for model_id, model in entry.models.items():
            model_breakdown[model_id] = model_breakdown.get(model_id, 0) + model.tokens
        timestamp_ms = earliest(timestamp_ms, entry.timestamp_ms)
    return DayAggregate(
        totals=totals,
        model_breakdown=dict(sorted(model_breakdown.items())),
        timestamp_ms=timestamp_ms,
    )


def aggregate_owner(records: Iterable[DailyRecord]) -> OwnerTotals:
    """Owner totals over every stored day, not only the ones just merged."""
    records = list(records)
    sources: set[str] = set()
    models: set[str] = set()
    for record in records:
        for client, entry in record.clients.items():
            sources.add(client)
            models.update(entry.models)
    dates = [record.date for record in records]
    return OwnerTotals(
        totals=sum_counts(record.totals for record in records),
        date_start=min(dates) if dates else None,
        date_end=max(dates) if dates else None,
        active_days=sum(1 for record in records if record.totals.tokens > 0),
        sources_used=sorted(sources),
        models_used=sorted(models),
    )
