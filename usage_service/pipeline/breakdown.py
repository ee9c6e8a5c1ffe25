"""Typed breakdown records: model -> client -> day.

Daily rows store the client map as camelCase JSON; these dataclasses are the
only way the pipeline reads or writes it. Client totals are never stored
independently of their models, they are summed on access.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN

COST_QUANTUM = Decimal("0.0001")
UNKNOWN_MODEL = "unknown"


def to_cost(value) -> Decimal:
    if value is None:
        return Decimal("0").quantize(COST_QUANTUM)
    if not isinstance(value, Decimal):
        # str() first so floats like 0.1 don't carry binary noise
        value = Decimal(str(value))
    return value.quantize(COST_QUANTUM, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class UsageCounts:
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0
    reasoning: int = 0
    cost: Decimal = field(default_factory=lambda: to_cost(0))
    messages: int = 0

    @property
    def tokens(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_write + self.reasoning

    def __add__(self, other: "UsageCounts") -> "UsageCounts":
        if not isinstance(other, UsageCounts):
            return NotImplemented
        return UsageCounts(
            input=self.input + other.input,
            output=self.output + other.output,
            cache_read=self.cache_read + other.cache_read,
            cache_write=self.cache_write + other.cache_write,
            reasoning=self.reasoning + other.reasoning,
            cost=to_cost(self.cost + other.cost),
            messages=self.messages + other.messages,
        )

    def to_dict(self) -> dict:
        return {
            "tokens": self.tokens,
            "cost": str(self.cost),
            "input": self.input,
            "output": self.output,
            "cacheRead": self.cache_read,
            "cacheWrite": self.cache_write,
            "reasoning": self.reasoning,
            "messages": self.messages,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UsageCounts":
        return cls(
            input=int(data.get("input") or 0),
            output=int(data.get("output") or 0),
            cache_read=int(data.get("cacheRead") or 0),
            cache_write=int(data.get("cacheWrite") or 0),
            reasoning=int(data.get("reasoning") or 0),
            cost=to_cost(data.get("cost")),
            messages=int(data.get("messages") or 0),
        )


# One model used by one client on one day carries exactly the shared counters.
ModelEntry = UsageCounts


def sum_counts(items) -> UsageCounts:
    return sum(items, UsageCounts())


@dataclass
class ClientEntry:
    models: dict[str, ModelEntry] = field(default_factory=dict)
    timestamp_ms: int | None = None

    @property
    def totals(self) -> UsageCounts:
        return sum_counts(self.models.values())

    @property
    def tokens(self) -> int:
        return self.totals.tokens

    def with_model(self, model_id: str, entry: ModelEntry, timestamp_ms: int | None = None) -> "ClientEntry":
        models = dict(self.models)
        models[model_id] = models[model_id] + entry if model_id in models else entry
        return ClientEntry(models=models, timestamp_ms=earliest(self.timestamp_ms, timestamp_ms))

    def to_dict(self) -> dict:
        data = self.totals.to_dict()
        data["models"] = {model_id: entry.to_dict() for model_id, entry in sorted(self.models.items())}
        if self.timestamp_ms is not None:
            data["timestampMs"] = self.timestamp_ms
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ClientEntry":
        raw_models = data.get("models")
        if isinstance(raw_models, dict) and raw_models:
            models = {model_id: ModelEntry.from_dict(entry) for model_id, entry in raw_models.items()}
        else:
            # Legacy rows: a single modelId with the counters at client level.
            models = {data.get("modelId") or UNKNOWN_MODEL: ModelEntry.from_dict(data)}
        return cls(models=models, timestamp_ms=data.get("timestampMs"))


def earliest(left: int | None, right: int | None) -> int | None:
    if left is None:
        return right
    if right is None:
        return left
    return min(left, right)


ClientBreakdown = dict[str, ClientEntry]


def breakdown_to_dict(breakdown: ClientBreakdown) -> dict:
    return {client: entry.to_dict() for client, entry in sorted(breakdown.items())}


def breakdown_from_dict(data: dict | None) -> ClientBreakdown:
    return {client: ClientEntry.from_dict(entry) for client, entry in (data or {}).items()}


@dataclass(frozen=True)
class DailyRecord:
    date: str
    clients: ClientBreakdown
    totals: UsageCounts
    model_breakdown: dict[str, int]
    timestamp_ms: int | None = None


@dataclass(frozen=True)
class OwnerTotals:
    totals: UsageCounts
    date_start: str | None
    date_end: str | None
    active_days: int
    sources_used: list[str]
    models_used: list[str]


def build_day_breakdowns(contributions) -> dict[str, ClientBreakdown]:
    """Fold payload contributions into one typed client map per date.

    Contributions for the same client on a day accumulate into one entry,
    and a repeated (client, model) pair sums into one model entry.
    """
    days: dict[str, ClientBreakdown] = {}
    for day in contributions:
        clients = days.setdefault(day.date, {})
        for item in day.clients:
            entry = ModelEntry(
                input=item.tokens.input,
                output=item.tokens.output,
                cache_read=item.tokens.cache_read,
                cache_write=item.tokens.cache_write,
                reasoning=item.tokens.reasoning,
                cost=to_cost(item.cost),
                messages=item.messages,
            )
            current = clients.get(item.client, ClientEntry())
            clients[item.client] = current.with_model(item.model_id, entry, item.timestamp_ms)
    return days
