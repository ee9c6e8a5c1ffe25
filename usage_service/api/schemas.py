from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal
from ..pipeline.validation import MAX_COST_PER_ENTRY, MAX_TOKENS_PER_ENTRY

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class TokenCounts(_CamelModel):
    input: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY)
    output: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY)
    cache_read: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY, alias="cacheRead")
    cache_write: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY, alias="cacheWrite")
    reasoning: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY)

class ClientContribution(_CamelModel):
    client: str = Field(min_length=1)
    model_id: str = Field(min_length=1, alias="modelId")
    tokens: TokenCounts
    cost: float = Field(default=0.0, ge=0, le=MAX_COST_PER_ENTRY, allow_inf_nan=False)
    messages: int = Field(default=0, ge=0, le=MAX_TOKENS_PER_ENTRY)
    timestamp_ms: Optional[int] = Field(default=None, ge=0, le=2**63 - 1, alias="timestampMs")

class DailyContribution(_CamelModel):
    date: str
    clients: list[ClientContribution] = Field(default_factory=list)

class DateRange(_CamelModel):
    start: str
    end: str

class SubmissionMeta(_CamelModel):
    generated_at: Optional[str] = Field(default=None, alias="generatedAt")
    version: Optional[str] = None
    date_range: DateRange = Field(alias="dateRange")

class SubmissionSummary(_CamelModel):
    clients: list[str] = Field(default_factory=list)

class SubmissionPayload(_CamelModel):
    meta: SubmissionMeta
    summary: SubmissionSummary = Field(default_factory=SubmissionSummary)
    contributions: list[DailyContribution]

class SubmitMetrics(_CamelModel):
    total_tokens: int = Field(alias="totalTokens")
    total_cost: float = Field(alias="totalCost")
    date_range: Optional[DateRange] = Field(default=None, alias="dateRange")
    active_days: int = Field(alias="activeDays")
    sources: list[str]

class SubmitResponse(_CamelModel):
    success: bool = True
    submission_id: int = Field(alias="submissionId")
    username: str
    mode: Literal['create', 'merge']
    metrics: SubmitMetrics
    warnings: list[str] = Field(default_factory=list)
