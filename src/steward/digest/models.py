"""
Steward Digest Models

The bounded, model-consumable summary of a tenant's last 30 days, and the
request-scoped per-entity context used when drafting replies.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class CounterpartTier(str, Enum):
    WHALE = "whale"
    SPENDER = "spender"
    FREE = "free"


# ─── Agency Digest ───────────────────────────────────────────

class TopDay(BaseModel):
    date: str
    amount: float


class RevenueSummary(BaseModel):
    total: float = 0.0
    net: float = 0.0
    growth_pct: int = 0
    by_type: dict[str, float] = Field(default_factory=dict)
    top_day: TopDay | None = None


class EntitySummary(BaseModel):
    name: str
    subscribers: int = 0
    followers: int = 0
    revenue: float = 0.0
    arpu: float = 0.0
    trend: Trend = Trend.FLAT


class FunnelSummary(BaseModel):
    tracking_clicks: int = 0
    new_subscribers: int = 0
    click_to_sub_pct: float = 0.0
    message_purchase_pct: int = 0
    ppv_unlock_pct: int = 0


class HealthScores(BaseModel):
    overall: int = 0
    conversion: int = 0
    engagement: int = 0
    revenue: int = 0


class DigestInsight(BaseModel):
    severity: str
    title: str
    action: str


class SpenderSummary(BaseModel):
    name: str
    total_spend: float
    last_active: str


class AgencyDigest(BaseModel):
    """Compact tenant digest. Its compact JSON never exceeds the hard byte cap."""
    period: str = "last_30d"
    generated_at: str
    revenue: RevenueSummary = Field(default_factory=RevenueSummary)
    entities: list[EntitySummary] = Field(default_factory=list)
    funnel: FunnelSummary = Field(default_factory=FunnelSummary)
    health: HealthScores = Field(default_factory=HealthScores)
    insights: list[DigestInsight] = Field(default_factory=list)
    top_spenders: list[SpenderSummary] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=False)

    @property
    def size_bytes(self) -> int:
        return len(self.to_json().encode("utf-8"))

    @property
    def estimated_tokens(self) -> int:
        # ~4 characters per token for structured JSON
        return -(-len(self.to_json()) // 4)


# ─── Entity Context ──────────────────────────────────────────

class EntityInfo(BaseModel):
    name: str
    subscribers: int = 0
    followers: int = 0
    revenue_30d: float = 0.0


class CounterpartInfo(BaseModel):
    name: str
    tier: CounterpartTier
    total_spend: float
    transactions: int = 0


class RecentPerformance(BaseModel):
    trend: str  # "active" | "inactive"
    top_category: str


class EntityContext(BaseModel):
    entity: EntityInfo
    counterpart: CounterpartInfo | None = None
    recent_performance: RecentPerformance
