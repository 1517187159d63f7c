"""
Steward KPI Collaborator

The digest builder and the ``get_agency_kpis`` tool take KPI values from
a ``KPIProvider``. Real deployments plug in their own business formulas;
``StoreKPIProvider`` derives a simple default set from the tenant store.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from steward.digest.models import HealthScores
from steward.digest.stats import growth_rate, round2
from steward.storage.repository import TenantStore

RANGE_DAYS: dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}
PLATFORM_FEE = 0.20


class Insight(BaseModel):
    type: str  # "success" | "warning" | "info"
    title: str
    description: str = ""
    action: str | None = None


class KPISet(BaseModel):
    """KPI values for one tenant over one range."""
    range: str = "30d"
    total_revenue: float = 0.0
    total_expenses: float = 0.0
    net_profit: float = 0.0
    profit_margin: float = 0.0
    active_subscribers: int = 0
    new_subscribers: int = 0
    arpu: float = 0.0
    churn_rate: float = 0.0
    tracking_link_clicks: int = 0
    conversion_rate: float = 0.0
    revenue_change_pct: float = 0.0
    subscriber_change_pct: float = 0.0
    health: HealthScores = Field(default_factory=HealthScores)
    insights: list[Insight] = Field(default_factory=list)


@runtime_checkable
class KPIProvider(Protocol):
    async def compute_kpis(self, tenant_id: str, range: str = "30d") -> KPISet: ...


def _today() -> date:
    return datetime.now(UTC).date()


class StoreKPIProvider:
    """Default KPI provider computed from stored transactions and entities."""

    def __init__(self, store: TenantStore, today: Callable[[], date] = _today):
        self._store = store
        self._today = today

    async def compute_kpis(self, tenant_id: str, range: str = "30d") -> KPISet:
        days = RANGE_DAYS.get(range)
        if days is None:
            raise ValueError(f"Unsupported KPI range: {range}")

        today = self._today()
        start = today - timedelta(days=days)
        prev_start = start - timedelta(days=days)

        current = await self._store.list_transactions(tenant_id, start)
        previous = await self._store.list_transactions(tenant_id, prev_start, start)
        entities = await self._store.list_entities(tenant_id)
        clicks = await self._store.total_tracking_clicks(tenant_id)

        total = sum(float(t["amount"] or 0) for t in current)
        prev_total = sum(float(t["amount"] or 0) for t in previous)
        net = total * (1 - PLATFORM_FEE)
        subscribers = sum(int(e["subscribers"] or 0) for e in entities)
        change_pct = growth_rate(total, prev_total) * 100

        revenue_score = _clamp(50 + change_pct)
        engagement_score = _clamp(len({t["entity_id"] for t in current}) / len(entities) * 100) if entities else 0
        conversion_score = _clamp(subscribers / clicks * 100) if clicks else 0
        health = HealthScores(
            overall=round((revenue_score + engagement_score + conversion_score) / 3),
            conversion=round(conversion_score),
            engagement=round(engagement_score),
            revenue=round(revenue_score),
        )

        return KPISet(
            range=range,
            total_revenue=round2(total),
            net_profit=round2(net),
            profit_margin=round2(net / total * 100) if total > 0 else 0.0,
            active_subscribers=subscribers,
            arpu=round2(total / subscribers) if subscribers else 0.0,
            tracking_link_clicks=clicks,
            conversion_rate=round2(subscribers / clicks * 100) if clicks else 0.0,
            revenue_change_pct=round2(change_pct),
            health=health,
            insights=_insights(change_pct, clicks, entities, current),
        )


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _insights(change_pct: float, clicks: int, entities: list[dict], current: list[dict]) -> list[Insight]:
    insights: list[Insight] = []
    if change_pct <= -10:
        insights.append(Insight(
            type="warning",
            title=f"Revenue down {abs(round(change_pct))}% vs previous period",
            action="Review pricing and re-engage top spenders",
        ))
    elif change_pct >= 10:
        insights.append(Insight(
            type="success",
            title=f"Revenue up {round(change_pct)}% vs previous period",
            action="Double down on the content driving growth",
        ))

    earning = {t["entity_id"] for t in current if float(t["amount"] or 0) > 0}
    idle = [e for e in entities if e["id"] not in earning]
    if idle:
        names = ", ".join((e["display_name"] or e["name"]) for e in idle[:3])
        insights.append(Insight(
            type="warning",
            title=f"No sales this period: {names}",
            action="Schedule new paid content for these creators",
        ))

    if clicks == 0:
        insights.append(Insight(
            type="info",
            title="No tracking link traffic recorded",
            action="Create tracking links for each traffic source",
        ))
    return insights
