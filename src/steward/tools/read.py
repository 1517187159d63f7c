"""
Steward Read Tools

Query-only tools. Every handler reads through the tenant store using the
tenant id from its bound context and returns a small summary dict.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from steward.core.models import TenantContext
from steward.digest.kpi import RANGE_DAYS, KPIProvider
from steward.digest.stats import counterpart_tier, round2
from steward.exceptions import ToolExecutionError
from steward.storage.repository import TenantStore
from steward.tools.models import ToolKind, ToolSpec
from steward.tools.permissions import PermissionTier

Range = Literal["7d", "30d", "90d"]


# ─── Inputs ──────────────────────────────────────────────────

class KPIInput(BaseModel):
    range: Range = Field(default="30d", description="Time range for KPIs")


class EntityStatsInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Name of the creator to look up")


class NoInput(BaseModel):
    pass


class RevenueBreakdownInput(BaseModel):
    range: Range = Field(default="30d", description="Time range")
    entity_name: str | None = Field(default=None, description="Optional: filter by creator name")


class CounterpartInput(BaseModel):
    counterpart_name: str = Field(min_length=1, description="Username of the fan to look up")


class VaultSearchInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Creator whose vault to search")
    media_type: Literal["image", "video", "audio", "all"] = Field(
        default="all", description="Type of media to search for"
    )


def _today() -> date:
    return datetime.now(UTC).date()


def build_read_tools(
    store: TenantStore,
    kpi_provider: KPIProvider,
    *,
    today: Callable[[], date] = _today,
) -> list[ToolSpec]:
    """Read tools bound to the process-wide store and KPI provider."""

    async def get_agency_kpis(ctx: TenantContext, params: KPIInput) -> dict:
        kpis = await kpi_provider.compute_kpis(ctx.tenant_id, params.range)
        return {
            "revenue": {
                "total": kpis.total_revenue,
                "expenses": kpis.total_expenses,
                "net_profit": kpis.net_profit,
                "profit_margin": f"{kpis.profit_margin:.1f}%",
            },
            "subscribers": {
                "active": kpis.active_subscribers,
                "new": kpis.new_subscribers,
                "arpu": f"{kpis.arpu:.2f}",
                "churn_rate": f"{kpis.churn_rate}%",
            },
            "conversion": {"click_to_sub": f"{kpis.conversion_rate:.1f}%"},
            "health": kpis.health.model_dump(),
            "trends": {
                "revenue_change": f"{kpis.revenue_change_pct:.1f}%",
                "subscriber_change": f"{kpis.subscriber_change_pct:.1f}%",
            },
            "top_insights": [
                {"type": i.type, "title": i.title, "action": i.action or i.description}
                for i in kpis.insights[:5]
            ],
        }

    async def get_entity_stats(ctx: TenantContext, params: EntityStatsInput) -> dict:
        rows = await store.find_entities(ctx.tenant_id, params.entity_name, limit=3)
        if not rows:
            raise ToolExecutionError("get_entity_stats", f'No creator found matching "{params.entity_name}"')
        return {
            "entities": [
                {
                    "name": e["display_name"] or e["name"],
                    "revenue_total": e["revenue_total"] or 0,
                    "subscribers": e["subscribers"] or 0,
                    "followers": e["followers"] or 0,
                    "ig_followers": e["ig_followers"] or 0,
                    "posts": e["posts"] or 0,
                    "likes": e["likes"] or 0,
                    "media_count": e["media_count"] or 0,
                }
                for e in rows
            ]
        }

    async def get_tracking_links(ctx: TenantContext, params: NoInput) -> dict:
        links = await store.list_tracking_links(ctx.tenant_id, limit=10)
        if not links:
            return {"message": "No tracking links found."}
        return {
            "total_links": len(links),
            "total_clicks": sum(link["clicks"] or 0 for link in links),
            "links": [
                {
                    "slug": link["slug"],
                    "clicks": link["clicks"] or 0,
                    "source": link["source"] or "unknown",
                    "created": link["created_at"],
                }
                for link in links
            ],
        }

    async def get_revenue_breakdown(ctx: TenantContext, params: RevenueBreakdownInput) -> dict:
        start = today() - timedelta(days=RANGE_DAYS[params.range])
        entity_id = None
        if params.entity_name:
            entity = await store.find_entity(ctx.tenant_id, params.entity_name)
            if entity is not None:
                entity_id = entity["id"]

        transactions = await store.list_transactions(ctx.tenant_id, start, entity_id=entity_id)
        amounts: dict[str, float] = defaultdict(float)
        counts: dict[str, int] = defaultdict(int)
        total = 0.0
        for tx in transactions:
            category = tx["category"] or "other"
            amount = float(tx["amount"] or 0)
            amounts[category] += amount
            counts[category] += 1
            total += amount

        return {
            "period": params.range,
            "total_revenue": round2(total),
            "categories": [
                {
                    "category": category,
                    "amount": round2(amount),
                    "transactions": counts[category],
                    "percentage": f"{amount / total * 100:.1f}%" if total > 0 else "0%",
                }
                for category, amount in sorted(amounts.items(), key=lambda i: i[1], reverse=True)
            ],
        }

    async def get_counterpart_profile(ctx: TenantContext, params: CounterpartInput) -> dict:
        rows = await store.find_counterparts(ctx.tenant_id, params.counterpart_name, limit=5)
        if not rows:
            raise ToolExecutionError(
                "get_counterpart_profile", f'No fan found matching "{params.counterpart_name}"'
            )
        profiles = []
        for row in rows:
            spend = float(row["total_amount"] or 0)
            profiles.append({
                "username": row["username"],
                "total_spend": round2(spend),
                "tier": counterpart_tier(spend).value,
                "transactions": row["transaction_count"] or 0,
                "last_active": row["last_transaction_date"] or "unknown",
            })
        return {"counterparts": profiles}

    async def search_vault(ctx: TenantContext, params: VaultSearchInput) -> dict:
        entity = await store.find_entity(ctx.tenant_id, params.entity_name)
        if entity is None:
            raise ToolExecutionError("search_vault", f'No creator found matching "{params.entity_name}"')
        media_type = None if params.media_type == "all" else params.media_type
        assets = await store.list_content_assets(ctx.tenant_id, entity["id"], media_type, limit=10)
        return {
            "entity": entity["display_name"] or entity["name"],
            "total_found": len(assets),
            "assets": [
                {
                    "id": a["id"],
                    "type": a["media_type"],
                    "price": a["price"] or 0,
                    "is_free": a["is_free"],
                    "created": a["created_at"],
                }
                for a in assets
            ],
        }

    return [
        ToolSpec(
            name="get_agency_kpis",
            description=(
                "Get current agency KPIs: revenue, profit margin, subscribers, ARPU, "
                "conversion, health scores and actionable insights."
            ),
            input_model=KPIInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.ANY,
            handler=get_agency_kpis,
        ),
        ToolSpec(
            name="get_entity_stats",
            description="Get revenue, subscribers, followers and content counts for a specific creator.",
            input_model=EntityStatsInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.ANY,
            handler=get_entity_stats,
        ),
        ToolSpec(
            name="get_tracking_links",
            description="Get tracking link (traffic source) performance: clicks and sources.",
            input_model=NoInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.ANY,
            handler=get_tracking_links,
        ),
        ToolSpec(
            name="get_revenue_breakdown",
            description="Get revenue by transaction category for a period, optionally for one creator.",
            input_model=RevenueBreakdownInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.ANY,
            handler=get_revenue_breakdown,
        ),
        ToolSpec(
            name="get_counterpart_profile",
            description="Look up a fan: spending history, tier (whale/spender/free) and transaction count.",
            input_model=CounterpartInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.OPERATOR,
            handler=get_counterpart_profile,
        ),
        ToolSpec(
            name="search_vault",
            description="Search a creator's content vault by media type.",
            input_model=VaultSearchInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.OPERATOR,
            handler=search_vault,
        ),
    ]
