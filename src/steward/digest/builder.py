"""
Steward Context Digest Builder

Compresses a tenant's last 30 days into a bounded-size digest the model
can read in its system prompt, and builds the per-entity context used
when drafting replies.

Size discipline:
- Soft target: ~800 tokens (3,200 bytes of compact JSON). Exceeding it
  only logs a warning.
- Hard cap: 4,096 bytes by default, never configured below 1,024. Guaranteed by list caps, string truncation and
  a final trimming pass before the digest is stored.

Digests are recomputed periodically (``refresh_all``) and on demand, and
every recomputation fully replaces the stored one for (tenant, kind).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta

from steward.cache import TTLCache
from steward.config import MIN_DIGEST_HARD_BYTES, Settings
from steward.digest.kpi import KPIProvider, KPISet
from steward.digest.models import (
    AgencyDigest,
    CounterpartInfo,
    DigestInsight,
    EntityContext,
    EntityInfo,
    EntitySummary,
    FunnelSummary,
    RecentPerformance,
    RevenueSummary,
    SpenderSummary,
    TopDay,
)
from steward.digest.stats import (
    classify_trend,
    counterpart_tier,
    growth_pct,
    round2,
    truncate,
)
from steward.observability.metrics import record_digest_size
from steward.storage.repository import TenantStore

logger = logging.getLogger(__name__)

WINDOW_DAYS = 30
DEFAULT_KIND = "daily"

MAX_ENTITIES = 8
MAX_INSIGHTS = 3
MAX_TOP_SPENDERS = 3
MAX_CATEGORIES = 6
MAX_NAME_CHARS = 40
MAX_TITLE_CHARS = 80
MAX_ACTION_CHARS = 120
MAX_SEVERITY_CHARS = 16
OTHER_CATEGORY = "other"

MESSAGE_CATEGORIES = ("messages", "message")
PPV_CATEGORIES = ("posts", "ppv", "post")


def _today() -> date:
    return datetime.now(UTC).date()


class DigestBuilder:
    """Builds, stores, caches and serves tenant digests."""

    def __init__(
        self,
        store: TenantStore,
        kpi_provider: KPIProvider,
        *,
        cache: TTLCache[AgencyDigest] | None = None,
        ttl_seconds: float = 600.0,
        soft_bytes: int = 3200,
        hard_bytes: int = 4096,
        today: Callable[[], date] = _today,
        clock: Callable[[], float] = time.monotonic,
    ):
        if hard_bytes < MIN_DIGEST_HARD_BYTES:
            raise ValueError(f"hard_bytes must be at least {MIN_DIGEST_HARD_BYTES}")
        if soft_bytes > hard_bytes:
            raise ValueError("soft_bytes must not exceed hard_bytes")
        self._store = store
        self._kpi = kpi_provider
        self._cache: TTLCache[AgencyDigest] = cache or TTLCache(ttl_seconds, clock=clock)
        self._soft_bytes = soft_bytes
        self._hard_bytes = hard_bytes
        self._today = today

    @classmethod
    def from_settings(
        cls, settings: Settings, store: TenantStore, kpi_provider: KPIProvider, **kwargs
    ) -> DigestBuilder:
        return cls(
            store,
            kpi_provider,
            ttl_seconds=settings.digest_cache_ttl,
            soft_bytes=settings.digest_soft_bytes,
            hard_bytes=settings.digest_hard_bytes,
            **kwargs,
        )

    @property
    def hard_bytes(self) -> int:
        return self._hard_bytes

    # ─── Agency digest ──────────────────────────────────────

    async def build_digest(self, tenant_id: str, kind: str = DEFAULT_KIND) -> AgencyDigest:
        """Recompute, store and cache the tenant's digest."""
        started = time.monotonic()
        today = self._today()
        start = today - timedelta(days=WINDOW_DAYS)
        prev_start = start - timedelta(days=WINDOW_DAYS)

        kpis, entities, current, previous, spenders = await asyncio.gather(
            self._compute_kpis(tenant_id),
            self._store.list_entities(tenant_id),
            self._store.list_transactions(tenant_id, start),
            self._store.list_transactions(tenant_id, prev_start, start),
            self._store.list_top_spenders(tenant_id, limit=MAX_TOP_SPENDERS),
        )

        # Single pass over each window
        by_category: dict[str, float] = defaultdict(float)
        by_day: dict[str, float] = defaultdict(float)
        by_entity: dict[str | None, float] = defaultdict(float)
        for tx in current:
            amount = float(tx["amount"] or 0)
            by_category[tx["category"] or OTHER_CATEGORY] += amount
            by_day[tx["transaction_date"] or "unknown"] += amount
            by_entity[tx["entity_id"]] += amount

        prev_total = 0.0
        prev_by_entity: dict[str | None, float] = defaultdict(float)
        for tx in previous:
            amount = float(tx["amount"] or 0)
            prev_total += amount
            prev_by_entity[tx["entity_id"]] += amount

        total = sum(by_category.values())

        top_day = None
        if by_day:
            day, amount = max(by_day.items(), key=lambda item: item[1])
            top_day = TopDay(date=day, amount=round2(amount))

        generated_at = datetime.now(UTC).isoformat(timespec="seconds")
        digest = AgencyDigest(
            generated_at=generated_at,
            revenue=RevenueSummary(
                total=round2(total),
                net=round2(total * 0.8),
                growth_pct=growth_pct(total, prev_total),
                by_type=_fold_categories(by_category, MAX_CATEGORIES),
                top_day=top_day,
            ),
            entities=_entity_summaries(entities, by_entity, prev_by_entity),
            funnel=_funnel(kpis, by_category, total),
            health=kpis.health,
            insights=[
                DigestInsight(
                    severity=truncate(i.type, MAX_SEVERITY_CHARS),
                    title=truncate(i.title, MAX_TITLE_CHARS),
                    action=truncate(i.action or i.description, MAX_ACTION_CHARS),
                )
                for i in kpis.insights[:MAX_INSIGHTS]
            ],
            top_spenders=[
                SpenderSummary(
                    name=truncate(s["username"] or "Anonymous", MAX_NAME_CHARS),
                    total_spend=round2(s["total_amount"] or 0),
                    last_active=truncate(s["last_transaction_date"] or "unknown", MAX_NAME_CHARS),
                )
                for s in spenders[:MAX_TOP_SPENDERS]
            ],
        )

        digest = self._enforce_size(tenant_id, digest)
        size = digest.size_bytes
        await self._store.upsert_digest(
            tenant_id,
            kind,
            digest.model_dump(mode="json"),
            estimated_tokens=digest.estimated_tokens,
            size_bytes=size,
            generated_at=generated_at,
        )
        self._cache.set(_cache_key(tenant_id, kind), digest)
        record_digest_size(size_bytes=size, over_soft_target=size > self._soft_bytes)

        logger.info(
            "Digest stored: ~%d tokens, %d entities",
            digest.estimated_tokens,
            len(digest.entities),
            extra={
                "tenant_id": tenant_id,
                "digest_bytes": size,
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return digest

    async def get_digest(self, tenant_id: str, kind: str = DEFAULT_KIND) -> AgencyDigest | None:
        """Current digest from cache or store; None if never computed."""
        key = _cache_key(tenant_id, kind)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        stored = await self._store.get_digest(tenant_id, kind)
        if stored is None:
            return None
        digest = AgencyDigest.model_validate(stored)
        self._cache.set(key, digest)
        return digest

    async def refresh_all(
        self, tenant_ids: Iterable[str], *, concurrency: int = 4, kind: str = DEFAULT_KIND
    ) -> dict[str, bool]:
        """Rebuild digests for many tenants. One tenant's failure never stops the rest."""
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _one(tenant_id: str) -> tuple[str, bool]:
            async with semaphore:
                try:
                    await self.build_digest(tenant_id, kind)
                    return tenant_id, True
                except Exception:
                    logger.exception("Digest refresh failed", extra={"tenant_id": tenant_id})
                    return tenant_id, False

        results = await asyncio.gather(*(_one(t) for t in dict.fromkeys(tenant_ids)))
        return dict(results)

    # ─── Entity context ─────────────────────────────────────

    async def build_entity_context(
        self, tenant_id: str, entity_id: str, counterpart_id: str | None = None
    ) -> EntityContext | None:
        """Compact context about one entity (and optionally a counterpart).

        Request-scoped and uncached. None when the entity does not belong
        to the tenant.
        """
        entity = await self._store.get_entity(tenant_id, entity_id)
        if entity is None:
            return None

        start = self._today() - timedelta(days=WINDOW_DAYS)
        transactions = await self._store.list_transactions(tenant_id, start, entity_id=entity_id)

        revenue = 0.0
        by_category: dict[str, float] = defaultdict(float)
        for tx in transactions:
            amount = float(tx["amount"] or 0)
            revenue += amount
            by_category[tx["category"] or OTHER_CATEGORY] += amount
        top_category = (
            max(by_category.items(), key=lambda item: item[1])[0] if by_category else "subscriptions"
        )

        counterpart = None
        if counterpart_id:
            row = await self._store.get_counterpart(tenant_id, entity_id, counterpart_id)
            if row is not None:
                spend = float(row["total_amount"] or 0)
                counterpart = CounterpartInfo(
                    name=truncate(row["username"] or "Anonymous", MAX_NAME_CHARS),
                    tier=counterpart_tier(spend),
                    total_spend=round2(spend),
                    transactions=int(row["transaction_count"] or 0),
                )

        return EntityContext(
            entity=EntityInfo(
                name=truncate(entity["display_name"] or entity["name"] or "Unknown", MAX_NAME_CHARS),
                subscribers=int(entity["subscribers"] or 0),
                followers=int(entity["followers"] or 0),
                revenue_30d=round2(revenue),
            ),
            counterpart=counterpart,
            recent_performance=RecentPerformance(
                trend="active" if revenue > 0 else "inactive",
                top_category=top_category,
            ),
        )

    # ─── Internals ──────────────────────────────────────────

    async def _compute_kpis(self, tenant_id: str) -> KPISet:
        try:
            return await self._kpi.compute_kpis(tenant_id, "30d")
        except Exception as e:
            logger.warning(
                "KPI calculation failed, digest uses zeroed KPIs: %s",
                type(e).__name__,
                extra={"tenant_id": tenant_id},
            )
            return KPISet()

    def _enforce_size(self, tenant_id: str, digest: AgencyDigest) -> AgencyDigest:
        size = digest.size_bytes
        if size > self._soft_bytes:
            logger.warning(
                "Digest exceeds soft target (%d > %d bytes)",
                size,
                self._soft_bytes,
                extra={"tenant_id": tenant_id, "digest_bytes": size},
            )
        while size > self._hard_bytes and _trim_once(digest):
            size = digest.size_bytes
        if size > self._hard_bytes:
            logger.error(
                "Digest still exceeds hard cap after trimming (%d > %d bytes)",
                size,
                self._hard_bytes,
                extra={"tenant_id": tenant_id, "digest_bytes": size},
            )
        return digest


def _cache_key(tenant_id: str, kind: str) -> tuple[str, str]:
    return (tenant_id, kind)


def _fold_categories(by_category: dict[str, float], cap: int) -> dict[str, float]:
    """Keep the top ``cap`` categories; everything else folds into ``other``."""
    ranked = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
    kept: dict[str, float] = {}
    other = 0.0
    for name, amount in ranked:
        key = truncate(name, MAX_NAME_CHARS)
        if key != OTHER_CATEGORY and len(kept) < cap and key not in kept:
            kept[key] = amount
        else:
            other += amount
    result = {k: round2(v) for k, v in kept.items()}
    if other:
        result[OTHER_CATEGORY] = round2(other)
    return result


def _entity_summaries(
    entities: list[dict],
    by_entity: dict[str | None, float],
    prev_by_entity: dict[str | None, float],
) -> list[EntitySummary]:
    summaries = []
    for e in entities:
        revenue = by_entity.get(e["id"], 0.0)
        subscribers = int(e["subscribers"] or 0)
        summaries.append(EntitySummary(
            name=truncate(e["display_name"] or e["name"] or "Unknown", MAX_NAME_CHARS),
            subscribers=subscribers,
            followers=int(e["followers"] or 0),
            revenue=round2(revenue),
            arpu=round2(revenue / subscribers) if subscribers > 0 else 0.0,
            trend=classify_trend(growth_pct(revenue, prev_by_entity.get(e["id"], 0.0))),
        ))
    summaries.sort(key=lambda s: s.revenue, reverse=True)
    return summaries[:MAX_ENTITIES]


def _funnel(kpis: KPISet, by_category: dict[str, float], total: float) -> FunnelSummary:
    message_revenue = next((by_category[c] for c in MESSAGE_CATEGORIES if c in by_category), 0.0)
    ppv_revenue = next((by_category[c] for c in PPV_CATEGORIES if c in by_category), 0.0)
    return FunnelSummary(
        tracking_clicks=kpis.tracking_link_clicks,
        new_subscribers=kpis.new_subscribers,
        click_to_sub_pct=round2(kpis.conversion_rate),
        message_purchase_pct=round(message_revenue / total * 100) if total > 0 else 0,
        ppv_unlock_pct=round(ppv_revenue / total * 100) if total > 0 else 0,
    )


def _trim_once(digest: AgencyDigest) -> bool:
    """Drop one item of lowest value. False once nothing is left to drop."""
    if len(digest.entities) > 1:
        digest.entities.pop()
        return True
    if len(digest.top_spenders) > 1:
        digest.top_spenders.pop()
        return True
    if len(digest.insights) > 1:
        digest.insights.pop()
        return True
    by_type = digest.revenue.by_type
    named = [k for k in by_type if k != OTHER_CATEGORY]
    if named:
        smallest = min(named, key=lambda k: by_type[k])
        by_type[OTHER_CATEGORY] = round2(by_type.get(OTHER_CATEGORY, 0.0) + by_type.pop(smallest))
        return True
    for items in (digest.entities, digest.top_spenders, digest.insights):
        if items:
            items.pop()
            return True
    if by_type:
        by_type.clear()
        return True
    if digest.revenue.top_day is not None:
        digest.revenue.top_day = None
        return True
    return False


def digest_to_prompt(digest: AgencyDigest) -> str:
    """Render a digest as a compact block for the system prompt."""
    rev = digest.revenue
    lines = [
        f"AGENCY DIGEST ({digest.period}, generated {digest.generated_at})",
        f"Revenue: ${rev.total:,.2f} gross, ${rev.net:,.2f} net, growth {rev.growth_pct:+d}%",
    ]
    if rev.by_type:
        lines.append("By type: " + ", ".join(f"{k} ${v:,.2f}" for k, v in rev.by_type.items()))
    if rev.top_day is not None:
        lines.append(f"Top day: {rev.top_day.date} (${rev.top_day.amount:,.2f})")

    if digest.entities:
        lines.append("Creators:")
        for e in digest.entities:
            lines.append(
                f"- {e.name}: ${e.revenue:,.2f}, {e.subscribers} subs, "
                f"{e.followers} followers, ARPU ${e.arpu:.2f}, trend {e.trend.value}"
            )

    f = digest.funnel
    lines.append(
        f"Funnel: {f.tracking_clicks} clicks, {f.new_subscribers} new subs, "
        f"click→sub {f.click_to_sub_pct}%, messages {f.message_purchase_pct}% of revenue, "
        f"PPV {f.ppv_unlock_pct}% of revenue"
    )
    h = digest.health
    lines.append(
        f"Health: {h.overall}/100 (conversion {h.conversion}, "
        f"engagement {h.engagement}, revenue {h.revenue})"
    )

    if digest.insights:
        lines.append("Insights:")
        lines.extend(f"- [{i.severity}] {i.title} → {i.action}" for i in digest.insights)
    if digest.top_spenders:
        lines.append("Top spenders:")
        lines.extend(
            f"- {s.name}: ${s.total_spend:,.2f} (last active {s.last_active})"
            for s in digest.top_spenders
        )
    return "\n".join(lines)
