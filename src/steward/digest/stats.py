"""Small pure calculations shared by the digest builder, KPIs and tools."""

from __future__ import annotations

from steward.digest.models import CounterpartTier, Trend

TREND_THRESHOLD_PCT = 5.0
WHALE_MIN_SPEND = 1000.0
SPENDER_MIN_SPEND = 100.0


def growth_rate(current: float, previous: float) -> float:
    """Fractional growth of ``current`` over ``previous``; 0 when previous <= 0."""
    if previous > 0:
        return (current - previous) / previous
    return 0.0


def growth_pct(current: float, previous: float) -> int:
    return round(growth_rate(current, previous) * 100)


def classify_trend(pct: float) -> Trend:
    if pct > TREND_THRESHOLD_PCT:
        return Trend.UP
    if pct < -TREND_THRESHOLD_PCT:
        return Trend.DOWN
    return Trend.FLAT


def counterpart_tier(total_spend: float) -> CounterpartTier:
    if total_spend >= WHALE_MIN_SPEND:
        return CounterpartTier.WHALE
    if total_spend >= SPENDER_MIN_SPEND:
        return CounterpartTier.SPENDER
    return CounterpartTier.FREE


def round2(value: float) -> float:
    return round(float(value), 2)


def truncate(text: str | None, limit: int) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"
