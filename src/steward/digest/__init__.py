"""Steward context digests: bounded tenant summaries for the model prompt."""

from steward.digest.builder import DigestBuilder, digest_to_prompt
from steward.digest.kpi import Insight, KPIProvider, KPISet, StoreKPIProvider
from steward.digest.models import AgencyDigest, EntityContext, Trend
from steward.digest.stats import classify_trend, counterpart_tier, growth_rate

__all__ = [
    "AgencyDigest",
    "DigestBuilder",
    "EntityContext",
    "Insight",
    "KPIProvider",
    "KPISet",
    "StoreKPIProvider",
    "Trend",
    "classify_trend",
    "counterpart_tier",
    "digest_to_prompt",
    "growth_rate",
]
