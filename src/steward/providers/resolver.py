"""
Steward Provider Resolver

Decides which model handle and credential a tenant's request uses:

1. Fresh cache entry for the tenant → identical cached ProviderConfig.
2. The tenant's active, valid stored credential, decrypted. A credential
   that fails to decrypt is marked invalid and never retried.
3. The system fallback credential from configuration.
4. Nothing usable → ProviderUnavailableError.

Only the requesting tenant's record is ever read.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import SecretStr

from steward.cache import TTLCache
from steward.config import Settings
from steward.core.models import DEFAULT_MODELS, ProviderConfig, ProviderKind
from steward.credentials.vault import CredentialVault
from steward.exceptions import CredentialDecryptionError, ProviderUnavailableError
from steward.providers.base import LLMProvider
from steward.providers.factory import create_handle
from steward.storage.repository import TenantStore

logger = logging.getLogger(__name__)

HandleFactory = Callable[..., LLMProvider]


@dataclass(frozen=True)
class ResolvedProvider:
    """A ready-to-use model handle plus what it was built from."""

    handle: LLMProvider
    provider: str
    model_name: str
    is_system_fallback: bool


def fallback_from_settings(settings: Settings) -> ProviderConfig | None:
    """System credential used when a tenant has no usable key of its own."""
    if settings.fallback_api_key is None:
        return None
    provider = settings.fallback_provider
    model = settings.fallback_model or DEFAULT_MODELS.get(
        provider, DEFAULT_MODELS[ProviderKind.GROQ.value]
    )
    return ProviderConfig(
        provider=provider,
        model_name=model,
        api_key=settings.fallback_api_key,
        is_system_fallback=True,
    )


class ProviderResolver:
    """Per-tenant provider resolution with a TTL cache and system fallback."""

    def __init__(
        self,
        store: TenantStore,
        vault: CredentialVault | None,
        *,
        fallback: ProviderConfig | None = None,
        cache: TTLCache[ProviderConfig] | None = None,
        ttl_seconds: float = 60.0,
        handle_factory: HandleFactory = create_handle,
        timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._vault = vault
        self._fallback = fallback
        self._cache: TTLCache[ProviderConfig] = cache or TTLCache(ttl_seconds, clock=clock)
        self._handle_factory = handle_factory
        self._timeout_seconds = timeout_seconds
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TenantStore,
        vault: CredentialVault | None,
        **kwargs,
    ) -> ProviderResolver:
        return cls(
            store,
            vault,
            fallback=fallback_from_settings(settings),
            ttl_seconds=settings.provider_cache_ttl,
            timeout_seconds=settings.model_timeout,
            **kwargs,
        )

    @property
    def cache(self) -> TTLCache[ProviderConfig]:
        return self._cache

    async def get_config(self, tenant_id: str) -> ProviderConfig:
        """Resolve the ProviderConfig for a tenant (cache, stored key, fallback).

        Raises:
            ProviderUnavailableError: no tenant key and no fallback configured.
        """
        cached = self._cache.get(tenant_id)
        if cached is not None:
            return cached

        config = await self._load_tenant_config(tenant_id)
        if config is None:
            config = self._fallback
        if config is None:
            raise ProviderUnavailableError(
                "none",
                "no tenant credential and no system fallback credential configured",
                details={"tenant_id": tenant_id},
            )

        self._cache.set(tenant_id, config)
        return config

    async def resolve(self, tenant_id: str) -> ResolvedProvider:
        """Resolve a ready-to-use model handle for a tenant."""
        config = await self.get_config(tenant_id)
        handle = self._handle_factory(config, timeout_seconds=self._timeout_seconds)
        return ResolvedProvider(
            handle=handle,
            provider=config.provider,
            model_name=handle.model,
            is_system_fallback=config.is_system_fallback,
        )

    def invalidate(self, tenant_id: str) -> None:
        """Drop the cached config. Call after a key is added, rotated, or removed."""
        self._cache.invalidate(tenant_id)

    async def drain(self) -> None:
        """Wait for pending background bookkeeping tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ─── Internals ──────────────────────────────────────────

    async def _load_tenant_config(self, tenant_id: str) -> ProviderConfig | None:
        try:
            record = await self._store.get_active_credential(tenant_id)
        except Exception as e:
            logger.warning(
                "Credential lookup failed, using fallback: %s",
                type(e).__name__,
                extra={"tenant_id": tenant_id},
            )
            return None
        if record is None:
            return None

        if self._vault is None:
            logger.warning(
                "Tenant has a stored key but no encryption key is configured",
                extra={"tenant_id": tenant_id, "provider": record.provider},
            )
            return None

        try:
            api_key = self._vault.decrypt(record.encrypted_key)
        except CredentialDecryptionError:
            logger.error(
                "Failed to decrypt stored key, marking it invalid",
                extra={"tenant_id": tenant_id, "provider": record.provider},
            )
            await self._mark_invalid(tenant_id, record.provider)
            return None

        config = ProviderConfig(
            provider=record.provider,
            model_name=record.model_preference
            or DEFAULT_MODELS.get(record.provider, DEFAULT_MODELS[ProviderKind.GROQ.value]),
            api_key=SecretStr(api_key),
            is_system_fallback=False,
        )
        self._spawn(self._touch(tenant_id, record.provider))
        return config

    async def _mark_invalid(self, tenant_id: str, provider: str) -> None:
        try:
            await self._store.mark_credential_invalid(tenant_id, provider)
        except Exception as e:
            logger.warning(
                "Could not mark credential invalid: %s",
                type(e).__name__,
                extra={"tenant_id": tenant_id, "provider": provider},
            )

    async def _touch(self, tenant_id: str, provider: str) -> None:
        try:
            await self._store.touch_credential(tenant_id, provider)
        except Exception as e:
            logger.warning(
                "Could not update last_used_at: %s",
                type(e).__name__,
                extra={"tenant_id": tenant_id, "provider": provider},
            )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
