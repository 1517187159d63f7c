"""Tests for per-tenant provider resolution.

Covers:
- Tenant key preferred over the system fallback
- Tenant isolation
- TTL cache identity and invalidation
- Decryption failure marks the key invalid and falls back
- Missing fallback raises ProviderUnavailableError
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from steward.core.models import ProviderConfig
from steward.exceptions import ProviderUnavailableError
from steward.providers.factory import create_handle
from steward.providers.openai import GroqProvider
from steward.providers.resolver import ProviderResolver, fallback_from_settings
from steward.storage.repository import CredentialRecord

# ─── Helpers ────────────────────────────────────────────────


FALLBACK = ProviderConfig(
    provider="groq",
    model_name="llama-3.3-70b-versatile",
    api_key=SecretStr("gsk-system"),
    is_system_fallback=True,
)


def _make_factory():
    built: list[ProviderConfig] = []

    def factory(config: ProviderConfig, *, timeout_seconds: float):
        built.append(config)
        return MagicMock(model=config.model_name)

    factory.built = built  # type: ignore[attr-defined]
    return factory


async def _save_key(store, vault, tenant_id, provider, api_key, model=None, encrypted=None):
    await store.upsert_credential(CredentialRecord(
        tenant_id=tenant_id,
        provider=provider,
        model_preference=model,
        encrypted_key=encrypted if encrypted is not None else vault.encrypt(api_key),
        key_prefix=api_key[:7],
        created_at=datetime.now(UTC).isoformat(),
        last_validated_at=datetime.now(UTC).isoformat(),
    ))


def _make_resolver(store, vault, clock, fallback=FALLBACK, factory=None):
    return ProviderResolver(
        store,
        vault,
        fallback=fallback,
        ttl_seconds=60,
        handle_factory=factory or _make_factory(),
        clock=clock,
    )


# ─── Resolution order ───────────────────────────────────────


class TestResolutionOrder:
    @pytest.mark.asyncio
    async def test_tenant_key_preferred(self, store, vault, clock):
        await _save_key(store, vault, "t1", "anthropic", "sk-ant-tenant-key", model="claude-haiku")
        resolver = _make_resolver(store, vault, clock)

        config = await resolver.get_config("t1")

        assert config.provider == "anthropic"
        assert config.model_name == "claude-haiku"
        assert config.api_key.get_secret_value() == "sk-ant-tenant-key"
        assert config.is_system_fallback is False
        await resolver.drain()

    @pytest.mark.asyncio
    async def test_default_model_when_no_preference(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        config = await _make_resolver(store, vault, clock).get_config("t1")
        assert config.model_name == "gpt-4o"

    @pytest.mark.asyncio
    async def test_fallback_without_tenant_key(self, store, vault, clock):
        config = await _make_resolver(store, vault, clock).get_config("t-none")
        assert config is FALLBACK
        assert config.is_system_fallback is True

    @pytest.mark.asyncio
    async def test_invalid_key_skipped(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        await store.mark_credential_invalid("t1", "openai")
        config = await _make_resolver(store, vault, clock).get_config("t1")
        assert config.is_system_fallback is True

    @pytest.mark.asyncio
    async def test_no_fallback_raises(self, store, vault, clock):
        resolver = _make_resolver(store, vault, clock, fallback=None)
        with pytest.raises(ProviderUnavailableError) as exc:
            await resolver.get_config("t1")
        assert exc.value.code == "provider_unavailable"

    @pytest.mark.asyncio
    async def test_store_failure_falls_back(self, vault, clock):
        broken = MagicMock()
        broken.get_active_credential = AsyncMock(side_effect=RuntimeError("db down"))
        config = await _make_resolver(broken, vault, clock).get_config("t1")
        assert config.is_system_fallback is True

    @pytest.mark.asyncio
    async def test_missing_vault_falls_back(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        config = await _make_resolver(store, None, clock).get_config("t1")
        assert config.is_system_fallback is True


class TestTenantIsolation:
    @pytest.mark.asyncio
    async def test_each_tenant_gets_its_own_key(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-tenant-one-key")
        await _save_key(store, vault, "t2", "anthropic", "sk-ant-tenant-two")
        resolver = _make_resolver(store, vault, clock)

        one = await resolver.get_config("t1")
        two = await resolver.get_config("t2")
        three = await resolver.get_config("t3")

        assert one.api_key.get_secret_value() == "sk-tenant-one-key"
        assert two.api_key.get_secret_value() == "sk-ant-tenant-two"
        assert three.is_system_fallback is True
        await resolver.drain()


# ─── Caching ────────────────────────────────────────────────


class TestCaching:
    @pytest.mark.asyncio
    async def test_identical_config_within_ttl(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        resolver = _make_resolver(store, vault, clock)

        first = await resolver.get_config("t1")
        clock.advance(59)
        second = await resolver.get_config("t1")

        assert second is first
        await resolver.drain()

    @pytest.mark.asyncio
    async def test_reloaded_after_ttl(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        resolver = _make_resolver(store, vault, clock)

        first = await resolver.get_config("t1")
        await _save_key(store, vault, "t1", "openai", "sk-openai-rotated")
        clock.advance(61)
        second = await resolver.get_config("t1")

        assert second is not first
        assert second.api_key.get_secret_value() == "sk-openai-rotated"
        await resolver.drain()

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, store, vault, clock):
        resolver = _make_resolver(store, vault, clock)
        assert (await resolver.get_config("t1")).is_system_fallback

        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        assert (await resolver.get_config("t1")).is_system_fallback

        resolver.invalidate("t1")
        assert not (await resolver.get_config("t1")).is_system_fallback
        await resolver.drain()

    @pytest.mark.asyncio
    async def test_resolvers_do_not_share_cache(self, store, vault, clock):
        a = _make_resolver(store, vault, clock)
        b = _make_resolver(store, vault, clock)
        await a.get_config("t1")
        assert len(a.cache) == 1
        assert len(b.cache) == 0


# ─── Decryption failure ─────────────────────────────────────


class TestDecryptionFailure:
    @pytest.mark.asyncio
    async def test_marks_invalid_and_falls_back(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant", encrypted="garbage")
        resolver = _make_resolver(store, vault, clock)

        config = await resolver.get_config("t1")

        assert config.is_system_fallback is True
        records = await store.list_credentials("t1")
        assert records[0].is_valid is False

    @pytest.mark.asyncio
    async def test_not_retried(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant", encrypted="garbage")
        resolver = _make_resolver(store, vault, clock)
        await resolver.get_config("t1")

        resolver.invalidate("t1")
        assert await store.get_active_credential("t1") is None
        assert (await resolver.get_config("t1")).is_system_fallback


# ─── Handles ────────────────────────────────────────────────


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolve_builds_handle(self, store, vault, clock):
        factory = _make_factory()
        resolver = _make_resolver(store, vault, clock, factory=factory)

        resolved = await resolver.resolve("t1")

        assert resolved.provider == "groq"
        assert resolved.model_name == "llama-3.3-70b-versatile"
        assert resolved.is_system_fallback is True
        assert factory.built == [FALLBACK]

    @pytest.mark.asyncio
    async def test_touches_last_used(self, store, vault, clock):
        await _save_key(store, vault, "t1", "openai", "sk-openai-tenant")
        resolver = _make_resolver(store, vault, clock)
        await resolver.resolve("t1")
        await resolver.drain()
        records = await store.list_credentials("t1")
        assert records[0].last_used_at is not None


class TestFactory:
    def test_unknown_family_degrades_to_groq(self):
        config = ProviderConfig(provider="mistral", model_name="big", api_key=SecretStr("k"))
        handle = create_handle(config)
        assert isinstance(handle, GroqProvider)
        assert handle.model == "llama-3.3-70b-versatile"


class TestFallbackFromSettings:
    def test_none_without_key(self, settings):
        assert fallback_from_settings(settings.model_copy(update={"fallback_api_key": None})) is None

    def test_default_model(self, settings):
        config = fallback_from_settings(settings)
        assert config.provider == "groq"
        assert config.model_name == "llama-3.3-70b-versatile"
        assert config.is_system_fallback is True
