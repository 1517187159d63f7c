"""Tests for the tenant key lifecycle: validate, encrypt, store, invalidate."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from steward.credentials.service import CredentialService
from steward.exceptions import InvalidProviderError, KeyValidationError, ProviderTimeoutError
from steward.providers.resolver import ProviderResolver
from steward.providers.validation import KeyValidation


def _validator(valid: bool = True, error: str | None = None) -> AsyncMock:
    return AsyncMock(return_value=KeyValidation(valid=valid, error=error))


def _make_service(store, vault, resolver=None, validator=None) -> CredentialService:
    return CredentialService(store, vault, resolver, validator=validator or _validator(), validation_timeout=5)


class TestSaveKey:
    @pytest.mark.asyncio
    async def test_stores_encrypted_key(self, store, vault):
        validator = _validator()
        service = _make_service(store, vault, validator=validator)

        summary = await service.save_key("t1", "u1", "OpenAI", "sk-proj-abcdefghijklmnop", "gpt-4o-mini")

        assert summary.provider == "openai"
        assert summary.key_prefix == "sk-proj...mnop"
        assert summary.is_valid and summary.is_active
        validator.assert_awaited_once_with("openai", "sk-proj-abcdefghijklmnop", 5)

        record = await store.get_active_credential("t1")
        assert record.encrypted_key != "sk-proj-abcdefghijklmnop"
        assert vault.decrypt(record.encrypted_key) == "sk-proj-abcdefghijklmnop"
        assert record.model_preference == "gpt-4o-mini"
        assert record.created_by == "u1"

    @pytest.mark.asyncio
    async def test_replaces_same_provider(self, store, vault):
        service = _make_service(store, vault)
        await service.save_key("t1", "u1", "groq", "gsk-first-key-000000")
        await service.save_key("t1", "u1", "groq", "gsk-second-key-11111")

        records = await store.list_credentials("t1")
        assert len(records) == 1
        assert vault.decrypt(records[0].encrypted_key) == "gsk-second-key-11111"

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, store, vault):
        validator = _validator()
        service = _make_service(store, vault, validator=validator)
        with pytest.raises(InvalidProviderError):
            await service.save_key("t1", "u1", "cohere", "key")
        validator.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_key_not_stored(self, store, vault):
        service = _make_service(store, vault, validator=_validator(False, "Openai: 401 authentication rejected"))
        with pytest.raises(KeyValidationError) as exc:
            await service.save_key("t1", "u1", "openai", "sk-bad")
        assert "401" in exc.value.reason
        assert await store.list_credentials("t1") == []

    @pytest.mark.asyncio
    async def test_validation_timeout_propagates(self, store, vault):
        validator = AsyncMock(side_effect=ProviderTimeoutError("openai", "slow"))
        service = _make_service(store, vault, validator=validator)
        with pytest.raises(ProviderTimeoutError):
            await service.save_key("t1", "u1", "openai", "sk-test")

    @pytest.mark.asyncio
    async def test_invalidates_resolver_cache(self, store, vault, clock):
        resolver = ProviderResolver(
            store,
            vault,
            fallback=None,
            handle_factory=MagicMock(),
            clock=clock,
        )
        service = _make_service(store, vault, resolver=resolver)

        await service.save_key("t1", "u1", "openai", "sk-openai-first-key")
        first = await resolver.get_config("t1")
        await service.save_key("t1", "u1", "openai", "sk-openai-rotated-key")
        second = await resolver.get_config("t1")

        assert first.api_key.get_secret_value() == "sk-openai-first-key"
        assert second.api_key.get_secret_value() == "sk-openai-rotated-key"
        await resolver.drain()


class TestListAndRemove:
    @pytest.mark.asyncio
    async def test_list_hides_key_material(self, store, vault):
        service = _make_service(store, vault)
        await service.save_key("t1", "u1", "anthropic", "sk-ant-api03-secretsecret")

        summaries = await service.list_keys("t1")

        dumped = summaries[0].model_dump()
        assert "encrypted_key" not in dumped
        assert "secretsecret" not in str(dumped)

    @pytest.mark.asyncio
    async def test_remove(self, store, vault):
        resolver = MagicMock()
        service = _make_service(store, vault, resolver=resolver)
        await service.save_key("t1", "u1", "groq", "gsk-key-to-remove-000")

        assert await service.remove_key("t1", "GROQ") is True
        assert await service.remove_key("t1", "groq") is False
        assert await service.list_keys("t1") == []
        resolver.invalidate.assert_called_with("t1")
