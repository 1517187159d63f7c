"""
Steward Credential Service

Lifecycle of tenant provider keys: validate → encrypt → upsert →
invalidate the resolver cache. Listings expose the display prefix only.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel

from steward.core.models import ProviderKind
from steward.credentials.vault import CredentialVault, key_prefix
from steward.exceptions import InvalidProviderError, KeyValidationError
from steward.providers.validation import KeyValidation, validate_api_key
from steward.storage.repository import CredentialRecord, TenantStore

if TYPE_CHECKING:
    from steward.providers.resolver import ProviderResolver

logger = logging.getLogger(__name__)

Validator = Callable[[str, str, float], Awaitable[KeyValidation]]


class CredentialSummary(BaseModel):
    """Caller-safe view of a stored credential (no ciphertext, no plaintext)."""

    provider: str
    model_preference: str | None = None
    key_prefix: str
    is_active: bool
    is_valid: bool
    last_used_at: str | None = None
    last_validated_at: str | None = None

    @classmethod
    def from_record(cls, record: CredentialRecord) -> CredentialSummary:
        return cls(
            provider=record.provider,
            model_preference=record.model_preference,
            key_prefix=record.key_prefix,
            is_active=record.is_active,
            is_valid=record.is_valid,
            last_used_at=record.last_used_at,
            last_validated_at=record.last_validated_at,
        )


class CredentialService:
    """Save, list and remove tenant provider keys."""

    def __init__(
        self,
        store: TenantStore,
        vault: CredentialVault,
        resolver: ProviderResolver | None = None,
        *,
        validator: Validator = validate_api_key,
        validation_timeout: float = 10.0,
    ):
        self._store = store
        self._vault = vault
        self._resolver = resolver
        self._validator = validator
        self._validation_timeout = validation_timeout

    async def save_key(
        self,
        tenant_id: str,
        actor_id: str,
        provider: str,
        api_key: str,
        model_preference: str | None = None,
    ) -> CredentialSummary:
        """Validate and store a tenant key, replacing any key for the same provider.

        Raises:
            InvalidProviderError: provider is not a supported family.
            KeyValidationError: the provider rejected the key.
            ProviderTimeoutError: validation did not finish in time.
        """
        family = provider.lower()
        if family not in {p.value for p in ProviderKind}:
            raise InvalidProviderError(provider)

        result = await self._validator(family, api_key, self._validation_timeout)
        if not result.valid:
            logger.info(
                "Key rejected during validation",
                extra={"tenant_id": tenant_id, "actor_id": actor_id, "provider": family},
            )
            raise KeyValidationError(family, result.error or "key rejected")

        now = datetime.now(UTC).isoformat()
        record = CredentialRecord(
            tenant_id=tenant_id,
            provider=family,
            model_preference=model_preference or None,
            encrypted_key=self._vault.encrypt(api_key),
            key_prefix=key_prefix(api_key),
            is_active=True,
            is_valid=True,
            created_by=actor_id,
            created_at=now,
            last_validated_at=now,
        )
        await self._store.upsert_credential(record)
        self._invalidate(tenant_id)

        logger.info(
            "Stored provider key",
            extra={"tenant_id": tenant_id, "actor_id": actor_id, "provider": family},
        )
        return CredentialSummary.from_record(record)

    async def list_keys(self, tenant_id: str) -> list[CredentialSummary]:
        records = await self._store.list_credentials(tenant_id)
        return [CredentialSummary.from_record(r) for r in records]

    async def remove_key(self, tenant_id: str, provider: str) -> bool:
        """Delete a tenant's key for one provider. Returns False if none existed."""
        removed = await self._store.delete_credential(tenant_id, provider.lower())
        self._invalidate(tenant_id)
        if removed:
            logger.info(
                "Removed provider key",
                extra={"tenant_id": tenant_id, "provider": provider.lower()},
            )
        return removed

    def _invalidate(self, tenant_id: str) -> None:
        if self._resolver is not None:
            self._resolver.invalidate(tenant_id)
