"""Steward persistence: SQLite/PostgreSQL connection and the tenant store."""

from steward.storage.db import DbConnection, connect
from steward.storage.repository import CredentialRecord, TenantStore

__all__ = ["CredentialRecord", "DbConnection", "TenantStore", "connect"]
