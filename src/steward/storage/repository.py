"""
Steward Tenant Store

Tenant-scoped persistence for credentials, digests, the audit trail and
the business rows the tools read (entities, transactions, top spenders,
tracking links, content assets) and write (content tasks, queued
messages). Supports SQLite and PostgreSQL via ``steward.storage.db``.

Every statement filters on ``tenant_id``. Blocking SQL runs in a worker
thread (``asyncio.to_thread``) behind a lock on the single connection.

Schema:
- provider_credentials: encrypted tenant keys, unique per (tenant, provider)
- digests: one current digest per (tenant, kind)
- audit_log: append-only action records
- entities, transactions, top_spenders, tracking_links, content_assets
- content_tasks, message_queue: rows created by write tools
"""

from __future__ import annotations

import asyncio
import json
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel

from steward.core.models import AuditEntry
from steward.storage.db import connect


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _like(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CredentialRecord(BaseModel):
    """A stored tenant credential. ``encrypted_key`` is never decrypted here."""

    tenant_id: str
    provider: str
    model_preference: str | None = None
    encrypted_key: str
    key_prefix: str = ""
    is_active: bool = True
    is_valid: bool = True
    created_by: str | None = None
    created_at: str = ""
    last_used_at: str | None = None
    last_validated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> CredentialRecord:
        return cls(
            **{
                **row,
                "is_active": bool(row.get("is_active")),
                "is_valid": bool(row.get("is_valid")),
            }
        )


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS provider_credentials (
        tenant_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        model_preference TEXT,
        encrypted_key TEXT NOT NULL,
        key_prefix TEXT DEFAULT '',
        is_active INTEGER DEFAULT 1,
        is_valid INTEGER DEFAULT 1,
        created_by TEXT,
        created_at TEXT DEFAULT '',
        last_used_at TEXT,
        last_validated_at TEXT,
        PRIMARY KEY (tenant_id, provider)
    );

    CREATE TABLE IF NOT EXISTS digests (
        tenant_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        generated_at TEXT DEFAULT '',
        summary TEXT DEFAULT '{}',
        estimated_tokens INTEGER DEFAULT 0,
        size_bytes INTEGER DEFAULT 0,
        PRIMARY KEY (tenant_id, kind)
    );

    CREATE TABLE IF NOT EXISTS audit_log (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        tool_name TEXT,
        provider TEXT,
        model_name TEXT,
        tokens_in INTEGER,
        tokens_out INTEGER,
        latency_ms INTEGER,
        success INTEGER DEFAULT 1,
        error_message TEXT,
        metadata TEXT DEFAULT '{}',
        created_at TEXT DEFAULT ''
    );

    CREATE INDEX IF NOT EXISTS idx_audit_tenant ON audit_log(tenant_id, created_at);

    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        name TEXT NOT NULL,
        display_name TEXT,
        subscribers INTEGER DEFAULT 0,
        followers INTEGER DEFAULT 0,
        revenue_total REAL DEFAULT 0,
        ig_followers INTEGER DEFAULT 0,
        posts INTEGER DEFAULT 0,
        likes INTEGER DEFAULT 0,
        media_count INTEGER DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_entities_tenant ON entities(tenant_id);

    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity_id TEXT,
        amount REAL DEFAULT 0,
        category TEXT,
        transaction_date TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_transactions_tenant_date
        ON transactions(tenant_id, transaction_date);

    CREATE TABLE IF NOT EXISTS top_spenders (
        tenant_id TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        counterpart_id TEXT NOT NULL,
        username TEXT,
        total_amount REAL DEFAULT 0,
        transaction_count INTEGER DEFAULT 0,
        last_transaction_date TEXT,
        PRIMARY KEY (tenant_id, entity_id, counterpart_id)
    );

    CREATE TABLE IF NOT EXISTS tracking_links (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity_id TEXT,
        slug TEXT NOT NULL,
        clicks INTEGER DEFAULT 0,
        source TEXT,
        created_at TEXT DEFAULT ''
    );

    CREATE TABLE IF NOT EXISTS content_assets (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        media_type TEXT NOT NULL,
        price REAL DEFAULT 0,
        is_free INTEGER DEFAULT 0,
        unlock_count INTEGER DEFAULT 0,
        view_count INTEGER DEFAULT 0,
        created_at TEXT DEFAULT ''
    );

    CREATE TABLE IF NOT EXISTS content_tasks (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity_id TEXT,
        title TEXT NOT NULL,
        description TEXT,
        priority TEXT DEFAULT 'medium',
        status TEXT DEFAULT 'pending',
        due_date TEXT,
        created_by TEXT,
        created_at TEXT DEFAULT ''
    );

    CREATE TABLE IF NOT EXISTS message_queue (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        message_text TEXT NOT NULL,
        target_tier TEXT DEFAULT 'all',
        include_media INTEGER DEFAULT 0,
        status TEXT DEFAULT 'pending_confirmation',
        target_count INTEGER DEFAULT 0,
        created_by TEXT,
        created_at TEXT DEFAULT ''
    )
"""


class TenantStore:
    """Database-backed, tenant-scoped storage."""

    def __init__(self, db_url: str = "steward.db"):
        """Initialize the store.

        Args:
            db_url: Database URL. Use ``postgresql://...`` for PostgreSQL
                    or a file path / ``:memory:`` for SQLite.
        """
        self._db_url = db_url
        self._conn = connect(db_url)
        self._lock = threading.Lock()
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ─── Thread helpers ─────────────────────────────────────

    def _sync_fetchall(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _sync_fetchone(self, sql: str, params: tuple) -> dict[str, Any] | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _sync_write(self, sql: str, params: tuple) -> int:
        with self._lock:
            try:
                count = self._conn.execute(sql, params).rowcount
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            return count

    def _sync_upsert(self, table: str, conflict: tuple, row: dict[str, Any]) -> None:
        with self._lock:
            try:
                self._conn.upsert(table, conflict, list(row), list(row.values()))
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _sync_insert_many(self, table: str, columns: list[str], rows: list[tuple]) -> None:
        placeholders = ", ".join(["?"] * len(columns))
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
        with self._lock:
            try:
                self._conn.executemany(sql, rows)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    async def _fetchall(self, sql: str, *params: Any) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._sync_fetchall, sql, params)

    async def _fetchone(self, sql: str, *params: Any) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._sync_fetchone, sql, params)

    async def _write(self, sql: str, *params: Any) -> int:
        return await asyncio.to_thread(self._sync_write, sql, params)

    async def _upsert(self, table: str, conflict: tuple, row: dict[str, Any]) -> None:
        await asyncio.to_thread(self._sync_upsert, table, conflict, row)

    async def _insert(self, table: str, row: dict[str, Any]) -> None:
        await asyncio.to_thread(
            self._sync_insert_many, table, list(row), [tuple(row.values())]
        )

    # ─── Credentials ────────────────────────────────────────

    async def get_active_credential(self, tenant_id: str) -> CredentialRecord | None:
        """Most recently validated active and valid credential of a tenant."""
        row = await self._fetchone(
            "SELECT * FROM provider_credentials "
            "WHERE tenant_id = ? AND is_active = 1 AND is_valid = 1 "
            "ORDER BY last_validated_at DESC LIMIT 1",
            tenant_id,
        )
        return CredentialRecord.from_row(row) if row else None

    async def upsert_credential(self, record: CredentialRecord) -> None:
        row = record.model_dump()
        row["is_active"] = int(record.is_active)
        row["is_valid"] = int(record.is_valid)
        await self._upsert("provider_credentials", ("tenant_id", "provider"), row)

    async def mark_credential_invalid(self, tenant_id: str, provider: str) -> None:
        await self._write(
            "UPDATE provider_credentials SET is_valid = 0 WHERE tenant_id = ? AND provider = ?",
            tenant_id,
            provider,
        )

    async def touch_credential(self, tenant_id: str, provider: str) -> None:
        await self._write(
            "UPDATE provider_credentials SET last_used_at = ? WHERE tenant_id = ? AND provider = ?",
            _now_iso(),
            tenant_id,
            provider,
        )

    async def list_credentials(self, tenant_id: str) -> list[CredentialRecord]:
        rows = await self._fetchall(
            "SELECT * FROM provider_credentials WHERE tenant_id = ? ORDER BY provider",
            tenant_id,
        )
        return [CredentialRecord.from_row(r) for r in rows]

    async def delete_credential(self, tenant_id: str, provider: str) -> bool:
        count = await self._write(
            "DELETE FROM provider_credentials WHERE tenant_id = ? AND provider = ?",
            tenant_id,
            provider,
        )
        return count > 0

    # ─── Digests ────────────────────────────────────────────

    async def upsert_digest(
        self,
        tenant_id: str,
        kind: str,
        summary: dict[str, Any],
        *,
        estimated_tokens: int,
        size_bytes: int,
        generated_at: str,
    ) -> None:
        """Store a digest, fully replacing the prior one for (tenant, kind)."""
        await self._upsert(
            "digests",
            ("tenant_id", "kind"),
            {
                "tenant_id": tenant_id,
                "kind": kind,
                "generated_at": generated_at,
                "summary": json.dumps(summary, separators=(",", ":")),
                "estimated_tokens": estimated_tokens,
                "size_bytes": size_bytes,
            },
        )

    async def get_digest(self, tenant_id: str, kind: str) -> dict[str, Any] | None:
        row = await self._fetchone(
            "SELECT summary FROM digests WHERE tenant_id = ? AND kind = ?",
            tenant_id,
            kind,
        )
        if row is None:
            return None
        return json.loads(row["summary"])

    # ─── Audit ──────────────────────────────────────────────

    async def insert_audit(self, entry: AuditEntry) -> None:
        await self._insert(
            "audit_log",
            {
                "id": _new_id(),
                "tenant_id": entry.tenant_id,
                "actor_id": entry.actor_id,
                "action": entry.action.value,
                "tool_name": entry.tool_name,
                "provider": entry.provider,
                "model_name": entry.model_name,
                "tokens_in": entry.tokens_in,
                "tokens_out": entry.tokens_out,
                "latency_ms": entry.latency_ms,
                "success": int(entry.success),
                "error_message": entry.error_message,
                "metadata": json.dumps(entry.metadata, default=str),
                "created_at": entry.created_at.isoformat(),
            },
        )

    async def list_audit(self, tenant_id: str, limit: int = 100) -> list[dict[str, Any]]:
        rows = await self._fetchall(
            "SELECT * FROM audit_log WHERE tenant_id = ? ORDER BY created_at DESC LIMIT ?",
            tenant_id,
            limit,
        )
        for row in rows:
            row["success"] = bool(row["success"])
            row["metadata"] = json.loads(row["metadata"] or "{}")
        return rows

    # ─── Entities ───────────────────────────────────────────

    async def add_entity(
        self,
        tenant_id: str,
        name: str,
        *,
        entity_id: str | None = None,
        display_name: str | None = None,
        subscribers: int = 0,
        followers: int = 0,
        revenue_total: float = 0.0,
        ig_followers: int = 0,
        posts: int = 0,
        likes: int = 0,
        media_count: int = 0,
    ) -> str:
        entity_id = entity_id or _new_id()
        await self._insert(
            "entities",
            {
                "id": entity_id,
                "tenant_id": tenant_id,
                "name": name,
                "display_name": display_name,
                "subscribers": subscribers,
                "followers": followers,
                "revenue_total": revenue_total,
                "ig_followers": ig_followers,
                "posts": posts,
                "likes": likes,
                "media_count": media_count,
            },
        )
        return entity_id

    async def list_entities(self, tenant_id: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM entities WHERE tenant_id = ? ORDER BY revenue_total DESC",
            tenant_id,
        )

    async def get_entity(self, tenant_id: str, entity_id: str) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM entities WHERE tenant_id = ? AND id = ?",
            tenant_id,
            entity_id,
        )

    async def find_entities(self, tenant_id: str, name: str, limit: int = 3) -> list[dict[str, Any]]:
        """Case-insensitive substring match on name or display name."""
        pattern = _like(name)
        return await self._fetchall(
            "SELECT * FROM entities WHERE tenant_id = ? "
            "AND (LOWER(name) LIKE ? ESCAPE '\\' OR LOWER(COALESCE(display_name, '')) LIKE ? ESCAPE '\\') "
            "ORDER BY revenue_total DESC LIMIT ?",
            tenant_id,
            pattern,
            pattern,
            limit,
        )

    async def find_entity(self, tenant_id: str, name: str) -> dict[str, Any] | None:
        matches = await self.find_entities(tenant_id, name, limit=1)
        return matches[0] if matches else None

    # ─── Transactions ───────────────────────────────────────

    async def add_transactions(
        self,
        tenant_id: str,
        rows: Iterable[tuple[str | None, float, str | None, date | str]],
    ) -> None:
        """Bulk insert ``(entity_id, amount, category, transaction_date)`` rows."""
        prepared = [
            (_new_id(), tenant_id, entity_id, float(amount), category, str(day))
            for entity_id, amount, category, day in rows
        ]
        await asyncio.to_thread(
            self._sync_insert_many,
            "transactions",
            ["id", "tenant_id", "entity_id", "amount", "category", "transaction_date"],
            prepared,
        )

    async def list_transactions(
        self,
        tenant_id: str,
        start: date,
        end: date | None = None,
        entity_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Transactions with ``start <= transaction_date < end``."""
        sql = (
            "SELECT entity_id, amount, category, transaction_date FROM transactions "
            "WHERE tenant_id = ? AND transaction_date >= ?"
        )
        params: list[Any] = [tenant_id, start.isoformat()]
        if end is not None:
            sql += " AND transaction_date < ?"
            params.append(end.isoformat())
        if entity_id is not None:
            sql += " AND entity_id = ?"
            params.append(entity_id)
        return await self._fetchall(sql, *params)

    # ─── Top spenders ───────────────────────────────────────

    async def upsert_top_spender(
        self,
        tenant_id: str,
        entity_id: str,
        counterpart_id: str,
        *,
        username: str | None,
        total_amount: float,
        transaction_count: int = 0,
        last_transaction_date: str | None = None,
    ) -> None:
        await self._upsert(
            "top_spenders",
            ("tenant_id", "entity_id", "counterpart_id"),
            {
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "counterpart_id": counterpart_id,
                "username": username,
                "total_amount": total_amount,
                "transaction_count": transaction_count,
                "last_transaction_date": last_transaction_date,
            },
        )

    async def list_top_spenders(self, tenant_id: str, limit: int = 3) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM top_spenders WHERE tenant_id = ? ORDER BY total_amount DESC LIMIT ?",
            tenant_id,
            limit,
        )

    async def find_counterparts(self, tenant_id: str, name: str, limit: int = 5) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM top_spenders WHERE tenant_id = ? "
            "AND LOWER(COALESCE(username, '')) LIKE ? ESCAPE '\\' "
            "ORDER BY total_amount DESC LIMIT ?",
            tenant_id,
            _like(name),
            limit,
        )

    async def get_counterpart(
        self, tenant_id: str, entity_id: str, counterpart_id: str
    ) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM top_spenders WHERE tenant_id = ? AND entity_id = ? AND counterpart_id = ?",
            tenant_id,
            entity_id,
            counterpart_id,
        )

    # ─── Tracking links ─────────────────────────────────────

    async def add_tracking_link(
        self,
        tenant_id: str,
        slug: str,
        *,
        clicks: int = 0,
        source: str | None = None,
        entity_id: str | None = None,
    ) -> str:
        link_id = _new_id()
        await self._insert(
            "tracking_links",
            {
                "id": link_id,
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "slug": slug,
                "clicks": clicks,
                "source": source,
                "created_at": _now_iso(),
            },
        )
        return link_id

    async def list_tracking_links(self, tenant_id: str, limit: int = 10) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM tracking_links WHERE tenant_id = ? ORDER BY clicks DESC LIMIT ?",
            tenant_id,
            limit,
        )

    async def total_tracking_clicks(self, tenant_id: str) -> int:
        row = await self._fetchone(
            "SELECT COALESCE(SUM(clicks), 0) AS total FROM tracking_links WHERE tenant_id = ?",
            tenant_id,
        )
        return int(row["total"]) if row else 0

    # ─── Content assets ─────────────────────────────────────

    async def add_content_asset(
        self,
        tenant_id: str,
        entity_id: str,
        media_type: str,
        *,
        asset_id: str | None = None,
        price: float = 0.0,
        is_free: bool = False,
        unlock_count: int = 0,
        view_count: int = 0,
        created_at: str | None = None,
    ) -> str:
        asset_id = asset_id or _new_id()
        await self._insert(
            "content_assets",
            {
                "id": asset_id,
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "media_type": media_type,
                "price": price,
                "is_free": int(is_free),
                "unlock_count": unlock_count,
                "view_count": view_count,
                "created_at": created_at or _now_iso(),
            },
        )
        return asset_id

    async def list_content_assets(
        self,
        tenant_id: str,
        entity_id: str,
        media_type: str | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        sql = "SELECT * FROM content_assets WHERE tenant_id = ? AND entity_id = ?"
        params: list[Any] = [tenant_id, entity_id]
        if media_type is not None:
            sql += " AND media_type = ?"
            params.append(media_type)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        rows = await self._fetchall(sql, *params)
        for row in rows:
            row["is_free"] = bool(row["is_free"])
        return rows

    async def get_content_asset(self, tenant_id: str, asset_id: str) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM content_assets WHERE tenant_id = ? AND id = ?",
            tenant_id,
            asset_id,
        )

    async def update_asset_price(self, tenant_id: str, asset_id: str, price: float) -> bool:
        count = await self._write(
            "UPDATE content_assets SET price = ? WHERE tenant_id = ? AND id = ?",
            price,
            tenant_id,
            asset_id,
        )
        return count > 0

    # ─── Tool-created rows ──────────────────────────────────

    async def create_content_task(
        self,
        tenant_id: str,
        *,
        title: str,
        description: str | None,
        entity_id: str | None,
        priority: str,
        due_date: str | None,
        created_by: str,
    ) -> dict[str, Any]:
        row = {
            "id": _new_id(),
            "tenant_id": tenant_id,
            "entity_id": entity_id,
            "title": title,
            "description": description,
            "priority": priority,
            "status": "pending",
            "due_date": due_date,
            "created_by": created_by,
            "created_at": _now_iso(),
        }
        await self._insert("content_tasks", row)
        return row

    async def list_content_tasks(self, tenant_id: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM content_tasks WHERE tenant_id = ? ORDER BY created_at DESC",
            tenant_id,
        )

    async def queue_message(
        self,
        tenant_id: str,
        *,
        entity_id: str,
        message_text: str,
        target_tier: str,
        include_media: bool,
        target_count: int,
        created_by: str,
    ) -> dict[str, Any]:
        """Queue an outbound campaign. Status is always ``pending_confirmation``."""
        row = {
            "id": _new_id(),
            "tenant_id": tenant_id,
            "entity_id": entity_id,
            "message_text": message_text,
            "target_tier": target_tier,
            "include_media": int(include_media),
            "status": "pending_confirmation",
            "target_count": target_count,
            "created_by": created_by,
            "created_at": _now_iso(),
        }
        await self._insert("message_queue", row)
        return row

    async def list_queued_messages(self, tenant_id: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM message_queue WHERE tenant_id = ? ORDER BY created_at DESC",
            tenant_id,
        )
