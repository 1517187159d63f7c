"""
Steward CLI

Operator commands for the orchestration core.

Commands:
    steward generate-key                  Print a fresh vault encryption key
    steward tools --role chatter          List the tools a role may call
    steward keys save TENANT PROVIDER     Validate and store a tenant key
    steward keys list TENANT              List a tenant's stored keys
    steward keys remove TENANT PROVIDER   Delete a tenant's key
    steward digest build TENANT           Recompute a tenant digest
    steward digest show TENANT            Print the current tenant digest
    steward ask TENANT "question"         Run one chat turn
    steward audit TENANT                  View a tenant's audit trail

Settings come from STEWARD_* environment variables (see steward.config).
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from steward import __version__
from steward.config import Settings
from steward.core.models import AgentRequest
from steward.credentials.service import CredentialService
from steward.credentials.vault import CredentialVault, generate_key
from steward.digest.builder import DigestBuilder
from steward.digest.kpi import StoreKPIProvider
from steward.exceptions import ConfigurationError, StewardError
from steward.logging import configure_logging
from steward.providers.resolver import ProviderResolver
from steward.runtime import AgentRuntime
from steward.storage.repository import TenantStore
from steward.tools import build_default_registry


def _print_header(title: str) -> None:
    click.echo(f"\n  {title}")
    click.echo(f"  {'─' * len(title)}")


def _require_vault(settings: Settings) -> CredentialVault:
    if settings.encryption_key is None:
        raise click.ClickException("STEWARD_ENCRYPTION_KEY is not set")
    return CredentialVault(settings.encryption_key.get_secret_value())


@click.group()
@click.version_option(version=__version__, prog_name="steward")
@click.pass_context
def main(ctx: click.Context) -> None:
    """Steward: multi-tenant AI orchestration core."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e
    configure_logging(settings.log_level, settings.log_json)
    ctx.obj = settings


@main.command("generate-key")
def generate_key_cmd() -> None:
    """Print a new 32-byte hex key for STEWARD_ENCRYPTION_KEY."""
    click.echo(generate_key())


@main.command()
@click.option("--role", default=None, help="Caller role (unknown roles get viewer access)")
@click.pass_obj
def tools(settings: Settings, role: str | None) -> None:
    """List the tools a role may call."""
    store = TenantStore(settings.database_url)
    try:
        registry = build_default_registry(store, StoreKPIProvider(store))
        _print_header(f"Tools for role: {role or 'unknown'}")
        for spec in registry.get_all():
            mark = "x" if registry.is_tool_allowed(spec.name, role) else " "
            click.echo(
                f"  [{mark}] {spec.name:26s} {spec.kind.value:8s} {spec.required_permission.value}"
            )
    finally:
        store.close()


# ─── Keys ───────────────────────────────────────────────────


@main.group()
def keys() -> None:
    """Manage tenant provider keys."""


@keys.command("save")
@click.argument("tenant_id")
@click.argument("provider")
@click.option("--api-key", prompt=True, hide_input=True, help="Provider API key")
@click.option("--model", default=None, help="Preferred model name")
@click.option("--actor", default="cli", help="Actor recorded as the key's creator")
@click.pass_obj
def keys_save(
    settings: Settings,
    tenant_id: str,
    provider: str,
    api_key: str,
    model: str | None,
    actor: str,
) -> None:
    """Validate and store a provider key for a tenant."""
    vault = _require_vault(settings)
    store = TenantStore(settings.database_url)
    service = CredentialService(store, vault, validation_timeout=settings.validation_timeout)
    try:
        summary = asyncio.run(service.save_key(tenant_id, actor, provider, api_key, model))
    except StewardError as e:
        raise click.ClickException(f"[{e.code}] {e.message}") from e
    finally:
        store.close()
    click.echo(f"  Stored {summary.provider} key {summary.key_prefix} for {tenant_id}")


@keys.command("list")
@click.argument("tenant_id")
@click.pass_obj
def keys_list(settings: Settings, tenant_id: str) -> None:
    """List a tenant's stored keys (prefixes only)."""
    store = TenantStore(settings.database_url)
    try:
        summaries = asyncio.run(CredentialService(store, _require_vault(settings)).list_keys(tenant_id))
    finally:
        store.close()
    _print_header(f"Keys for {tenant_id}")
    if not summaries:
        click.echo("  No keys stored.")
        return
    for s in summaries:
        state = "valid" if s.is_valid else "INVALID"
        active = "active" if s.is_active else "inactive"
        click.echo(
            f"  {s.provider:10s} {s.key_prefix:16s} [{state}, {active}]  "
            f"model={s.model_preference or 'default'}  last_used={s.last_used_at or 'never'}"
        )


@keys.command("remove")
@click.argument("tenant_id")
@click.argument("provider")
@click.pass_obj
def keys_remove(settings: Settings, tenant_id: str, provider: str) -> None:
    """Delete a tenant's key for one provider."""
    store = TenantStore(settings.database_url)
    try:
        removed = asyncio.run(
            CredentialService(store, _require_vault(settings)).remove_key(tenant_id, provider)
        )
    finally:
        store.close()
    if not removed:
        raise click.ClickException(f"No {provider} key stored for {tenant_id}")
    click.echo(f"  Removed {provider.lower()} key for {tenant_id}")


# ─── Digest ─────────────────────────────────────────────────


@main.group()
def digest() -> None:
    """Build and inspect tenant digests."""


@digest.command("build")
@click.argument("tenant_ids", nargs=-1, required=True)
@click.pass_obj
def digest_build(settings: Settings, tenant_ids: tuple[str, ...]) -> None:
    """Recompute and store digests for one or more tenants."""
    store = TenantStore(settings.database_url)
    builder = DigestBuilder.from_settings(settings, store, StoreKPIProvider(store))
    try:
        results = asyncio.run(builder.refresh_all(list(tenant_ids)))
    finally:
        store.close()
    for tenant_id, ok in results.items():
        click.echo(f"  {tenant_id:24s} {'OK' if ok else 'FAILED'}")
    if not all(results.values()):
        sys.exit(1)


@digest.command("show")
@click.argument("tenant_id")
@click.pass_obj
def digest_show(settings: Settings, tenant_id: str) -> None:
    """Print the stored digest for a tenant as JSON."""
    store = TenantStore(settings.database_url)
    builder = DigestBuilder.from_settings(settings, store, StoreKPIProvider(store))
    try:
        result = asyncio.run(builder.get_digest(tenant_id))
    finally:
        store.close()
    if result is None:
        raise click.ClickException(f"No digest stored for {tenant_id}")
    click.echo(json.dumps(json.loads(result.to_json()), indent=2))
    click.echo(f"\n  {result.size_bytes} bytes, ~{result.estimated_tokens} tokens", err=True)


# ─── Agent ──────────────────────────────────────────────────


@main.command()
@click.argument("tenant_id")
@click.argument("message")
@click.option("--actor", default="cli", help="Actor ID")
@click.option("--role", default=None, help="Actor role")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_obj
def ask(
    settings: Settings,
    tenant_id: str,
    message: str,
    actor: str,
    role: str | None,
    json_output: bool,
) -> None:
    """Run one chat turn for a tenant."""
    request = AgentRequest(tenant_id=tenant_id, actor_id=actor, actor_role=role, message=message)
    response = asyncio.run(_ask(settings, request))

    if json_output:
        click.echo(json.dumps(response.model_dump(), indent=2, default=str))
        return
    if not response.success:
        raise click.ClickException(f"[{response.error_code}] {response.error_message}")
    click.echo(response.text)
    if response.tool_calls_executed:
        _print_header("Tool calls")
        for call in response.tool_calls_executed:
            status = "ok" if call.success else call.error_code
            click.echo(f"  {call.tool_name:26s} {status}")
    source = "system fallback" if response.is_system_fallback else "tenant key"
    click.echo(f"\n  {response.provider}/{response.model_name} ({source})", err=True)


async def _ask(settings: Settings, request: AgentRequest):
    store = TenantStore(settings.database_url)
    runtime = AgentRuntime.from_settings(settings, store)
    try:
        return await runtime.handle(request)
    finally:
        await runtime.audit.drain()
        await runtime.resolver.drain()
        store.close()


@main.command()
@click.argument("tenant_id")
@click.option("--limit", default=20, type=int, help="Number of entries")
@click.pass_obj
def audit(settings: Settings, tenant_id: str, limit: int) -> None:
    """View a tenant's most recent audit entries."""
    store = TenantStore(settings.database_url)
    try:
        rows = asyncio.run(store.list_audit(tenant_id, limit))
    finally:
        store.close()
    _print_header(f"Audit trail: {tenant_id}")
    if not rows:
        click.echo("  No entries found.")
        return
    for row in rows:
        status = "OK" if row["success"] else "FAIL"
        subject = row.get("tool_name") or row.get("model_name") or ""
        latency = f"{row['latency_ms']}ms" if row.get("latency_ms") is not None else ""
        click.echo(
            f"  {row['created_at'][:19]}  {row['action']:15s} [{status:4s}] {subject:26s} {latency}"
        )


if __name__ == "__main__":
    main()
