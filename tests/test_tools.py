"""Tests for the tool catalog executed against a real SQLite tenant store.

Covers:
- Structured results for invalid input, handler failures and permission denials
- Read tools see only the bound tenant's rows
- Write tools mutate only the bound tenant's rows
- Mass messages are queued, never sent
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from steward.digest.kpi import KPISet, StoreKPIProvider
from steward.tools import build_default_registry
from steward.tools.actions import suggested_price
from steward.tools.models import ToolKind, ToolSpec
from steward.tools.permissions import PermissionTier
from steward.tools.read import NoInput
from steward.tools.registry import ToolRegistry

TODAY = datetime.now(UTC).date()

# ─── Helpers ────────────────────────────────────────────────


@pytest.fixture
def registry(store):
    return build_default_registry(store, StoreKPIProvider(store, today=lambda: TODAY))


async def _seed(store, tenant_id: str, name: str = "Mia", revenue: float = 5000.0) -> str:
    entity_id = await store.add_entity(
        tenant_id,
        name.lower(),
        display_name=name,
        subscribers=100,
        followers=2500,
        revenue_total=revenue,
    )
    await store.add_transactions(tenant_id, [
        (entity_id, 120.0, "subscriptions", TODAY - timedelta(days=2)),
        (entity_id, 80.0, "messages", TODAY - timedelta(days=3)),
        (entity_id, 40.0, "tips", TODAY - timedelta(days=40)),
    ])
    await store.upsert_top_spender(
        tenant_id, entity_id, f"{tenant_id}-fan", username=f"{name.lower()}_fan", total_amount=1500.0,
        transaction_count=12, last_transaction_date="2026-06-10",
    )
    await store.add_tracking_link(tenant_id, f"{name.lower()}-ig", clicks=300, source="instagram")
    return entity_id


async def _fail(ctx, params):
    raise RuntimeError("connection reset")


# ─── Boundary behaviour ─────────────────────────────────────


class TestToolBoundary:
    @pytest.mark.asyncio
    async def test_invalid_input_is_structured(self, registry):
        tools = registry.get_tools_for_role("owner", "t1", "u1")
        result = await tools.execute("get_agency_kpis", {"range": "1y"})
        assert result.success is False
        assert result.error_code == "tool_validation_failed"
        assert "range" in result.error_message

    @pytest.mark.asyncio
    async def test_missing_required_field(self, registry):
        tools = registry.get_tools_for_role("owner", "t1", "u1")
        result = await tools.execute("get_entity_stats", {})
        assert result.error_code == "tool_validation_failed"

    @pytest.mark.asyncio
    async def test_not_in_set_rejected(self, registry):
        tools = registry.get_tools_for_role("viewer", "t1", "u1")
        result = await tools.execute("send_mass_message", {"entity_name": "Mia", "message_text": "hi"})
        assert result.success is False
        assert result.error_code == "tool_not_permitted"

    @pytest.mark.asyncio
    async def test_handler_exception_is_structured(self):
        registry = ToolRegistry()
        registry.register(ToolSpec(
            name="flaky",
            description="fails",
            input_model=NoInput,
            kind=ToolKind.READ,
            required_permission=PermissionTier.ANY,
            handler=_fail,
        ))
        result = await registry.get_tools_for_role(None, "t1", "u1").execute("flaky", None)
        assert result.success is False
        assert result.error_code == "tool_execution_failed"
        assert "connection reset" not in result.error_message

    def test_error_content_is_json(self):
        from steward.tools.models import ToolResult

        content = ToolResult(
            tool_name="x", success=False, error_code="tool_not_permitted", error_message="nope"
        ).to_content()
        assert json.loads(content) == {"error": "nope", "code": "tool_not_permitted"}


# ─── Read tools ─────────────────────────────────────────────


class TestReadTools:
    @pytest.mark.asyncio
    async def test_agency_kpis(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute(
            "get_agency_kpis", {"range": "30d"}
        )
        assert result.success
        assert result.output["revenue"]["total"] == 200.0
        assert result.output["subscribers"]["active"] == 100

    @pytest.mark.asyncio
    async def test_agency_kpis_uses_provider(self, store):
        kpi = AsyncMock()
        kpi.compute_kpis = AsyncMock(return_value=KPISet(total_revenue=42.0))
        registry = build_default_registry(store, kpi)
        result = await registry.get_tools_for_role(None, "t9", "u1").execute("get_agency_kpis", {})
        assert result.output["revenue"]["total"] == 42.0
        kpi.compute_kpis.assert_awaited_once_with("t9", "30d")

    @pytest.mark.asyncio
    async def test_entity_stats(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute(
            "get_entity_stats", {"entity_name": "mi"}
        )
        assert result.output["entities"][0]["name"] == "Mia"
        assert result.output["entities"][0]["subscribers"] == 100

    @pytest.mark.asyncio
    async def test_entity_not_found(self, store, registry):
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute(
            "get_entity_stats", {"entity_name": "Nobody"}
        )
        assert result.success is False
        assert result.error_code == "tool_execution_failed"
        assert "Nobody" in result.error_message

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute(
            "get_entity_stats", {"entity_name": "%"}
        )
        assert result.success is False

    @pytest.mark.asyncio
    async def test_tracking_links(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute("get_tracking_links", {})
        assert result.output["total_clicks"] == 300
        assert result.output["links"][0]["source"] == "instagram"

    @pytest.mark.asyncio
    async def test_tracking_links_empty(self, registry):
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute("get_tracking_links", {})
        assert result.output == {"message": "No tracking links found."}

    @pytest.mark.asyncio
    async def test_revenue_breakdown(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("viewer", "t1", "u1").execute(
            "get_revenue_breakdown", {"range": "30d"}
        )
        output = result.output
        assert output["total_revenue"] == 200.0
        assert [c["category"] for c in output["categories"]] == ["subscriptions", "messages"]
        assert output["categories"][0]["percentage"] == "60.0%"

    @pytest.mark.asyncio
    async def test_counterpart_profile(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("chatter", "t1", "u1").execute(
            "get_counterpart_profile", {"counterpart_name": "MIA_"}
        )
        profile = result.output["counterparts"][0]
        assert profile["tier"] == "whale"
        assert profile["transactions"] == 12

    @pytest.mark.asyncio
    async def test_search_vault_filters_media_type(self, store, registry):
        entity_id = await _seed(store, "t1")
        await store.add_content_asset("t1", entity_id, "video", price=15.0)
        await store.add_content_asset("t1", entity_id, "image", price=5.0, is_free=True)
        tools = registry.get_tools_for_role("chatter", "t1", "u1")

        everything = await tools.execute("search_vault", {"entity_name": "Mia"})
        videos = await tools.execute("search_vault", {"entity_name": "Mia", "media_type": "video"})

        assert everything.output["total_found"] == 2
        assert videos.output["total_found"] == 1
        assert videos.output["assets"][0]["type"] == "video"


class TestTenantIsolation:
    @pytest.mark.asyncio
    async def test_reads_scoped_to_bound_tenant(self, store, registry):
        await _seed(store, "t1", "Mia", revenue=5000)
        await _seed(store, "t2", "Mia Rival", revenue=9000)

        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "get_entity_stats", {"entity_name": "mia"}
        )
        names = [e["name"] for e in result.output["entities"]]
        assert names == ["Mia"]

    @pytest.mark.asyncio
    async def test_counterparts_scoped(self, store, registry):
        await _seed(store, "t2", "Zoe")
        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "get_counterpart_profile", {"counterpart_name": "zoe"}
        )
        assert result.success is False

    @pytest.mark.asyncio
    async def test_cannot_reprice_other_tenant_asset(self, store, registry):
        entity_id = await _seed(store, "t2", "Zoe")
        asset_id = await store.add_content_asset("t2", entity_id, "video", price=15.0)

        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "adjust_recommended_price", {"asset_id": asset_id, "new_price": 1.0}
        )

        assert result.success is False
        assert (await store.get_content_asset("t2", asset_id))["price"] == 15.0


# ─── Suggest / write tools ──────────────────────────────────


class TestActionTools:
    def test_suggested_price(self):
        price, adjustments = suggested_price("video", duration_seconds=120, is_explicit=True, arpu=60)
        assert price == round(15.0 * 1.5 * 1.3, 2)
        assert len(adjustments) == 3

    def test_suggested_price_low_arpu_image(self):
        price, _ = suggested_price("image", duration_seconds=None, is_explicit=False, arpu=5)
        assert price == 4.0

    @pytest.mark.asyncio
    async def test_suggest_price_tool(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("chatter", "t1", "u1").execute(
            "suggest_price", {"entity_name": "Mia", "media_type": "audio"}
        )
        assert result.output["suggested_price"] == 8.0
        assert result.output["reasoning"]["audience_arpu"] == "50.00"

    @pytest.mark.asyncio
    async def test_draft_message_has_no_side_effects(self, store, registry):
        result = await registry.get_tools_for_role("chatter", "t1", "u1").execute(
            "draft_message", {"entity_name": "Mia", "counterpart_tier": "whale", "context": "asked for pics"}
        )
        assert result.output["status"] == "suggestion_ready"
        assert await store.list_queued_messages("t1") == []

    @pytest.mark.asyncio
    async def test_flag_underperformer(self, store, registry):
        entity_id = await _seed(store, "t1")
        for unlocks, views in [(50, 500), (40, 400), (2, 10)]:
            await store.add_content_asset(
                "t1", entity_id, "video", unlock_count=unlocks, view_count=views
            )
        result = await registry.get_tools_for_role("paladin", "t1", "u1").execute(
            "flag_underperformer", {"entity_name": "Mia"}
        )
        assert result.output["total_assets"] == 3
        assert result.output["flagged_count"] == 1
        assert result.output["flagged_assets"][0]["unlocks"] == 2

    @pytest.mark.asyncio
    async def test_create_content_task(self, store, registry):
        entity_id = await _seed(store, "t1")
        result = await registry.get_tools_for_role("admin", "t1", "u7").execute(
            "create_content_task", {"title": "Beach shoot", "entity_name": "Mia", "priority": "high"}
        )
        assert result.success
        tasks = await store.list_content_tasks("t1")
        assert len(tasks) == 1
        assert tasks[0]["entity_id"] == entity_id
        assert tasks[0]["created_by"] == "u7"
        assert await store.list_content_tasks("t2") == []

    @pytest.mark.asyncio
    async def test_adjust_price(self, store, registry):
        entity_id = await _seed(store, "t1")
        asset_id = await store.add_content_asset("t1", entity_id, "video", price=15.0)
        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "adjust_recommended_price", {"asset_id": asset_id, "new_price": 19.99}
        )
        assert result.output["old_price"] == 15.0
        assert (await store.get_content_asset("t1", asset_id))["price"] == 19.99

    @pytest.mark.asyncio
    async def test_negative_price_rejected(self, registry):
        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "adjust_recommended_price", {"asset_id": "a1", "new_price": -1}
        )
        assert result.error_code == "tool_validation_failed"

    @pytest.mark.asyncio
    async def test_mass_message_queued_for_confirmation(self, store, registry):
        await _seed(store, "t1")
        text = "x" * 150
        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "send_mass_message", {"entity_name": "Mia", "message_text": text, "target_tier": "whale"}
        )
        assert result.output["status"] == "pending_confirmation"
        assert result.output["message_preview"] == "x" * 100 + "..."
        assert result.output["target_count"] == 100
        queued = await store.list_queued_messages("t1")
        assert queued[0]["status"] == "pending_confirmation"

    @pytest.mark.asyncio
    async def test_mass_message_length_cap(self, store, registry):
        await _seed(store, "t1")
        result = await registry.get_tools_for_role("owner", "t1", "u1").execute(
            "send_mass_message", {"entity_name": "Mia", "message_text": "x" * 501}
        )
        assert result.error_code == "tool_validation_failed"
        assert await store.list_queued_messages("t1") == []
