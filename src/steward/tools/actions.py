"""
Steward Action Tools

Suggest tools draft content or recommendations and change nothing.
Write tools mutate tenant state with a single statement, so a cancelled
call leaves data either unchanged or fully applied. Outbound campaigns
are only ever queued for owner confirmation, never sent.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from steward.core.models import TenantContext
from steward.digest.stats import round2
from steward.exceptions import ToolExecutionError
from steward.storage.repository import TenantStore
from steward.tools.models import ToolKind, ToolSpec
from steward.tools.permissions import PermissionTier

MAX_MESSAGE_CHARS = 500
PREVIEW_CHARS = 100


# ─── Inputs ──────────────────────────────────────────────────

class DraftMessageInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Creator to write as")
    counterpart_tier: Literal["whale", "spender", "free", "unknown"] = Field(
        description="Fan spending tier"
    )
    context: str = Field(description="Brief context about the conversation or what the fan said")
    tone: Literal["flirty", "casual", "upsell", "warm", "professional"] = Field(
        default="flirty", description="Tone for the message"
    )


class SuggestPriceInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Creator name")
    media_type: Literal["image", "video", "audio"] = Field(description="Type of content")
    duration_seconds: float | None = Field(
        default=None, ge=0, description="Duration in seconds (for video/audio)"
    )
    is_explicit: bool = Field(default=False, description="Whether the content is explicit")


class FlagUnderperformerInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Creator to analyze")
    threshold: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Assets below this fraction of the average are flagged",
    )


class ContentTaskInput(BaseModel):
    title: str = Field(min_length=1, max_length=200, description="Task title")
    description: str | None = Field(default=None, description="Task details")
    entity_name: str = Field(min_length=1, description="Creator this task is for")
    priority: Literal["low", "medium", "high", "urgent"] = Field(
        default="medium", description="Task priority"
    )
    due_date: str | None = Field(default=None, description="Due date (ISO format)")


class AdjustPriceInput(BaseModel):
    asset_id: str = Field(min_length=1, description="ID of the content asset to reprice")
    new_price: float = Field(ge=0, description="New recommended price in dollars")
    reason: str | None = Field(default=None, description="Reason for the price change")


class MassMessageInput(BaseModel):
    entity_name: str = Field(min_length=1, description="Creator to send as")
    message_text: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS, description="Message text")
    target_tier: Literal["all", "whale", "spender", "free"] = Field(
        default="all", description="Target audience tier"
    )
    include_media: bool = Field(default=False, description="Whether to include media")


def suggested_price(
    media_type: str,
    *,
    duration_seconds: float | None,
    is_explicit: bool,
    arpu: float,
) -> tuple[float, list[str]]:
    """Price suggestion and the adjustments that produced it."""
    adjustments: list[str] = []
    if media_type == "video":
        long_form = bool(duration_seconds and duration_seconds > 60)
        price = 15.0 if long_form else 10.0
        if long_form:
            adjustments.append("Long-form video (higher base)")
    elif media_type == "image":
        price = 5.0
    else:
        price = 8.0

    if is_explicit:
        price *= 1.5
        adjustments.append("Explicit content (+50%)")
    if arpu > 50:
        price *= 1.3
        adjustments.append("High ARPU audience (+30%)")
    elif arpu < 10:
        price *= 0.8
        adjustments.append("Low ARPU audience (-20%)")
    return round2(price), adjustments


def build_action_tools(store: TenantStore) -> list[ToolSpec]:
    """Suggest and write tools bound to the process-wide store."""

    async def _entity_or_fail(tool_name: str, tenant_id: str, name: str) -> dict:
        entity = await store.find_entity(tenant_id, name)
        if entity is None:
            raise ToolExecutionError(tool_name, f'No creator found matching "{name}"')
        return entity

    # ─── Suggest ────────────────────────────────────────────

    async def draft_message(ctx: TenantContext, params: DraftMessageInput) -> dict:
        return {
            "action": "draft_message",
            "status": "suggestion_ready",
            "entity_name": params.entity_name,
            "counterpart_tier": params.counterpart_tier,
            "tone": params.tone,
            "instruction": (
                f"Generate a {params.tone} reply as {params.entity_name} to a "
                f"{params.counterpart_tier} fan. Context: {params.context}. "
                "Keep under 100 words, use 1-2 emojis max."
            ),
        }

    async def suggest_price(ctx: TenantContext, params: SuggestPriceInput) -> dict:
        entity = await store.find_entity(ctx.tenant_id, params.entity_name)
        subscribers = int(entity["subscribers"] or 0) if entity else 0
        arpu = float(entity["revenue_total"] or 0) / subscribers if subscribers else 10.0
        price, adjustments = suggested_price(
            params.media_type,
            duration_seconds=params.duration_seconds,
            is_explicit=params.is_explicit,
            arpu=arpu,
        )
        return {
            "suggested_price": price,
            "reasoning": {
                "media_type": params.media_type,
                "audience_arpu": f"{arpu:.2f}",
                "adjustments": adjustments,
            },
            "note": "This is a suggestion. Adjust based on your knowledge of this audience.",
        }

    async def flag_underperformer(ctx: TenantContext, params: FlagUnderperformerInput) -> dict:
        entity = await _entity_or_fail("flag_underperformer", ctx.tenant_id, params.entity_name)
        assets = await store.list_content_assets(ctx.tenant_id, entity["id"], limit=50)
        if not assets:
            return {"message": "No content assets found for this creator."}

        avg_unlocks = sum(a["unlock_count"] or 0 for a in assets) / len(assets)
        avg_views = sum(a["view_count"] or 0 for a in assets) / len(assets)
        flagged = [
            a for a in assets
            if (a["unlock_count"] or 0) < avg_unlocks * params.threshold
            and (a["view_count"] or 0) < avg_views * params.threshold
        ]
        return {
            "entity": entity["display_name"] or entity["name"],
            "total_assets": len(assets),
            "average_unlocks": round(avg_unlocks, 1),
            "average_views": round(avg_views, 1),
            "flagged_count": len(flagged),
            "flagged_assets": [
                {
                    "id": a["id"],
                    "type": a["media_type"],
                    "price": a["price"] or 0,
                    "unlocks": a["unlock_count"] or 0,
                    "views": a["view_count"] or 0,
                    "recommendation": "Consider repricing, reposting, or removing.",
                }
                for a in flagged[:10]
            ],
        }

    # ─── Write ──────────────────────────────────────────────

    async def create_content_task(ctx: TenantContext, params: ContentTaskInput) -> dict:
        entity = await store.find_entity(ctx.tenant_id, params.entity_name)
        task = await store.create_content_task(
            ctx.tenant_id,
            title=params.title,
            description=params.description,
            entity_id=entity["id"] if entity else None,
            priority=params.priority,
            due_date=params.due_date,
            created_by=ctx.actor_id,
        )
        target = (entity["display_name"] or entity["name"]) if entity else params.entity_name
        return {
            "success": True,
            "task": {
                "id": task["id"],
                "title": task["title"],
                "priority": task["priority"],
                "status": task["status"],
                "due_date": task["due_date"],
            },
            "message": f'Content task "{params.title}" created for {target}.',
        }

    async def adjust_recommended_price(ctx: TenantContext, params: AdjustPriceInput) -> dict:
        asset = await store.get_content_asset(ctx.tenant_id, params.asset_id)
        if asset is None:
            raise ToolExecutionError(
                "adjust_recommended_price", "Asset not found or does not belong to this tenant."
            )
        updated = await store.update_asset_price(ctx.tenant_id, params.asset_id, params.new_price)
        if not updated:
            raise ToolExecutionError("adjust_recommended_price", "Asset was removed before the update.")
        return {
            "success": True,
            "asset_id": params.asset_id,
            "old_price": asset["price"] or 0,
            "new_price": params.new_price,
            "reason": params.reason or "Price adjusted by assistant",
        }

    async def send_mass_message(ctx: TenantContext, params: MassMessageInput) -> dict:
        entity = await _entity_or_fail("send_mass_message", ctx.tenant_id, params.entity_name)
        target_count = int(entity["subscribers"] or 0)
        campaign = await store.queue_message(
            ctx.tenant_id,
            entity_id=entity["id"],
            message_text=params.message_text,
            target_tier=params.target_tier,
            include_media=params.include_media,
            target_count=target_count,
            created_by=ctx.actor_id,
        )
        preview = params.message_text[:PREVIEW_CHARS]
        if len(params.message_text) > PREVIEW_CHARS:
            preview += "..."
        return {
            "success": True,
            "campaign_id": campaign["id"],
            "entity": entity["display_name"] or entity["name"],
            "target_tier": params.target_tier,
            "target_count": target_count,
            "message_preview": preview,
            "status": campaign["status"],
            "note": "Campaign queued. Owner must confirm before sending.",
        }

    return [
        ToolSpec(
            name="draft_message",
            description=(
                "Draft a reply for a fan conversation. Returns suggested text without "
                "sending it; the user must confirm before sending."
            ),
            input_model=DraftMessageInput,
            kind=ToolKind.SUGGEST,
            required_permission=PermissionTier.OPERATOR,
            handler=draft_message,
        ),
        ToolSpec(
            name="suggest_price",
            description="Recommend a pay-per-view price for content based on the creator's audience.",
            input_model=SuggestPriceInput,
            kind=ToolKind.SUGGEST,
            required_permission=PermissionTier.OPERATOR,
            handler=suggest_price,
        ),
        ToolSpec(
            name="flag_underperformer",
            description="Flag content assets performing below a fraction of the creator's average.",
            input_model=FlagUnderperformerInput,
            kind=ToolKind.SUGGEST,
            required_permission=PermissionTier.ADMIN,
            handler=flag_underperformer,
        ),
        ToolSpec(
            name="create_content_task",
            description="Create a content task for a creator. Requires an admin-level role.",
            input_model=ContentTaskInput,
            kind=ToolKind.WRITE,
            required_permission=PermissionTier.ADMIN,
            handler=create_content_task,
        ),
        ToolSpec(
            name="adjust_recommended_price",
            description="Update the recommended price of a vault asset. Requires an admin-level role.",
            input_model=AdjustPriceInput,
            kind=ToolKind.WRITE,
            required_permission=PermissionTier.ADMIN,
            handler=adjust_recommended_price,
        ),
        ToolSpec(
            name="send_mass_message",
            description=(
                "Queue a mass message campaign to a creator's subscribers. OWNER ONLY. "
                "Queued for confirmation, never sent immediately."
            ),
            input_model=MassMessageInput,
            kind=ToolKind.WRITE,
            required_permission=PermissionTier.OWNER,
            handler=send_mass_message,
        ),
    ]
