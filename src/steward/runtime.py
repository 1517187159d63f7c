"""
Steward Agent Runtime

Composition root of the orchestration core. One chat turn:

1. Resolve the tenant's provider, bind the caller's tool set and load the
   tenant digest, concurrently.
2. Invoke the model under a deadline.
3. Execute requested tool calls concurrently. Calls to tools outside the
   caller's set are rejected before execution.
4. Feed results back and repeat, up to ``max_steps`` model calls.

Every model call and tool call is audited without blocking the turn.
``run`` raises taxonomy errors; ``handle`` never raises and reports a
stable error code instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from steward.audit.logger import AuditLogger
from steward.config import Settings
from steward.core.models import (
    AgentRequest,
    AgentResponse,
    AuditAction,
    ChatMessage,
    ReplyDraft,
    ToolCallRecord,
)
from steward.credentials.vault import CredentialVault
from steward.digest.builder import DigestBuilder, digest_to_prompt
from steward.digest.kpi import KPIProvider, StoreKPIProvider
from steward.digest.models import AgencyDigest, EntityContext
from steward.exceptions import (
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    StewardError,
)
from steward.observability.metrics import record_model_invocation, record_tool_call
from steward.observability.tracing import get_tracer
from steward.providers.base import ContentBlock, LLMResponse
from steward.providers.resolver import ProviderResolver, ResolvedProvider
from steward.storage.repository import TenantStore
from steward.tools import build_default_registry
from steward.tools.models import ToolResult
from steward.tools.registry import ToolRegistry, ToolSet

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5
DEFAULT_MAX_TOKENS = 1024
REPLY_MAX_TOKENS = 200
REPLY_TEMPERATURE = 0.8

STEWARD_SYSTEM_PROMPT = """You are Steward, the agency's AI strategist with live access to agency data.

RULES:
- Use the available tools to fetch data. Never invent numbers.
- If a tool returns an error, say which data is unavailable.
- Suggest and write tools only act when the user clearly asks for it.
- Be concise: at most 3-4 short paragraphs, Markdown, bold key metrics.

RESPONSE FORMAT:
1. Quick insight (one sentence with the key finding)
2. Analysis (2-3 bullet points with data)
3. Recommendation (one action item)"""

TIER_GUIDANCE = {
    "whale": "This fan is a WHALE (spent $1000+). Be warm and attentive and feature premium offers.",
    "spender": "This fan is a SPENDER (spent $100+). Be friendly and encourage the next purchase.",
    "free": "This fan has little or no spend. Be friendly and aim for a first, entry-level purchase.",
    "unknown": "This fan's spending history is unknown. Be friendly and gauge their interest.",
}

REPLY_CONFIDENCE = {"whale": "high", "spender": "medium"}


class AgentRuntime:
    """Runs chat turns and reply drafts for tenants."""

    def __init__(
        self,
        resolver: ProviderResolver,
        registry: ToolRegistry,
        digests: DigestBuilder,
        audit: AuditLogger,
        *,
        timeout_seconds: float = 60.0,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        system_prompt: str = STEWARD_SYSTEM_PROMPT,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._resolver = resolver
        self._registry = registry
        self._digests = digests
        self._audit = audit
        self._timeout = timeout_seconds
        self._max_steps = max_steps
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TenantStore | None = None,
        *,
        kpi_provider: KPIProvider | None = None,
        **resolver_kwargs: Any,
    ) -> AgentRuntime:
        """Wire the full core from process settings."""
        store = store or TenantStore(settings.database_url)
        vault = (
            CredentialVault(settings.encryption_key.get_secret_value())
            if settings.encryption_key is not None
            else None
        )
        kpi = kpi_provider or StoreKPIProvider(store)
        return cls(
            ProviderResolver.from_settings(settings, store, vault, **resolver_kwargs),
            build_default_registry(store, kpi),
            DigestBuilder.from_settings(settings, store, kpi),
            AuditLogger(store),
            timeout_seconds=settings.model_timeout,
        )

    @property
    def resolver(self) -> ProviderResolver:
        return self._resolver

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def digests(self) -> DigestBuilder:
        return self._digests

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    # ─── Chat turn ──────────────────────────────────────────

    async def run(self, request: AgentRequest) -> AgentResponse:
        """Run one chat turn.

        Raises:
            ProviderUnavailableError: no usable provider, or the model call failed.
            ProviderTimeoutError: the model did not answer within the deadline.
        """
        tracer = get_tracer()
        with tracer.start_as_current_span("steward.agent.run") as span:
            span.set_attribute("steward.tenant_id", request.tenant_id)

            resolved, tools, digest = await asyncio.gather(
                self._resolver.resolve(request.tenant_id),
                self._bind_tools(request),
                self._load_digest(request.tenant_id),
            )
            span.set_attribute("steward.provider", resolved.provider)
            span.set_attribute("steward.system_fallback", resolved.is_system_fallback)

            system = self._build_system_prompt(request, digest)
            schemas = tools.schemas()
            messages: list[dict[str, Any]] = _history_messages(request.history)
            messages.append({"role": "user", "content": request.message})

            executed: list[ToolCallRecord] = []
            response = LLMResponse()
            for step in range(1, self._max_steps + 1):
                response = await self._invoke(
                    resolved,
                    request.tenant_id,
                    request.actor_id,
                    action=AuditAction.INVOKE,
                    messages=messages,
                    system=system,
                    tools=schemas or None,
                    max_tokens=self._max_tokens,
                    metadata={"step": step},
                )
                calls = response.tool_calls
                if not calls:
                    break

                results = await asyncio.gather(*(
                    self._call_tool(request, tools, call, resolved) for call in calls
                ))
                executed.extend(
                    ToolCallRecord(
                        tool_name=result.tool_name,
                        tool_use_id=call.tool_use_id,
                        success=result.success,
                        output=result.output,
                        error_code=result.error_code,
                    )
                    for call, result in zip(calls, results)
                )
                messages.append({"role": "assistant", "content": _assistant_content(response)})
                messages.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": call.tool_use_id,
                            "content": result.to_content(),
                            "is_error": not result.success,
                        }
                        for call, result in zip(calls, results)
                    ],
                })

            text = response.text
            if response.tool_calls:
                logger.info(
                    "Turn stopped after %d model calls with tool calls pending",
                    self._max_steps,
                    extra={"tenant_id": request.tenant_id, "actor_id": request.actor_id},
                )
                text = text or "I could not finish this request within the allowed number of steps."

            return AgentResponse(
                text=text,
                tool_calls_executed=executed,
                provider=resolved.provider,
                model_name=resolved.model_name,
                is_system_fallback=resolved.is_system_fallback,
            )

    async def handle(self, request: AgentRequest) -> AgentResponse:
        """Run one chat turn, reporting failures as a response instead of raising."""
        try:
            return await self.run(request)
        except StewardError as e:
            logger.warning(
                "Agent turn failed: %s",
                e.message,
                extra={"tenant_id": request.tenant_id, "actor_id": request.actor_id, "error_code": e.code},
            )
            return AgentResponse(success=False, error_code=e.code, error_message=e.message)
        except Exception:
            logger.exception(
                "Unexpected error during agent turn",
                extra={"tenant_id": request.tenant_id, "actor_id": request.actor_id, "error_code": "internal_error"},
            )
            return AgentResponse(
                success=False,
                error_code="internal_error",
                error_message="An internal error occurred",
            )

    # ─── Reply drafting ─────────────────────────────────────

    async def generate_reply(
        self,
        tenant_id: str,
        actor_id: str,
        entity_name: str,
        counterpart_tier: str,
        history: list[ChatMessage],
        entity_id: str | None = None,
        counterpart_id: str | None = None,
    ) -> ReplyDraft:
        """Draft a reply to a live fan conversation in the creator's voice.

        Raises:
            ValueError: empty conversation history.
            ProviderUnavailableError / ProviderTimeoutError: as in ``run``.
        """
        messages = _history_messages(history)
        if not messages:
            raise ValueError("history must contain at least one user or assistant message")

        tier = counterpart_tier if counterpart_tier in TIER_GUIDANCE else "unknown"
        resolved = await self._resolver.resolve(tenant_id)

        context = None
        if entity_id:
            context = await self._digests.build_entity_context(tenant_id, entity_id, counterpart_id)

        response = await self._invoke(
            resolved,
            tenant_id,
            actor_id,
            action=AuditAction.GENERATE_REPLY,
            messages=messages,
            system=_reply_prompt(entity_name, tier, context),
            tools=None,
            max_tokens=REPLY_MAX_TOKENS,
            temperature=REPLY_TEMPERATURE,
            metadata={"counterpart_tier": tier},
        )
        text = response.text.strip()
        if not text:
            raise ProviderUnavailableError(resolved.provider, "model returned an empty reply")

        return ReplyDraft(
            text=text,
            confidence=REPLY_CONFIDENCE.get(tier, "low"),
            provider=resolved.provider,
            model_name=resolved.model_name,
            is_system_fallback=resolved.is_system_fallback,
        )

    # ─── Internals ──────────────────────────────────────────

    async def _bind_tools(self, request: AgentRequest) -> ToolSet:
        return self._registry.get_tools_for_role(
            request.actor_role, request.tenant_id, request.actor_id
        )

    async def _load_digest(self, tenant_id: str) -> AgencyDigest | None:
        try:
            return await self._digests.get_digest(tenant_id)
        except Exception as e:
            logger.warning(
                "Could not load digest, continuing without context: %s",
                type(e).__name__,
                extra={"tenant_id": tenant_id},
            )
            return None

    def _build_system_prompt(self, request: AgentRequest, digest: AgencyDigest | None) -> str:
        parts = [self._system_prompt]
        if digest is not None:
            parts.append(digest_to_prompt(digest))
        parts.append(
            f"Caller role: {request.actor_role or 'unknown'}. "
            "Only the tools provided to you are available to this caller."
        )
        return "\n\n".join(parts)

    async def _invoke(
        self,
        resolved: ResolvedProvider,
        tenant_id: str,
        actor_id: str,
        *,
        action: AuditAction,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict] | None,
        max_tokens: int,
        temperature: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LLMResponse:
        started = time.monotonic()
        error: StewardError | None = None
        response: LLMResponse | None = None
        try:
            response = await asyncio.wait_for(
                resolved.handle.create_message(
                    messages,
                    max_tokens=max_tokens,
                    system=system,
                    tools=tools,
                    temperature=temperature,
                ),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            error = ProviderTimeoutError(resolved.provider, f"no response within {self._timeout}s")
            raise error from e
        except ProviderError as e:
            error = ProviderUnavailableError(resolved.provider, e.message)
            raise error from e
        except Exception as e:
            error = ProviderUnavailableError(resolved.provider, f"model call failed: {type(e).__name__}")
            raise error from e
        finally:
            latency_ms = round((time.monotonic() - started) * 1000)
            success = response is not None
            audit_fields: dict[str, Any] = {
                "provider": resolved.provider,
                "model_name": resolved.model_name,
                "tokens_in": response.input_tokens if response else None,
                "tokens_out": response.output_tokens if response else None,
                "latency_ms": latency_ms,
                "success": success,
                "error_message": error.message if error else None,
                "metadata": {"is_system_fallback": resolved.is_system_fallback, **(metadata or {})},
            }
            if action is AuditAction.GENERATE_REPLY:
                self._audit.log_reply_generation(tenant_id, actor_id, **audit_fields)
            else:
                self._audit.log_invocation(tenant_id, actor_id, **audit_fields)
            record_model_invocation(
                provider=resolved.provider,
                success=success,
                latency_ms=latency_ms,
                is_system_fallback=resolved.is_system_fallback,
            )
            logger.debug(
                "Model call finished",
                extra={
                    "tenant_id": tenant_id,
                    "provider": resolved.provider,
                    "model_name": resolved.model_name,
                    "action": action.value,
                    "duration_ms": latency_ms,
                },
            )
        return response

    async def _call_tool(
        self,
        request: AgentRequest,
        tools: ToolSet,
        call: ContentBlock,
        resolved: ResolvedProvider,
    ) -> ToolResult:
        tracer = get_tracer()
        with tracer.start_as_current_span("steward.tool.call") as span:
            span.set_attribute("steward.tool_name", call.tool_name)
            result = await tools.execute(call.tool_name, call.tool_input)
            span.set_attribute("steward.success", result.success)

        self._audit.log_tool_call(
            request.tenant_id,
            request.actor_id,
            call.tool_name,
            success=result.success,
            error_message=result.error_message,
            metadata={
                "is_system_fallback": resolved.is_system_fallback,
                "error_code": result.error_code,
            },
        )
        record_tool_call(tool_name=call.tool_name, success=result.success, error_code=result.error_code)
        if not result.success:
            logger.info(
                "Tool call failed: %s",
                result.error_message,
                extra={
                    "tenant_id": request.tenant_id,
                    "actor_id": request.actor_id,
                    "tool_name": call.tool_name,
                    "error_code": result.error_code,
                },
            )
        return result


def _history_messages(history: list[ChatMessage]) -> list[dict[str, Any]]:
    return [
        {"role": m.role, "content": m.content}
        for m in history
        if m.role in ("user", "assistant") and m.content
    ]


def _assistant_content(response: LLMResponse) -> list[dict[str, Any]]:
    content: list[dict[str, Any]] = []
    for block in response.content:
        if block.type == "text" and block.text:
            content.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            content.append({
                "type": "tool_use",
                "id": block.tool_use_id,
                "name": block.tool_name,
                "input": block.tool_input,
            })
    return content


def _reply_prompt(entity_name: str, tier: str, context: EntityContext | None) -> str:
    lines = [
        f"You are {entity_name}, a creator chatting with a fan. You are warm, engaging "
        "and focused on selling premium content.",
        "",
        "Your style:",
        "- Conversational and natural, never robotic",
        "- Goal-oriented: turn conversations into sales without being pushy",
        "- At most 1-2 emojis per message",
        "- Under 100 words",
        "- Suggestive but never explicit",
        "",
        TIER_GUIDANCE[tier],
    ]
    if context is not None:
        lines += ["", "Context:", context.model_dump_json(exclude_none=True)]
    lines += [
        "",
        "Respond naturally to the conversation and match its tone. When it fits, "
        "hint that you have something special for them.",
    ]
    return "\n".join(lines)
