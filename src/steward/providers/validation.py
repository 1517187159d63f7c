"""
Steward API Key Validation

One cheap, side-effect-free probe per provider family, used when a tenant
saves a key and never on the request path.

- openai / groq: list models with Bearer auth
- anthropic: a 1-token completion

Classification separates "the provider rejected the key" from "the
provider rejected the request shape": 401/403 are auth failures; on the
completion probe, 400/404/422/429 mean the key was accepted unless the
error body says the failure is about authentication or permissions.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel

from steward.core.models import DEFAULT_MODELS, ProviderKind
from steward.exceptions import ProviderTimeoutError

logger = logging.getLogger(__name__)

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
GROQ_MODELS_URL = "https://api.groq.com/openai/v1/models"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

_AUTH_REJECTED = {401, 403}
_KEY_ACCEPTED_ON_PROBE = {400, 404, 422, 429}
_AUTH_ERROR_TYPES = {"authentication_error", "permission_error", "invalid_api_key"}


class KeyValidation(BaseModel):
    """Outcome of a key validation probe."""

    valid: bool
    error: str | None = None


async def validate_api_key(
    provider: str,
    api_key: str,
    timeout: float = 10.0,
    *,
    client: httpx.AsyncClient | None = None,
) -> KeyValidation:
    """Check whether a provider accepts an API key.

    Args:
        provider: Provider family (openai, anthropic, groq).
        api_key: Plaintext key. Never logged.
        timeout: Deadline for the probe in seconds.
        client: Optional client (tests pass one with a mock transport).

    Raises:
        ProviderTimeoutError: the probe did not finish within ``timeout``.
    """
    family = provider.lower()
    if family not in {p.value for p in ProviderKind}:
        return KeyValidation(valid=False, error=f"Unknown provider: {provider}")

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        # httpx timeouts apply per phase; wait_for bounds the whole probe
        return await asyncio.wait_for(_probe(http, family, api_key, timeout), timeout)
    except (TimeoutError, httpx.TimeoutException) as e:
        raise ProviderTimeoutError(family, f"key validation timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        logger.info("Key validation network error: %s", type(e).__name__, extra={"provider": family})
        return KeyValidation(valid=False, error=str(e) or type(e).__name__)
    finally:
        if owns_client:
            await http.aclose()


async def _probe(http: httpx.AsyncClient, family: str, api_key: str, timeout: float) -> KeyValidation:
    if family == ProviderKind.ANTHROPIC.value:
        response = await http.post(
            ANTHROPIC_MESSAGES_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": DEFAULT_MODELS[ProviderKind.ANTHROPIC.value],
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "hi"}],
            },
            timeout=timeout,
        )
        return _classify(family, response, completion_probe=True)

    url = GROQ_MODELS_URL if family == ProviderKind.GROQ.value else OPENAI_MODELS_URL
    response = await http.get(
        url,
        headers={"Authorization": f"Bearer {api_key}"},
        timeout=timeout,
    )
    return _classify(family, response, completion_probe=False)


def _classify(family: str, response: httpx.Response, *, completion_probe: bool) -> KeyValidation:
    status = response.status_code
    if 200 <= status < 300:
        return KeyValidation(valid=True)

    label = family.capitalize()
    if status in _AUTH_REJECTED:
        return KeyValidation(valid=False, error=f"{label}: {status} authentication rejected")

    if completion_probe and status in _KEY_ACCEPTED_ON_PROBE:
        error_type = _error_type(response)
        if error_type in _AUTH_ERROR_TYPES:
            return KeyValidation(valid=False, error=f"{label}: {status} {error_type}")
        return KeyValidation(valid=True)

    return KeyValidation(valid=False, error=f"{label}: {status} {response.text[:200]}".rstrip())


def _error_type(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        value = error.get("type")
        return value if isinstance(value, str) else None
    return None
