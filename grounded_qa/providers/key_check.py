"""
API key verification against the provider's model listing endpoint.
"""

from typing import Any, Dict, Optional

import httpx

from grounded_qa.config import get
from grounded_qa.gateway.schemas import AIProvider
from grounded_qa.logging_config import get_logger
from grounded_qa.providers.openai import build_auth_headers

logger = get_logger(__name__)

MAX_LISTED_MODELS = 5


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return "Geçersiz API key"


async def check_api_key(
    provider: AIProvider,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    List the provider's models with ``api_key``.

    Returns:
        ``{"success": True, "provider": ..., "models": [...]}`` when the key
        works, ``{"success": False, "error": ...}`` otherwise. Never raises
        for upstream failures.
    """
    if provider is AIProvider.GEMINI:
        base_url = get("providers", "gemini_base_url").rstrip("/")
        headers = {"x-goog-api-key": api_key}
    else:
        base_url = get("providers", "openai_base_url").rstrip("/")
        headers = build_auth_headers(api_key)

    timeout = get("providers", "key_test_timeout_seconds", fallback=15)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(f"{base_url}/models", headers=headers)
    except httpx.RequestError as e:
        logger.warning(f"API key test for {provider.value} could not connect: {e}")
        return {"success": False, "error": "Bağlantı hatası"}

    if not resp.is_success:
        logger.info(f"API key test for {provider.value} rejected (status: {resp.status_code})")
        return {"success": False, "error": _error_message(resp)}

    data = resp.json()
    if provider is AIProvider.GEMINI:
        models = [m.get("name") for m in data.get("models") or []]
    else:
        models = [m.get("id") for m in data.get("data") or []]

    return {
        "success": True,
        "provider": provider.value,
        "models": [m for m in models if m][:MAX_LISTED_MODELS],
    }
