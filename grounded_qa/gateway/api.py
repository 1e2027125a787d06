"""
Gateway API route handlers.

Provides endpoints for:
- Buffered grounded chat (POST /api/chat)
- Streamed grounded chat over SSE (POST /api/chat/stream)
- Document upload into a file search store (POST /api/upload)
- Provider API key check (POST /api/test-api-key)
- Health check (GET /api/health)

Collaborators (pipeline, rate limiter, health checker, upstream transport)
are read from ``app.state`` so tests can substitute them.
"""

import json
from typing import Any, Dict, Optional, Tuple

from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from grounded_qa.config import is_debug
from grounded_qa.errors import GatewayError, MissingCredential, UploadError, format_user_error
from grounded_qa.gateway.health import HealthChecker
from grounded_qa.gateway.pipeline import GroundedAnswer, GroundingPipeline
from grounded_qa.gateway.rate_limit import RateLimiter, RateLimitResult, check_rate_limit, rate_limiter
from grounded_qa.gateway.schemas import (
    AIProvider,
    ChatResponse,
    ConversationRequest,
    validate_chat_request,
)
from grounded_qa.gateway.streaming import GroundedAnswerStream, format_sse
from grounded_qa.gateway.uploads import GeminiFileStore, validate_upload
from grounded_qa.logging_config import get_logger, redact_secrets
from grounded_qa.providers import check_api_key
from grounded_qa.providers.selection import get_gemini_api_key

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Çok fazla istek gönderildi. Lütfen bir dakika bekleyin."

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# =============================================================================
# Helpers
# =============================================================================

def _pipeline(request: Request) -> GroundingPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        pipeline = GroundingPipeline()
        request.app.state.pipeline = pipeline
    return pipeline


def _limiter(request: Request) -> RateLimiter:
    return getattr(request.app.state, "rate_limiter", None) or rate_limiter


def _transport(request: Request):
    return getattr(request.app.state, "upstream_transport", None)


def _enforce_limits(request: Request, *endpoints: str) -> RateLimitResult:
    """Consume one request from each bucket; return the first rejection, else the first result."""
    limiter = _limiter(request)
    first = None
    for endpoint in endpoints:
        result = check_rate_limit(request, endpoint, limiter)
        if not result.allowed:
            return result
        first = first or result
    return first


def _internal_error_payload(exc: Exception) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": format_user_error(exc), "code": "INTERNAL_ERROR"}
    if is_debug():
        payload["debug"] = {"originalError": redact_secrets(str(exc))}
    return payload


async def _read_chat_request(request: Request) -> Tuple[Optional[ConversationRequest], Optional[Dict[str, Any]]]:
    """Parse and validate the JSON body. Returns (request, error_payload)."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, {
            "error": "Geçersiz istek: Request body must be valid JSON",
            "code": "VALIDATION_ERROR",
        }

    validation = validate_chat_request(body)
    if not validation.success:
        return None, {
            "error": f"Geçersiz istek: {validation.error}",
            "code": "VALIDATION_ERROR",
            "details": validation.issues,
        }
    return validation.data, None


def build_chat_response(answer: GroundedAnswer, debug: bool = False) -> ChatResponse:
    """Buffered response body for a grounded answer."""
    if not answer.kind.is_grounded:
        return ChatResponse(
            assistant_text=answer.text,
            sources=[],
            provider=AIProvider.OPENAI.value,
            model=answer.model,
            debug=answer.provider_debug if debug else None,
        )

    debug_payload = None
    if debug:
        debug_payload = {
            "groundingMetadata": answer.metadata.model_dump(mode="json", by_alias=True),
            "webSearchQueries": answer.metadata.search_queries,
        }
        if answer.strict_mode_rejection:
            debug_payload["strictModeRejection"] = True

    return ChatResponse(
        assistant_text=answer.text,
        sources=answer.sources,
        strict_mode_rejection=True if answer.strict_mode_rejection else None,
        debug=debug_payload,
    )


def _sse_error(payload: Dict[str, Any], status_code: int, headers: Optional[Dict[str, str]] = None) -> Response:
    return Response(
        format_sse("error", payload),
        status_code=status_code,
        media_type="text/event-stream",
        headers={**SSE_HEADERS, **(headers or {})},
    )


# =============================================================================
# Chat Endpoints
# =============================================================================

async def api_chat(request: Request) -> JSONResponse:
    """
    Buffered grounded chat.

    POST /api/chat
    """
    limit = _enforce_limits(request, "chat", "hourly")
    if not limit.allowed:
        return JSONResponse(
            {"error": RATE_LIMIT_MESSAGE, "code": "RATE_LIMIT_EXCEEDED"},
            status_code=429,
            headers=limit.headers,
        )

    chat_request, error = await _read_chat_request(request)
    if error:
        return JSONResponse(error, status_code=400, headers=limit.headers)

    try:
        answer = await _pipeline(request).answer(chat_request)
    except GatewayError as e:
        logger.warning(f"Chat request failed: {e.code} {e.message}")
        return JSONResponse(e.to_payload(), status_code=e.http_status, headers=limit.headers)
    except Exception as e:
        logger.exception(f"Chat error: {e}")
        return JSONResponse(_internal_error_payload(e), status_code=500, headers=limit.headers)

    response = build_chat_response(answer, debug=is_debug())
    return JSONResponse(response.to_json(), headers=limit.headers)


async def api_chat_stream(request: Request) -> Response:
    """
    Streamed grounded chat over server-sent events.

    POST /api/chat/stream

    Failures before the stream opens come back as a single ``error`` event
    with the matching status code.
    """
    limit = _enforce_limits(request, "chat", "hourly")
    if not limit.allowed:
        return _sse_error(
            {"error": RATE_LIMIT_MESSAGE, "code": "RATE_LIMIT_EXCEEDED"},
            429,
            limit.headers,
        )

    chat_request, error = await _read_chat_request(request)
    if error:
        return _sse_error(error, 400, limit.headers)

    pipeline = _pipeline(request)
    try:
        selection = pipeline.select(chat_request)
    except GatewayError as e:
        logger.warning(f"Stream request rejected: {e.code} {e.message}")
        return _sse_error(e.to_payload(), e.http_status, limit.headers)

    stream = GroundedAnswerStream(
        chat_request,
        pipeline,
        selection,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        stream.events(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, **limit.headers},
    )


# =============================================================================
# Upload & Key Endpoints
# =============================================================================

async def api_upload(request: Request) -> JSONResponse:
    """
    Upload a document into a Gemini file search store.

    POST /api/upload (multipart: ``file``, optional ``storeId``)
    """
    limit = _enforce_limits(request, "upload")
    if not limit.allowed:
        return JSONResponse(
            {"error": RATE_LIMIT_MESSAGE, "code": "RATE_LIMIT_EXCEEDED"},
            status_code=429,
            headers=limit.headers,
        )

    try:
        async with request.form() as form:
            upload = form.get("file")
            store_id = form.get("storeId") or None
            if upload is None or isinstance(upload, str):
                raise UploadError("Dosya yüklenmedi.")
            data = await upload.read()
            filename = upload.filename or ""
            content_type = upload.content_type

        mime_type = validate_upload(filename, content_type, data)

        api_key = get_gemini_api_key()
        if not api_key:
            raise MissingCredential("Gemini API anahtarı yapılandırılmamış.")

        store = GeminiFileStore(api_key, transport=_transport(request))
        result = await store.add_document(data, filename, mime_type, store_id=store_id)
    except GatewayError as e:
        logger.warning(f"Upload rejected: {e.code} {e.message}")
        return JSONResponse(e.to_payload(), status_code=e.http_status, headers=limit.headers)
    except Exception as e:
        logger.exception(f"Upload error: {e}")
        return JSONResponse(_internal_error_payload(e), status_code=500, headers=limit.headers)

    return JSONResponse(result, headers=limit.headers)


async def api_test_api_key(request: Request) -> JSONResponse:
    """
    Check a provider API key by listing the provider's models.

    POST /api/test-api-key
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    if not isinstance(body, dict) or not body.get("provider") or not body.get("apiKey"):
        return JSONResponse(
            {"success": False, "error": "Provider ve API key gerekli"},
            status_code=400,
        )

    try:
        provider = AIProvider(body["provider"])
    except ValueError:
        return JSONResponse({"success": False, "error": "Bilinmeyen provider"}, status_code=400)

    result = await check_api_key(provider, str(body["apiKey"]), transport=_transport(request))
    return JSONResponse(result)


# =============================================================================
# Health
# =============================================================================

async def api_health(request: Request) -> JSONResponse:
    """
    Health check endpoint.

    GET /api/health[?detailed=true]
    """
    checker = getattr(request.app.state, "health_checker", None) or HealthChecker(_limiter(request))
    health_status = await checker.check_all()

    detailed = request.query_params.get("detailed", "false").lower() == "true"
    if not detailed:
        return JSONResponse({
            "healthy": health_status.healthy,
            "timestamp": health_status.timestamp.isoformat(),
            "version": health_status.version,
        })

    return JSONResponse(health_status.model_dump(mode="json"))


# =============================================================================
# Route definitions
# =============================================================================

gateway_routes = [
    Route("/api/chat", api_chat, methods=["POST"]),
    Route("/api/chat/stream", api_chat_stream, methods=["POST"]),
    Route("/api/upload", api_upload, methods=["POST"]),
    Route("/api/test-api-key", api_test_api_key, methods=["POST"]),
    Route("/api/health", api_health, methods=["GET"]),
]
