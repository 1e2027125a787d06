"""
Exception classes for the grounding gateway.

Every error that crosses a module boundary derives from GatewayError so the
HTTP layer can map it to a status code and a machine-readable code in one
place. Strict-mode vetoes are not errors and have no class here.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for all gateway errors.

    Attributes:
        code: Machine-readable error code (e.g. "VALIDATION_ERROR").
        message: User-facing message, safe to return to the client.
        http_status: Status code used when the error reaches an HTTP boundary.
        extra: Additional fields merged into the error payload.
    """

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        **extra: Any,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(GatewayError):
    """Malformed request body."""

    code = "VALIDATION_ERROR"
    http_status = 400


class RateLimitExceeded(GatewayError):
    """Client exceeded the request ceiling for an endpoint."""

    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429


class MissingCredential(GatewayError):
    """No API key available for the selected provider."""

    code = "MISSING_API_KEY"
    http_status = 400


class ProviderTimeout(GatewayError):
    """The evidence provider did not answer before the deadline."""

    code = "TIMEOUT"
    http_status = 504


class ProviderError(GatewayError):
    """Upstream model provider failure (auth, quota, rate limit or generic)."""

    code = "PROVIDER_ERROR"
    http_status = 502


class UploadError(GatewayError):
    """Uploaded file rejected or could not be stored."""

    code = "UPLOAD_ERROR"
    http_status = 400


GENERIC_ERROR_MESSAGE = "Bir hata oluştu. Lütfen tekrar deneyin."


def format_user_error(error: BaseException) -> str:
    """User-facing message for an unexpected exception, without internal details."""
    if isinstance(error, GatewayError):
        return error.message
    text = str(error)
    if "API key" in text:
        return "Sistem yapılandırma hatası. Lütfen daha sonra tekrar deneyin."
    if "timeout" in text.lower():
        return "İstek zaman aşımına uğradı. Lütfen tekrar deneyin."
    if "rate limit" in text.lower():
        return "Çok fazla istek gönderildi. Lütfen bir dakika bekleyin."
    return GENERIC_ERROR_MESSAGE
