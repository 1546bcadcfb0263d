"""
Error taxonomy for the AI gateway.

Every failure that can reach the caller is a GatewayError carrying a
translated, user-facing message and the HTTP status it is rendered with.
CacheError never reaches the caller; the analysis flow logs it and treats it
as a cache miss.
"""
from typing import Any


class GatewayError(Exception):
    """Base exception for the gateway."""

    code = "GATEWAY_ERROR"
    status_code = 500
    default_message = "Erro ao processar requisição"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        # Remaining quota for the (client, action) pair, attached by the dispatcher
        self.remaining: int | None = None
        super().__init__(self.message)

    def to_response(self) -> dict[str, str]:
        return {"error": self.message}


class ConfigurationError(GatewayError):
    """Missing credentials. Fatal for the instance, surfaced on every request."""

    code = "CONFIGURATION_ERROR"
    status_code = 500
    default_message = (
        "O assistente de IA não está configurado. "
        "Configure a variável GEMINI_API_KEY no servidor."
    )


class ValidationError(GatewayError):
    """Unknown action or malformed payload."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Ação inválida"


class RateLimitedError(GatewayError):
    """Caller exhausted its quota for an action."""

    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Você atingiu o limite de requisições. Aguarde alguns minutos e tente novamente."

    def __init__(self, retry_after: int = 0, message: str | None = None):
        super().__init__(message)
        self.retry_after = retry_after
        self.remaining = 0


class UpstreamError(GatewayError):
    """The upstream model call failed."""

    code = "UPSTREAM_ERROR"
    status_code = 502
    default_message = "O serviço de IA está temporariamente indisponível. Tente novamente mais tarde."

    def __init__(self, model: str = "", reason: str = "", message: str | None = None):
        super().__init__(message, details={"model": model})
        self.model = model
        # Raw vendor text, kept for logs only; never rendered
        self.reason = reason

    def __str__(self) -> str:
        if self.reason:
            return f"{self.model}: {self.reason}" if self.model else self.reason
        return self.message


class QuotaExceededError(UpstreamError):
    """The upstream tier reported quota exhaustion."""

    code = "QUOTA_EXCEEDED"
    status_code = 503
    default_message = "O serviço de IA está sobrecarregado no momento. Tente novamente em alguns minutos."


class CacheError(GatewayError):
    """Cache store read/write failure. Logged, never rendered."""

    code = "CACHE_ERROR"
