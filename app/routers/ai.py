"""
AI gateway endpoint for NutriSmart:
- POST /api/gemini: {action, payload} -> {result}; rate limited per client and action
- GET /api/gemini/health: configuration status (API key, cache store, rate-limit store)
CORS preflight (OPTIONS) is answered by CORSMiddleware.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.auth import resolve_client_identity
from app.schemas.ai import ErrorResponse, GatewayRequest, GatewayResponse
from app.services.ai_service import AiGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gemini", tags=["ai"])

RATE_LIMIT_HEADER = "X-RateLimit-Remaining"


def get_gateway(request: Request) -> AiGateway:
    """Gateway built at startup (see app.main lifespan)."""
    return request.app.state.gateway


async def enforce_body_limit(request: Request, gateway: AiGateway = Depends(get_gateway)) -> None:
    """413 when the declared Content-Length or the body actually received (chunked uploads) is over the ceiling."""
    ceiling = gateway.settings.max_request_bytes
    length = request.headers.get("content-length")
    declared_too_large = bool(length and length.isdigit() and int(length) > ceiling)
    if declared_too_large or len(await request.body()) > ceiling:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Requisição muito grande.",
        )


@router.get("/health")
async def ai_health(gateway: AiGateway = Depends(get_gateway)):
    """Health check: whether Gemini is configured and which stores are in use."""
    return {
        "status": "ok",
        "gemini_configured": gateway.model_client is not None,
        "cache_store": "sql" if gateway.cache is not None else "disabled",
        "rate_limit_store": gateway.rate_limiter.store.name,
    }


@router.post(
    "",
    response_model=GatewayResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse},
               502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    dependencies=[Depends(enforce_body_limit)],
)
async def gemini_action(
    body: GatewayRequest,
    request: Request,
    response: Response,
    gateway: AiGateway = Depends(get_gateway),
):
    """
    Run one AI action on the caller's behalf.
    Errors are GatewayError subclasses rendered by the handler in app.main as {"error": ...}.
    """
    client_identity = resolve_client_identity(request, gateway.settings)
    outcome = await gateway.handle(body.action, body.payload, client_identity)
    response.headers[RATE_LIMIT_HEADER] = str(outcome.remaining)
    return GatewayResponse(result=outcome.result)
