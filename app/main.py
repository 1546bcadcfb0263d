import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.core.redis import connect_redis, disconnect_redis
from app.errors import GatewayError, RateLimitedError, UpstreamError, ValidationError
from app.routers import ai
from app.services.ai_service import build_gateway

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    redis_client = await connect_redis(settings.redis_url)
    app.state.gateway = build_gateway(settings, redis_client=redis_client)
    try:
        yield
    finally:
        await disconnect_redis(redis_client)


app = FastAPI(title="NutriAI Gateway", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=[ai.RATE_LIMIT_HEADER],
)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if isinstance(exc, UpstreamError):
        logger.error("Gemini call failed (%s): %s", exc.code, exc, exc_info=exc)
    headers = {}
    if exc.remaining is not None:
        headers[ai.RATE_LIMIT_HEADER] = str(exc.remaining)
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = ValidationError()
    return JSONResponse(status_code=error.status_code, content=error.to_response())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        message = "Método não permitido"
    else:
        message = exc.detail if isinstance(exc.detail, str) else "Erro ao processar requisição"
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error in AI gateway")
    return JSONResponse(status_code=500, content={"error": "Erro ao processar requisição"})


app.include_router(ai.router)


@app.get("/")
def root():
    return {"message": "NutriAI Gateway", "docs": "/docs"}
