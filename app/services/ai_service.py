"""
NutriAI gateway: the single entry point for every Gemini action.
validate action -> validate payload -> rate limit -> build prompt -> model call (with fallback)
analyze-food additionally goes through the meal_analysis cache.

Note: two concurrent submissions of the same photo can both miss the cache and both call
the model; there is no in-flight coalescing. The second insert hits the unique index and is
logged as a cache write failure.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.config import Settings
from app.errors import (
    CacheError,
    ConfigurationError,
    GatewayError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from app.database import build_session_factory
from app.schemas.ai import PAYLOAD_MODELS, Action, AnalyzeFoodPayload
from app.services.ai_rate_limiter import ActionRateLimiter, InMemoryRateLimitStore, RedisRateLimitStore
from app.services.fallback import ModelClient, invoke_with_fallback
from app.services.meal_analysis_cache import MealAnalysisCache, image_hash
from app.services.model_client import GeminiModelClient, ModelTier, TierRole, tiers_from_settings
from app.services.prompt_builder import BUILDERS, build_analyze_food, decode_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionRoute:
    primary: TierRole
    fallback: TierRole | None = None


ROUTES: dict[Action, ActionRoute] = {
    Action.CHAT: ActionRoute(TierRole.LITE),
    Action.ANALYZE_FOOD: ActionRoute(TierRole.VISION, TierRole.VISION_FALLBACK),
    Action.CALCULATE_NUTRITION: ActionRoute(TierRole.LOGIC),
    Action.GENERATE_MEAL_PLAN: ActionRoute(TierRole.LOGIC),
    Action.GENERATE_RECIPES: ActionRoute(TierRole.LITE),
    Action.GENERATE_SHOPPING_LIST: ActionRoute(TierRole.LITE),
    Action.GENERATE_CLINICAL_SUMMARY: ActionRoute(TierRole.LOGIC),
}


@dataclass(frozen=True)
class GatewayResult:
    result: str
    remaining: int


def is_cacheable(result: dict[str, Any]) -> bool:
    """Only error-free analyses are stored; {"error": "not_food"} and friends never are."""
    return not result.get("error")


def parse_action(name: Any) -> Action:
    try:
        return Action(name)
    except ValueError:
        raise ValidationError() from None


def parse_payload(action: Action, payload: Any):
    model = PAYLOAD_MODELS[action]
    if not isinstance(payload, dict):
        raise ValidationError("Dados inválidos para a ação solicitada.")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError("Dados inválidos para a ação solicitada.", details={"fields": fields}) from e


class AiGateway:
    def __init__(
        self,
        settings: Settings,
        model_client: ModelClient | None,
        rate_limiter: ActionRateLimiter,
        tiers: dict[TierRole, ModelTier],
        cache: MealAnalysisCache | None = None,
    ):
        self.settings = settings
        self.model_client = model_client
        self.rate_limiter = rate_limiter
        self.tiers = tiers
        self.cache = cache

    async def handle(self, action_name: Any, payload: Any, client_identity: str) -> GatewayResult:
        """
        Run one action for one caller. Raises GatewayError subclasses; any error raised after
        the rate-limit step carries the caller's remaining quota in `remaining`.
        """
        if self.model_client is None:
            raise ConfigurationError()

        action = parse_action(action_name)
        data = parse_payload(action, payload)
        image_bytes = None
        if action is Action.ANALYZE_FOOD:
            image_bytes = self._validated_image(data)

        decision = await self.rate_limiter.check(client_identity, action.value)
        if not decision.allowed:
            raise RateLimitedError(retry_after=decision.reset_in_seconds)

        try:
            if action is Action.ANALYZE_FOOD:
                result = await self._analyze_food(data, image_bytes)
            else:
                result = await self._invoke(action, BUILDERS[action](data))
        except GatewayError as e:
            e.remaining = decision.remaining
            raise
        return GatewayResult(result=result, remaining=decision.remaining)

    def _validated_image(self, data: AnalyzeFoodPayload) -> bytes:
        try:
            image_bytes = decode_image(data)
        except ValueError as e:
            raise ValidationError("Imagem inválida.") from e
        if not image_bytes:
            raise ValidationError("Imagem inválida.")
        if len(image_bytes) > self.settings.max_image_bytes:
            raise ValidationError("Imagem muito grande.")
        return image_bytes

    async def _invoke(self, action: Action, prompt) -> str:
        route = ROUTES[action]
        primary = self.tiers[route.primary]
        fallback = self.tiers[route.fallback] if route.fallback else None
        return await invoke_with_fallback(self.model_client, primary, fallback, prompt)

    async def _analyze_food(self, data: AnalyzeFoodPayload, image_bytes: bytes) -> str:
        key = image_hash(data.base64_data, self.settings.image_hash_prefix_chars)

        if self.cache is not None:
            try:
                cached = await self.cache.get(key)
            except CacheError as e:
                logger.warning("Meal analysis cache read failed for %s: %s", key[:16], e)
                cached = None
            if cached is not None:
                logger.info("Cache hit for image hash: %s", key[:16])
                return json.dumps(cached, ensure_ascii=False)

        text = await self._invoke(Action.ANALYZE_FOOD, build_analyze_food(data, image_bytes))
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise UpstreamError(self.tiers[TierRole.VISION].model, "analysis is not valid JSON") from e
        if not isinstance(parsed, dict):
            raise UpstreamError(self.tiers[TierRole.VISION].model, "analysis is not a JSON object")

        if self.cache is not None and is_cacheable(parsed):
            try:
                await self.cache.put(key, parsed)
                logger.info("Cached analysis for hash: %s", key[:16])
            except CacheError as e:
                logger.warning("Failed to cache analysis for %s: %s", key[:16], e)

        return json.dumps(parsed, ensure_ascii=False)


def build_gateway(settings: Settings, redis_client: Any = None) -> AiGateway:
    """Wire the gateway from settings. No API key = every call answers with ConfigurationError."""
    try:
        model_client = GeminiModelClient(settings.gemini_api_key)
    except ConfigurationError:
        model_client = None
        logger.warning("GEMINI_API_KEY is not configured; AI gateway will reject every request.")

    if redis_client is not None:
        store = RedisRateLimitStore(redis_client)
    else:
        store = InMemoryRateLimitStore(max_keys=settings.rate_limit_max_keys)
    rate_limiter = ActionRateLimiter(
        store,
        limits=settings.rate_limits,
        default_limit=settings.default_rate_limit,
        window_seconds=settings.rate_limit_window_seconds,
    )

    session_factory = build_session_factory(settings.database_url)
    cache = MealAnalysisCache(session_factory) if session_factory else None

    return AiGateway(
        settings=settings,
        model_client=model_client,
        rate_limiter=rate_limiter,
        tiers=tiers_from_settings(settings),
        cache=cache,
    )
