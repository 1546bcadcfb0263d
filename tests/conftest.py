"""Shared fixtures: a scripted model client, in-memory stores and a TestClient wired to them."""
import base64
from typing import Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.main import app
from app.models.meal_analysis import MealAnalysis  # noqa: F401 - register table
from app.routers.ai import get_gateway
from app.services.ai_rate_limiter import ActionRateLimiter, InMemoryRateLimitStore
from app.services.ai_service import AiGateway
from app.services.meal_analysis_cache import MealAnalysisCache
from app.services.model_client import ModelTier, TierRole, tiers_from_settings
from app.services.prompt_builder import PromptRequest

FOOD_JSON = (
    '{"name": "Arroz com feijão", "calories": 450, "protein": 15, "carbs": 70, "fats": 8, '
    '"weight": 350, "ingredients": [{"name": "arroz", "quantity": "150", "unit": "g"}]}'
)
NOT_FOOD_JSON = '{"error": "not_food"}'
PHOTO_B64 = base64.b64encode(b"\xff\xd8\xff\xe0 fake jpeg bytes for a plate of food").decode()


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModelClient:
    """
    Scripted stand-in for GeminiModelClient.
    `responses` maps a tier role to a text reply, an exception instance, or a callable(tier, prompt).
    Unlisted roles answer with `default`.
    """

    def __init__(self, responses: dict | None = None, default: str = "ok"):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[tuple[ModelTier, PromptRequest]] = []

    def calls_for(self, role: TierRole) -> list[PromptRequest]:
        return [prompt for tier, prompt in self.calls if tier.role is role]

    async def generate(self, tier: ModelTier, prompt: PromptRequest) -> str:
        self.calls.append((tier, prompt))
        reply = self.responses.get(tier.role, self.default)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(tier, prompt)
        return reply


@pytest.fixture
def settings() -> Settings:
    return Settings(
        gemini_api_key="test-key",
        database_url="",
        redis_url="",
        jwt_secret_key="test-secret",
        rate_limit_window_seconds=3600,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def cache(session_factory) -> MealAnalysisCache:
    return MealAnalysisCache(session_factory)


@pytest.fixture
def make_gateway(settings, clock) -> Callable[..., AiGateway]:
    def _make(model_client=None, cache=None, limits=None) -> AiGateway:
        rate_limiter = ActionRateLimiter(
            InMemoryRateLimitStore(clock=clock),
            limits=settings.rate_limits if limits is None else limits,
            default_limit=settings.default_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
        )
        return AiGateway(
            settings=settings,
            model_client=model_client,
            rate_limiter=rate_limiter,
            tiers=tiers_from_settings(settings),
            cache=cache,
        )

    return _make


@pytest.fixture
def client_for(make_gateway, cache):
    """TestClient wired to a gateway built from the given model client."""
    clients = []

    def _make(model_client=None, limits=None):
        gateway = make_gateway(model_client=model_client, cache=cache, limits=limits)
        app.dependency_overrides[get_gateway] = lambda: gateway
        test_client = TestClient(app)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        test_client.__exit__(None, None, None)
    app.dependency_overrides.clear()
