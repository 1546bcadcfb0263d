from pydantic_settings import BaseSettings
from functools import lru_cache


DEFAULT_RATE_LIMITS = {
    "analyze-food": 20,
    "chat": 60,
    "calculate-nutrition": 30,
    "generate-meal-plan": 15,
    "generate-recipes": 15,
    "generate-shopping-list": 15,
    "generate-clinical-summary": 10,
}


class Settings(BaseSettings):
    # Gemini (Google AI Studio); empty key = gateway answers every call with a configuration error
    gemini_api_key: str = ""
    gemini_base_url: str = ""  # empty = SDK default endpoint

    # Model tiers
    vision_model: str = "gemini-2.5-flash"
    vision_fallback_model: str = "gemini-2.5-flash-lite"
    logic_model: str = "gemini-2.5-flash"
    lite_model: str = "gemini-2.5-flash-lite"

    # Cache store for analyzed food photos (empty = cache disabled)
    database_url: str = "sqlite:///./nutriai.db"

    # Redis (optional shared rate-limit counters; empty = in-process counters)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # CORS
    allowed_origin: str = "*"

    # JWT used to recognise authenticated callers (empty = identify by network address)
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"

    # Rate limiting: requests per action per client per window
    rate_limits: dict[str, int] = dict(DEFAULT_RATE_LIMITS)
    default_rate_limit: int = 30
    rate_limit_window_seconds: int = 60 * 60  # 1 hour
    rate_limit_max_keys: int = 10000

    # Photo analysis
    image_hash_prefix_chars: int = 10000
    max_image_bytes: int = 8 * 1024 * 1024

    max_request_bytes: int = 10 * 1024 * 1024  # 10 MB

    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
