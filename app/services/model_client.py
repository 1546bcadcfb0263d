"""
Gemini model client for the NutriAI gateway.
Uses the google-genai async client (API key auth). One call = one model tier.

Every upstream failure is translated here into QuotaExceededError or UpstreamError;
callers branch on the exception type and never look at vendor error text.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from google import genai
from google.genai import errors, types

from app.config import Settings
from app.errors import ConfigurationError, QuotaExceededError, UpstreamError
from app.services.prompt_builder import InlineImage, PromptRequest

logger = logging.getLogger(__name__)

QUOTA_STATUS = "RESOURCE_EXHAUSTED"
# Last-resort wording check for errors that carry no structured code/status
QUOTA_MARKERS = ("quota", "429", QUOTA_STATUS.lower())


class TierRole(str, Enum):
    VISION = "vision-primary"
    VISION_FALLBACK = "vision-fallback"
    LOGIC = "logic"
    LITE = "lite"


@dataclass(frozen=True)
class ModelTier:
    role: TierRole
    model: str
    endpoint: str = ""  # base URL; empty = SDK default


def tiers_from_settings(settings: Settings) -> dict[TierRole, ModelTier]:
    endpoint = settings.gemini_base_url
    return {
        TierRole.VISION: ModelTier(TierRole.VISION, settings.vision_model, endpoint),
        TierRole.VISION_FALLBACK: ModelTier(TierRole.VISION_FALLBACK, settings.vision_fallback_model, endpoint),
        TierRole.LOGIC: ModelTier(TierRole.LOGIC, settings.logic_model, endpoint),
        TierRole.LITE: ModelTier(TierRole.LITE, settings.lite_model, endpoint),
    }


def _to_contents(prompt: PromptRequest) -> list[types.Content]:
    parts = []
    for item in prompt.content:
        if isinstance(item, InlineImage):
            parts.append(types.Part.from_bytes(data=item.data, mime_type=item.mime_type))
        else:
            parts.append(types.Part.from_text(text=item))
    return [types.Content(role="user", parts=parts)]


def _to_config(prompt: PromptRequest) -> types.GenerateContentConfig | None:
    kwargs: dict[str, Any] = {}
    if prompt.system_instruction:
        kwargs["system_instruction"] = prompt.system_instruction
    if prompt.response_schema:
        kwargs["response_mime_type"] = "application/json"
        kwargs["response_schema"] = prompt.response_schema
    return types.GenerateContentConfig(**kwargs) if kwargs else None


def is_quota_error(exc: errors.APIError) -> bool:
    if exc.code == 429:
        return True
    if (exc.status or "").upper() == QUOTA_STATUS:
        return True
    text = (exc.message or str(exc)).lower()
    return any(marker in text for marker in QUOTA_MARKERS)


def _extract_text(response: Any) -> str:
    """Plain text of the first candidate. Empty string when the model returned nothing."""
    if not response or not response.candidates:
        return ""
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        return ""
    return getattr(response, "text", None) or candidate.content.parts[0].text or ""


class GeminiModelClient:
    """Calls generateContent on a single tier. Clients are created lazily, one per endpoint."""

    def __init__(self, api_key: str):
        if not api_key:
            raise ConfigurationError()
        self._api_key = api_key
        self._clients: dict[str, genai.Client] = {}

    def _client_for(self, tier: ModelTier) -> genai.Client:
        client = self._clients.get(tier.endpoint)
        if client is None:
            http_options = types.HttpOptions(base_url=tier.endpoint) if tier.endpoint else None
            client = genai.Client(api_key=self._api_key, http_options=http_options)
            self._clients[tier.endpoint] = client
        return client

    async def generate(self, tier: ModelTier, prompt: PromptRequest) -> str:
        """One generateContent call. Raises QuotaExceededError or UpstreamError; never raw SDK errors."""
        client = self._client_for(tier)
        try:
            response = await client.aio.models.generate_content(
                model=tier.model,
                contents=_to_contents(prompt),
                config=_to_config(prompt),
            )
        except errors.APIError as e:
            if is_quota_error(e):
                raise QuotaExceededError(tier.model, str(e)) from e
            raise UpstreamError(tier.model, str(e)) from e
        except Exception as e:
            raise UpstreamError(tier.model, f"{type(e).__name__}: {e}") from e

        text = _extract_text(response)
        if not text:
            raise UpstreamError(tier.model, "Empty response from model")
        return text
