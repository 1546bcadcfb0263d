"""Model call with a single fallback attempt when the primary tier is out of quota."""
import logging
from typing import Protocol

from app.errors import QuotaExceededError
from app.services.model_client import ModelTier
from app.services.prompt_builder import PromptRequest

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    async def generate(self, tier: ModelTier, prompt: PromptRequest) -> str: ...


async def invoke_with_fallback(
    client: ModelClient,
    primary: ModelTier,
    fallback: ModelTier | None,
    prompt: PromptRequest,
) -> str:
    """
    Call the primary tier; on QuotaExceededError retry once against the fallback tier.
    Any other error, or a quota error with no fallback, propagates unchanged.
    A failure of the fallback call propagates as well; there is no further cascading.
    """
    try:
        return await client.generate(primary, prompt)
    except QuotaExceededError:
        if fallback is None:
            raise
        logger.warning("Primary model %s quota exceeded, falling back to %s", primary.model, fallback.model)
    return await client.generate(fallback, prompt)
