"""
Content-addressed cache of food-photo analyses (table meal_analysis).
Key: sha256 hex of the first N characters of the submitted base64 image.
Records are append-only; retention is the database's concern.
Every database failure is raised as CacheError; the analysis flow logs it and carries on.
"""
import hashlib
import logging
from typing import Any

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.errors import CacheError
from app.models.meal_analysis import MealAnalysis

logger = logging.getLogger(__name__)

DEFAULT_PREFIX_CHARS = 10000


def image_hash(base64_data: str, prefix_chars: int = DEFAULT_PREFIX_CHARS) -> str:
    """Deterministic hash of a bounded prefix of the image payload."""
    return hashlib.sha256(base64_data[:prefix_chars].encode()).hexdigest()


class MealAnalysisCache:
    """SQLAlchemy-backed cache. Each call opens its own session in the threadpool."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _get(self, key: str) -> dict[str, Any] | None:
        db = self._session_factory()
        try:
            row = db.query(MealAnalysis).filter(MealAnalysis.image_hash == key).first()
            return row.analysis_result if row else None
        finally:
            db.close()

    def _put(self, key: str, result: dict[str, Any]) -> None:
        db = self._session_factory()
        try:
            db.add(MealAnalysis(image_hash=key, analysis_result=result))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            return await run_in_threadpool(self._get, key)
        except SQLAlchemyError as e:
            raise CacheError(f"cache read failed: {e}") from e

    async def put(self, key: str, result: dict[str, Any]) -> None:
        try:
            await run_in_threadpool(self._put, key, result)
        except SQLAlchemyError as e:
            raise CacheError(f"cache write failed: {e}") from e
