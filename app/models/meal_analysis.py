"""Cached food-photo analyses, keyed by a hash of the submitted image, so resubmitting a photo does not call Gemini again."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from app.database import Base


class MealAnalysis(Base):
    __tablename__ = "meal_analysis"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    image_hash = Column(String(64), nullable=False, unique=True, index=True)  # sha256 hex of image prefix
    analysis_result = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
