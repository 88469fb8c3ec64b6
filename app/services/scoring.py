"""
Skin Scoring Service boundary.

Axis scores and dermatologist recommendations are computed elsewhere and
merged into the plan as-is. NullScoringService is used when no scoring
backend is configured; the plan then carries empty scores and the
infographic falls back to its default metrics.
"""

import logging
from typing import Any, Protocol

from app.schemas import DermatologistRecommendations, SkinScore

logger = logging.getLogger(__name__)


class SkinScoringService(Protocol):
    async def score(self, answers: dict[str, Any]) -> list[SkinScore]:
        ...

    async def recommend(
        self, scores: list[SkinScore], answers: dict[str, Any]
    ) -> DermatologistRecommendations:
        ...


class NullScoringService:
    async def score(self, answers: dict[str, Any]) -> list[SkinScore]:
        logger.debug("No scoring backend configured, returning no scores")
        return []

    async def recommend(
        self, scores: list[SkinScore], answers: dict[str, Any]
    ) -> DermatologistRecommendations:
        return DermatologistRecommendations()
