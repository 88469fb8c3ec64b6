from app.models.db import (
    Brand,
    CachedPlan,
    Product,
    Questionnaire,
    RecommendationSession,
    SkinProfile,
    UserAnswer,
)

__all__ = [
    "Brand",
    "Product",
    "SkinProfile",
    "Questionnaire",
    "UserAnswer",
    "RecommendationSession",
    "CachedPlan",
]
