"""
Database-backed stores: all DB access in one place.

ProfileRepository  → Profile Store (profiles, answers, recommendation sessions)
CatalogRepository  → Catalog Store (batched product queries)
PlanCacheRepository → Plan Cache (cached_plans table)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.db import Brand as BrandRow
from app.models.db import CachedPlan
from app.models.db import Product as ProductRow
from app.models.db import Questionnaire, RecommendationSession, UserAnswer
from app.models.db import SkinProfile as SkinProfileRow
from app.schemas import Brand, GeneratedPlan, MedicalMarkers, Product, SkinProfile
from app.services.catalog import ProductQuery, order_by_catalog_priority
from app.services.plan_cache import decode_plan, encode_plan, plan_cache_key

logger = logging.getLogger(__name__)


# ── Row → schema ────────────────────────────────────────────────────────────


def _to_profile(row: SkinProfileRow) -> SkinProfile:
    return SkinProfile(
        id=row.id,
        user_id=row.user_id,
        version=row.version,
        skin_type=row.skin_type,
        sensitivity_level=row.sensitivity_level,
        acne_level=row.acne_level,
        age_group=row.age_group,
        has_pregnancy=bool(row.has_pregnancy),
        medical_markers=MedicalMarkers.model_validate(row.medical_markers or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_product(row: ProductRow) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        brand=Brand(id=row.brand.id, name=row.brand.name, is_active=bool(row.brand.is_active)),
        price=row.price,
        skin_types=list(row.skin_types or []),
        concerns=list(row.concerns or []),
        avoid_if=list(row.avoid_if or []),
        active_ingredients=list(row.active_ingredients or []),
        step=row.step,
        category=row.category,
        is_hero=bool(row.is_hero),
        priority=row.priority or 0,
        published=bool(row.published),
        image_url=row.image_url,
        market_links=dict(row.market_links or {}),
        created_at=row.created_at,
    )


# ── Profile Store ───────────────────────────────────────────────────────────


class ProfileRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_latest_profile(self, user_id: str) -> Optional[SkinProfile]:
        result = await self.db.execute(
            select(SkinProfileRow)
            .where(SkinProfileRow.user_id == user_id)
            .order_by(SkinProfileRow.version.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _to_profile(row) if row else None

    async def get_answers(self, user_id: str, questionnaire_id: Optional[int] = None) -> dict[str, Any]:
        """Question code → answer value for the given (or the active) questionnaire."""
        if questionnaire_id is None:
            result = await self.db.execute(
                select(Questionnaire.id)
                .where(Questionnaire.is_active.is_(True))
                .order_by(Questionnaire.created_at.desc())
                .limit(1)
            )
            questionnaire_id = result.scalar_one_or_none()

        stmt = select(UserAnswer).where(UserAnswer.user_id == user_id)
        if questionnaire_id is not None:
            stmt = stmt.where(UserAnswer.questionnaire_id == questionnaire_id)
        else:
            logger.warning(f"No active questionnaire, using all answers for user {user_id}")
        result = await self.db.execute(stmt.order_by(UserAnswer.created_at))
        return {answer.question_code: answer.value for answer in result.scalars().all()}

    async def get_recommended_product_ids(self, user_id: str) -> list[int]:
        result = await self.db.execute(
            select(RecommendationSession)
            .where(RecommendationSession.user_id == user_id)
            .order_by(RecommendationSession.created_at.desc())
            .limit(1)
        )
        session = result.scalar_one_or_none()
        if session is None:
            return []
        return [int(pid) for pid in (session.product_ids or [])]


# ── Catalog Store ───────────────────────────────────────────────────────────


class CatalogRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def query_products(self, query: ProductQuery) -> list[Product]:
        stmt = select(ProductRow).join(ProductRow.brand).options(selectinload(ProductRow.brand))
        if query.published_only:
            stmt = stmt.where(ProductRow.published.is_(True))
        if query.active_brands_only:
            stmt = stmt.where(BrandRow.is_active.is_(True))
        if query.product_ids:
            stmt = stmt.where(ProductRow.id.in_(query.product_ids))
        if query.exclude_ids:
            stmt = stmt.where(ProductRow.id.notin_(query.exclude_ids))
        if query.steps:
            stmt = stmt.where(or_(ProductRow.step.in_(query.steps), ProductRow.category.in_(query.steps)))
        if query.step_contains:
            pattern = f"%{query.step_contains}%"
            stmt = stmt.where(or_(ProductRow.step.ilike(pattern), ProductRow.category.ilike(pattern)))

        result = await self.db.execute(stmt)
        products = [_to_product(row) for row in result.scalars().all()]
        # Skin-type membership lives in a JSON column; checked here instead of in SQL
        return order_by_catalog_priority(p for p in products if query.matches(p))


# ── Plan Cache ──────────────────────────────────────────────────────────────


class PlanCacheRepository:
    def __init__(self, db: AsyncSession, ttl_seconds: int):
        self.db = db
        self.ttl_seconds = ttl_seconds

    async def _row(self, key: str) -> Optional[CachedPlan]:
        result = await self.db.execute(select(CachedPlan).where(CachedPlan.cache_key == key))
        return result.scalar_one_or_none()

    async def get(self, user_id: str, profile_version: int) -> Optional[GeneratedPlan]:
        key = plan_cache_key(user_id, profile_version)
        row = await self._row(key)
        if row is None:
            return None

        expires_at = row.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= datetime.now(timezone.utc):
            await self.delete(user_id, profile_version)
            return None

        try:
            return decode_plan(row.payload, key)
        except ValueError as e:
            logger.warning(f"Dropping unreadable cached plan {key}: {e}")
            await self.delete(user_id, profile_version)
            return None

    async def set(self, user_id: str, profile_version: int, plan: GeneratedPlan) -> None:
        key = plan_cache_key(user_id, profile_version)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        row = await self._row(key)
        if row is None:
            row = CachedPlan(cache_key=key, user_id=user_id, profile_version=profile_version)
        row.payload = encode_plan(plan)
        row.expires_at = expires_at
        self.db.add(row)
        await self.db.commit()
        logger.info(f"Cached plan {key}")

    async def delete(self, user_id: str, profile_version: int) -> None:
        await self.db.execute(
            delete(CachedPlan).where(CachedPlan.cache_key == plan_cache_key(user_id, profile_version))
        )
        await self.db.commit()
