"""
PlanGenerator: one generation call, top to bottom.

profile + answers → classification → template → week step lists →
catalog index → Plan28 → GeneratedPlan. The only awaits are store reads;
everything in between is request-scoped and pure.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from app.config import Settings
from app.errors import MissingProfileError
from app.schemas import GeneratedPlan, SkinProfile
from app.services.assembler import GenerationContext, assemble_plan28
from app.services.catalog import CatalogResolver, CatalogStore
from app.services.classifier import classify_profile
from app.services.plan_output import (
    build_infographic,
    build_legacy_weeks,
    build_product_list,
    build_profile_summary,
    build_warnings,
)
from app.services.scoring import SkinScoringService
from app.services.step_lists import build_all_weeks
from app.services.templates import template_for

logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    async def get_latest_profile(self, user_id: str) -> Optional[SkinProfile]:
        ...

    async def get_answers(self, user_id: str, questionnaire_id: Optional[int] = None) -> dict[str, Any]:
        ...

    async def get_recommended_product_ids(self, user_id: str) -> list[int]:
        ...


class PlanGenerator:
    def __init__(
        self,
        profiles: ProfileStore,
        catalog: CatalogStore,
        scoring: SkinScoringService,
        settings: Settings,
    ):
        self.profiles = profiles
        self.resolver = CatalogResolver(catalog)
        self.scoring = scoring
        self.settings = settings

    async def generate(
        self,
        user_id: str,
        profile: Optional[SkinProfile] = None,
        now: Optional[datetime] = None,
    ) -> GeneratedPlan:
        now = now or datetime.now(timezone.utc)
        if profile is None:
            profile = await self.profiles.get_latest_profile(user_id)
        if profile is None:
            raise MissingProfileError(user_id)

        logger.info(f"Generating plan for user {user_id} (profile {profile.id} v{profile.version})")

        answers = await self.profiles.get_answers(user_id)
        scores = await self.scoring.score(answers)
        recommendations = await self.scoring.recommend(scores, answers)

        classification = classify_profile(profile, answers, scores)
        template = template_for(classification)
        weeks = build_all_weeks(template, classification)
        required = [
            category
            for week in weeks.values()
            for category in week.morning + week.evening + week.weekly
        ]

        recommended_ids = await self.profiles.get_recommended_product_ids(user_id)
        candidates = await self.resolver.load_candidates(recommended_ids)
        candidates = await self.resolver.substitute_inactive_brands(
            candidates,
            profile,
            now,
            self.settings.brand_substitution_max_profile_age_days,
        )
        index = await self.resolver.build_index(candidates, classification, required)

        context = GenerationContext(
            classification=classification,
            template=template,
            catalog_index=index,
        )
        plan28 = assemble_plan28(context, profile.id)

        plan = GeneratedPlan(
            profile=build_profile_summary(
                profile, classification, scores, self.settings.default_age_group
            ),
            skin_scores=scores,
            dermatologist_recommendations=recommendations,
            weeks=build_legacy_weeks(plan28, index, classification),
            infographic=build_infographic(scores),
            products=build_product_list(plan28, index),
            warnings=build_warnings(classification),
            plan28=plan28,
        )
        logger.info(
            f"Plan ready for user {user_id}: template={template.id} "
            f"products={len(plan.products)} goals={plan28.main_goals}"
        )
        return plan
