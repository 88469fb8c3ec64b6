"""
PlanService: cache-aware entry point used by the API.

Single entry point per action: get_plan(user_id) and regenerate(user_id).
Callers only ever see a PlanOutcome (ready / no_profile / failed).
"""

import logging

from app.errors import MissingProfileError, PlanGenerationError
from app.schemas import GeneratedPlan, PlanOutcome, PlanState, SkinProfile
from app.services.plan_cache import PlanCache
from app.services.plan_generator import PlanGenerator, ProfileStore

logger = logging.getLogger(__name__)

NO_PROFILE_MESSAGE = "Complete the skin questionnaire to get your care plan"
FAILED_MESSAGE = "Could not generate plan, please try again later"


def _ready(plan: GeneratedPlan) -> PlanOutcome:
    return PlanOutcome(state=PlanState.READY, plan=plan)


def _no_profile() -> PlanOutcome:
    return PlanOutcome(state=PlanState.NO_PROFILE, message=NO_PROFILE_MESSAGE)


def _failed() -> PlanOutcome:
    return PlanOutcome(state=PlanState.FAILED, message=FAILED_MESSAGE)


class PlanService:
    def __init__(self, profiles: ProfileStore, generator: PlanGenerator, cache: PlanCache):
        self.profiles = profiles
        self.generator = generator
        self.cache = cache

    async def get_plan(self, user_id: str) -> PlanOutcome:
        """Cached plan for the current profile version, generating it on a miss."""
        try:
            profile = await self.profiles.get_latest_profile(user_id)
            if profile is None:
                return _no_profile()

            cached = await self.cache.get(user_id, profile.version)
            if cached is not None:
                logger.info(f"Plan cache hit for user {user_id} v{profile.version}")
                return _ready(cached)

            return await self._generate(user_id, profile)
        except Exception as e:
            logger.error(f"Error getting plan for {user_id}: {e}", exc_info=True)
            return _failed()

    async def regenerate(self, user_id: str) -> PlanOutcome:
        """Generate a fresh plan, ignoring and then replacing any cached one."""
        try:
            profile = await self.profiles.get_latest_profile(user_id)
            if profile is None:
                return _no_profile()
            return await self._generate(user_id, profile)
        except Exception as e:
            logger.error(f"Error regenerating plan for {user_id}: {e}", exc_info=True)
            return _failed()

    async def _generate(self, user_id: str, profile: SkinProfile) -> PlanOutcome:
        try:
            plan = await self.generator.generate(user_id, profile=profile)
        except MissingProfileError:
            return _no_profile()
        except PlanGenerationError as e:
            logger.error(f"Plan generation failed for {user_id}: {e}")
            return _failed()

        await self._store(user_id, profile.version, plan)
        return _ready(plan)

    async def _store(self, user_id: str, version: int, plan: GeneratedPlan) -> None:
        try:
            await self.cache.set(user_id, version, plan)
        except Exception as e:
            # The plan is still returned; the next request regenerates it
            logger.warning(f"Could not cache plan for {user_id} v{version}: {e}")
