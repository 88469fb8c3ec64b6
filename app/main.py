import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.repository import CatalogRepository, PlanCacheRepository, ProfileRepository
from app.schemas import GeneratedPlan, PlanOutcome, PlanState
from app.services.plan_generator import PlanGenerator
from app.services.plan_service import PlanService
from app.services.scoring import NullScoringService

settings = get_settings()

# Set up logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Care Plan Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_plan_service(db: AsyncSession = Depends(get_db)) -> PlanService:
    profiles = ProfileRepository(db)
    generator = PlanGenerator(
        profiles=profiles,
        catalog=CatalogRepository(db),
        scoring=NullScoringService(),
        settings=settings,
    )
    cache = PlanCacheRepository(db, ttl_seconds=settings.plan_cache_ttl_seconds)
    return PlanService(profiles=profiles, generator=generator, cache=cache)


def _plan_or_error(outcome: PlanOutcome) -> GeneratedPlan:
    if outcome.state is PlanState.NO_PROFILE:
        raise HTTPException(status_code=404, detail=outcome.message)
    if outcome.state is PlanState.FAILED or outcome.plan is None:
        raise HTTPException(status_code=503, detail=outcome.message)
    return outcome.plan


@app.get("/")
async def health_check():
    return {"status": "healthy", "service": "Care Plan Engine"}


@app.get("/plan/{user_id}", response_model=GeneratedPlan)
async def get_plan(user_id: str, service: PlanService = Depends(get_plan_service)):
    outcome = await service.get_plan(user_id)
    logger.info(f"Plan request for {user_id}: {outcome.state.value}")
    return _plan_or_error(outcome)


@app.post("/plan/{user_id}/regenerate", response_model=GeneratedPlan)
async def regenerate_plan(user_id: str, service: PlanService = Depends(get_plan_service)):
    outcome = await service.regenerate(user_id)
    logger.info(f"Plan regeneration for {user_id}: {outcome.state.value}")
    return _plan_or_error(outcome)
