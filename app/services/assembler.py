"""
Day assembler: unrolls the 28-day plan from a GenerationContext.

Single pass over days 1..28: phase, weekly-focus flag, and one DayStep per
step category with the top-ranked product for the day's phase plus up to
three alternatives.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from app.errors import EmptyCatalogForRequiredStepError
from app.schemas import (
    DayPlan,
    DayStep,
    Plan28,
    PlanPhase,
    ProfileClassification,
    RoutineComplexity,
    StepCategory,
)
from app.services.catalog import CatalogIndex, filter_for_phase, products_for_step
from app.services.step_categories import is_mandatory
from app.services.step_lists import WeekSteps, build_all_weeks
from app.services.templates import CarePlanTemplate

logger = logging.getLogger(__name__)

PLAN_DAYS = 28
MAX_ALTERNATIVES = 3

# (last day of band, phase)
PHASE_BANDS: tuple[tuple[int, PlanPhase], ...] = (
    (7, PlanPhase.ADAPTATION),
    (21, PlanPhase.ACTIVE),
    (PLAN_DAYS, PlanPhase.SUPPORT),
)

PHASE_LABELS = {
    PlanPhase.ADAPTATION: "Адаптация",
    PlanPhase.ACTIVE: "Активная фаза",
    PlanPhase.SUPPORT: "Поддержка",
}

# Each set contains the sparser one before it.
WEEKLY_FOCUS_DAYS: dict[RoutineComplexity, frozenset[int]] = {
    RoutineComplexity.MINIMAL: frozenset({10, 24}),
    RoutineComplexity.MEDIUM: frozenset({3, 10, 17, 24}),
    RoutineComplexity.MAXIMAL: frozenset({3, 6, 10, 13, 17, 20, 24, 27}),
}


@dataclass(frozen=True)
class GenerationContext:
    """Everything one generation call needs; built once, never mutated."""

    classification: ProfileClassification
    template: CarePlanTemplate
    catalog_index: CatalogIndex


def week_of(day_index: int) -> int:
    return math.ceil(day_index / 7)


def phase_for_day(day_index: int) -> PlanPhase:
    for last_day, phase in PHASE_BANDS:
        if day_index <= last_day:
            return phase
    return PHASE_BANDS[-1][1]


def is_weekly_focus_day(
    day_index: int, weekly_steps: Iterable[StepCategory], complexity: RoutineComplexity
) -> bool:
    if not tuple(weekly_steps):
        return False
    return day_index in WEEKLY_FOCUS_DAYS[complexity]


def bind_step(
    category: StepCategory, index: CatalogIndex, phase: Optional[PlanPhase] = None
) -> Optional[DayStep]:
    products = filter_for_phase(products_for_step(index, category), category, phase)
    if not products:
        return None
    chosen = products[0]
    alternatives = [p.id for p in products[1:] if p.id != chosen.id][:MAX_ALTERNATIVES]
    return DayStep(step_category=category, product_id=chosen.id, alternatives=alternatives)


def _bind_all(
    categories: Iterable[StepCategory],
    index: CatalogIndex,
    phase: PlanPhase,
    dropped: set[StepCategory],
) -> list[DayStep]:
    steps = []
    for category in categories:
        step = bind_step(category, index, phase)
        if step is not None:
            steps.append(step)
        elif is_mandatory(category):
            raise EmptyCatalogForRequiredStepError(category.value)
        else:
            dropped.add(category)
    return steps


def assemble_day(
    day_index: int, week_steps: WeekSteps, context: GenerationContext, dropped: set[StepCategory]
) -> DayPlan:
    index = context.catalog_index
    phase = phase_for_day(day_index)
    focus_day = is_weekly_focus_day(
        day_index, week_steps.weekly, context.classification.schedule_complexity
    )
    return DayPlan(
        day_index=day_index,
        phase=phase,
        is_weekly_focus_day=focus_day,
        morning=_bind_all(week_steps.morning, index, phase, dropped),
        evening=_bind_all(week_steps.evening, index, phase, dropped),
        weekly=_bind_all(week_steps.weekly, index, phase, dropped) if focus_day else [],
    )


def assemble_plan28(context: GenerationContext, skin_profile_id: int) -> Plan28:
    weeks = build_all_weeks(context.template, context.classification)
    dropped: set[StepCategory] = set()
    days = [
        assemble_day(day_index, weeks[week_of(day_index)], context, dropped)
        for day_index in range(1, PLAN_DAYS + 1)
    ]
    if dropped:
        logger.warning(
            f"Steps without products left out of the plan for user "
            f"{context.classification.user_id}: {sorted(c.value for c in dropped)}"
        )
    return Plan28(
        user_id=context.classification.user_id,
        skin_profile_id=skin_profile_id,
        days=days,
        main_goals=list(context.classification.main_goals),
    )
