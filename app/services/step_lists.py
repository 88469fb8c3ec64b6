"""
Step list builder: which template steps a user sees in a given week.

Week 1 shows the cleanser, SPF and one additional step; every following
week reveals more of the template until week 4 shows all of it.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable

from app.schemas import BaseStep, ProfileClassification, StepCategory
from app.services.step_categories import (
    CLEANSER_FALLBACK,
    FALLBACK_CATEGORY,
    SPF_FALLBACK,
    allowed_family_member,
    is_cleanser,
    is_spf,
    is_step_allowed,
)
from app.services.templates import CarePlanTemplate

logger = logging.getLogger(__name__)

WEEKS = (1, 2, 3, 4)


@dataclass(frozen=True)
class WeekSteps:
    week: int
    morning: tuple[StepCategory, ...]
    evening: tuple[StepCategory, ...]
    weekly: tuple[StepCategory, ...]

    @property
    def morning_additional(self) -> int:
        return sum(1 for s in self.morning if not (is_cleanser(s) or is_spf(s)))

    @property
    def evening_additional(self) -> int:
        return sum(1 for s in self.evening if not (is_cleanser(s) or is_spf(s)))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def additional_limit(week: int, additional_count: int) -> int:
    progression = (week - 1) / 3
    return round_half_up(1 + progression * max(additional_count - 1, 0))


def _first(steps: Iterable[StepCategory], check: Callable[[StepCategory], bool], default: StepCategory):
    return next((s for s in steps if check(s)), default)


def _additional(steps: Iterable[StepCategory]) -> list[StepCategory]:
    return [s for s in steps if not (is_cleanser(s) or is_spf(s))]


def _dedup(steps: Iterable[StepCategory]) -> list[StepCategory]:
    return list(dict.fromkeys(steps))


def _reinsert(
    steps: list[StepCategory],
    check: Callable[[StepCategory], bool],
    base: BaseStep,
    classification: ProfileClassification,
    at_front: bool,
) -> list[StepCategory]:
    if any(check(s) for s in steps):
        return steps
    # Mandatory step: prefer a family member the profile may use, else the plain fallback
    replacement = allowed_family_member(base, classification) or FALLBACK_CATEGORY[base]
    logger.debug(f"Re-inserting {replacement.value} for user {classification.user_id}")
    return [replacement] + steps if at_front else steps + [replacement]


def build_week_steps(
    week: int, template: CarePlanTemplate, classification: ProfileClassification
) -> WeekSteps:
    week = min(max(week, WEEKS[0]), WEEKS[-1])

    def allowed(steps: list[StepCategory]) -> list[StepCategory]:
        return [s for s in steps if is_step_allowed(s, classification)]

    cleanser = _first(template.morning, is_cleanser, CLEANSER_FALLBACK)
    spf = _first(template.morning, is_spf, SPF_FALLBACK)
    extra = _additional(template.morning)
    morning = _dedup([cleanser, *extra[: additional_limit(week, len(extra))], spf])

    evening_cleanser = _first(template.evening, is_cleanser, CLEANSER_FALLBACK)
    evening_extra = _additional(template.evening)
    evening = _dedup(
        [evening_cleanser, *evening_extra[: additional_limit(week, len(evening_extra))]]
    )

    morning = allowed(morning)
    morning = _reinsert(morning, is_cleanser, BaseStep.CLEANSER, classification, at_front=True)
    morning = _reinsert(morning, is_spf, BaseStep.SPF, classification, at_front=False)

    evening = allowed(evening)
    evening = _reinsert(evening, is_cleanser, BaseStep.CLEANSER, classification, at_front=True)
    if classification.needs_oil_cleansing:
        # Daily makeup: oil cleanse first, ahead of the regular cleanser
        evening = _dedup([StepCategory.CLEANSER_OIL, *evening])

    weekly = allowed(_dedup(template.weekly))

    return WeekSteps(week=week, morning=tuple(morning), evening=tuple(evening), weekly=tuple(weekly))


def build_all_weeks(
    template: CarePlanTemplate, classification: ProfileClassification
) -> dict[int, WeekSteps]:
    return {week: build_week_steps(week, template, classification) for week in WEEKS}
