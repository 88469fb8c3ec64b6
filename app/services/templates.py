"""
Care plan templates and the selector that picks one for a classified profile.
"""

import logging
from dataclasses import dataclass, field, replace

from app.schemas import (
    PrimaryFocus,
    ProfileClassification,
    RoutineComplexity,
    SensitivityLevel,
    SkinType,
    StepCategory,
)

logger = logging.getLogger(__name__)

S = StepCategory


@dataclass(frozen=True)
class TemplateConditions:
    """Empty tuple = no constraint on that dimension."""

    skin_types: tuple[SkinType, ...] = ()
    goals: tuple[str, ...] = ()
    sensitivity: tuple[SensitivityLevel, ...] = ()
    complexity: tuple[RoutineComplexity, ...] = ()

    def matches(
        self,
        skin_type: SkinType,
        main_goals: list[str],
        sensitivity: SensitivityLevel,
        complexity: RoutineComplexity,
    ) -> bool:
        if self.skin_types and skin_type not in self.skin_types:
            return False
        if self.goals and not any(goal in self.goals for goal in main_goals):
            return False
        if self.sensitivity and sensitivity not in self.sensitivity:
            return False
        if self.complexity and complexity not in self.complexity:
            return False
        return True


@dataclass(frozen=True)
class CarePlanTemplate:
    id: str
    morning: tuple[StepCategory, ...]
    evening: tuple[StepCategory, ...]
    weekly: tuple[StepCategory, ...] = ()
    conditions: TemplateConditions = field(default_factory=TemplateConditions)

    @property
    def categories(self) -> tuple[StepCategory, ...]:
        return tuple(dict.fromkeys(self.morning + self.evening + self.weekly))


NOT_MINIMAL = (RoutineComplexity.MEDIUM, RoutineComplexity.MAXIMAL)

# Order matters: the first template whose conditions hold is selected.
CARE_PLAN_TEMPLATES: tuple[CarePlanTemplate, ...] = (
    CarePlanTemplate(
        id="acne_oily_basic",
        conditions=TemplateConditions(
            skin_types=(SkinType.OILY, SkinType.COMBINATION_OILY),
            goals=("acne",),
            complexity=NOT_MINIMAL,
        ),
        morning=(S.CLEANSER_BALANCING, S.SERUM_NIACINAMIDE, S.MOISTURIZER_BALANCING, S.SPF_50_OILY),
        evening=(S.CLEANSER_BALANCING, S.TREATMENT_ACNE_AZELAIC, S.MOISTURIZER_BALANCING),
        weekly=(S.MASK_CLAY,),
    ),
    CarePlanTemplate(
        id="dry_sensitive_barrier",
        conditions=TemplateConditions(
            skin_types=(SkinType.DRY, SkinType.COMBINATION_DRY, SkinType.NORMAL),
            goals=("barrier", "dehydration"),
            sensitivity=(SensitivityLevel.MEDIUM, SensitivityLevel.HIGH, SensitivityLevel.VERY_HIGH),
            complexity=NOT_MINIMAL,
        ),
        morning=(S.CLEANSER_GENTLE, S.SERUM_HYDRATING, S.MOISTURIZER_BARRIER, S.SPF_50_SENSITIVE),
        evening=(S.CLEANSER_GENTLE, S.MOISTURIZER_BARRIER),
        weekly=(S.MASK_SOOTHING,),
    ),
    CarePlanTemplate(
        id="pigmentation_focus",
        conditions=TemplateConditions(goals=("pigmentation",), complexity=NOT_MINIMAL),
        morning=(S.CLEANSER_GENTLE, S.SERUM_VITC, S.SPF_50_FACE),
        evening=(S.CLEANSER_GENTLE, S.TREATMENT_PIGMENTATION, S.MOISTURIZER_LIGHT),
        weekly=(S.MASK_HYDRATING,),
    ),
    CarePlanTemplate(
        id="minimalist_any_skin",
        conditions=TemplateConditions(complexity=(RoutineComplexity.MINIMAL,)),
        morning=(S.CLEANSER_GENTLE, S.SPF_50_FACE),
        evening=(S.CLEANSER_GENTLE, S.MOISTURIZER_LIGHT),
    ),
    CarePlanTemplate(
        id="default_balanced",
        morning=(S.CLEANSER_GENTLE, S.SERUM_HYDRATING, S.MOISTURIZER_LIGHT, S.SPF_50_FACE),
        evening=(S.CLEANSER_GENTLE, S.TREATMENT_ANTIAGE, S.MOISTURIZER_LIGHT),
    ),
)

DEFAULT_TEMPLATE = CARE_PLAN_TEMPLATES[-1]


def select_care_plan_template(
    skin_type: SkinType,
    main_goals: list[str],
    sensitivity: SensitivityLevel,
    complexity: RoutineComplexity,
) -> CarePlanTemplate:
    for template in CARE_PLAN_TEMPLATES:
        if template.conditions.matches(skin_type, main_goals, sensitivity, complexity):
            return template
    return DEFAULT_TEMPLATE


def _antiage_substitute(classification: ProfileClassification):
    goals = set(classification.main_goals)
    if "acne" in goals:
        return S.TREATMENT_ACNE_AZELAIC
    if "pigmentation" in goals:
        return S.TREATMENT_PIGMENTATION
    if classification.primary_focus is PrimaryFocus.PORES:
        return S.TREATMENT_EXFOLIANT_MILD
    return None


def _adjust_steps(steps: tuple[StepCategory, ...], classification: ProfileClassification):
    wants_antiage = (
        "antiage" in classification.main_goals
        or classification.primary_focus is PrimaryFocus.WRINKLES
    )
    if wants_antiage or S.TREATMENT_ANTIAGE not in steps:
        return steps

    substitute = _antiage_substitute(classification)
    adjusted = []
    for step in steps:
        if step is S.TREATMENT_ANTIAGE:
            if substitute is not None:
                adjusted.append(substitute)
        else:
            adjusted.append(step)
    return tuple(dict.fromkeys(adjusted))


def adjust_template_for_goals(
    template: CarePlanTemplate, classification: ProfileClassification
) -> CarePlanTemplate:
    """Swap the retinoid treatment for one matching the user's goals when wrinkles are not a goal."""
    adjusted = replace(
        template,
        morning=_adjust_steps(template.morning, classification),
        evening=_adjust_steps(template.evening, classification),
        weekly=_adjust_steps(template.weekly, classification),
    )
    if adjusted != template:
        logger.info(f"Adjusted template {template.id} for goals {classification.main_goals}")
    return adjusted


def template_for(classification: ProfileClassification) -> CarePlanTemplate:
    """Select with the questionnaire complexity, then adjust for goals.

    The medical-marker complexity override is not applied here; it only
    affects weekly-focus scheduling.
    """
    template = select_care_plan_template(
        classification.skin_type,
        classification.main_goals,
        classification.sensitivity_level,
        classification.routine_complexity,
    )
    logger.info(f"Selected care plan template {template.id} for user {classification.user_id}")
    return adjust_template_for_goals(template, classification)
