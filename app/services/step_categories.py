"""
Step category lookup tables: base steps, fallbacks and per-profile rules.

Every branch on "what kind of step is this" goes through base_step_of();
nothing in the engine matches on category name prefixes.
"""

from dataclasses import dataclass
from typing import Optional

from app.schemas import BaseStep, ProfileClassification, StepCategory


S = StepCategory


# ── Base step lookup ────────────────────────────────────────────────────────


BASE_STEP_OF: dict[StepCategory, BaseStep] = {
    S.CLEANSER_GENTLE: BaseStep.CLEANSER,
    S.CLEANSER_BALANCING: BaseStep.CLEANSER,
    S.CLEANSER_DEEP: BaseStep.CLEANSER,
    S.CLEANSER_OIL: BaseStep.CLEANSER,
    S.TONER_HYDRATING: BaseStep.TONER,
    S.TONER_SOOTHING: BaseStep.TONER,
    S.SERUM_HYDRATING: BaseStep.SERUM,
    S.SERUM_NIACINAMIDE: BaseStep.SERUM,
    S.SERUM_VITC: BaseStep.SERUM,
    S.SERUM_ANTI_REDNESS: BaseStep.SERUM,
    S.SERUM_BRIGHTENING_SOFT: BaseStep.SERUM,
    S.TREATMENT_ACNE_BPO: BaseStep.TREATMENT,
    S.TREATMENT_ACNE_AZELAIC: BaseStep.TREATMENT,
    S.TREATMENT_ACNE_LOCAL: BaseStep.TREATMENT,
    S.TREATMENT_EXFOLIANT_MILD: BaseStep.TREATMENT,
    S.TREATMENT_EXFOLIANT_STRONG: BaseStep.TREATMENT,
    S.TREATMENT_PIGMENTATION: BaseStep.TREATMENT,
    S.TREATMENT_ANTIAGE: BaseStep.TREATMENT,
    S.MOISTURIZER_LIGHT: BaseStep.MOISTURIZER,
    S.MOISTURIZER_BALANCING: BaseStep.MOISTURIZER,
    S.MOISTURIZER_BARRIER: BaseStep.MOISTURIZER,
    S.MOISTURIZER_SOOTHING: BaseStep.MOISTURIZER,
    S.BALM_BARRIER_REPAIR: BaseStep.MOISTURIZER,
    S.EYE_CREAM_BASIC: BaseStep.EYE_CREAM,
    S.EYE_CREAM_DARK_CIRCLES: BaseStep.EYE_CREAM,
    S.EYE_CREAM_PUFFINESS: BaseStep.EYE_CREAM,
    S.SPF_50_FACE: BaseStep.SPF,
    S.SPF_50_OILY: BaseStep.SPF,
    S.SPF_50_SENSITIVE: BaseStep.SPF,
    S.MASK_CLAY: BaseStep.MASK,
    S.MASK_HYDRATING: BaseStep.MASK,
    S.MASK_SOOTHING: BaseStep.MASK,
    S.MASK_SLEEPING: BaseStep.MASK,
    S.SPOT_TREATMENT: BaseStep.SPOT_TREATMENT,
    S.LIP_CARE: BaseStep.LIP_CARE,
}

# Category substituted when nothing is registered for a base step.
FALLBACK_CATEGORY: dict[BaseStep, StepCategory] = {
    BaseStep.CLEANSER: S.CLEANSER_GENTLE,
    BaseStep.TONER: S.TONER_HYDRATING,
    BaseStep.SERUM: S.SERUM_HYDRATING,
    BaseStep.TREATMENT: S.TREATMENT_ANTIAGE,
    BaseStep.MOISTURIZER: S.MOISTURIZER_LIGHT,
    BaseStep.SPF: S.SPF_50_FACE,
}

CLEANSER_FALLBACK = S.CLEANSER_GENTLE
SPF_FALLBACK = S.SPF_50_FACE

MANDATORY_BASE_STEPS = (BaseStep.CLEANSER, BaseStep.SPF)

# Scheduled on top of a regular cleanser; bound only to products filed under the category itself.
EXACT_MATCH_ONLY: frozenset[StepCategory] = frozenset({S.CLEANSER_OIL})

# Categories a bare base-step tag on a product ("cleanser", "toner") is filed under.
GENERIC_CATEGORIES: dict[BaseStep, tuple[StepCategory, ...]] = {
    BaseStep.CLEANSER: (S.CLEANSER_GENTLE, S.CLEANSER_BALANCING, S.CLEANSER_DEEP),
    BaseStep.TONER: (S.TONER_HYDRATING, S.TONER_SOOTHING),
    BaseStep.SERUM: (S.SERUM_HYDRATING, S.SERUM_NIACINAMIDE),
    BaseStep.TREATMENT: (S.TREATMENT_ANTIAGE, S.TREATMENT_EXFOLIANT_MILD),
    BaseStep.MOISTURIZER: (S.MOISTURIZER_LIGHT, S.MOISTURIZER_BALANCING),
    BaseStep.EYE_CREAM: (S.EYE_CREAM_BASIC,),
    BaseStep.SPF: (S.SPF_50_FACE,),
    BaseStep.MASK: (S.MASK_HYDRATING,),
    BaseStep.SPOT_TREATMENT: (S.SPOT_TREATMENT,),
    BaseStep.LIP_CARE: (S.LIP_CARE,),
}

# Free-text hints for products tagged with neither a category nor a base step.
STEP_KEYWORDS: list[tuple[BaseStep, tuple[str, ...]]] = [
    (BaseStep.CLEANSER, ("cleanser", "очищ", "умыван", "пенка", "гель для умывания")),
    (BaseStep.TONER, ("toner", "тоник")),
    (BaseStep.SERUM, ("serum", "сыворот")),
    (BaseStep.TREATMENT, ("treatment", "лечени")),
    (BaseStep.SPF, ("spf", "sunscreen", "защит", "санскрин")),
    (BaseStep.MASK, ("mask", "маск")),
    (BaseStep.MOISTURIZER, ("moisturizer", "cream", "крем")),
]


def base_step_of(category: StepCategory) -> BaseStep:
    return BASE_STEP_OF[category]


def is_cleanser(category: StepCategory) -> bool:
    return BASE_STEP_OF[category] is BaseStep.CLEANSER


def is_spf(category: StepCategory) -> bool:
    return BASE_STEP_OF[category] is BaseStep.SPF


def is_mandatory(category: StepCategory) -> bool:
    return BASE_STEP_OF[category] in MANDATORY_BASE_STEPS and category not in EXACT_MATCH_ONLY


def fallback_category(category: StepCategory) -> Optional[StepCategory]:
    """Designated substitute for a category, or None for families without one."""
    fallback = FALLBACK_CATEGORY.get(BASE_STEP_OF[category])
    if fallback is None or fallback == category:
        return None
    return fallback


def parse_step_category(value: Optional[str]) -> Optional[StepCategory]:
    if not value:
        return None
    try:
        return StepCategory(value.strip().lower())
    except ValueError:
        return None


def parse_base_step(value: Optional[str]) -> Optional[BaseStep]:
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized == "cream":
        return BaseStep.MOISTURIZER
    try:
        return BaseStep(normalized)
    except ValueError:
        return None


def categories_for_tags(step: Optional[str], category: Optional[str]) -> list[StepCategory]:
    """Map a product's raw step/category tags onto step categories."""
    for tag in (category, step):
        exact = parse_step_category(tag)
        if exact is not None:
            return [exact]

    for tag in (category, step):
        base = parse_base_step(tag)
        if base is not None:
            return list(GENERIC_CATEGORIES[base])

    text = f"{step or ''} {category or ''}".lower()
    for base, keywords in STEP_KEYWORDS:
        if any(kw in text for kw in keywords):
            return list(GENERIC_CATEGORIES[base])
    return []


# ── Profile rules ───────────────────────────────────────────────────────────


ALL_SKIN_TYPES = ("dry", "normal", "combination_dry", "combination_oily", "oily")


@dataclass(frozen=True)
class StepCategoryRule:
    skin_types_allowed: tuple[str, ...] = ALL_SKIN_TYPES
    avoid_if_contra: tuple[str, ...] = ()
    prefer_goals: tuple[str, ...] = ()
    avoid_diagnoses: tuple[str, ...] = ()


STEP_CATEGORY_RULES: dict[StepCategory, StepCategoryRule] = {
    S.CLEANSER_GENTLE: StepCategoryRule(
        prefer_goals=("sensitivity", "dryness", "maintenance"),
    ),
    S.CLEANSER_BALANCING: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        prefer_goals=("acne", "pores", "oiliness"),
        avoid_diagnoses=("atopic_dermatitis",),
    ),
    S.CLEANSER_DEEP: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily", "normal"),
        avoid_if_contra=("very_high_sensitivity",),
        prefer_goals=("acne", "pores", "oiliness"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TONER_HYDRATING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry", "combination_oily"),
        prefer_goals=("dryness", "maintenance", "wrinkles"),
    ),
    S.TONER_SOOTHING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry", "combination_oily"),
        prefer_goals=("sensitivity", "redness"),
    ),
    S.SERUM_HYDRATING: StepCategoryRule(
        avoid_if_contra=("no_hyaluronic",),
        prefer_goals=("dryness", "wrinkles", "maintenance"),
    ),
    S.SERUM_NIACINAMIDE: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        avoid_if_contra=("no_niacinamide",),
        prefer_goals=("acne", "pores", "oiliness", "pigmentation"),
    ),
    S.SERUM_VITC: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        avoid_if_contra=("no_vitc", "very_high_sensitivity"),
        prefer_goals=("pigmentation", "uneven_tone", "wrinkles"),
        avoid_diagnoses=("rosacea",),
    ),
    S.SERUM_ANTI_REDNESS: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry", "combination_oily"),
        prefer_goals=("sensitivity", "redness"),
    ),
    S.SERUM_BRIGHTENING_SOFT: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily"),
        avoid_if_contra=("no_strong_acids",),
        prefer_goals=("pigmentation", "uneven_tone"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TREATMENT_ACNE_BPO: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily"),
        avoid_if_contra=("no_strong_acids", "very_high_sensitivity"),
        prefer_goals=("acne",),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TREATMENT_ACNE_AZELAIC: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        prefer_goals=("acne", "pigmentation", "redness"),
    ),
    S.TREATMENT_ACNE_LOCAL: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        avoid_if_contra=("very_high_sensitivity",),
        prefer_goals=("acne",),
        avoid_diagnoses=("atopic_dermatitis",),
    ),
    S.TREATMENT_EXFOLIANT_MILD: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        avoid_if_contra=("no_strong_acids",),
        prefer_goals=("texture", "pores", "acne", "pigmentation"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TREATMENT_EXFOLIANT_STRONG: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily"),
        avoid_if_contra=("no_strong_acids", "very_high_sensitivity", "pregnant"),
        prefer_goals=("pores", "acne", "texture", "pigmentation"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TREATMENT_PIGMENTATION: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily"),
        avoid_if_contra=("no_strong_acids",),
        prefer_goals=("pigmentation", "uneven_tone"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.TREATMENT_ANTIAGE: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        avoid_if_contra=("no_retinol", "retinol_allergy", "pregnant"),
        prefer_goals=("wrinkles",),
    ),
    S.MOISTURIZER_LIGHT: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily"),
        prefer_goals=("maintenance", "oiliness"),
    ),
    S.MOISTURIZER_BALANCING: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily"),
        prefer_goals=("oiliness", "pores", "acne"),
        avoid_diagnoses=("atopic_dermatitis",),
    ),
    S.MOISTURIZER_BARRIER: StepCategoryRule(
        skin_types_allowed=("dry", "combination_dry", "normal"),
        prefer_goals=("dryness", "sensitivity", "atopic_dermatitis", "maintenance"),
    ),
    S.MOISTURIZER_SOOTHING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("sensitivity", "redness"),
    ),
    S.EYE_CREAM_BASIC: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry", "combination_oily"),
        prefer_goals=("maintenance",),
    ),
    S.EYE_CREAM_DARK_CIRCLES: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily"),
        prefer_goals=("dark_circles",),
    ),
    S.EYE_CREAM_PUFFINESS: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily"),
        prefer_goals=("puffiness",),
    ),
    S.SPF_50_FACE: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry", "combination_oily"),
        prefer_goals=("maintenance", "pigmentation", "wrinkles"),
    ),
    S.SPF_50_OILY: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily"),
        prefer_goals=("acne", "pores", "oiliness"),
    ),
    S.SPF_50_SENSITIVE: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("sensitivity", "redness", "melasma"),
    ),
    S.MASK_CLAY: StepCategoryRule(
        skin_types_allowed=("combination_oily", "oily"),
        avoid_if_contra=("very_high_sensitivity",),
        prefer_goals=("pores", "acne", "oiliness"),
        avoid_diagnoses=("rosacea", "atopic_dermatitis"),
    ),
    S.MASK_HYDRATING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("dryness", "wrinkles"),
    ),
    S.MASK_SOOTHING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("sensitivity", "redness"),
    ),
    S.MASK_SLEEPING: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("dryness", "wrinkles", "barrier_damage"),
    ),
    S.SPOT_TREATMENT: StepCategoryRule(
        skin_types_allowed=("normal", "combination_dry", "combination_oily", "oily"),
        avoid_if_contra=("very_high_sensitivity",),
        prefer_goals=("acne",),
        avoid_diagnoses=("atopic_dermatitis",),
    ),
    S.LIP_CARE: StepCategoryRule(),
    S.BALM_BARRIER_REPAIR: StepCategoryRule(
        skin_types_allowed=("dry", "normal", "combination_dry"),
        prefer_goals=("barrier_damage", "dryness", "atopic_dermatitis"),
    ),
}


def is_step_allowed(category: StepCategory, classification: ProfileClassification) -> bool:
    """True unless the profile's skin type, diagnoses or contraindications rule the category out."""
    rule = STEP_CATEGORY_RULES.get(category)
    if rule is None:
        return True

    if classification.skin_type.value not in rule.skin_types_allowed:
        return False
    if any(d in rule.avoid_diagnoses for d in classification.diagnoses):
        return False
    if any(c in rule.avoid_if_contra for c in classification.contraindications):
        return False
    return True


def allowed_family_member(
    base: BaseStep, classification: ProfileClassification
) -> Optional[StepCategory]:
    """First category of a base step the profile may use, preferring the designated fallback."""
    preferred = FALLBACK_CATEGORY.get(base)
    if preferred is not None and is_step_allowed(preferred, classification):
        return preferred
    for category, family in BASE_STEP_OF.items():
        if family is not base or category in EXACT_MATCH_ONLY:
            continue
        if is_step_allowed(category, classification):
            return category
    return None
