"""
Profile classifier: stored SkinProfile + raw questionnaire answers → ProfileClassification.

Never raises: anything missing or unrecognised falls back to a safe default
(normal skin, low sensitivity, general focus, medium complexity, mid budget).
"""

import logging
from typing import Any, Optional

from app.schemas import (
    BudgetTier,
    PrimaryFocus,
    ProfileClassification,
    RoutineComplexity,
    SensitivityLevel,
    SkinProfile,
    SkinScore,
    SkinType,
)

logger = logging.getLogger(__name__)

# Questionnaire answer codes
GOALS_CODE = "skin_goals"
CONCERNS_CODE = "skin_concerns"
EXCLUSIONS_CODE = "exclude_ingredients"
BUDGET_CODE = "budget"
CARE_STEPS_CODE = "care_steps"
ALLERGIES_CODE = "allergies"
PREGNANCY_CODE = "pregnancy"
DIAGNOSES_CODE = "diagnoses"

# Checked in order; the first focus found in goals or concerns wins.
FOCUS_KEYWORDS: list[tuple[PrimaryFocus, tuple[str, ...]]] = [
    (PrimaryFocus.ACNE, ("акне", "высыпан", "acne", "breakout")),
    (PrimaryFocus.PORES, ("видимость пор", "расширенные поры", "pores")),
    (PrimaryFocus.DRYNESS, ("сухост", "dryness")),
    (PrimaryFocus.PIGMENTATION, ("пигментац", "pigmentation", "dark spots")),
    (PrimaryFocus.WRINKLES, ("морщин", "wrinkles", "fine lines")),
]

BARRIER_KEYWORDS = ("барьер", "чувствительн", "barrier", "sensitiv")
DEHYDRATION_KEYWORDS = ("обезвожен", "сухост", "dehydrat", "dryness")

BUDGET_KEYWORDS: list[tuple[BudgetTier, tuple[str, ...]]] = [
    (BudgetTier.ANY, ("любой", "any")),
    (BudgetTier.BUDGET, ("бюджет", "budget")),
    (BudgetTier.MID, ("средн", "mid")),
    (BudgetTier.PREMIUM, ("премиум", "premium", "люкс")),
]

PREGNANCY_SIGNALS = ("да", "yes", "беремен", "pregnan", "кормлю", "лактац", "breastfeed")

# Score levels treated as key problems in the profile summary
KEY_PROBLEM_LEVELS = {"critical", "poor", "критично", "плохо"}


# ── Helpers ─────────────────────────────────────────────────────────────────


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def _as_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return "" if value is None else str(value)


def _mentions(texts: list[str], keywords: tuple[str, ...]) -> bool:
    lowered = [t.lower() for t in texts]
    return any(kw in text for text in lowered for kw in keywords)


def _axis_value(scores: list[SkinScore], axis: str) -> Optional[float]:
    for score in scores:
        if score.axis == axis:
            return score.value
    return None


def normalize_skin_type(raw: Optional[str], scores: Optional[list[SkinScore]] = None) -> SkinType:
    """Map a stored skin type onto the rule vocabulary.

    "combo" splits by which of oiliness / dehydration scores higher; with no
    scores it leans oily. "sensitive" reads as dry. Unknown values → normal.
    """
    if not raw:
        return SkinType.NORMAL
    value = raw.strip().lower()
    if value in ("combo", "combination"):
        oiliness = _axis_value(scores or [], "oiliness")
        dehydration = _axis_value(scores or [], "hydration")
        if oiliness is None and dehydration is None:
            return SkinType.COMBINATION_OILY
        if (oiliness or 0) > (dehydration or 0):
            return SkinType.COMBINATION_OILY
        return SkinType.COMBINATION_DRY
    if value == "sensitive":
        return SkinType.DRY
    try:
        return SkinType(value)
    except ValueError:
        logger.warning(f"Unknown skin type '{raw}', using normal")
        return SkinType.NORMAL


def normalize_sensitivity(raw: Optional[str]) -> SensitivityLevel:
    if not raw:
        return SensitivityLevel.LOW
    try:
        return SensitivityLevel(raw.strip().lower())
    except ValueError:
        logger.warning(f"Unknown sensitivity level '{raw}', using low")
        return SensitivityLevel.LOW


def parse_routine_complexity(preference: Any) -> RoutineComplexity:
    text = _as_text(preference).lower()
    if "миним" in text or "minim" in text:
        return RoutineComplexity.MINIMAL
    if "максим" in text or "maxim" in text:
        return RoutineComplexity.MAXIMAL
    return RoutineComplexity.MEDIUM


def parse_budget(choice: Any) -> BudgetTier:
    text = _as_text(choice).lower()
    for tier, keywords in BUDGET_KEYWORDS:
        if any(kw in text for kw in keywords):
            return tier
    # Skipped or unrecognised answers fall back to the mid tier
    return BudgetTier.MID


def _is_pregnant(profile: SkinProfile, answer: Any) -> bool:
    if profile.has_pregnancy:
        return True
    if isinstance(answer, bool):
        return answer
    text = _as_text(answer).lower()
    if not text or text.startswith("нет") or text.startswith("no"):
        return False
    return any(sig in text for sig in PREGNANCY_SIGNALS)


def pick_primary_focus(goals: list[str], concerns: list[str]) -> PrimaryFocus:
    texts = goals + concerns
    for focus, keywords in FOCUS_KEYWORDS:
        if _mentions(texts, keywords):
            return focus
    return PrimaryFocus.GENERAL


def derive_main_goals(goals: list[str], concerns: list[str]) -> list[str]:
    texts = goals + concerns
    main_goals: list[str] = []
    if _mentions(texts, dict(FOCUS_KEYWORDS)[PrimaryFocus.ACNE]):
        main_goals.append("acne")
    if _mentions(texts, dict(FOCUS_KEYWORDS)[PrimaryFocus.PIGMENTATION]):
        main_goals.append("pigmentation")
    if _mentions(texts, dict(FOCUS_KEYWORDS)[PrimaryFocus.WRINKLES]):
        main_goals.append("antiage")
    if _mentions(concerns, BARRIER_KEYWORDS):
        main_goals.append("barrier")
    if _mentions(concerns, DEHYDRATION_KEYWORDS):
        main_goals.append("dehydration")
    return main_goals or ["general"]


def key_problems(scores: list[SkinScore]) -> list[str]:
    return [s.title or s.axis for s in scores if s.level.lower() in KEY_PROBLEM_LEVELS]


# ── Classifier ──────────────────────────────────────────────────────────────


def classify_profile(
    profile: SkinProfile,
    answers: dict[str, Any],
    scores: Optional[list[SkinScore]] = None,
) -> ProfileClassification:
    goals = _as_list(answers.get(GOALS_CODE))
    concerns = _as_list(answers.get(CONCERNS_CODE))
    exclusions = _as_list(answers.get(EXCLUSIONS_CODE))
    allergies = _as_list(answers.get(ALLERGIES_CODE))
    markers = profile.medical_markers

    skin_type = normalize_skin_type(profile.skin_type, scores)
    sensitivity = normalize_sensitivity(profile.sensitivity_level)
    pregnant = _is_pregnant(profile, answers.get(PREGNANCY_CODE))

    diagnoses = list(dict.fromkeys(markers.diagnoses + _as_list(answers.get(DIAGNOSES_CODE))))

    contraindications = list(markers.contraindications)
    if pregnant:
        contraindications.append("pregnant")
    if sensitivity is SensitivityLevel.VERY_HIGH:
        contraindications.append("very_high_sensitivity")

    classification = ProfileClassification(
        user_id=profile.user_id,
        skin_type=skin_type,
        sensitivity_level=sensitivity,
        primary_focus=pick_primary_focus(goals, concerns),
        goals=goals,
        concerns=concerns,
        main_goals=derive_main_goals(goals + markers.goals, concerns),
        exclusions=exclusions,
        allergies=allergies,
        budget=parse_budget(answers.get(BUDGET_CODE)),
        routine_complexity=parse_routine_complexity(answers.get(CARE_STEPS_CODE)),
        complexity_override=markers.routine_complexity,
        pregnant=pregnant,
        diagnoses=diagnoses,
        contraindications=contraindications,
        makeup_frequency=markers.makeup_frequency,
    )
    if classification.excludes_retinol:
        classification = classification.model_copy(
            update={"contraindications": contraindications + ["retinol_allergy", "no_retinol"]}
        )

    logger.info(
        f"Classified profile {profile.id} (user {profile.user_id}): "
        f"skin={classification.skin_type.value} focus={classification.primary_focus.value} "
        f"goals={classification.main_goals} complexity={classification.routine_complexity.value}"
    )
    return classification
