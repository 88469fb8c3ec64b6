"""
Pydantic schemas: the data contracts of the care plan engine.

SkinProfile and Product are read-only inputs from the stores.
GeneratedPlan is the output handed to the plan cache and the API; its
`plan28` field is authoritative, `weeks` is kept for older clients.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Enums ────────────────────────────────────────────────────────────────────


class SkinType(str, enum.Enum):
    DRY = "dry"
    COMBINATION_DRY = "combination_dry"
    NORMAL = "normal"
    COMBINATION_OILY = "combination_oily"
    OILY = "oily"


class SensitivityLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class PrimaryFocus(str, enum.Enum):
    ACNE = "acne"
    PORES = "pores"
    DRYNESS = "dryness"
    PIGMENTATION = "pigmentation"
    WRINKLES = "wrinkles"
    GENERAL = "general"


class BudgetTier(str, enum.Enum):
    BUDGET = "budget"
    MID = "mid"
    PREMIUM = "premium"
    ANY = "any"


class RoutineComplexity(str, enum.Enum):
    MINIMAL = "minimal"
    MEDIUM = "medium"
    MAXIMAL = "maximal"


class PlanPhase(str, enum.Enum):
    ADAPTATION = "adaptation"
    ACTIVE = "active"
    SUPPORT = "support"


class PlanState(str, enum.Enum):
    READY = "ready"
    NO_PROFILE = "no_profile"
    FAILED = "failed"


class BaseStep(str, enum.Enum):
    """Coarse product family a step category belongs to."""

    CLEANSER = "cleanser"
    TONER = "toner"
    SERUM = "serum"
    TREATMENT = "treatment"
    MOISTURIZER = "moisturizer"
    EYE_CREAM = "eye_cream"
    SPF = "spf"
    MASK = "mask"
    SPOT_TREATMENT = "spot_treatment"
    LIP_CARE = "lip_care"


class StepCategory(str, enum.Enum):
    """Fine-grained product role. The base step lives in app.services.step_categories."""

    CLEANSER_GENTLE = "cleanser_gentle"
    CLEANSER_BALANCING = "cleanser_balancing"
    CLEANSER_DEEP = "cleanser_deep"
    CLEANSER_OIL = "cleanser_oil"
    TONER_HYDRATING = "toner_hydrating"
    TONER_SOOTHING = "toner_soothing"
    SERUM_HYDRATING = "serum_hydrating"
    SERUM_NIACINAMIDE = "serum_niacinamide"
    SERUM_VITC = "serum_vitc"
    SERUM_ANTI_REDNESS = "serum_anti_redness"
    SERUM_BRIGHTENING_SOFT = "serum_brightening_soft"
    TREATMENT_ACNE_BPO = "treatment_acne_bpo"
    TREATMENT_ACNE_AZELAIC = "treatment_acne_azelaic"
    TREATMENT_ACNE_LOCAL = "treatment_acne_local"
    TREATMENT_EXFOLIANT_MILD = "treatment_exfoliant_mild"
    TREATMENT_EXFOLIANT_STRONG = "treatment_exfoliant_strong"
    TREATMENT_PIGMENTATION = "treatment_pigmentation"
    TREATMENT_ANTIAGE = "treatment_antiage"
    MOISTURIZER_LIGHT = "moisturizer_light"
    MOISTURIZER_BALANCING = "moisturizer_balancing"
    MOISTURIZER_BARRIER = "moisturizer_barrier"
    MOISTURIZER_SOOTHING = "moisturizer_soothing"
    EYE_CREAM_BASIC = "eye_cream_basic"
    EYE_CREAM_DARK_CIRCLES = "eye_cream_dark_circles"
    EYE_CREAM_PUFFINESS = "eye_cream_puffiness"
    SPF_50_FACE = "spf_50_face"
    SPF_50_OILY = "spf_50_oily"
    SPF_50_SENSITIVE = "spf_50_sensitive"
    MASK_CLAY = "mask_clay"
    MASK_HYDRATING = "mask_hydrating"
    MASK_SOOTHING = "mask_soothing"
    MASK_SLEEPING = "mask_sleeping"
    SPOT_TREATMENT = "spot_treatment"
    LIP_CARE = "lip_care"
    BALM_BARRIER_REPAIR = "balm_barrier_repair"


# ── Wire models ──────────────────────────────────────────────────────────────


class CamelModel(BaseModel):
    """Base for everything handed to clients: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Store inputs ─────────────────────────────────────────────────────────────


class MedicalMarkers(CamelModel):
    """Free-form profile JSON; accepts keys in either case convention."""

    diagnoses: list[str] = Field(default_factory=list)
    contraindications: list[str] = Field(default_factory=list)
    goals: list[str] = Field(default_factory=list)
    # Set by support staff; applied after the template has been chosen
    routine_complexity: Optional[RoutineComplexity] = None
    # "daily" / "often" / "rarely" / "never"
    makeup_frequency: Optional[str] = None


class SkinProfile(BaseModel):
    """Stored profile. Skin type is kept raw ("combo", "sensitive", ...) and normalised on read."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    version: int = 1
    skin_type: Optional[str] = None
    sensitivity_level: Optional[str] = None
    acne_level: Optional[int] = None
    age_group: Optional[str] = None
    has_pregnancy: bool = False
    medical_markers: MedicalMarkers = Field(default_factory=MedicalMarkers)
    created_at: datetime
    updated_at: Optional[datetime] = None


class Brand(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: Optional[int] = None
    name: str
    is_active: bool = True


class Product(BaseModel):
    """Catalog entry. `step` is the legacy free-form tag, `category` the fine-grained one."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    brand: Brand
    price: Optional[float] = None
    skin_types: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    avoid_if: list[str] = Field(default_factory=list)
    active_ingredients: list[str] = Field(default_factory=list)
    step: Optional[str] = None
    category: Optional[str] = None
    is_hero: bool = False
    priority: int = 0
    published: bool = True
    image_url: Optional[str] = None
    market_links: dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class SkinScore(CamelModel):
    axis: str
    value: float = Field(ge=0, le=100)
    level: str = ""
    title: str = ""
    description: str = ""
    color: str = ""


class DermatologistRecommendations(CamelModel):
    hero_actives: list[str] = Field(default_factory=list)
    must_have: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)


# ── Classification ───────────────────────────────────────────────────────────


class ProfileClassification(BaseModel):
    """Canonical view of profile + answers, rebuilt on every generation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    skin_type: SkinType = SkinType.NORMAL
    sensitivity_level: SensitivityLevel = SensitivityLevel.LOW
    primary_focus: PrimaryFocus = PrimaryFocus.GENERAL
    goals: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    main_goals: list[str] = Field(default_factory=lambda: ["general"])
    exclusions: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    budget: BudgetTier = BudgetTier.MID
    routine_complexity: RoutineComplexity = RoutineComplexity.MEDIUM
    complexity_override: Optional[RoutineComplexity] = None
    pregnant: bool = False
    diagnoses: list[str] = Field(default_factory=list)
    contraindications: list[str] = Field(default_factory=list)
    makeup_frequency: Optional[str] = None

    @property
    def schedule_complexity(self) -> RoutineComplexity:
        """Complexity used for weekly-focus scheduling (override wins)."""
        return self.complexity_override or self.routine_complexity

    @property
    def excludes_retinol(self) -> bool:
        return any("ретинол" in ex.lower() or "retinol" in ex.lower() for ex in self.exclusions)

    @property
    def needs_oil_cleansing(self) -> bool:
        return (self.makeup_frequency or "").lower() == "daily"


# ── Plan28 ───────────────────────────────────────────────────────────────────


class DayStep(CamelModel):
    step_category: StepCategory
    product_id: Optional[int] = None
    alternatives: list[int] = Field(default_factory=list, max_length=3)


class DayPlan(CamelModel):
    day_index: int = Field(ge=1, le=28)
    phase: PlanPhase
    is_weekly_focus_day: bool = False
    morning: list[DayStep] = Field(default_factory=list)
    evening: list[DayStep] = Field(default_factory=list)
    weekly: list[DayStep] = Field(default_factory=list)


class Plan28(CamelModel):
    user_id: str
    skin_profile_id: int
    days: list[DayPlan] = Field(min_length=28, max_length=28)
    main_goals: list[str] = Field(default_factory=list)


# ── GeneratedPlan (API / cache payload) ──────────────────────────────────────


class ProfileSummary(CamelModel):
    skin_type: str
    sensitivity_level: str
    acne_level: Optional[int] = None
    primary_focus: PrimaryFocus
    concerns: list[str] = Field(default_factory=list)
    age_group: str


class LegacyProductRef(CamelModel):
    id: int
    name: str
    brand: str
    step: str


class PlanDay(CamelModel):
    day: int
    week: int
    morning: list[str] = Field(default_factory=list)
    evening: list[str] = Field(default_factory=list)
    products: dict[str, LegacyProductRef] = Field(default_factory=dict)
    completed: bool = False


class WeekSummary(CamelModel):
    focus: list[str] = Field(default_factory=list)
    products_count: int = 0


class PlanWeek(CamelModel):
    week: int
    days: list[PlanDay] = Field(default_factory=list)
    summary: WeekSummary = Field(default_factory=WeekSummary)


class InfographicPoint(CamelModel):
    week: int
    inflammation: int
    pigmentation: int
    hydration: int
    photoaging: int
    oiliness: int
    # Older chart keys
    acne: int
    pores: int
    wrinkles: int


class Infographic(CamelModel):
    progress: list[InfographicPoint] = Field(default_factory=list)
    chart_config: dict[str, Any] = Field(default_factory=dict)


class PlanProduct(CamelModel):
    id: int
    name: str
    brand: str
    category: Optional[str] = None
    price: float = 0
    available: str
    image_url: Optional[str] = None
    ingredients: list[str] = Field(default_factory=list)


class GeneratedPlan(CamelModel):
    profile: ProfileSummary
    skin_scores: list[SkinScore] = Field(default_factory=list)
    dermatologist_recommendations: DermatologistRecommendations = Field(
        default_factory=DermatologistRecommendations
    )
    weeks: list[PlanWeek] = Field(default_factory=list)
    infographic: Infographic = Field(default_factory=Infographic)
    products: list[PlanProduct] = Field(default_factory=list)
    warnings: Optional[list[str]] = None
    plan28: Plan28


class PlanOutcome(CamelModel):
    """What the plan service hands back to callers. Never carries a raw exception."""

    state: PlanState
    plan: Optional[GeneratedPlan] = None
    message: Optional[str] = None
