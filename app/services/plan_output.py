"""
Projections of a Plan28 into the rest of GeneratedPlan: legacy weeks,
product list, infographic, warnings and the profile summary.
"""

import math
from typing import Any, Optional

from app.schemas import (
    DayPlan,
    Infographic,
    InfographicPoint,
    LegacyProductRef,
    Plan28,
    PlanDay,
    PlanProduct,
    PlanWeek,
    Product,
    ProfileClassification,
    ProfileSummary,
    SkinProfile,
    SkinScore,
    WeekSummary,
)
from app.services.assembler import week_of
from app.services.catalog import CatalogIndex
from app.services.classifier import key_problems

# Market link key → storefront label, checked in order
STOREFRONTS = (("ozon", "Ozon"), ("wb", "Wildberries"), ("apteka", "Apteka.ru"))
DEFAULT_AVAILABILITY = "Доступно в аптеках"

IMPROVEMENT_AXES = ("inflammation", "pigmentation", "hydration", "photoaging")
ACTIVE_METRIC_THRESHOLD = 40
OILINESS_NEUTRAL = 50
OILINESS_ACTIVE_DEVIATION = 20
CHART_COLORS = ("#EF4444", "#8B5CF6", "#3B82F6", "#EC4899", "#10B981")


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _day_product_ids(day: DayPlan) -> list[int]:
    steps = day.morning + day.evening + day.weekly
    return [s.product_id for s in steps if s.product_id is not None]


# ── Legacy weeks ────────────────────────────────────────────────────────────


def _legacy_day(day: DayPlan, index: CatalogIndex) -> PlanDay:
    products: dict[str, LegacyProductRef] = {}
    for step in day.morning + day.evening + day.weekly:
        product = index.product(step.product_id) if step.product_id is not None else None
        if product is None:
            continue
        products.setdefault(
            step.step_category.value,
            LegacyProductRef(
                id=product.id,
                name=product.name,
                brand=product.brand.name,
                step=step.step_category.value,
            ),
        )
    return PlanDay(
        day=day.day_index,
        week=week_of(day.day_index),
        morning=[s.step_category.value for s in day.morning],
        evening=[s.step_category.value for s in day.evening],
        products=products,
    )


def build_legacy_weeks(
    plan28: Plan28, index: CatalogIndex, classification: ProfileClassification
) -> list[PlanWeek]:
    weeks: dict[int, PlanWeek] = {}
    week_products: dict[int, set[int]] = {}
    for day in plan28.days:
        number = week_of(day.day_index)
        week = weeks.setdefault(number, PlanWeek(week=number))
        week.days.append(_legacy_day(day, index))
        week_products.setdefault(number, set()).update(_day_product_ids(day))

    for number, week in weeks.items():
        week.summary = WeekSummary(
            focus=[classification.primary_focus.value],
            products_count=len(week_products[number]),
        )
    return [weeks[n] for n in sorted(weeks)]


# ── Products ────────────────────────────────────────────────────────────────


def availability(product: Product) -> str:
    for key, label in STOREFRONTS:
        if product.market_links.get(key):
            return label
    return DEFAULT_AVAILABILITY


def build_product_list(plan28: Plan28, index: CatalogIndex) -> list[PlanProduct]:
    ordered_ids = dict.fromkeys(pid for day in plan28.days for pid in _day_product_ids(day))
    products = []
    for product_id in ordered_ids:
        product = index.product(product_id)
        if product is None:
            continue
        products.append(
            PlanProduct(
                id=product.id,
                name=product.name,
                brand=product.brand.name,
                category=product.category or product.step,
                price=product.price or 0,
                available=availability(product),
                image_url=product.image_url,
                ingredients=list(product.active_ingredients or product.concerns),
            )
        )
    return products


# ── Infographic ─────────────────────────────────────────────────────────────


def _score(scores: list[SkinScore], axis: str, default: float) -> float:
    for score in scores:
        if score.axis == axis:
            return score.value or default
    return default


def _oiliness_target(oiliness: float, progress: float) -> float:
    if oiliness > OILINESS_NEUTRAL:
        return max(OILINESS_NEUTRAL, oiliness - (oiliness - OILINESS_NEUTRAL) * progress)
    return min(OILINESS_NEUTRAL, oiliness + (OILINESS_NEUTRAL - oiliness) * progress)


def build_infographic(scores: list[SkinScore]) -> Infographic:
    """Four weekly points per axis, improving by up to 25% toward 0 (or 50 for oiliness)."""
    values = {axis: _score(scores, axis, 0) for axis in IMPROVEMENT_AXES}
    oiliness = _score(scores, "oiliness", OILINESS_NEUTRAL)

    progress_points = []
    for week in (1, 2, 3, 4):
        progress = (week / 4) * 0.25
        improved = {
            axis: _round(100 - max(0.0, value - value * progress)) for axis, value in values.items()
        }
        progress_points.append(
            InfographicPoint(
                week=week,
                inflammation=improved["inflammation"],
                pigmentation=improved["pigmentation"],
                hydration=improved["hydration"],
                photoaging=improved["photoaging"],
                oiliness=_round(_oiliness_target(oiliness, progress)),
                acne=improved["inflammation"],
                pores=_round(100 - (oiliness - OILINESS_NEUTRAL) * progress) if oiliness > 70 else 0,
                wrinkles=improved["photoaging"],
            )
        )

    active = [axis for axis in IMPROVEMENT_AXES if values[axis] > ACTIVE_METRIC_THRESHOLD]
    if abs(oiliness - OILINESS_NEUTRAL) > OILINESS_ACTIVE_DEVIATION:
        active.append("oiliness")
    if not active:
        active = ["inflammation", "hydration"]

    return Infographic(progress=progress_points, chart_config=_chart_config(active, scores, progress_points))


def _chart_config(
    metrics: list[str], scores: list[SkinScore], points: list[InfographicPoint]
) -> dict[str, Any]:
    by_axis = {s.axis: s for s in scores}
    datasets = []
    for idx, metric in enumerate(metrics):
        score: Optional[SkinScore] = by_axis.get(metric)
        datasets.append(
            {
                "label": (score.title if score and score.title else metric),
                "data": [getattr(point, metric) for point in points],
                "borderColor": (score.color if score and score.color else CHART_COLORS[idx % len(CHART_COLORS)]),
                "backgroundColor": "transparent",
                "tension": 0.4,
            }
        )
    return {
        "type": "line",
        "data": {"labels": [f"Неделя {n}" for n in (1, 2, 3, 4)], "datasets": datasets},
        "options": {
            "responsive": True,
            "scales": {"y": {"beginAtZero": True, "max": 100}},
            "plugins": {"legend": {"display": True, "position": "bottom"}},
        },
    }


# ── Warnings & profile summary ──────────────────────────────────────────────


def build_warnings(classification: ProfileClassification) -> Optional[list[str]]:
    warnings = []
    if classification.pregnant:
        warnings.append("⚠️ Во время беременности исключены продукты с ретинолом")
    if classification.exclusions:
        warnings.append(f"⚠️ Исключены ингредиенты: {', '.join(classification.exclusions)}")
    if classification.allergies:
        warnings.append(f"⚠️ Учитываются аллергии: {', '.join(classification.allergies)}")
    return warnings or None


def build_profile_summary(
    profile: SkinProfile,
    classification: ProfileClassification,
    scores: list[SkinScore],
    default_age_group: str,
) -> ProfileSummary:
    problems = key_problems(scores)
    return ProfileSummary(
        skin_type=profile.skin_type or "normal",
        sensitivity_level=profile.sensitivity_level or "low",
        acne_level=profile.acne_level,
        primary_focus=classification.primary_focus,
        concerns=problems if problems else classification.concerns[:3],
        age_group=profile.age_group or default_age_group,
    )
