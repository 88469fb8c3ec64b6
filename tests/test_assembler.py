"""
Unit tests for the day assembler: phases, weekly-focus scheduling, product
binding and the per-day invariants of a Plan28.
"""

from typing import Optional

import pytest

from app.errors import EmptyCatalogForRequiredStepError
from app.schemas import (
    PlanPhase,
    ProfileClassification,
    RoutineComplexity,
    SkinType,
    StepCategory,
)
from app.services.assembler import (
    MAX_ALTERNATIVES,
    PLAN_DAYS,
    WEEKLY_FOCUS_DAYS,
    GenerationContext,
    assemble_plan28,
    bind_step,
    is_weekly_focus_day,
    phase_for_day,
    week_of,
)
from app.services.catalog import CatalogIndex
from app.services.step_categories import is_cleanser, is_spf
from app.services.templates import CARE_PLAN_TEMPLATES, template_for
from tests.fakes import full_catalog, make_product

S = StepCategory


def _classification(**overrides) -> ProfileClassification:
    defaults = dict(user_id="u1", skin_type=SkinType.OILY, main_goals=["acne"])
    defaults.update(overrides)
    return ProfileClassification(**defaults)


def _context(classification: ProfileClassification, index: Optional[CatalogIndex] = None) -> GenerationContext:
    if index is None:
        index = CatalogIndex.build(full_catalog(per_category=5))
    return GenerationContext(
        classification=classification,
        template=template_for(classification),
        catalog_index=index,
    )


# ── Pure helpers ────────────────────────────────────────────────────────────


class TestDayHelpers:
    def test_week_of(self):
        assert [week_of(d) for d in (1, 7, 8, 14, 15, 21, 22, 28)] == [1, 1, 2, 2, 3, 3, 4, 4]

    def test_phase_bands(self):
        assert phase_for_day(1) is PlanPhase.ADAPTATION
        assert phase_for_day(7) is PlanPhase.ADAPTATION
        assert phase_for_day(8) is PlanPhase.ACTIVE
        assert phase_for_day(21) is PlanPhase.ACTIVE
        assert phase_for_day(22) is PlanPhase.SUPPORT
        assert phase_for_day(28) is PlanPhase.SUPPORT


class TestWeeklyFocus:
    def test_no_weekly_steps_never_focus(self):
        assert not any(
            is_weekly_focus_day(d, (), RoutineComplexity.MAXIMAL) for d in range(1, PLAN_DAYS + 1)
        )

    def test_frequency_by_complexity(self):
        weekly = (S.MASK_CLAY,)
        assert is_weekly_focus_day(10, weekly, RoutineComplexity.MINIMAL)
        assert not is_weekly_focus_day(3, weekly, RoutineComplexity.MINIMAL)
        assert is_weekly_focus_day(3, weekly, RoutineComplexity.MEDIUM)
        assert not is_weekly_focus_day(6, weekly, RoutineComplexity.MEDIUM)
        assert is_weekly_focus_day(6, weekly, RoutineComplexity.MAXIMAL)

    def test_sparser_sets_are_nested(self):
        minimal = WEEKLY_FOCUS_DAYS[RoutineComplexity.MINIMAL]
        medium = WEEKLY_FOCUS_DAYS[RoutineComplexity.MEDIUM]
        maximal = WEEKLY_FOCUS_DAYS[RoutineComplexity.MAXIMAL]
        assert minimal < medium < maximal


class TestBindStep:
    def test_top_product_and_three_alternatives(self):
        index = CatalogIndex.build([make_product(i, "serum_niacinamide") for i in range(1, 7)])
        step = bind_step(S.SERUM_NIACINAMIDE, index)
        assert step.product_id == 1
        assert step.alternatives == [2, 3, 4]

    def test_fewer_alternatives(self):
        index = CatalogIndex.build([make_product(1, "serum_niacinamide")])
        step = bind_step(S.SERUM_NIACINAMIDE, index)
        assert step.product_id == 1
        assert step.alternatives == []

    def test_unresolvable(self):
        index = CatalogIndex.build([make_product(1, "serum_niacinamide")])
        assert bind_step(S.MASK_CLAY, index) is None

    def test_adaptation_prefers_gentle_product(self):
        index = CatalogIndex.build([
            make_product(1, "treatment_acne_local", active_ingredients=["salicylic"]),
            make_product(2, "treatment_acne_local"),
        ])
        adaptation = bind_step(S.TREATMENT_ACNE_LOCAL, index, PlanPhase.ADAPTATION)
        active = bind_step(S.TREATMENT_ACNE_LOCAL, index, PlanPhase.ACTIVE)
        assert (adaptation.product_id, adaptation.alternatives) == (2, [])
        assert (active.product_id, active.alternatives) == (1, [2])


# ── Plan28 ──────────────────────────────────────────────────────────────────


class TestAssemblePlan28:
    def test_twenty_eight_days(self):
        plan = assemble_plan28(_context(_classification()), skin_profile_id=7)
        assert [d.day_index for d in plan.days] == list(range(1, 29))
        assert plan.user_id == "u1"
        assert plan.skin_profile_id == 7
        assert plan.main_goals == ["acne"]

    @pytest.mark.parametrize("complexity", list(RoutineComplexity))
    def test_day_invariants(self, complexity):
        plan = assemble_plan28(_context(_classification(routine_complexity=complexity)), 1)
        for day in plan.days:
            assert any(is_cleanser(s.step_category) for s in day.morning)
            assert any(is_spf(s.step_category) for s in day.morning)
            assert any(is_cleanser(s.step_category) for s in day.evening)

            morning = [s.step_category for s in day.morning]
            evening = [s.step_category for s in day.evening]
            assert len(morning) == len(set(morning))
            assert len(evening) == len(set(evening))

            for step in day.morning + day.evening + day.weekly:
                assert step.product_id is not None
                assert len(step.alternatives) <= MAX_ALTERNATIVES
                assert step.product_id not in step.alternatives

    def test_phases_follow_day_index(self):
        plan = assemble_plan28(_context(_classification()), 1)
        assert all(d.phase is phase_for_day(d.day_index) for d in plan.days)

    def test_weekly_steps_only_on_focus_days(self):
        plan = assemble_plan28(_context(_classification()), 1)
        focus_days = {d.day_index for d in plan.days if d.is_weekly_focus_day}
        assert focus_days == WEEKLY_FOCUS_DAYS[RoutineComplexity.MEDIUM]
        for day in plan.days:
            if day.is_weekly_focus_day:
                assert [s.step_category for s in day.weekly] == [S.MASK_CLAY]
            else:
                assert day.weekly == []

    def test_template_without_weekly_steps(self):
        classification = _classification(routine_complexity=RoutineComplexity.MINIMAL)
        plan = assemble_plan28(_context(classification), 1)
        assert not any(d.is_weekly_focus_day for d in plan.days)

    def test_complexity_override_only_changes_schedule(self):
        # Template is chosen from the questionnaire value, focus days from the override
        plain = _classification(routine_complexity=RoutineComplexity.MEDIUM)
        overridden = _classification(
            routine_complexity=RoutineComplexity.MEDIUM,
            complexity_override=RoutineComplexity.MAXIMAL,
        )
        plain_plan = assemble_plan28(_context(plain), 1)
        overridden_plan = assemble_plan28(_context(overridden), 1)

        assert template_for(overridden).id == template_for(plain).id == "acne_oily_basic"
        assert [d.morning for d in plain_plan.days] == [d.morning for d in overridden_plan.days]
        assert sum(d.is_weekly_focus_day for d in plain_plan.days) == 4
        assert sum(d.is_weekly_focus_day for d in overridden_plan.days) == 8

    def test_progression_across_weeks(self):
        plan = assemble_plan28(_context(_classification(routine_complexity=RoutineComplexity.MAXIMAL)), 1)
        counts = [
            sum(1 for s in plan.days[day - 1].morning if not (is_cleanser(s.step_category) or is_spf(s.step_category)))
            for day in (1, 8, 15, 22)
        ]
        assert counts == sorted(counts)
        assert counts[-1] == 2

    def test_optional_step_without_products_is_dropped(self):
        catalog = [p for p in full_catalog() if not p.category.startswith("mask")]
        plan = assemble_plan28(_context(_classification(), CatalogIndex.build(catalog)), 1)
        assert len(plan.days) == PLAN_DAYS
        assert all(d.weekly == [] for d in plan.days)

    def test_phase_changes_product_choice(self):
        peel = make_product(1, "treatment_acne_azelaic", active_ingredients=["azelaic_acid", "glycolic"])
        index = CatalogIndex.build([peel] + full_catalog())
        plan = assemble_plan28(_context(_classification(), index), 1)

        for day in plan.days:
            step = next(s for s in day.evening if s.step_category is S.TREATMENT_ACNE_AZELAIC)
            if day.phase is PlanPhase.ADAPTATION:
                assert step.product_id != 1
                assert 1 not in step.alternatives
            else:
                assert step.product_id == 1

    def test_oil_cleanser_for_daily_makeup(self):
        plan = assemble_plan28(_context(_classification(makeup_frequency="daily")), 1)
        for day in plan.days:
            evening = [s.step_category for s in day.evening]
            assert evening[0] is S.CLEANSER_OIL
            assert S.CLEANSER_OIL not in [s.step_category for s in day.morning]

    def test_oil_cleanser_left_out_without_products(self):
        catalog = [p for p in full_catalog() if p.category != "cleanser_oil"]
        classification = _classification(makeup_frequency="daily")
        plan = assemble_plan28(_context(classification, CatalogIndex.build(catalog)), 1)
        for day in plan.days:
            evening = [s.step_category for s in day.evening]
            assert S.CLEANSER_OIL not in evening
            assert any(is_cleanser(c) for c in evening)

    def test_missing_mandatory_step_raises(self):
        catalog = [p for p in full_catalog() if not p.category.startswith("spf")]
        with pytest.raises(EmptyCatalogForRequiredStepError):
            assemble_plan28(_context(_classification(), CatalogIndex.build(catalog)), 1)

    def test_every_template_assembles(self):
        index = CatalogIndex.build(full_catalog(per_category=2))
        for template in CARE_PLAN_TEMPLATES:
            context = GenerationContext(
                classification=_classification(skin_type=SkinType.NORMAL),
                template=template,
                catalog_index=index,
            )
            assert len(assemble_plan28(context, 1).days) == PLAN_DAYS

    def test_deterministic(self):
        context = _context(_classification())
        first = assemble_plan28(context, 1)
        second = assemble_plan28(context, 1)
        assert first == second


# ── Run with: pytest tests/test_assembler.py -v ─────────────────────────────

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
