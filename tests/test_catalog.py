"""
Unit tests for the catalog resolver: filtering predicate, ranking, the
step index, the fallback chain and the Catalog Store lookups.
"""

from datetime import timedelta

import pytest

from app.errors import EmptyCatalogForRequiredStepError
from app.schemas import (
    BaseStep,
    BudgetTier,
    PlanPhase,
    PrimaryFocus,
    ProfileClassification,
    SkinType,
    StepCategory,
)
from app.services.catalog import (
    FALLBACK_STRATEGIES,
    CatalogIndex,
    CatalogResolver,
    ProductQuery,
    budget_tier_for_price,
    contains_excluded_ingredient,
    filter_for_phase,
    has_strong_active,
    matches_profile,
    products_for_step,
    rank_products,
    skin_type_compatible,
)
from tests.fakes import (
    INACTIVE_BRAND,
    NOW,
    MemoryCatalogStore,
    make_product,
    make_profile,
)

S = StepCategory


def _classification(**overrides) -> ProfileClassification:
    defaults = dict(user_id="u1", skin_type=SkinType.OILY)
    defaults.update(overrides)
    return ProfileClassification(**defaults)


# ── Predicates ──────────────────────────────────────────────────────────────


class TestPredicates:
    def test_budget_tiers(self):
        assert budget_tier_for_price(1999) is BudgetTier.BUDGET
        assert budget_tier_for_price(2000) is BudgetTier.MID
        assert budget_tier_for_price(4999) is BudgetTier.MID
        assert budget_tier_for_price(5000) is BudgetTier.PREMIUM

    def test_skin_type_compatibility(self):
        assert skin_type_compatible([], "oily")
        assert skin_type_compatible(["Oily"], "oily")
        assert skin_type_compatible(["combo"], "combination_oily")
        assert not skin_type_compatible(["combo"], "oily")
        assert not skin_type_compatible(["dry"], "oily")

    def test_excluded_ingredient_matches_both_ways(self):
        retinol = make_product(1, "treatment_antiage", concerns=["Retinol 0.3%"])
        acid = make_product(2, "treatment_exfoliant_mild", concerns=["acid"])
        assert contains_excluded_ingredient(retinol, ["ретинол", "retinol"])
        assert contains_excluded_ingredient(acid, ["salicylic acid"])
        assert not contains_excluded_ingredient(retinol, ["niacinamide"])
        assert not contains_excluded_ingredient(retinol, [])


class TestMatchesProfile:
    def test_skin_type_mismatch(self):
        product = make_product(1, "cleanser_balancing", skin_types=["dry"])
        assert not matches_profile(product, _classification())

    def test_spf_skips_skin_type(self):
        product = make_product(1, "spf_50_face", skin_types=["dry"])
        assert matches_profile(product, _classification())

    def test_budget(self):
        pricey = make_product(1, "serum_niacinamide", price=3500.0)
        unpriced = make_product(2, "serum_niacinamide", price=None)
        budget = _classification(budget=BudgetTier.BUDGET)
        assert not matches_profile(pricey, budget)
        assert matches_profile(unpriced, budget)
        assert matches_profile(pricey, _classification(budget=BudgetTier.MID))
        assert matches_profile(pricey, _classification(budget=BudgetTier.ANY))

    def test_pregnancy_safety(self):
        product = make_product(1, "treatment_acne_bpo", avoid_if=["pregnant"])
        assert not matches_profile(product, _classification(pregnant=True))
        assert matches_profile(product, _classification())

    def test_retinol_allergy(self):
        product = make_product(1, "serum_niacinamide", avoid_if=["retinol_allergy"])
        assert not matches_profile(product, _classification(exclusions=["Ретинол"]))
        assert matches_profile(product, _classification(exclusions=["отдушки"]))


class TestRanking:
    def test_order(self):
        focus = make_product(1, "serum_niacinamide", concerns=["acne"])
        hero = make_product(2, "serum_niacinamide", is_hero=True)
        high_priority = make_product(3, "serum_niacinamide", priority=10)
        newest = make_product(4, "serum_niacinamide", created_at=NOW)
        oldest = make_product(5, "serum_niacinamide", created_at=NOW - timedelta(days=300))

        ranked = rank_products(
            [oldest, newest, high_priority, hero, focus],
            _classification(primary_focus=PrimaryFocus.ACNE),
        )
        assert [p.id for p in ranked] == [1, 2, 3, 4, 5]


# ── Index ───────────────────────────────────────────────────────────────────


class TestCatalogIndex:
    def test_registered_under_category_and_base_step(self):
        index = CatalogIndex.build([make_product(1, "toner_hydrating")])
        assert [p.id for p in index.products_for(S.TONER_HYDRATING)] == [1]
        assert [p.id for p in index.products_for(BaseStep.TONER)] == [1]
        assert [p.id for p in index.products_for("toner")] == [1]

    def test_bare_base_step_tag(self):
        index = CatalogIndex.build([make_product(1, step="cleanser")])
        assert [p.id for p in index.products_for(S.CLEANSER_DEEP)] == [1]
        assert [p.id for p in index.products_for(BaseStep.CLEANSER)] == [1]

    def test_cream_reads_as_moisturizer(self):
        index = CatalogIndex.build([make_product(1, step="cream")])
        assert index.products_for(BaseStep.MOISTURIZER)

    def test_keyword_tag(self):
        index = CatalogIndex.build([make_product(1, step="Пенка для умывания")])
        assert index.products_for(BaseStep.CLEANSER)

    def test_unrecognised_product_skipped(self):
        index = CatalogIndex.build([make_product(1, step="gadget"), make_product(2, "lip_care")])
        assert len(index) == 1
        assert index.product(1) is None
        assert index.product(2).id == 2

    def test_rank_order_preserved(self):
        products = [make_product(i, "serum_vitc") for i in (3, 1, 2)]
        index = CatalogIndex.build(products)
        assert [p.id for p in index.products_for(S.SERUM_VITC)] == [3, 1, 2]

    def test_with_registered_returns_new_index(self):
        index = CatalogIndex.build([make_product(1, "toner_hydrating")])
        extended = index.with_registered(S.SPF_50_FACE, [make_product(2, "spf_50_face")])
        assert not index.products_for(BaseStep.SPF)
        assert [p.id for p in extended.products_for(S.SPF_50_FACE)] == [2]
        assert [p.id for p in extended.products_for(BaseStep.SPF)] == [2]
        assert len(extended) == 2

    def test_coverage_counts_each_family(self):
        index = CatalogIndex.build([
            make_product(1, "cleanser_gentle"),
            make_product(2, "cleanser_deep"),
            make_product(3, "toner_hydrating"),
        ])
        coverage = index.coverage()
        assert set(coverage) == set(BaseStep)
        assert coverage[BaseStep.CLEANSER] == 2
        assert coverage[BaseStep.TONER] == 1
        assert coverage[BaseStep.SPF] == 0

    def test_missing_mandatory_families(self):
        assert CatalogIndex.build([]).missing_mandatory() == [BaseStep.CLEANSER, BaseStep.SPF]
        partial = CatalogIndex.build([make_product(1, "spf_50_face")])
        assert partial.missing_mandatory() == [BaseStep.CLEANSER]
        full = partial.with_registered(S.CLEANSER_GENTLE, [make_product(2, "cleanser_gentle")])
        assert full.missing_mandatory() == []


class TestFallbackChain:
    def test_strategy_order(self):
        assert [name for name, _ in FALLBACK_STRATEGIES] == [
            "exact_category",
            "base_step",
            "fallback_category",
            "fallback_base_step",
        ]

    def test_exact_category_first(self):
        index = CatalogIndex.build([make_product(1, "toner_soothing"), make_product(2, "toner_hydrating")])
        assert [p.id for p in products_for_step(index, S.TONER_HYDRATING)] == [2]

    def test_base_step_bucket(self):
        index = CatalogIndex.build([make_product(1, "toner_soothing")])
        assert [p.id for p in products_for_step(index, S.TONER_HYDRATING)] == [1]

    def test_fallback_category(self):
        product = make_product(1, "serum_hydrating")
        index = CatalogIndex({"serum_hydrating": (product,)})
        assert products_for_step(index, S.SERUM_VITC) == (product,)

    def test_nothing_found(self):
        index = CatalogIndex.build([make_product(1, "toner_soothing")])
        assert products_for_step(index, S.MASK_CLAY) == ()

    def test_oil_cleanser_needs_exact_match(self):
        index = CatalogIndex.build([make_product(1, "cleanser_gentle")])
        assert products_for_step(index, S.CLEANSER_OIL) == ()
        index = CatalogIndex.build([make_product(1, "cleanser_gentle"), make_product(2, "cleanser_oil")])
        assert [p.id for p in products_for_step(index, S.CLEANSER_OIL)] == [2]


class TestPhaseFilter:
    def _products(self):
        return (
            make_product(1, "treatment_acne_local", active_ingredients=["Salicylic acid 2%"]),
            make_product(2, "treatment_acne_local", active_ingredients=["niacinamide"]),
            make_product(3, "treatment_acne_local"),
        )

    def test_strong_active_detection(self):
        strong, moderate, plain = self._products()
        assert has_strong_active(strong)
        assert not has_strong_active(moderate)
        assert not has_strong_active(plain)

    def test_adaptation_holds_back_strong_actives(self):
        filtered = filter_for_phase(self._products(), S.TREATMENT_ACNE_LOCAL, PlanPhase.ADAPTATION)
        assert [p.id for p in filtered] == [2, 3]

    @pytest.mark.parametrize("phase", [PlanPhase.ACTIVE, PlanPhase.SUPPORT, None])
    def test_other_phases_unchanged(self, phase):
        products = self._products()
        assert filter_for_phase(products, S.TREATMENT_ACNE_LOCAL, phase) == products

    def test_cleanser_and_spf_pass_through(self):
        cleanser = (make_product(1, "cleanser_deep", active_ingredients=["salicylic"]),)
        assert filter_for_phase(cleanser, S.CLEANSER_DEEP, PlanPhase.ADAPTATION) == cleanser

    def test_all_strong_keeps_ranked_list(self):
        products = (make_product(1, "treatment_acne_bpo", active_ingredients=["benzoyl_peroxide"]),)
        assert filter_for_phase(products, S.TREATMENT_ACNE_BPO, PlanPhase.ADAPTATION) == products


class TestProductQuery:
    def test_published_and_active_brand(self):
        draft = make_product(1, "spf_50_face", published=False)
        inactive = make_product(2, "spf_50_face", brand=INACTIVE_BRAND)
        assert not ProductQuery().matches(draft)
        assert not ProductQuery().matches(inactive)
        assert ProductQuery(active_brands_only=False).matches(inactive)

    def test_step_filters(self):
        product = make_product(1, "cleanser_gentle")
        assert ProductQuery(steps=("cleanser", "cleanser_gentle")).matches(product)
        assert not ProductQuery(steps=("toner",)).matches(product)
        assert ProductQuery(step_contains="cleanser").matches(product)

    def test_skin_type_filter_accepts_untyped(self):
        assert ProductQuery(skin_type="oily").matches(make_product(1, "toner_hydrating"))
        assert not ProductQuery(skin_type="oily").matches(
            make_product(2, "toner_hydrating", skin_types=["dry"])
        )


# ── Resolver ────────────────────────────────────────────────────────────────


class TestLoadCandidates:
    @pytest.mark.anyio
    async def test_recommended_products_include_inactive_brands(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle", brand=INACTIVE_BRAND),
            make_product(2, "spf_50_face"),
            make_product(3, "toner_hydrating"),
        ])
        products = await CatalogResolver(store).load_candidates([1, 2])
        assert sorted(p.id for p in products) == [1, 2]

    @pytest.mark.anyio
    async def test_full_catalog_without_session(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle", brand=INACTIVE_BRAND),
            make_product(2, "spf_50_face"),
            make_product(3, "toner_hydrating", published=False),
        ])
        products = await CatalogResolver(store).load_candidates([])
        assert [p.id for p in products] == [2]


class TestBrandSubstitution:
    def _store(self):
        return MemoryCatalogStore([
            make_product(1, "cleanser_gentle", brand=INACTIVE_BRAND, concerns=["acne"]),
            make_product(2, "cleanser_deep", concerns=["acne"]),
            make_product(3, "cleanser_gentle", priority=50),
            make_product(4, "spf_50_face"),
        ])

    @pytest.mark.anyio
    async def test_recent_profile_gets_replacement_sharing_tags(self):
        store = self._store()
        profile = make_profile(created_at=NOW - timedelta(days=2))
        products = await CatalogResolver(store).substitute_inactive_brands(
            [store.products[0], store.products[3]], profile, NOW, 7
        )
        assert [p.id for p in products] == [2, 4]

    @pytest.mark.anyio
    async def test_stale_profile_keeps_inactive_product(self):
        store = self._store()
        profile = make_profile(created_at=NOW - timedelta(days=10))
        products = await CatalogResolver(store).substitute_inactive_brands(
            [store.products[0]], profile, NOW, 7
        )
        assert [p.id for p in products] == [1]
        assert store.queries == []

    @pytest.mark.anyio
    async def test_updated_at_takes_precedence(self):
        store = self._store()
        profile = make_profile(created_at=NOW - timedelta(days=30), updated_at=NOW - timedelta(days=1))
        products = await CatalogResolver(store).substitute_inactive_brands(
            [store.products[0]], profile, NOW, 7
        )
        assert [p.id for p in products] == [2]

    @pytest.mark.anyio
    async def test_age_limit_is_configurable(self):
        store = self._store()
        profile = make_profile(created_at=NOW - timedelta(days=10))
        products = await CatalogResolver(store).substitute_inactive_brands(
            [store.products[0]], profile, NOW, 30
        )
        assert [p.id for p in products] == [2]

    @pytest.mark.anyio
    async def test_no_replacement_keeps_original(self):
        store = MemoryCatalogStore([make_product(1, "lip_care", brand=INACTIVE_BRAND)])
        profile = make_profile(created_at=NOW - timedelta(days=1))
        products = await CatalogResolver(store).substitute_inactive_brands(
            list(store.products), profile, NOW, 7
        )
        assert [p.id for p in products] == [1]


class TestQueryFallback:
    @pytest.mark.anyio
    async def test_spf_ignores_skin_type(self):
        store = MemoryCatalogStore([make_product(1, "spf_50_sensitive", skin_types=["dry"])])
        found = await CatalogResolver(store).query_fallback(BaseStep.SPF, _classification())
        assert [p.id for p in found] == [1]

    @pytest.mark.anyio
    async def test_cleanser_prefers_skin_type(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle", skin_types=["dry"], is_hero=True),
            make_product(2, "cleanser_gentle", skin_types=["oily"]),
        ])
        found = await CatalogResolver(store).query_fallback(BaseStep.CLEANSER, _classification())
        assert [p.id for p in found] == [2]

    @pytest.mark.anyio
    async def test_cleanser_any_skin_type_tier(self):
        store = MemoryCatalogStore([make_product(1, "cleanser_gentle", skin_types=["dry"])])
        found = await CatalogResolver(store).query_fallback(BaseStep.CLEANSER, _classification())
        assert [p.id for p in found] == [1]

    @pytest.mark.anyio
    async def test_partial_tag_tier(self):
        store = MemoryCatalogStore([make_product(1, step="cleanser_micellar", skin_types=["dry"])])
        found = await CatalogResolver(store).query_fallback(BaseStep.CLEANSER, _classification())
        assert [p.id for p in found] == [1]

    @pytest.mark.anyio
    async def test_results_respect_safety(self):
        store = MemoryCatalogStore([make_product(1, "cleanser_gentle", avoid_if=["pregnant"])])
        found = await CatalogResolver(store).query_fallback(
            BaseStep.CLEANSER, _classification(pregnant=True)
        )
        assert found == []


class TestBuildIndex:
    @pytest.mark.anyio
    async def test_cleanser_found_ignoring_skin_type(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle", skin_types=["dry"]),
            make_product(2, "spf_50_oily"),
        ])
        resolver = CatalogResolver(store)
        candidates = await resolver.load_candidates()
        index = await resolver.build_index(
            candidates, _classification(), [S.CLEANSER_GENTLE, S.SPF_50_OILY]
        )
        assert [p.id for p in index.products_for(S.CLEANSER_GENTLE)] == [1]
        assert [p.id for p in index.products_for(S.SPF_50_OILY)] == [2]

    @pytest.mark.anyio
    async def test_missing_spf_raises(self):
        store = MemoryCatalogStore([make_product(1, "cleanser_gentle")])
        resolver = CatalogResolver(store)
        with pytest.raises(EmptyCatalogForRequiredStepError) as exc:
            await resolver.build_index(
                list(store.products), _classification(), [S.CLEANSER_GENTLE, S.SPF_50_OILY]
            )
        assert exc.value.step == "spf_50_oily"

    @pytest.mark.anyio
    async def test_missing_optional_step_is_skipped(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle"),
            make_product(2, "spf_50_face"),
        ])
        resolver = CatalogResolver(store)
        index = await resolver.build_index(
            list(store.products), _classification(), [S.CLEANSER_GENTLE, S.MASK_CLAY, S.SPF_50_FACE]
        )
        assert index.products_for(S.MASK_CLAY) == ()
        assert len(index) == 2

    @pytest.mark.anyio
    async def test_mandatory_bucket_checked_without_template_step(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle"),
            make_product(2, "spf_50_face", skin_types=["dry"]),
        ])
        resolver = CatalogResolver(store)
        index = await resolver.build_index([store.products[0]], _classification(), [S.CLEANSER_GENTLE])
        assert [p.id for p in index.products_for(BaseStep.SPF)] == [2]

    @pytest.mark.anyio
    async def test_missing_oil_cleanser_not_queried(self):
        store = MemoryCatalogStore([
            make_product(1, "cleanser_gentle"),
            make_product(2, "spf_50_face"),
        ])
        index = await CatalogResolver(store).build_index(
            list(store.products), _classification(), [S.CLEANSER_OIL, S.CLEANSER_GENTLE, S.SPF_50_FACE]
        )
        assert index.products_for(S.CLEANSER_OIL) == ()
        assert store.queries == []

    @pytest.mark.anyio
    async def test_filtered_batch_is_ranked(self):
        store = MemoryCatalogStore([])
        candidates = [
            make_product(1, "serum_niacinamide"),
            make_product(2, "serum_niacinamide", concerns=["acne"]),
            make_product(3, "serum_niacinamide", skin_types=["dry"]),
            make_product(4, "cleanser_gentle"),
            make_product(5, "spf_50_oily"),
        ]
        index = await CatalogResolver(store).build_index(
            candidates,
            _classification(primary_focus=PrimaryFocus.ACNE),
            [S.CLEANSER_GENTLE, S.SERUM_NIACINAMIDE, S.SPF_50_OILY],
        )
        assert [p.id for p in index.products_for(S.SERUM_NIACINAMIDE)] == [2, 1]
        assert store.queries == []


# ── Run with: pytest tests/test_catalog.py -v ───────────────────────────────

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
