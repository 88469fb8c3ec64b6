"""
Catalog resolver: filters and ranks the product batch, builds the
step → ranked products index, and fills gaps from the Catalog Store.

Lookups against the index go through an ordered list of fallback strategies
(exact category → base step → fallback category → fallback's base step).
Anything the in-memory index cannot answer for a required step is fetched
with a catalog query and registered into a new index.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Protocol, Union

from app.errors import EmptyCatalogForRequiredStepError
from app.schemas import (
    BaseStep,
    BudgetTier,
    PlanPhase,
    Product,
    ProfileClassification,
    SkinProfile,
    SkinType,
    StepCategory,
)
from app.services.step_categories import (
    BASE_STEP_OF,
    EXACT_MATCH_ONLY,
    FALLBACK_CATEGORY,
    MANDATORY_BASE_STEPS,
    base_step_of,
    categories_for_tags,
    fallback_category,
    is_cleanser,
    is_mandatory,
    is_spf,
)

logger = logging.getLogger(__name__)

# Price tier boundaries (RUB)
BUDGET_PRICE_LIMIT = 2000
MID_PRICE_LIMIT = 5000

COMBINATION_TAGS = {"combo", "combination"}

StepKey = Union[StepCategory, BaseStep, str]


# ── Product predicates ──────────────────────────────────────────────────────


def budget_tier_for_price(price: float) -> BudgetTier:
    if price < BUDGET_PRICE_LIMIT:
        return BudgetTier.BUDGET
    if price < MID_PRICE_LIMIT:
        return BudgetTier.MID
    return BudgetTier.PREMIUM


def product_categories(product: Product) -> list[StepCategory]:
    return categories_for_tags(product.step, product.category)


def is_spf_product(product: Product) -> bool:
    return any(BASE_STEP_OF[c] is BaseStep.SPF for c in product_categories(product))


def skin_type_compatible(product_skin_types: list[str], skin_type: str) -> bool:
    """Empty list means "all skin types"; a "combo" tag covers both combination types."""
    if not product_skin_types:
        return True
    tags = {t.lower() for t in product_skin_types}
    if skin_type in tags:
        return True
    is_combination = skin_type in (SkinType.COMBINATION_DRY.value, SkinType.COMBINATION_OILY.value)
    return is_combination and bool(tags & COMBINATION_TAGS)


def contains_excluded_ingredient(product: Product, exclusions: list[str]) -> bool:
    """Case-insensitive substring match in both directions against the product's tags."""
    if not exclusions:
        return False
    tags = [c.lower() for c in product.concerns]
    for excluded in exclusions:
        needle = excluded.lower().strip()
        if not needle:
            continue
        if any(needle in tag or tag in needle for tag in tags if tag):
            return True
    return False


def is_safe_for_profile(product: Product, classification: ProfileClassification) -> bool:
    if contains_excluded_ingredient(product, classification.exclusions):
        return False
    if classification.pregnant and "pregnant" in product.avoid_if:
        return False
    if classification.excludes_retinol and "retinol_allergy" in product.avoid_if:
        return False
    return True


def matches_profile(product: Product, classification: ProfileClassification) -> bool:
    """Filtering predicate for the candidate batch. SPF skips the skin-type check."""
    if not is_spf_product(product) and not skin_type_compatible(
        product.skin_types, classification.skin_type.value
    ):
        return False

    budget = classification.budget
    if budget is not BudgetTier.ANY and product.price:
        if budget_tier_for_price(product.price) is not budget:
            return False

    return is_safe_for_profile(product, classification)


# ── Ranking ─────────────────────────────────────────────────────────────────


def _timestamp(product: Product) -> float:
    if product.created_at is None:
        return 0.0
    created = product.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created.timestamp()


def rank_products(products: Iterable[Product], classification: ProfileClassification) -> list[Product]:
    """Focus match, then hero, then priority, then newest first."""
    focus = classification.primary_focus.value

    def key(product: Product):
        return (
            focus not in product.concerns,
            not product.is_hero,
            -product.priority,
            -_timestamp(product),
        )

    return sorted(products, key=key)


def order_by_catalog_priority(products: Iterable[Product]) -> list[Product]:
    """Hero, priority, recency: the order the Catalog Store returns fallbacks in."""
    return sorted(products, key=lambda p: (not p.is_hero, -p.priority, -_timestamp(p)))


# ── Index ───────────────────────────────────────────────────────────────────


def _key(step: StepKey) -> str:
    return step.value if isinstance(step, (StepCategory, BaseStep)) else str(step)


class CatalogIndex:
    """Immutable step key → ranked products mapping.

    Products are filed under each of their step categories and under the
    base step of each category, so both `toner_hydrating` and `toner` resolve.
    """

    def __init__(self, buckets: Mapping[str, tuple[Product, ...]]):
        self._buckets = MappingProxyType(dict(buckets))
        by_id = {}
        for products in self._buckets.values():
            for product in products:
                by_id.setdefault(product.id, product)
        self._by_id = MappingProxyType(by_id)

    @classmethod
    def build(cls, ranked: Iterable[Product]) -> "CatalogIndex":
        buckets: dict[str, list[Product]] = {}
        for product in ranked:
            categories = product_categories(product)
            if not categories:
                logger.warning(
                    f"Product {product.id} ({product.name}) has no recognisable step "
                    f"(step={product.step!r}, category={product.category!r}), skipping"
                )
                continue
            keys = [c.value for c in categories] + [base_step_of(c).value for c in categories]
            for key in dict.fromkeys(keys):
                bucket = buckets.setdefault(key, [])
                if all(p.id != product.id for p in bucket):
                    bucket.append(product)
        return cls({key: tuple(products) for key, products in buckets.items()})

    def products_for(self, step: Optional[StepKey]) -> tuple[Product, ...]:
        if step is None:
            return ()
        return self._buckets.get(_key(step), ())

    def product(self, product_id: int) -> Optional[Product]:
        return self._by_id.get(product_id)

    def keys(self) -> list[str]:
        return list(self._buckets.keys())

    def coverage(self) -> dict[BaseStep, int]:
        """Product count per base step family."""
        return {base: len(self.products_for(base)) for base in BaseStep}

    def missing_mandatory(self) -> list[BaseStep]:
        return [base for base in MANDATORY_BASE_STEPS if not self.products_for(base)]

    def with_registered(self, category: StepCategory, products: Iterable[Product]) -> "CatalogIndex":
        """New index with `products` appended under the category and its base step."""
        buckets = dict(self._buckets)
        for key in dict.fromkeys([category.value, base_step_of(category).value]):
            existing = list(buckets.get(key, ()))
            seen = {p.id for p in existing}
            existing.extend(p for p in products if p.id not in seen)
            buckets[key] = tuple(existing)
        return CatalogIndex(buckets)

    def __len__(self) -> int:
        return len(self._by_id)


# ── Fallback strategies ─────────────────────────────────────────────────────


FallbackStrategy = Callable[[CatalogIndex, StepCategory], tuple[Product, ...]]


def exact_category(index: CatalogIndex, category: StepCategory) -> tuple[Product, ...]:
    return index.products_for(category)


def base_step_bucket(index: CatalogIndex, category: StepCategory) -> tuple[Product, ...]:
    return index.products_for(base_step_of(category))


def fallback_substitute(index: CatalogIndex, category: StepCategory) -> tuple[Product, ...]:
    return index.products_for(fallback_category(category))


def fallback_base_bucket(index: CatalogIndex, category: StepCategory) -> tuple[Product, ...]:
    fallback = fallback_category(category)
    if fallback is None:
        return ()
    return index.products_for(base_step_of(fallback))


FALLBACK_STRATEGIES: tuple[tuple[str, FallbackStrategy], ...] = (
    ("exact_category", exact_category),
    ("base_step", base_step_bucket),
    ("fallback_category", fallback_substitute),
    ("fallback_base_step", fallback_base_bucket),
)


def products_for_step(index: CatalogIndex, category: StepCategory) -> tuple[Product, ...]:
    """Ranked products for a category, walking the fallback strategies in order."""
    if category in EXACT_MATCH_ONLY:
        return exact_category(index, category)
    for name, strategy in FALLBACK_STRATEGIES:
        found = strategy(index, category)
        if found:
            if name != "exact_category":
                logger.debug(f"Step {category.value} resolved via {name} ({len(found)} products)")
            return found
    return ()


# ── Phase filter ────────────────────────────────────────────────────────────


STRONG_ACTIVES = (
    "retinol",
    "retinoid",
    "tretinoin",
    "adapalene",
    "benzoyl_peroxide",
    "aha",
    "bha",
    "glycolic",
    "salicylic",
)

# Phases in which products with strong actives are held back
GENTLE_PHASES = frozenset({PlanPhase.ADAPTATION})


def has_strong_active(product: Product) -> bool:
    actives = " ".join(product.active_ingredients).lower()
    return any(active in actives for active in STRONG_ACTIVES)


def filter_for_phase(
    products: tuple[Product, ...], category: StepCategory, phase: Optional[PlanPhase]
) -> tuple[Product, ...]:
    """Drop strong-active products during gentle phases.

    Cleansers and SPF pass through. If every product would be dropped the
    ranked list is returned unchanged, so a step never loses its product.
    """
    if phase not in GENTLE_PHASES or is_cleanser(category) or is_spf(category):
        return products
    suited = tuple(p for p in products if not has_strong_active(p))
    return suited or products


# ── Catalog Store boundary ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ProductQuery:
    """Batch filter understood by every Catalog Store implementation."""

    steps: tuple[str, ...] = ()
    step_contains: Optional[str] = None
    skin_type: Optional[str] = None
    product_ids: tuple[int, ...] = ()
    exclude_ids: tuple[int, ...] = ()
    published_only: bool = True
    active_brands_only: bool = True

    def matches(self, product: Product) -> bool:
        if self.published_only and not product.published:
            return False
        if self.active_brands_only and not product.brand.is_active:
            return False
        if self.product_ids and product.id not in self.product_ids:
            return False
        if product.id in self.exclude_ids:
            return False
        tags = {t.lower() for t in (product.step, product.category) if t}
        if self.steps and not tags & {s.lower() for s in self.steps}:
            return False
        if self.step_contains and not any(self.step_contains.lower() in t for t in tags):
            return False
        if self.skin_type and not skin_type_compatible(product.skin_types, self.skin_type):
            return False
        return True


class CatalogStore(Protocol):
    async def query_products(self, query: ProductQuery) -> list[Product]:
        ...


def family_tags(base: BaseStep) -> tuple[str, ...]:
    """Every step tag a product of this base step may carry."""
    return (base.value,) + tuple(c.value for c, b in BASE_STEP_OF.items() if b is base)


def _shares_tags(original: Product, candidate: Product) -> bool:
    if original.skin_types and not set(original.skin_types) & set(candidate.skin_types):
        return False
    if original.concerns and not set(original.concerns) & set(candidate.concerns):
        return False
    return True


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ── Resolver ────────────────────────────────────────────────────────────────


class CatalogResolver:
    """Async half of catalog resolution: everything that talks to the Catalog Store."""

    def __init__(self, store: CatalogStore):
        self.store = store

    async def load_candidates(self, recommended_ids: Optional[list[int]] = None) -> list[Product]:
        """Previously recommended products (any brand state), else every active published product."""
        if recommended_ids:
            products = await self.store.query_products(
                ProductQuery(product_ids=tuple(recommended_ids), active_brands_only=False)
            )
            if products:
                logger.info(f"Using {len(products)} products from the last recommendation session")
                return products
            logger.info("Recommendation session products unavailable, loading full catalog")
        products = await self.store.query_products(ProductQuery())
        logger.info(f"Loaded {len(products)} published products")
        return products

    async def substitute_inactive_brands(
        self,
        products: list[Product],
        profile: SkinProfile,
        now: datetime,
        max_profile_age_days: int,
    ) -> list[Product]:
        inactive = [p for p in products if not p.brand.is_active]
        if not inactive:
            return list(products)

        updated_at = _as_utc(profile.updated_at or profile.created_at)
        if _as_utc(now) - updated_at >= timedelta(days=max_profile_age_days):
            logger.info(
                f"Profile {profile.id} not updated within {max_profile_age_days} days, "
                f"keeping {len(inactive)} inactive-brand products"
            )
            return list(products)

        result: list[Product] = []
        for product in products:
            if product.brand.is_active:
                result.append(product)
                continue
            replacement = await self._find_replacement(product)
            if replacement is None:
                logger.warning(
                    f"Brand {product.brand.name} is inactive and no replacement exists "
                    f"for product {product.id}, keeping it"
                )
                result.append(product)
            else:
                logger.info(f"Replaced product {product.id} ({product.brand.name}) with {replacement.id}")
                result.append(replacement)
        return list({p.id: p for p in result}.values())

    async def _find_replacement(self, product: Product) -> Optional[Product]:
        categories = product_categories(product)
        if categories:
            tags = family_tags(base_step_of(categories[0]))
        else:
            tags = tuple(t for t in (product.step, product.category) if t)
        if not tags:
            return None

        candidates = await self.store.query_products(
            ProductQuery(steps=tags, exclude_ids=(product.id,))
        )
        similar = [c for c in candidates if _shares_tags(product, c)]
        for pool in (similar, candidates):
            if pool:
                return order_by_catalog_priority(pool)[0]
        return None

    async def query_fallback(
        self, base: BaseStep, classification: ProfileClassification
    ) -> list[Product]:
        """Best-effort catalog lookup for a base step.

        SPF ignores skin type. Other steps try the profile's skin type (or
        untyped products) first, then any skin type, then a partial tag match.
        Profile safety rules still apply to whatever comes back.
        """
        tags = family_tags(base)
        if base is BaseStep.SPF:
            tiers = [ProductQuery(steps=tags)]
        else:
            tiers = [
                ProductQuery(steps=tags, skin_type=classification.skin_type.value),
                ProductQuery(steps=tags),
                ProductQuery(step_contains=base.value),
            ]

        for tier, query in enumerate(tiers, start=1):
            found = [
                p for p in await self.store.query_products(query)
                if is_safe_for_profile(p, classification)
            ]
            if found:
                logger.warning(
                    f"Catalog fallback for {base.value} (tier {tier}) found {len(found)} products "
                    f"for user {classification.user_id}"
                )
                return order_by_catalog_priority(found)
        return []

    async def build_index(
        self,
        candidates: list[Product],
        classification: ProfileClassification,
        required: Iterable[StepCategory],
    ) -> CatalogIndex:
        eligible = [p for p in candidates if matches_profile(p, classification)]
        logger.info(f"{len(eligible)} of {len(candidates)} products match the profile")
        index = CatalogIndex.build(rank_products(eligible, classification))

        for category in dict.fromkeys(required):
            if products_for_step(index, category):
                continue
            if category in EXACT_MATCH_ONLY:
                logger.info(f"No {category.value} products in the catalog, step will be left out")
                continue
            found = await self.query_fallback(base_step_of(category), classification)
            if found:
                index = index.with_registered(category, found)
            elif is_mandatory(category):
                raise EmptyCatalogForRequiredStepError(category.value)
            else:
                logger.warning(f"No product for step {category.value}, it will be left out")

        for base in MANDATORY_BASE_STEPS:
            if index.products_for(base):
                continue
            found = await self.query_fallback(base, classification)
            if not found:
                raise EmptyCatalogForRequiredStepError(base.value)
            index = index.with_registered(FALLBACK_CATEGORY[base], found)
        return index
