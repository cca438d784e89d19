"""Listing filter engine: accept/reject decision plus a 0-100 desirability score."""

from dataclasses import dataclass, field
from decimal import Decimal

from vinted_sniper.detect.policy import FilterPolicy
from vinted_sniper.normalize.listing import Listing

# Marketplace condition labels (Italian and English) mapped to canonical tokens.
CONDITION_SYNONYMS: dict[str, str] = {
    "nuovo con cartellino": "new_with_tags",
    "nuovo senza cartellino": "new_without_tags",
    "ottime": "very_good",
    "ottime condizioni": "very_good",
    "buone": "good",
    "buone condizioni": "good",
    "soddisfacenti": "satisfactory",
    "new with tags": "new_with_tags",
    "new without tags": "new_without_tags",
    "very good": "very_good",
    "good": "good",
    "satisfactory": "satisfactory",
}

# Condition score tiers, checked in order against the normalized token.
CONDITION_TIERS: tuple[tuple[str, int], ...] = (
    ("new", 25),
    ("very_good", 20),
    ("good", 15),
)

DESIRABLE_KEYWORDS: tuple[str, ...] = ("vintage", "limited", "exclusive", "rare", "collector")

BRAND_BONUS = 20
SIZE_BONUS = 15
IMAGE_BONUS = 10
BASE_SCORE = 30
DESIRABLE_BONUS = 5
FRESH_AGE_MINUTES = 5
FRESH_BONUS = 20
RECENT_AGE_MINUTES = 15
RECENT_BONUS = 10


@dataclass
class FilterResult:
    """Outcome of evaluating one listing."""

    passed: bool = True
    reasons: list[str] = field(default_factory=list)
    score: int = 0


class _Evaluation:
    """Mutable scratch state for a single evaluate() call."""

    def __init__(self):
        self.passed = True
        self.reasons: list[str] = []
        self.score = 0.0

    def fail(self, reason: str) -> None:
        self.passed = False
        self.reasons.append(reason)

    def note(self, reason: str) -> None:
        self.reasons.append(reason)

    def result(self) -> FilterResult:
        return FilterResult(
            passed=self.passed,
            reasons=list(self.reasons),
            score=_clamp(self.score),
        )


def _clamp(score: float) -> int:
    return int(round(min(100.0, max(0.0, score))))


def _lower(*parts: str | None) -> str:
    return " ".join(p or "" for p in parts).lower()


def _matches_any(text: str, terms: tuple[str, ...]) -> str | None:
    for term in terms:
        if term.lower() in text:
            return term
    return None


def normalize_condition(condition: str | None) -> str:
    """Map a marketplace condition label to its canonical token."""
    value = (condition or "").strip().lower()
    return CONDITION_SYNONYMS.get(value, value)


def _check_price(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    price = listing.price
    if price is None:
        price = Decimal("0")

    if policy.min_price is not None and price < policy.min_price:
        ev.fail(f"price below minimum ({price} < {policy.min_price})")
        return False

    if policy.max_price is not None and price > policy.max_price:
        ev.fail(f"price above maximum ({price} > {policy.max_price})")
        return False

    # Cheaper listings score higher
    if policy.max_price is not None and policy.max_price > 0:
        ev.score += max(0.0, 100 - float(price / policy.max_price) * 50)
    return True


def _check_brand(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    # The brand field is often empty; the title is searched too
    text = _lower(listing.brand, listing.title)

    if policy.allowed_brands:
        matched = _matches_any(text, policy.allowed_brands)
        if matched is None:
            ev.fail(f"brand not in allowed list ({', '.join(policy.allowed_brands)})")
            return False
        ev.score += BRAND_BONUS

    if policy.excluded_brands and _matches_any(text, policy.excluded_brands):
        ev.fail("brand excluded")
        return False
    return True


def _check_size(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    if not policy.allowed_sizes:
        return True

    text = _lower(listing.size, listing.title)
    if _matches_any(text, policy.allowed_sizes) is None:
        ev.fail(f'size "{listing.size}" not in allowed list')
        return False
    ev.score += SIZE_BONUS
    return True


def _check_condition(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    normalized = normalize_condition(listing.condition)

    if policy.allowed_conditions:
        text = _lower(normalized, listing.title)
        if _matches_any(text, policy.allowed_conditions) is None:
            ev.fail(f'condition "{listing.condition}" not in allowed list')
            return False
        for token, bonus in CONDITION_TIERS:
            if token in normalized:
                ev.score += bonus
                break

    # An unknown (empty) condition never triggers an exclusion
    if normalized and policy.excluded_conditions:
        if _matches_any(normalized, policy.excluded_conditions):
            ev.fail(f'condition "{listing.condition}" excluded')
            return False
    return True


def _check_excluded_keywords(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    if not policy.excluded_keywords:
        return True

    text = _lower(listing.title, listing.description)
    keyword = _matches_any(text, policy.excluded_keywords)
    if keyword is not None:
        ev.fail(f'contains excluded keyword "{keyword}"')
        return False
    return True


def _check_image(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    if policy.require_image and not listing.has_image:
        ev.fail("no image")
        return False
    if listing.has_image:
        ev.score += IMAGE_BONUS
    return True


def _check_age(listing: Listing, policy: FilterPolicy, ev: _Evaluation) -> bool:
    if policy.max_age_minutes is None:
        return True
    if listing.age_minutes is None:
        ev.note("age unknown, age check skipped")
        return True

    age = listing.age_minutes
    if age > policy.max_age_minutes:
        ev.fail(f"listing is {age} minutes old (max allowed {policy.max_age_minutes})")
        return False

    if age <= FRESH_AGE_MINUTES:
        ev.score += FRESH_BONUS
    elif age <= RECENT_AGE_MINUTES:
        ev.score += RECENT_BONUS
    return True


_GATES = (
    _check_price,
    _check_brand,
    _check_size,
    _check_condition,
    _check_excluded_keywords,
    _check_image,
    _check_age,
)


def evaluate(listing: Listing, policy: FilterPolicy) -> FilterResult:
    """
    Evaluate one listing against a policy.

    Gates run in a fixed order (price, brand, size, condition, excluded
    keywords, image, age) and the first failing gate ends the evaluation with
    its reason. Passing listings receive the base score and the desirable
    keyword bonus before the score is clamped to [0, 100].

    Args:
        listing: Listing to evaluate
        policy: Policy snapshot

    Returns:
        FilterResult with pass/fail, reasons and score
    """
    ev = _Evaluation()

    for gate in _GATES:
        if not gate(listing, policy, ev):
            return ev.result()

    ev.score += BASE_SCORE

    title = (listing.title or "").lower()
    for keyword in DESIRABLE_KEYWORDS:
        if keyword in title:
            ev.score += DESIRABLE_BONUS
            ev.note(f"desirable keyword: {keyword}")

    return ev.result()
