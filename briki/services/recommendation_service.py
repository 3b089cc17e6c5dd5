"""
Plan recommendation engine.
Scores, sorts, de-duplicates by provider and summarizes candidate plans for
a free-text query. Pure functions: no state, no I/O. A plan with missing
price, rating or features degrades to neutral values instead of raising.
"""

import math
import re
from functools import cmp_to_key
from typing import Iterable, Literal, Sequence

from briki.models.domain import ComparisonSummary, Plan, PriceRange

SortBy = Literal["relevance", "price", "rating", "features"]

CHEAP_QUERY_CUES: tuple[str, ...] = ("barato", "económico", "cheap")
PREMIUM_QUERY_CUES: tuple[str, ...] = ("premium", "completo", "best")

CATEGORY_MATCH_BONUS = 50
NAME_MATCH_BONUS = 20
PROVIDER_MATCH_BONUS = 15
FEATURE_MATCH_BONUS = 5
CHEAP_CUE_CEILING = 20
CHEAP_CUE_PRICE_STEP = 10000
PREMIUM_PRICE_THRESHOLD = 100000
PREMIUM_CUE_BONUS = 15
RATING_WEIGHT = 2

_PRICE_NOISE = re.compile(
    r"desde|from|starting at|mes|month|año|year|viaje|trip"
    r"|cop|usd|eur|mxn|ars|clp|pen|brl",
    re.IGNORECASE,
)
_NUMERIC_RUN = re.compile(r"\d[\d.,]*")
_LEADING_FLOAT = re.compile(r"\s*[-+]?(\d+\.?\d*|\.\d+)")


def _normalize_number(run: str) -> float:
    """
    Parse a numeric run that may use `.` or `,` as thousands separator.

    "75.000" -> 75000, "1.250.000" -> 1250000, "1,250.50" -> 1250.5,
    "49.99" -> 49.99, "12,5" -> 12.5.
    """
    run = run.rstrip(".,")
    if "." in run and "," in run:
        decimal_sep = "." if run.rfind(".") > run.rfind(",") else ","
        thousands_sep = "," if decimal_sep == "." else "."
        run = run.replace(thousands_sep, "").replace(decimal_sep, ".")
        return float(run)

    for sep in (".", ","):
        if sep in run:
            head, *groups = run.split(sep)
            if all(len(group) == 3 for group in groups) and (len(groups) > 1 or head != "0"):
                return float(run.replace(sep, ""))
            if len(groups) == 1:
                return float(f"{head}.{groups[0]}")
            # "1.2.3": ambiguous, keep the leading integer part
            return float(head)
    return float(run)


def extract_numeric_price(price_string: str | None) -> float:
    """
    Extract a numeric price from a display string.

    Locale words ("desde", "mes", "trip", ...) and currency codes are stripped,
    then the first numeric run is parsed. Returns 0 when no number is found.

    Examples:
        "Desde $75.000 COP/mes" -> 75000.0
        "Cotización disponible en línea" -> 0
    """
    if not price_string:
        return 0
    cleaned = _PRICE_NOISE.sub("", str(price_string))
    match = _NUMERIC_RUN.search(cleaned)
    if not match:
        return 0
    try:
        return _normalize_number(match.group(0))
    except ValueError:
        return 0


def get_plan_price(plan: Plan) -> float:
    """Numeric price: basePrice when set and non-zero, else parsed display price."""
    return plan.base_price or extract_numeric_price(plan.price)


def get_plan_rating(plan: Plan) -> float:
    """Rating as a float; absent or unparseable ratings count as 0."""
    if not plan.rating:
        return 0
    match = _LEADING_FLOAT.match(plan.rating)
    return float(match.group(0)) if match else 0


def compare_by_price(plan_a: Plan, plan_b: Plan) -> float:
    """Cheapest first."""
    return get_plan_price(plan_a) - get_plan_price(plan_b)


def compare_by_feature_count(plan_a: Plan, plan_b: Plan) -> int:
    """Most features first; ties keep input order."""
    return len(plan_b.features) - len(plan_a.features)


def compare_by_rating(plan_a: Plan, plan_b: Plan) -> float:
    """Highest rating first."""
    return get_plan_rating(plan_b) - get_plan_rating(plan_a)


def _has_cue(query: str, cues: Iterable[str]) -> bool:
    return any(cue in query for cue in cues)


def calculate_relevance_score(
    plan: Plan,
    user_query: str,
    category: str | None = None,
    cheap_cues: Iterable[str] = CHEAP_QUERY_CUES,
    premium_cues: Iterable[str] = PREMIUM_QUERY_CUES,
) -> float:
    """
    Heuristic relevance of a plan for a query. Ties are possible.

    Args:
        plan: Candidate plan
        user_query: Free-text query (matched case-insensitively)
        category: Category hint; matching plans get the largest bonus
        cheap_cues: Query keywords that reward low prices
        premium_cues: Query keywords that reward expensive plans

    Returns:
        Non-negative score, higher is more relevant
    """
    score = 0.0
    query = (user_query or "").lower()

    if category and plan.category == category:
        score += CATEGORY_MATCH_BONUS

    if query in plan.name.lower():
        score += NAME_MATCH_BONUS
    if query in plan.provider.lower():
        score += PROVIDER_MATCH_BONUS

    for feature in plan.features:
        if query in feature.lower():
            score += FEATURE_MATCH_BONUS

    if _has_cue(query, cheap_cues):
        price = get_plan_price(plan)
        if price > 0:
            score += max(0, CHEAP_CUE_CEILING - price / CHEAP_CUE_PRICE_STEP)

    if _has_cue(query, premium_cues) and get_plan_price(plan) > PREMIUM_PRICE_THRESHOLD:
        score += PREMIUM_CUE_BONUS

    score += get_plan_rating(plan) * RATING_WEIGHT
    return score


def get_unique_plans_by_provider(plans: Sequence[Plan], max_plans: int = 4) -> list[Plan]:
    """
    Keep the first plan seen per provider, in order, up to max_plans providers.
    A higher-ranked second plan from an already represented provider is dropped.
    """
    unique_plans: list[Plan] = []
    seen_providers: set[str] = set()

    for plan in plans:
        if len(unique_plans) >= max_plans:
            break
        if plan.provider in seen_providers:
            continue
        unique_plans.append(plan)
        seen_providers.add(plan.provider)

    return unique_plans


def get_recommended_plans(
    plans: Sequence[Plan],
    user_query: str,
    category: str | None = None,
    max_plans: int = 4,
    unique_providers: bool = True,
    sort_by: SortBy = "relevance",
    cheap_cues: Iterable[str] = CHEAP_QUERY_CUES,
    premium_cues: Iterable[str] = PREMIUM_QUERY_CUES,
) -> list[Plan]:
    """
    Score, sort, optionally de-duplicate by provider and truncate.
    Deterministic for a given input list and query.

    Args:
        plans: Candidate plans (usually one category from the catalog)
        user_query: Free-text query
        category: Category hint for scoring
        max_plans: Maximum plans returned
        unique_providers: Keep at most one plan per provider
        sort_by: "relevance" (score desc), "price" (asc), "rating" (desc)
            or "features" (count desc)

    Returns:
        Ordered list of at most max_plans plans
    """
    if not plans:
        return []

    cheap_cues, premium_cues = tuple(cheap_cues), tuple(premium_cues)
    scored = [
        (plan, calculate_relevance_score(plan, user_query, category, cheap_cues, premium_cues))
        for plan in plans
    ]

    if sort_by == "price":
        ordered = sorted(plans, key=get_plan_price)
    elif sort_by == "rating":
        ordered = sorted(plans, key=get_plan_rating, reverse=True)
    elif sort_by == "features":
        ordered = sorted(plans, key=cmp_to_key(compare_by_feature_count))
    else:
        ordered = [plan for plan, _ in sorted(scored, key=lambda item: -item[1])]

    if unique_providers:
        return get_unique_plans_by_provider(ordered, max_plans)
    return ordered[:max_plans]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def generate_comparison_summary(plans: Sequence[Plan]) -> ComparisonSummary:
    """
    Summarize a list of plans for the comparison view.

    Cheapest / most features / highest rated ties resolve to the earliest
    plan. Plans without a positive price are left out of the price range.
    The feature average covers every input plan.
    """
    if not plans:
        return ComparisonSummary()

    cheapest = min(plans, key=get_plan_price)
    most_features = max(plans, key=lambda plan: len(plan.features))
    highest_rated = max(plans, key=get_plan_rating)

    prices = [price for price in map(get_plan_price, plans) if price > 0]
    price_range = PriceRange(min=min(prices), max=max(prices)) if prices else PriceRange()

    total_features = sum(len(plan.features) for plan in plans)

    return ComparisonSummary(
        cheapest=cheapest,
        most_features=most_features,
        highest_rated=highest_rated,
        price_range=price_range,
        average_features=_round_half_up(total_features / len(plans)),
    )
