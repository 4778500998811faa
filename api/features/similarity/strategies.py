"""Scale strategies used to pick representative examples.

``best`` / ``worst`` sort by rating, ``center`` draws from three rating tiers and
``randomcenter`` draws at random from rating-range tiers. All selectors are pure and
take an explicit ``random.Random`` so callers (and tests) control the shuffling.
"""
import random
from enum import Enum
from typing import Dict, List, Optional

from api.features.similarity.exceptions import InvalidStrategyError
from api.features.similarity.models import SimilarityResult

# rating spans narrower than this are treated as "all equal"
FLAT_RATING_RANGE = 0.1


class ScaleType(str, Enum):
    BEST = "best"
    WORST = "worst"
    CENTER = "center"
    RANDOM_CENTER = "randomcenter"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ScaleType"]:
        if value is None or not value.strip():
            return None
        normalized = value.strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value == normalized:
                return member
        raise InvalidStrategyError(value, cls.values())


def _rating(result: SimilarityResult) -> float:
    return result.rating_value if result.rating_value is not None else 0.0


def _similarity(result: SimilarityResult) -> float:
    return result.similarity if result.similarity is not None else 0.0


def split_counts(limit: int) -> tuple[int, int, int]:
    """limit/3, limit/3 and the remainder."""
    first = limit // 3
    second = limit // 3
    return first, second, limit - first - second


def select_center_by_similarity(
    candidates: List[SimilarityResult], limit: int
) -> List[SimilarityResult]:
    """Most similar examples from each of three rating tiers.

    Rated candidates are sorted by rating and cut at 1/3 and 2/3 of their count; each
    tier then contributes its most similar members (limit/3, limit/3, remainder).
    """
    rated = sorted(
        (c for c in candidates if c.rating_value is not None),
        key=_rating,
        reverse=True,
    )
    if not rated:
        return []

    total = len(rated)
    tiers = [rated[: total // 3], rated[total // 3 : total * 2 // 3], rated[total * 2 // 3 :]]
    selected: List[SimilarityResult] = []
    for tier, count in zip(tiers, split_counts(limit)):
        if count > 0 and tier:
            selected.extend(sorted(tier, key=_similarity, reverse=True)[:count])
    return selected


def select_balanced(
    candidates: List[SimilarityResult], limit: int
) -> List[SimilarityResult]:
    """Best-rated half plus worst-rated half, used when merging several metrics."""
    ordered = sorted(candidates, key=_rating, reverse=True)
    best_count = min(max(1, limit // 2), len(ordered))
    selected = ordered[:best_count]
    worst_count = min(limit - best_count, len(ordered) - best_count)
    if worst_count > 0:
        start = max(best_count, len(ordered) - worst_count)
        selected.extend(ordered[start:])
    return selected


def select_by_rating(
    candidates: List[SimilarityResult],
    strategy: ScaleType,
    limit: int,
    rng: Optional[random.Random] = None,
) -> List[SimilarityResult]:
    """Rating-only selection used when there is nothing to compare similarity against."""
    rng = rng or random.Random()
    if strategy is ScaleType.BEST:
        return sorted(candidates, key=_rating, reverse=True)[:limit]
    if strategy is ScaleType.WORST:
        return sorted(candidates, key=_rating)[:limit]
    if strategy is ScaleType.CENTER:
        return _select_center_by_rating(candidates, limit, rng)
    return select_random_center(candidates, limit, rng)


def _select_center_by_rating(
    candidates: List[SimilarityResult], limit: int, rng: random.Random
) -> List[SimilarityResult]:
    ordered = sorted(candidates, key=_rating, reverse=True)
    total = len(ordered)
    if total <= limit:
        return ordered

    best_count, median_count, worst_count = split_counts(limit)
    selected = ordered[:best_count]

    median_start = max(best_count, total // 3)
    median_end = min(total * 2 // 3, total)
    median_pool = ordered[median_start:median_end]
    rng.shuffle(median_pool)
    selected.extend(median_pool[:median_count])

    worst_start = max(median_end, total - worst_count * 2)
    worst_pool = ordered[worst_start:]
    rng.shuffle(worst_pool)
    selected.extend(worst_pool[:worst_count])
    return selected


def select_random_center(
    candidates: List[SimilarityResult],
    limit: int,
    rng: Optional[random.Random] = None,
) -> List[SimilarityResult]:
    """Random picks from the best / undecided / worst rating-range tiers.

    Tier bounds sit at 33 % and 67 % of the rating range. Tiers that run short are
    topped up from whatever is left, so the result reaches ``limit`` whenever there are
    enough candidates.
    """
    rng = rng or random.Random()
    ordered = sorted(candidates, key=_rating, reverse=True)
    if len(ordered) <= limit:
        shuffled = list(ordered)
        rng.shuffle(shuffled)
        return shuffled

    max_rating = _rating(ordered[0])
    min_rating = _rating(ordered[-1])
    rating_range = max_rating - min_rating
    if rating_range < FLAT_RATING_RANGE:
        shuffled = list(ordered)
        rng.shuffle(shuffled)
        return shuffled[:limit]

    high = max_rating - rating_range * 0.33
    low = max_rating - rating_range * 0.67
    tiers: Dict[str, List[SimilarityResult]] = {"best": [], "undecided": [], "worst": []}
    for candidate in ordered:
        rating = _rating(candidate)
        if rating >= high:
            tiers["best"].append(candidate)
        elif rating >= low:
            tiers["undecided"].append(candidate)
        else:
            tiers["worst"].append(candidate)

    selected: List[SimilarityResult] = []
    remaining: List[SimilarityResult] = []
    for tier, count in zip(tiers.values(), split_counts(limit)):
        rng.shuffle(tier)
        selected.extend(tier[:count])
        remaining.extend(tier[count:])

    needed = limit - len(selected)
    if needed > 0:
        rng.shuffle(remaining)
        selected.extend(remaining[:needed])
    return selected


def merge_by_uri(
    results_per_metric: Dict[str, List[SimilarityResult]]
) -> List[SimilarityResult]:
    """Deduplicate results from several metric searches, keeping the most similar hit."""
    merged: Dict[str, SimilarityResult] = {}
    for metric_name, results in results_per_metric.items():
        for result in results:
            tagged = result.model_copy(update={"source_metric": metric_name})
            existing = merged.get(result.entity_uri)
            if existing is None or _similarity(tagged) > _similarity(existing):
                merged[result.entity_uri] = tagged
    return list(merged.values())
