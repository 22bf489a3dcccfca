"""
Rating Aggregator
=================

Computes each provider's mean rating and review count from raw review
ratings. Ratings for all requested providers are fetched in bulk: the id
list is split into chunks of ``batch_size`` (document stores cap the size
of an "in" clause) and the results are merged, so the cost is one
round-trip per chunk rather than one per provider.

Aggregation never fails a search. If the review store raises, every
provider gets a zero rating and the degradation is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from numbers import Real
from typing import Iterable, Mapping, Protocol, Sequence

from nearmatch.algorithms.providerRanking import MAX_RATING, RankedProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE: int = 30
MIN_RATING: float = 1.0


class ReviewStore(Protocol):
    """Source of raw review ratings keyed by provider id."""

    async def fetch_ratings_for(
        self, provider_ids: Sequence[str]
    ) -> Mapping[str, Sequence[float]]:
        ...


@dataclass(frozen=True)
class RatingSummary:
    rating: float = 0.0
    review_count: int = 0


EMPTY_SUMMARY = RatingSummary()


def _chunked(items: Sequence[str], size: int) -> list[list[str]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _is_valid_rating(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return False
    if isinstance(value, Decimal) and not value.is_finite():
        return False
    return MIN_RATING <= value <= MAX_RATING


def summarise(ratings: Iterable[object]) -> RatingSummary:
    """Mean and count of the usable ratings in ``ratings``."""
    valid = [float(r) for r in ratings if _is_valid_rating(r)]
    if not valid:
        return EMPTY_SUMMARY
    return RatingSummary(rating=sum(valid) / len(valid), review_count=len(valid))


async def aggregate_ratings(
    review_store: ReviewStore,
    provider_ids: Iterable[str],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, RatingSummary]:
    """Fetch and summarise ratings for ``provider_ids``.

    Raises whatever the review store raises; see :func:`apply_ratings` for
    the degrading wrapper.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    # dict.fromkeys de-duplicates while keeping request order
    unique_ids = list(dict.fromkeys(provider_ids))
    if not unique_ids:
        return {}

    merged: dict[str, list[object]] = {pid: [] for pid in unique_ids}
    for chunk in _chunked(unique_ids, batch_size):
        ratings = await review_store.fetch_ratings_for(chunk)
        for pid, values in ratings.items():
            if pid in merged:
                merged[pid].extend(values)

    summaries = {pid: summarise(values) for pid, values in merged.items()}

    dropped = sum(len(v) for v in merged.values()) - sum(
        s.review_count for s in summaries.values()
    )
    if dropped:
        logger.debug("Ignored %d out-of-range or malformed ratings", dropped)

    return summaries


async def apply_ratings(
    providers: Sequence[RankedProvider],
    review_store: ReviewStore,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[RankedProvider]:
    """Return copies of ``providers`` carrying their rating and review count.

    On any review-store failure all providers get rating 0 / count 0.
    """
    if not providers:
        return []

    try:
        summaries = await aggregate_ratings(
            review_store,
            [p.id for p in providers],
            batch_size=batch_size,
        )
    except Exception as exc:
        logger.warning(
            "Rating aggregation degraded for %d providers, using zero ratings: %s",
            len(providers),
            exc,
            exc_info=True,
        )
        summaries = {}

    result: list[RankedProvider] = []
    for provider in providers:
        summary = summaries.get(provider.id, EMPTY_SUMMARY)
        result.append(
            replace(
                provider,
                rating=summary.rating,
                review_count=summary.review_count,
            )
        )
    return result
