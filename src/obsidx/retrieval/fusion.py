"""Reciprocal Rank Fusion over independently ranked lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

DEFAULT_RRF_K = 60


@dataclass(frozen=True, slots=True)
class FusedHit:
    path: str
    score: float


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Sequence[str]],
    limit: int,
    k: int = DEFAULT_RRF_K,
) -> list[FusedHit]:
    """Merge ranked key lists by rank alone.

    An item at zero-based rank ``r`` in a list contributes ``1 / (k + r + 1)``;
    its fused score is the sum over the lists it appears in. Equal scores
    keep the order in which items were first seen.
    """
    scores: dict[str, float] = {}
    for ranked in ranked_lists:
        for rank, key in enumerate(ranked):
            scores[key] = scores.get(key, 0.0) + 1.0 / (k + rank + 1)

    # dicts keep first-seen order and sorted() is stable
    ordered = sorted(scores.items(), key=lambda item: -item[1])
    return [FusedHit(path=key, score=score) for key, score in ordered[:limit]]
