"""
classroom.methodology — Composite education-profile score and ranking.

THIS IS THE ONLY PLACE where score terms, weights and normalization
ranges exist. The API, the ranking script and the tests import from here.

Design contract:
    - score() is a total, deterministic function of one entity's fields.
      No cross-entity normalization: ranges are fixed constants.
    - Each term normalizes its clamped value to [0, 1] over a fixed range
      and multiplies by its weight, so a term contributes within [0, w].
    - "higher" terms are added; "lower" terms are badness and subtracted.
    - Missing values (None) are substituted by the range midpoint by
      default ("midpoint"), or contribute nothing ("zero").
    - rank() orders by score descending, then entity key ascending.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from classroom.constants import ROUND_PRECISION

MISSING_POLICIES: frozenset[str] = frozenset({"midpoint", "zero"})


# ---------------------------------------------------------------------------
# Score terms
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ScoreTerm:
    """One weighted, range-normalized metric of the composite."""

    field: str
    weight: float
    min: float
    max: float
    direction: str = "higher"

    def __post_init__(self) -> None:
        if self.max <= self.min:
            raise ValueError(
                f"Term '{self.field}': max ({self.max}) must exceed min ({self.min})."
            )
        if self.direction not in ("higher", "lower"):
            raise ValueError(
                f"Term '{self.field}': direction must be 'higher' or 'lower', "
                f"got '{self.direction}'."
            )

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    def normalize(self, value: float) -> float:
        """Clamp to [min, max] and map onto [0, 1]."""
        clamped = max(self.min, min(self.max, value))
        return (clamped - self.min) / (self.max - self.min)

    def contribution(self, value: float | None, missing: str = "midpoint") -> float:
        """Signed contribution of this term: +[0, w] for higher, -[0, w] for lower."""
        if value is None:
            if missing == "zero":
                return 0.0
            value = self.midpoint
        magnitude = self.normalize(value) * self.weight
        return magnitude if self.direction == "higher" else -magnitude


# Weight = coefficient of the hand-tuned report-card formula × range width,
# so rankings agree with it for values inside the ranges.
DEFAULT_TERMS: tuple[ScoreTerm, ...] = (
    ScoreTerm("math_score", weight=30.0, min=300.0, max=600.0),
    ScoreTerm("ESCS", weight=30.0, min=-2.0, max=1.0),
    ScoreTerm("HISEI", weight=30.0, min=30.0, max=90.0),
    ScoreTerm("sense_of_belonging", weight=20.0, min=-0.5, max=0.5),
    ScoreTerm("feeling_safe", weight=50.0, min=0.0, max=100.0),
    ScoreTerm("bullying", weight=50.0, min=0.0, max=1.0, direction="lower"),
)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score(
    entity: Mapping[str, float | None],
    terms: Iterable[ScoreTerm] = DEFAULT_TERMS,
    missing: str = "midpoint",
) -> float:
    """Composite score of one entity.

    Fields absent from ``entity`` are treated as missing.
    Result is NOT rounded. Callers round via ROUND_PRECISION for output.
    """
    if missing not in MISSING_POLICIES:
        raise ValueError(
            f"Unknown missing-value policy: '{missing}'. "
            f"Must be one of {sorted(MISSING_POLICIES)}."
        )
    return sum(term.contribution(entity.get(term.field), missing) for term in terms)


def indicator_width(value: float | None, lo: float, hi: float) -> float:
    """Report-card bar width as a percentage of [lo, hi], clamped to [0, 100]."""
    if value is None:
        return 0.0
    pct = (value - lo) / (hi - lo) * 100
    return max(0.0, min(100.0, pct))


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RankedEntity:
    key: str
    score: float
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "score": round(self.score, ROUND_PRECISION),
            "rank": self.rank,
        }


def rank_scores(scores: Mapping[str, float]) -> list[RankedEntity]:
    """Rank precomputed scores: descending score, ties by key ascending.

    Ranks are positional (1..n), so tied entities get consecutive ranks.
    """
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [
        RankedEntity(key=key, score=value, rank=i)
        for i, (key, value) in enumerate(ordered, 1)
    ]


def rank(
    entities: Mapping[str, Mapping[str, float | None]],
    terms: Iterable[ScoreTerm] = DEFAULT_TERMS,
    missing: str = "midpoint",
) -> list[RankedEntity]:
    """Score every entity and rank them."""
    terms = tuple(terms)
    return rank_scores({
        key: score(fields, terms, missing) for key, fields in entities.items()
    })


def best_and_lowest(ranking: list[RankedEntity]) -> tuple[RankedEntity, RankedEntity]:
    """Top and bottom of a ranking. Raises ValueError when empty."""
    if not ranking:
        raise ValueError("Cannot pick best/lowest from an empty ranking.")
    return ranking[0], ranking[-1]


@dataclass(frozen=True, slots=True)
class GuessResult:
    best: str
    lowest: str
    correct_best: bool
    correct_lowest: bool

    @property
    def all_correct(self) -> bool:
        return self.correct_best and self.correct_lowest

    def to_dict(self) -> dict[str, Any]:
        return {
            "best": self.best,
            "lowest": self.lowest,
            "correct_best": self.correct_best,
            "correct_lowest": self.correct_lowest,
            "all_correct": self.all_correct,
        }


def evaluate_guess(
    best_guess: str,
    lowest_guess: str,
    ranking: list[RankedEntity],
) -> GuessResult:
    """Compare a quiz guess against the ranking's best and lowest entities."""
    best, lowest = best_and_lowest(ranking)
    return GuessResult(
        best=best.key,
        lowest=lowest.key,
        correct_best=best_guess == best.key,
        correct_lowest=lowest_guess == lowest.key,
    )
