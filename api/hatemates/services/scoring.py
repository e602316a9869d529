from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, NamedTuple

from ..config import DISLIKE_CATEGORY_COUNT
from ..errors import ValidationError, require_positive_id
from .candidates import CandidateResult


class MatchTier(str, Enum):
    NO_LONGER_MATCH = "no longer a match"
    GOOD = "good"
    GREAT = "great"
    PERFECT = "perfect"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {
    MatchTier.NO_LONGER_MATCH: 0,
    MatchTier.GOOD: 1,
    MatchTier.GREAT: 2,
    MatchTier.PERFECT: 3,
}


class PairKey(NamedTuple):
    """Identity of a relationship: the lower user id always comes first."""

    low: int
    high: int

    @classmethod
    def of(cls, user_a: int, user_b: int) -> "PairKey":
        require_positive_id(user_a, "user_id")
        require_positive_id(user_b, "user_id")
        if user_a == user_b:
            raise ValidationError("a pair needs two different users")
        return cls(min(user_a, user_b), max(user_a, user_b))

    @classmethod
    def strict(cls, user_id1: int, user_id2: int) -> "PairKey":
        key = cls.of(user_id1, user_id2)
        if key.low != user_id1:
            raise ValidationError("user_id1 must be lower than user_id2")
        return key

    def other(self, user_id: int) -> int:
        if user_id == self.low:
            return self.high
        if user_id == self.high:
            return self.low
        raise ValidationError(f"user {user_id} is not part of pair {self.low}-{self.high}")

    def side_of(self, user_id: int) -> int:
        """1 when user_id owns user1_status, 2 when it owns user2_status."""
        if user_id == self.low:
            return 1
        if user_id == self.high:
            return 2
        raise ValidationError(f"user {user_id} is not part of pair {self.low}-{self.high}")


def canonical_pair(user_a: int, user_b: int) -> PairKey:
    return PairKey.of(user_a, user_b)


@dataclass(frozen=True)
class PairSelection:
    """One disliked item both users of a pair picked."""

    user_id1: int
    user_id2: int
    category_id: int
    selection_id: int

    @property
    def key(self) -> PairKey:
        return PairKey(self.user_id1, self.user_id2)

    def validate(self) -> "PairSelection":
        PairKey.strict(self.user_id1, self.user_id2)
        require_positive_id(self.category_id, "category_id")
        require_positive_id(self.selection_id, "selection_id")
        return self


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: CandidateResult
    key: PairKey
    overlap: int
    tier: MatchTier


def great_threshold(category_count: int) -> int:
    # Half the categories, rounded up: 5 of 10.
    return (category_count + 1) // 2


def tier_for_overlap(count: int, category_count: int = DISLIKE_CATEGORY_COUNT) -> MatchTier:
    if category_count <= 0:
        raise ValidationError("category_count must be positive")
    if count < 0 or count > category_count:
        raise ValidationError(f"overlap {count} outside 0..{category_count}")
    if count == 0:
        return MatchTier.NO_LONGER_MATCH
    if count == category_count:
        return MatchTier.PERFECT
    if count >= great_threshold(category_count):
        return MatchTier.GREAT
    return MatchTier.GOOD


def shared_selections(mine: Iterable[tuple[int, int]], theirs: Iterable[tuple[int, int]]) -> set[tuple[int, int]]:
    return set(mine) & set(theirs)


def score_candidates(
    user_id: int,
    user_selections: Iterable[tuple[int, int]],
    candidates: Iterable[CandidateResult],
    selections_by_user: dict[int, set[tuple[int, int]]],
    category_count: int = DISLIKE_CATEGORY_COUNT,
) -> tuple[list[ScoredCandidate], list[PairSelection]]:
    """Tier every candidate by shared dislikes.

    Returns the scored candidates and the evidence rows (one per shared
    category/selection per pair), both keyed by the canonical pair.
    """
    mine = set(user_selections)
    scored: list[ScoredCandidate] = []
    evidence: list[PairSelection] = []
    for c in candidates:
        key = PairKey.of(user_id, c.user_id)
        shared = shared_selections(mine, selections_by_user.get(c.user_id, set()))
        scored.append(ScoredCandidate(candidate=c, key=key, overlap=len(shared), tier=tier_for_overlap(len(shared), category_count)))
        for category_id, selection_id in sorted(shared):
            evidence.append(PairSelection(key.low, key.high, category_id, selection_id))
    return scored, evidence
