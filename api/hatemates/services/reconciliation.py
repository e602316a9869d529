"""Three-way diff between a fresh candidate computation and stored pairs.

Every canonical pair touched by a run lands in exactly one bucket:

* update - computed now and stored before: new tier, statuses kept.
* upload - computed now, never stored: new tier, initial statuses.
* retire - stored before, not computed now: tier drops to
  "no longer a match", any acceptance already reached is kept.

Planning is pure. Writing the plan is ``repo.apply_reconciliation``.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..config import DEMO_AUTO_ACCEPT_MAX_GROUP_ID, DISLIKE_CATEGORY_COUNT
from ..errors import ValidationError, require_positive_id
from .scoring import MatchTier, PairKey, PairSelection, ScoredCandidate, tier_for_overlap
from .state_machine import STATUSES, derive_match_status, initial_statuses, retired_match_status

UPDATE = "update"
UPLOAD = "upload"
RETIRE = "retire"


@dataclass(frozen=True)
class MatchProposal:
    """A candidate the invoking user qualifies with, and the pair's tier."""

    other_user_id: int
    other_demo_group_id: int | None
    tier: MatchTier

    @classmethod
    def from_scored(cls, scored: ScoredCandidate) -> "MatchProposal":
        return cls(
            other_user_id=scored.candidate.user_id,
            other_demo_group_id=scored.candidate.demo_group_id,
            tier=scored.tier,
        )


@dataclass(frozen=True)
class StoredPair:
    key: PairKey
    match_type: MatchTier
    user1_status: str
    user2_status: str
    match_status: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StoredPair":
        return cls(
            key=PairKey.strict(int(row["user_id1"]), int(row["user_id2"])),
            match_type=MatchTier(row["match_type"]),
            user1_status=str(row["user1_status"]),
            user2_status=str(row["user2_status"]),
            match_status=str(row["match_status"]),
        )


@dataclass(frozen=True)
class PairDecision:
    bucket: str
    key: PairKey
    match_type: MatchTier
    user1_status: str
    user2_status: str
    match_status: str

    def as_params(self) -> dict[str, Any]:
        return {
            "user_id1": self.key.low,
            "user_id2": self.key.high,
            "match_type": self.match_type.value,
            "user1_status": self.user1_status,
            "user2_status": self.user2_status,
            "match_status": self.match_status,
        }


@dataclass
class ReconciliationPlan:
    user_id: int
    to_update: list[PairDecision] = field(default_factory=list)
    to_upload: list[PairDecision] = field(default_factory=list)
    to_retire: list[PairDecision] = field(default_factory=list)
    selections: list[PairSelection] = field(default_factory=list)

    @property
    def decisions(self) -> list[PairDecision]:
        return sorted(self.to_update + self.to_upload + self.to_retire, key=lambda d: d.key)

    def summary(self) -> dict[str, int]:
        return {
            "updated": len(self.to_update),
            "uploaded": len(self.to_upload),
            "retired": len(self.to_retire),
            "selections": len(self.selections),
        }


def _check_selections(
    user_id: int,
    proposals: dict[PairKey, MatchProposal],
    selections: Iterable[PairSelection],
    category_count: int,
) -> list[PairSelection]:
    checked: list[PairSelection] = []
    seen: set[tuple[PairKey, int]] = set()
    for sel in selections:
        sel.validate()
        if sel.key not in proposals:
            raise ValidationError(f"shared dislike for pair {sel.key.low}-{sel.key.high} has no matching candidate for user {user_id}")
        if (sel.key, sel.category_id) in seen:
            raise ValidationError(f"pair {sel.key.low}-{sel.key.high} lists category {sel.category_id} twice")
        seen.add((sel.key, sel.category_id))
        checked.append(sel)

    counts = Counter(sel.key for sel in checked)
    for key, proposal in proposals.items():
        expected = tier_for_overlap(counts.get(key, 0), category_count)
        if proposal.tier != expected:
            raise ValidationError(
                f"pair {key.low}-{key.high} is tiered {proposal.tier.value!r} but its "
                f"{counts.get(key, 0)} shared dislikes make it {expected.value!r}"
            )
    return checked


def plan_reconciliation(
    user_id: int,
    user_demo_group_id: int | None,
    proposals: Iterable[MatchProposal],
    existing: Iterable[StoredPair],
    selections: Iterable[PairSelection] = (),
    *,
    auto_accept_max_group_id: int = DEMO_AUTO_ACCEPT_MAX_GROUP_ID,
    category_count: int = DISLIKE_CATEGORY_COUNT,
) -> ReconciliationPlan:
    require_positive_id(user_id, "user_id")

    fresh: dict[PairKey, MatchProposal] = {}
    for p in proposals:
        key = PairKey.of(user_id, p.other_user_id)
        if key in fresh:
            raise ValidationError(f"candidate {p.other_user_id} appears more than once")
        fresh[key] = p

    stored: dict[PairKey, StoredPair] = {}
    for s in existing:
        if user_id not in s.key:
            raise ValidationError(f"stored pair {s.key.low}-{s.key.high} does not belong to user {user_id}")
        if s.user1_status not in STATUSES or s.user2_status not in STATUSES:
            raise ValidationError(f"stored pair {s.key.low}-{s.key.high} has an unknown status")
        stored[s.key] = s

    plan = ReconciliationPlan(
        user_id=user_id,
        selections=_check_selections(user_id, fresh, selections, category_count),
    )

    for key in sorted(fresh.keys() | stored.keys()):
        proposal = fresh.get(key)
        prior = stored.get(key)
        if proposal is not None and prior is not None:
            plan.to_update.append(
                PairDecision(
                    bucket=UPDATE,
                    key=key,
                    match_type=proposal.tier,
                    user1_status=prior.user1_status,
                    user2_status=prior.user2_status,
                    match_status=derive_match_status(prior.user1_status, prior.user2_status),
                )
            )
        elif proposal is not None:
            user1_status, user2_status = initial_statuses(
                user_id,
                user_demo_group_id,
                proposal.other_user_id,
                proposal.other_demo_group_id,
                auto_accept_max_group_id=auto_accept_max_group_id,
            )
            plan.to_upload.append(
                PairDecision(
                    bucket=UPLOAD,
                    key=key,
                    match_type=proposal.tier,
                    user1_status=user1_status,
                    user2_status=user2_status,
                    match_status=derive_match_status(user1_status, user2_status),
                )
            )
        else:
            plan.to_retire.append(
                PairDecision(
                    bucket=RETIRE,
                    key=key,
                    match_type=MatchTier.NO_LONGER_MATCH,
                    user1_status=prior.user1_status,
                    user2_status=prior.user2_status,
                    match_status=retired_match_status(prior.user1_status, prior.user2_status, prior.match_status),
                )
            )
    return plan
