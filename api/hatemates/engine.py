"""Request-scoped matching operations.

Each operation reads what it needs in one session, runs the pure matching
functions on the snapshot and, when it writes, commits once. Store errors
surface as ``StoreFailure``; nothing partial is committed.
"""
from __future__ import annotations

import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError

from . import repo
from .config import DEMO_AUTO_ACCEPT_MAX_GROUP_ID, DISLIKE_CATEGORY_COUNT
from .database import SessionLocal
from .errors import StoreFailure, ValidationError, require_positive_id
from .services.candidates import UserSnapshot, select_candidates
from .services.geo import distance_miles
from .services.locks import reconciliation_locks
from .services.preferences import age_on
from .services.reconciliation import MatchProposal, StoredPair, plan_reconciliation
from .services.scoring import MatchTier, PairKey, PairSelection, ScoredCandidate, score_candidates
from .services.state_machine import ACCEPTED, PENDING, apply_side_status, normalize_action

logger = logging.getLogger(__name__)

_SIDE_ALIASES = {
    1: 1,
    2: 2,
    "1": 1,
    "2": 2,
    "user1": 1,
    "user2": 2,
    "user1_status": 1,
    "user2_status": 2,
    "user1Status": 1,
    "user2Status": 2,
}


@dataclass
class CandidateComputation:
    user_id: int
    demo_group_id: int | None
    candidates: list[ScoredCandidate] = field(default_factory=list)
    shared_dislikes: list[PairSelection] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    def proposals(self) -> list[MatchProposal]:
        return [MatchProposal.from_scored(c) for c in self.candidates]


@contextmanager
def _store(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("[store] %s failed: %s", operation, exc.__class__.__name__)
        raise StoreFailure(operation) from exc


def _today(today: date | None) -> date:
    return today or date.today()


def compute_candidates(user_id: int, today: date | None = None) -> CandidateComputation | None:
    """Eligible, tiered candidates for one user.

    Returns None when the user has no profile or friend preference on file.
    An empty ``candidates`` list means nobody qualifies right now.
    """
    require_positive_id(user_id, "user_id")
    with _store("compute_candidates"):
        with SessionLocal() as db:
            viewer_row = repo.fetch_match_profile(db, user_id)
            if not viewer_row:
                return None
            viewer = UserSnapshot.from_row(viewer_row)
            pool: list[UserSnapshot] = []
            for row in repo.fetch_candidate_pool(db, user_id, is_demo=viewer.is_demo):
                try:
                    pool.append(UserSnapshot.from_row(row))
                except ValidationError as exc:
                    logger.warning("[candidates] skipping user_id=%s: %s", row.get("user_id"), exc)
                    continue
            candidates = select_candidates(viewer, pool, _today(today))
            selections = repo.fetch_selections(
                db, [user_id] + [c.user_id for c in candidates], category_count=DISLIKE_CATEGORY_COUNT
            )

    scored, evidence = score_candidates(
        user_id,
        selections.get(user_id, set()),
        candidates,
        selections,
        category_count=DISLIKE_CATEGORY_COUNT,
    )
    logger.info("[candidates] user_id=%s pool=%s candidates=%s", user_id, len(pool), len(scored))
    return CandidateComputation(
        user_id=user_id,
        demo_group_id=viewer.demo_group_id,
        candidates=scored,
        shared_dislikes=evidence,
    )


def _as_proposal(item: MatchProposal | ScoredCandidate) -> MatchProposal:
    if isinstance(item, ScoredCandidate):
        return MatchProposal.from_scored(item)
    return item


def _with_selections(rows: list[dict[str, Any]], selections: dict[PairKey, list[dict[str, int]]]) -> list[dict[str, Any]]:
    out = []
    for row in rows:
        key = PairKey(int(row["user_id1"]), int(row["user_id2"]))
        out.append({**row, "match_selections": selections.get(key, [])})
    return out


def reconcile(
    user_id: int,
    candidates: Iterable[MatchProposal | ScoredCandidate],
    shared_dislikes: Iterable[PairSelection],
) -> list[dict[str, Any]]:
    """Diff fresh candidates against stored pairs and write the result.

    Returns every stored pair of the user after the write, retired pairs
    included, each with its ``match_selections``.
    """
    require_positive_id(user_id, "user_id")
    proposals = [_as_proposal(c) for c in candidates]
    shared = list(shared_dislikes)

    with reconciliation_locks.hold(user_id), _store("reconcile"):
        with SessionLocal() as db:
            user = repo.fetch_user(db, user_id)
            if not user:
                raise ValidationError(f"unknown user {user_id}")
            user_demo_group_id = user.get("demo_group_id")

            # Population membership comes from the store, not the caller.
            demo_ids = repo.fetch_demo_group_ids(db, [p.other_user_id for p in proposals])
            checked: list[MatchProposal] = []
            for p in proposals:
                if p.other_user_id not in demo_ids:
                    raise ValidationError(f"unknown candidate {p.other_user_id}")
                other_demo = demo_ids[p.other_user_id]
                if (other_demo is None) != (user_demo_group_id is None):
                    raise ValidationError(f"candidate {p.other_user_id} is outside user {user_id}'s population")
                checked.append(dataclasses.replace(p, other_demo_group_id=other_demo))

            existing = [StoredPair.from_row(r) for r in repo.fetch_pairs_for_user(db, user_id)]
            plan = plan_reconciliation(
                user_id,
                user_demo_group_id,
                checked,
                existing,
                shared,
                auto_accept_max_group_id=DEMO_AUTO_ACCEPT_MAX_GROUP_ID,
                category_count=DISLIKE_CATEGORY_COUNT,
            )
            repo.apply_reconciliation(db, plan)
            db.commit()

            rows = repo.fetch_pairs_for_user(db, user_id)
            selections = repo.fetch_pair_selections(db, user_id)

    logger.info("[reconcile] user_id=%s %s", user_id, plan.summary())
    return _with_selections(rows, selections)


def _side(side: Any) -> int:
    resolved = _SIDE_ALIASES.get(side)
    if resolved is None:
        raise ValidationError(f"side must be user1 or user2, got {side!r}")
    return resolved


def update_pair_status(user_id1: int, user_id2: int, side: Any, new_status: str) -> dict[str, Any] | None:
    """Record one side's accept or decline and recompute the aggregate.

    Returns None when the pair has never been stored.
    """
    key = PairKey.strict(user_id1, user_id2)
    side_no = _side(side)
    target = normalize_action(new_status)
    column = "user1_status" if side_no == 1 else "user2_status"

    with _store("update_pair_status"):
        with SessionLocal() as db:
            row = repo.fetch_pair(db, key)
            if not row:
                return None
            current = str(row[column])
            user1_status, user2_status, _ = apply_side_status(
                str(row["user1_status"]), str(row["user2_status"]), side_no, target
            )
            resolved = user1_status if side_no == 1 else user2_status
            if resolved != current:
                if repo.update_side_status(db, key, side_no, current, resolved) != 1:
                    raise StoreFailure("update_pair_status", "pair changed concurrently")
                db.commit()
                row = repo.fetch_pair(db, key)
                logger.info("[status] pair=%s-%s %s %s->%s match_status=%s", key.low, key.high, column, current, resolved, row["match_status"])
            elif resolved != target:
                logger.info("[status] pair=%s-%s %s stays %s (requested %s)", key.low, key.high, column, current, target)
            selections = repo.fetch_pair_selections(db, key.low)

    return {**row, "match_selections": selections.get(key, [])}


def update_status_for_user(user_id: int, other_user_id: int, new_status: str) -> dict[str, Any] | None:
    key = PairKey.of(user_id, other_user_id)
    return update_pair_status(key.low, key.high, key.side_of(user_id), new_status)


def refresh_matches(user_id: int, today: date | None = None) -> dict[str, Any] | None:
    """Compute candidates and reconcile them in one call.

    Returns None when the user has no match info on file; an empty pool
    still reconciles so pairs that stopped qualifying are retired.
    """
    computation = compute_candidates(user_id, today=today)
    if computation is None:
        return None
    pairs = reconcile(user_id, computation.candidates, computation.shared_dislikes)
    by_other = {c.candidate.user_id: c for c in computation.candidates}
    for pair in pairs:
        other = pair["user_id2"] if pair["user_id1"] == user_id else pair["user_id1"]
        scored = by_other.get(other)
        pair["age"] = scored.candidate.age if scored else None
        pair["mileage"] = scored.candidate.mileage if scored else None
    return {"candidates": computation.candidates, "pairs": pairs}


def _own_status(row: dict[str, Any], user_id: int) -> str:
    return str(row["user1_status"] if int(row["user_id1"]) == user_id else row["user2_status"])


def _view(row: dict[str, Any], origin: dict[str, Any] | None, today: date, selections) -> dict[str, Any]:
    age = age_on(row["other_birthday"], today) if row.get("other_birthday") is not None else None
    mileage = None
    if origin and row.get("other_lat") is not None and row.get("other_lng") is not None:
        mileage = distance_miles(float(origin["lat"]), float(origin["lng"]), float(row["other_lat"]), float(row["other_lng"]))
    key = PairKey(int(row["user_id1"]), int(row["user_id2"]))
    return {
        "user_id1": key.low,
        "user_id2": key.high,
        "match_type": row["match_type"],
        "user1_status": row["user1_status"],
        "user2_status": row["user2_status"],
        "match_status": row["match_status"],
        "other_user_id": int(row["other_user_id"]),
        "first_name": row.get("other_first_name"),
        "gender": row.get("other_gender"),
        "city": row.get("other_city"),
        "lat": row.get("other_lat"),
        "lng": row.get("other_lng"),
        "age": age,
        "mileage": mileage,
        "match_selections": selections.get(key, []),
    }


def _list_views(user_id: int, match_status: str | None, today: date | None) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    require_positive_id(user_id, "user_id")
    with _store("list_matches"):
        with SessionLocal() as db:
            origin = repo.fetch_match_profile(db, user_id)
            rows = repo.list_pair_views(db, user_id, match_status=match_status)
            selections = repo.fetch_pair_selections(db, user_id) if rows else {}
    day = _today(today)
    return origin, [{**_view(r, origin, day, selections), "own_status": _own_status(r, user_id)} for r in rows]


def list_pending_matches(user_id: int, today: date | None = None) -> list[dict[str, Any]]:
    """Pairs still waiting on this user's answer."""
    _, views = _list_views(user_id, PENDING, today)
    return [v for v in views if v["own_status"] == PENDING and v["match_type"] != MatchTier.NO_LONGER_MATCH.value]


def list_accepted_matches(user_id: int, today: date | None = None) -> list[dict[str, Any]]:
    _, views = _list_views(user_id, ACCEPTED, today)
    return views


def match_map_info(user_id: int, today: date | None = None) -> dict[str, Any] | None:
    origin, views = _list_views(user_id, ACCEPTED, today)
    if not origin:
        return None
    return {
        "current_user_location": {
            "lat": float(origin["lat"]),
            "lng": float(origin["lng"]),
            "mile_radius": float(origin["mile_radius"]),
        },
        "match_list": views,
    }


def has_match_info(user_id: int) -> dict[str, bool]:
    require_positive_id(user_id, "user_id")
    with _store("has_match_info"):
        with SessionLocal() as db:
            info = repo.has_match_info(db, user_id)
    return {**info, "ready": info["has_profile"] and info["has_preferences"]}
