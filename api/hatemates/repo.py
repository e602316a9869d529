from typing import Any, Iterable

from sqlalchemy import bindparam, text

from .services.reconciliation import PairDecision, ReconciliationPlan
from .services.scoring import PairKey, PairSelection

_SIDE_COLUMNS = {1: ("user1_status", "user2_status"), 2: ("user2_status", "user1_status")}

_PROFILE_SELECT = """
    SELECT
      u.user_id,
      u.demo_group_id,
      i.birthday,
      i.gender,
      p.lat,
      p.lng,
      p.mile_radius,
      p.friend_gender,
      p.friend_age
    FROM users u
    JOIN user_infos i ON i.user_id = u.user_id
    JOIN friend_preferences p ON p.user_id = u.user_id
"""


def fetch_user(db, user_id: int) -> dict[str, Any] | None:
    row = db.execute(
        text("SELECT user_id, first_name, demo_group_id FROM users WHERE user_id = :user_id"),
        {"user_id": user_id},
    ).mappings().first()
    return dict(row) if row else None


def fetch_demo_group_ids(db, user_ids: Iterable[int]) -> dict[int, int | None]:
    ids = sorted(set(user_ids))
    if not ids:
        return {}
    stmt = text("SELECT user_id, demo_group_id FROM users WHERE user_id IN :ids").bindparams(
        bindparam("ids", expanding=True)
    )
    rows = db.execute(stmt, {"ids": ids}).mappings().all()
    return {int(r["user_id"]): r["demo_group_id"] for r in rows}


def fetch_match_profile(db, user_id: int) -> dict[str, Any] | None:
    row = db.execute(text(_PROFILE_SELECT + " WHERE u.user_id = :user_id"), {"user_id": user_id}).mappings().first()
    return dict(row) if row else None


def has_match_info(db, user_id: int) -> dict[str, bool]:
    row = db.execute(
        text(
            """
            SELECT
              EXISTS (SELECT 1 FROM user_infos WHERE user_id = :user_id) AS has_profile,
              EXISTS (SELECT 1 FROM friend_preferences WHERE user_id = :user_id) AS has_preferences
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    return {"has_profile": bool(row["has_profile"]), "has_preferences": bool(row["has_preferences"])}


def fetch_candidate_pool(db, user_id: int, is_demo: bool) -> list[dict[str, Any]]:
    population = "u.demo_group_id IS NOT NULL" if is_demo else "u.demo_group_id IS NULL"
    rows = db.execute(
        text(_PROFILE_SELECT + f" WHERE u.user_id <> :user_id AND {population} ORDER BY u.user_id"),
        {"user_id": user_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def fetch_selections(db, user_ids: Iterable[int], category_count: int) -> dict[int, set[tuple[int, int]]]:
    """Selections per user, limited to categories 1..category_count."""
    ids = sorted(set(user_ids))
    if not ids:
        return {}
    stmt = text(
        """
        SELECT user_id, category_id, selection_id
        FROM disliked_selections
        WHERE user_id IN :ids
          AND category_id <= :category_count
        """
    ).bindparams(bindparam("ids", expanding=True))
    out: dict[int, set[tuple[int, int]]] = {uid: set() for uid in ids}
    for r in db.execute(stmt, {"ids": ids, "category_count": category_count}).mappings().all():
        out[int(r["user_id"])].add((int(r["category_id"]), int(r["selection_id"])))
    return out


def fetch_pairs_for_user(db, user_id: int) -> list[dict[str, Any]]:
    rows = db.execute(
        text(
            """
            SELECT user_id1, user_id2, match_type, user1_status, user2_status, match_status
            FROM match_pairs
            WHERE user_id1 = :user_id OR user_id2 = :user_id
            ORDER BY user_id1, user_id2
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    return [dict(r) for r in rows]


def fetch_pair(db, key: PairKey) -> dict[str, Any] | None:
    row = db.execute(
        text(
            """
            SELECT user_id1, user_id2, match_type, user1_status, user2_status, match_status
            FROM match_pairs
            WHERE user_id1 = :user_id1 AND user_id2 = :user_id2
            """
        ),
        {"user_id1": key.low, "user_id2": key.high},
    ).mappings().first()
    return dict(row) if row else None


def fetch_pair_selections(db, user_id: int) -> dict[PairKey, list[dict[str, int]]]:
    rows = db.execute(
        text(
            """
            SELECT user_id1, user_id2, category_id, selection_id
            FROM match_selections
            WHERE user_id1 = :user_id OR user_id2 = :user_id
            ORDER BY user_id1, user_id2, category_id
            """
        ),
        {"user_id": user_id},
    ).mappings().all()
    out: dict[PairKey, list[dict[str, int]]] = {}
    for r in rows:
        key = PairKey(int(r["user_id1"]), int(r["user_id2"]))
        out.setdefault(key, []).append({"category_id": int(r["category_id"]), "selection_id": int(r["selection_id"])})
    return out


def upsert_match_pairs(db, decisions: list[PairDecision]) -> int:
    """Insert new pairs; on an existing pair only the tier and aggregate move.

    The aggregate is recomputed from the stored per-user statuses so a
    concurrent insert of the same pair from the other user's run cannot
    leave it out of step with them.
    """
    if not decisions:
        return 0
    db.execute(
        text(
            """
            INSERT INTO match_pairs (user_id1, user_id2, match_type, user1_status, user2_status, match_status)
            VALUES (:user_id1, :user_id2, :match_type, :user1_status, :user2_status, :match_status)
            ON CONFLICT (user_id1, user_id2)
            DO UPDATE SET
              match_type = excluded.match_type,
              match_status = CASE
                WHEN match_pairs.user1_status = 'rejected' OR match_pairs.user2_status = 'rejected' THEN 'rejected'
                WHEN excluded.match_type = 'no longer a match' AND match_pairs.match_status = 'rejected' THEN 'rejected'
                WHEN match_pairs.user1_status = 'accepted' AND match_pairs.user2_status = 'accepted' THEN 'accepted'
                ELSE 'pending'
              END,
              updated_at = CURRENT_TIMESTAMP
            """
        ),
        [d.as_params() for d in decisions],
    )
    return len(decisions)


def replace_match_selections(db, user_id: int, selections: list[PairSelection]) -> int:
    db.execute(
        text("DELETE FROM match_selections WHERE user_id1 = :user_id OR user_id2 = :user_id"),
        {"user_id": user_id},
    )
    if not selections:
        return 0
    db.execute(
        text(
            """
            INSERT INTO match_selections (user_id1, user_id2, category_id, selection_id)
            VALUES (:user_id1, :user_id2, :category_id, :selection_id)
            ON CONFLICT (user_id1, user_id2, category_id, selection_id) DO NOTHING
            """
        ),
        [
            {
                "user_id1": s.user_id1,
                "user_id2": s.user_id2,
                "category_id": s.category_id,
                "selection_id": s.selection_id,
            }
            for s in selections
        ],
    )
    return len(selections)


def apply_reconciliation(db, plan: ReconciliationPlan) -> dict[str, int]:
    """Write one plan. The caller owns the transaction and commits once."""
    pairs = upsert_match_pairs(db, plan.decisions)
    selections = replace_match_selections(db, plan.user_id, plan.selections)
    return {"pairs": pairs, "selections": selections}


def update_side_status(db, key: PairKey, side: int, expected: str, new_status: str) -> int:
    column, other = _SIDE_COLUMNS[side]
    result = db.execute(
        text(
            f"""
            UPDATE match_pairs
            SET {column} = :new_status,
                match_status = CASE
                  WHEN :new_status = 'rejected' OR {other} = 'rejected' THEN 'rejected'
                  WHEN :new_status = 'accepted' AND {other} = 'accepted' THEN 'accepted'
                  ELSE 'pending'
                END,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id1 = :user_id1
              AND user_id2 = :user_id2
              AND {column} = :expected
            """
        ),
        {"new_status": new_status, "expected": expected, "user_id1": key.low, "user_id2": key.high},
    )
    return int(result.rowcount or 0)


def list_pair_views(db, user_id: int, match_status: str | None = None) -> list[dict[str, Any]]:
    """The user's pairs joined with the other user's public profile and location."""
    rows = db.execute(
        text(
            """
            SELECT
              mp.user_id1,
              mp.user_id2,
              mp.match_type,
              mp.user1_status,
              mp.user2_status,
              mp.match_status,
              o.user_id AS other_user_id,
              o.first_name AS other_first_name,
              o.demo_group_id AS other_demo_group_id,
              i.birthday AS other_birthday,
              i.gender AS other_gender,
              p.city AS other_city,
              p.lat AS other_lat,
              p.lng AS other_lng
            FROM match_pairs mp
            JOIN users o
              ON o.user_id = CASE WHEN mp.user_id1 = :user_id THEN mp.user_id2 ELSE mp.user_id1 END
            LEFT JOIN user_infos i ON i.user_id = o.user_id
            LEFT JOIN friend_preferences p ON p.user_id = o.user_id
            WHERE (mp.user_id1 = :user_id OR mp.user_id2 = :user_id)
              AND (:match_status IS NULL OR mp.match_status = :match_status)
            ORDER BY mp.user_id1, mp.user_id2
            """
        ),
        {"user_id": user_id, "match_status": match_status},
    ).mappings().all()
    return [dict(r) for r in rows]
