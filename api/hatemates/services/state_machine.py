from ..config import DEMO_AUTO_ACCEPT_MAX_GROUP_ID
from ..errors import ValidationError

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

STATUSES = {PENDING, ACCEPTED, REJECTED}

_ACTION_ALIASES = {
    "accept": ACCEPTED,
    "accepted": ACCEPTED,
    "decline": REJECTED,
    "reject": REJECTED,
    "rejected": REJECTED,
}


def derive_match_status(user1_status: str, user2_status: str) -> str:
    if user1_status == REJECTED or user2_status == REJECTED:
        return REJECTED
    if user1_status == ACCEPTED and user2_status == ACCEPTED:
        return ACCEPTED
    return PENDING


def retired_match_status(user1_status: str, user2_status: str, current: str | None) -> str:
    if current == REJECTED:
        return REJECTED
    return derive_match_status(user1_status, user2_status)


def normalize_action(action: str) -> str:
    status = _ACTION_ALIASES.get(str(action or "").strip().lower())
    if status is None:
        raise ValidationError(f"status must be accepted or rejected, got {action!r}")
    return status


def transition_side_status(current: str, action: str) -> str:
    target = normalize_action(action)
    if current == REJECTED:
        return REJECTED
    if current == target:
        return current
    if current == PENDING:
        return target
    if current == ACCEPTED and target == REJECTED:
        return REJECTED
    return current


def apply_side_status(user1_status: str, user2_status: str, side: int, action: str) -> tuple[str, str, str]:
    """Move one side and return (user1_status, user2_status, match_status)."""
    if side == 1:
        user1_status = transition_side_status(user1_status, action)
    elif side == 2:
        user2_status = transition_side_status(user2_status, action)
    else:
        raise ValidationError(f"side must be 1 or 2, got {side!r}")
    return user1_status, user2_status, derive_match_status(user1_status, user2_status)


def initial_statuses(
    inviter_id: int,
    inviter_demo_group_id: int | None,
    other_id: int,
    other_demo_group_id: int | None,
    auto_accept_max_group_id: int = DEMO_AUTO_ACCEPT_MAX_GROUP_ID,
) -> tuple[str, str]:
    """Statuses for a pair that has never been stored, as (user1, user2)."""
    if inviter_demo_group_id is None:
        return PENDING, PENDING

    both_seeded = (
        other_demo_group_id is not None
        and inviter_demo_group_id <= auto_accept_max_group_id
        and other_demo_group_id <= auto_accept_max_group_id
    )
    if both_seeded:
        return ACCEPTED, ACCEPTED

    # The other side has already said yes; the inviter still has to answer.
    if inviter_id < other_id:
        return PENDING, ACCEPTED
    return ACCEPTED, PENDING
