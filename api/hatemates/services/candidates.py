from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from ..config import KM_PER_MILE
from ..errors import ValidationError, require_positive_id
from .geo import distance_km, miles_to_km
from .preferences import (
    AgeRange,
    Gender,
    age_on,
    decode_gender_set,
    is_age_match,
    is_gender_match,
    normalize_gender,
    parse_age_range,
    to_date,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSnapshot:
    """One user's profile and friend preference as read for a single run."""

    user_id: int
    demo_group_id: int | None
    birthday: date
    gender: Gender
    lat: float
    lng: float
    mile_radius: float
    friend_genders: frozenset[Gender]
    friend_age: AgeRange

    @property
    def is_demo(self) -> bool:
        return self.demo_group_id is not None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserSnapshot":
        user_id = require_positive_id(row.get("user_id"), "user_id")
        gender = normalize_gender(row.get("gender"))
        if gender is None:
            raise ValidationError(f"user {user_id} has an unknown gender: {row.get('gender')!r}")
        try:
            mile_radius = float(row.get("mile_radius"))
            lat = float(row.get("lat"))
            lng = float(row.get("lng"))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"user {user_id} has an incomplete location preference") from exc
        if mile_radius <= 0:
            raise ValidationError(f"user {user_id} mile radius must be positive")
        birthday = row.get("birthday")
        if birthday is None:
            raise ValidationError(f"user {user_id} has no birthday on file")
        demo_group_id = row.get("demo_group_id")
        return cls(
            user_id=user_id,
            demo_group_id=int(demo_group_id) if demo_group_id is not None else None,
            birthday=to_date(birthday),
            gender=gender,
            lat=lat,
            lng=lng,
            mile_radius=mile_radius,
            friend_genders=decode_gender_set(row.get("friend_gender")),
            friend_age=parse_age_range(row.get("friend_age")),
        )


@dataclass(frozen=True)
class CandidateResult:
    user_id: int
    demo_group_id: int | None
    age: int
    mileage: float
    gender: Gender
    lat: float
    lng: float


def same_population(viewer: UserSnapshot, other: UserSnapshot) -> bool:
    return viewer.is_demo == other.is_demo


def mutual_distance_km(viewer: UserSnapshot, other: UserSnapshot) -> float | None:
    """Distance between two users if each is inside the other's radius."""
    km = distance_km(viewer.lat, viewer.lng, other.lat, other.lng)
    if km > miles_to_km(viewer.mile_radius) or km > miles_to_km(other.mile_radius):
        return None
    return km


def mutually_accepts(viewer: UserSnapshot, viewer_age: int, other: UserSnapshot, other_age: int) -> bool:
    if not is_age_match(other_age, viewer.friend_age) or not is_age_match(viewer_age, other.friend_age):
        return False
    return is_gender_match(other.gender, viewer.friend_genders) and is_gender_match(viewer.gender, other.friend_genders)


def select_candidates(viewer: UserSnapshot, pool: Iterable[UserSnapshot], today: date) -> list[CandidateResult]:
    viewer_age = age_on(viewer.birthday, today)
    out: list[CandidateResult] = []
    considered = 0
    for other in pool:
        # Demo and real accounts never see each other.
        if not same_population(viewer, other):
            continue
        if other.user_id == viewer.user_id:
            continue
        considered += 1
        km = mutual_distance_km(viewer, other)
        if km is None:
            continue
        other_age = age_on(other.birthday, today)
        if not mutually_accepts(viewer, viewer_age, other, other_age):
            continue
        out.append(
            CandidateResult(
                user_id=other.user_id,
                demo_group_id=other.demo_group_id,
                age=other_age,
                mileage=round(km / KM_PER_MILE, 1),
                gender=other.gender,
                lat=other.lat,
                lng=other.lng,
            )
        )
    out.sort(key=lambda c: (c.mileage, c.user_id))
    logger.debug("[candidates] user_id=%s considered=%s eligible=%s", viewer.user_id, considered, len(out))
    return out
