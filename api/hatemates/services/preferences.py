from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

from ..errors import ValidationError


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non-binary"


_GENDER_ALIASES = {
    "male": Gender.MALE,
    "man": Gender.MALE,
    "female": Gender.FEMALE,
    "woman": Gender.FEMALE,
    "non-binary": Gender.NON_BINARY,
    "nonbinary": Gender.NON_BINARY,
    "non binary": Gender.NON_BINARY,
    "non_binary": Gender.NON_BINARY,
}

_OPEN_RANGE_RE = re.compile(r"^(\d+)\s*(?:\+|and\s+(?:above|up|over))$", re.IGNORECASE)
_CLOSED_RANGE_RE = re.compile(r"^(\d+)\s*-\s*(\d+)$")


@dataclass(frozen=True)
class AgeRange:
    min_age: int
    max_age: int | None = None

    def contains(self, age: int) -> bool:
        if age < self.min_age:
            return False
        return self.max_age is None or age <= self.max_age

    def __str__(self) -> str:
        if self.max_age is None:
            return f"{self.min_age}+"
        return f"{self.min_age}-{self.max_age}"


def normalize_gender(value: Any) -> Gender | None:
    if isinstance(value, Gender):
        return value
    if value is None:
        return None
    v = str(value).strip().lower()
    return _GENDER_ALIASES.get(v)


def _split_gender_tokens(raw: str) -> list[str]:
    text = raw.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"friend gender set is not valid JSON: {raw!r}") from exc
        if not isinstance(parsed, list):
            raise ValidationError("friend gender set must be a list")
        return [str(item) for item in parsed]
    # Postgres array literal: {female,nonbinary}
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    return [part.strip().strip('"') for part in text.split(",")]


def decode_gender_set(raw: Any) -> frozenset[Gender]:
    """Read a stored friend-gender set into a set of canonical genders.

    Accepts a list, a JSON array string, a braced array literal or a comma
    separated string. Aliases such as ``nonbinary`` normalize to
    ``non-binary``. An empty set or an unknown member is a validation error.
    """
    if raw is None:
        raise ValidationError("friend gender set is required")
    if isinstance(raw, (list, tuple, set, frozenset)):
        tokens = list(raw)
    else:
        tokens = _split_gender_tokens(str(raw))

    out: set[Gender] = set()
    for token in tokens:
        g = normalize_gender(token)
        if g is None and not str(token).strip():
            continue
        if g is None:
            raise ValidationError(f"unknown gender in friend gender set: {token!r}")
        out.add(g)
    if not out:
        raise ValidationError("friend gender set must not be empty")
    return frozenset(out)


def encode_gender_set(genders: Iterable[Gender]) -> str:
    values = sorted({g.value for g in decode_gender_set(list(genders))})
    return json.dumps(values)


def parse_age_range(raw: Any) -> AgeRange:
    if isinstance(raw, AgeRange):
        return raw
    text = str(raw or "").strip()
    if not text:
        raise ValidationError("friend age range is required")

    m = _OPEN_RANGE_RE.match(text)
    if m:
        return AgeRange(min_age=int(m.group(1)))

    m = _CLOSED_RANGE_RE.match(text)
    if not m:
        raise ValidationError(f"unrecognized friend age range: {text!r}")
    lo, hi = int(m.group(1)), int(m.group(2))
    if lo > hi:
        raise ValidationError(f"friend age range is inverted: {text!r}")
    return AgeRange(min_age=lo, max_age=hi)


def to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"invalid birthday: {value!r}") from exc


def age_on(birthday: Any, today: date) -> int:
    born = to_date(birthday)
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def is_age_match(candidate_age: int, viewer_age_range: Any) -> bool:
    return parse_age_range(viewer_age_range).contains(candidate_age)


def is_gender_match(candidate_gender: Any, viewer_friend_genders: Any) -> bool:
    g = normalize_gender(candidate_gender)
    if g is None:
        return False
    if isinstance(viewer_friend_genders, frozenset) and all(isinstance(x, Gender) for x in viewer_friend_genders):
        genders = viewer_friend_genders
    else:
        genders = decode_gender_set(viewer_friend_genders)
    return g in genders
