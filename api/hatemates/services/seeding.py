import json
import random
from datetime import date, timedelta
from typing import Any

from sqlalchemy import text

from ..config import DEMO_AUTO_ACCEPT_MAX_GROUP_ID, DISLIKE_CATEGORY_COUNT
from .preferences import Gender

FIRST_NAMES = ["Avery", "Blake", "Casey", "Devon", "Emerson", "Finley", "Harper", "Jordan", "Kai", "Logan", "Morgan", "Riley"]
CITIES = {
    "Irvine": ("92618", 33.6846, -117.8265),
    "Brooklyn": ("11201", 40.6943, -73.9903),
    "Austin": ("78701", 30.2711, -97.7437),
}
MILE_RADIUS_OPTIONS = [5, 10, 25]
SELECTIONS_PER_CATEGORY = 4

_DEMO_USERS = "SELECT user_id FROM users WHERE demo_group_id IS NOT NULL"


def _reset_demo_data(db) -> None:
    db.execute(text(f"DELETE FROM match_selections WHERE user_id1 IN ({_DEMO_USERS}) OR user_id2 IN ({_DEMO_USERS})"))
    db.execute(text(f"DELETE FROM match_pairs WHERE user_id1 IN ({_DEMO_USERS}) OR user_id2 IN ({_DEMO_USERS})"))
    db.execute(text(f"DELETE FROM disliked_selections WHERE user_id IN ({_DEMO_USERS})"))
    db.execute(text(f"DELETE FROM friend_preferences WHERE user_id IN ({_DEMO_USERS})"))
    db.execute(text(f"DELETE FROM user_infos WHERE user_id IN ({_DEMO_USERS})"))
    db.execute(text("DELETE FROM users WHERE demo_group_id IS NOT NULL"))
    db.commit()


def _upsert_demo_user(db, *, email: str, first_name: str, demo_group_id: int) -> int:
    row = db.execute(
        text(
            """
            INSERT INTO users (first_name, email, demo_group_id)
            VALUES (:first_name, :email, :demo_group_id)
            ON CONFLICT (email)
            DO UPDATE SET
              first_name = excluded.first_name,
              demo_group_id = excluded.demo_group_id
            RETURNING user_id
            """
        ),
        {"first_name": first_name, "email": email, "demo_group_id": demo_group_id},
    ).mappings().first()
    return int(row["user_id"])


def _upsert_match_info(db, user_id: int, *, birthday: date, gender: str, city: str, lat: float, lng: float, mile_radius: int) -> None:
    zip_code = CITIES[city][0]
    db.execute(
        text(
            """
            INSERT INTO user_infos (user_id, birthday, gender)
            VALUES (:user_id, :birthday, :gender)
            ON CONFLICT (user_id)
            DO UPDATE SET birthday = excluded.birthday, gender = excluded.gender
            """
        ),
        {"user_id": user_id, "birthday": birthday.isoformat(), "gender": gender},
    )
    db.execute(
        text(
            """
            INSERT INTO friend_preferences (user_id, city, zip_code, lat, lng, mile_radius, friend_gender, friend_age)
            VALUES (:user_id, :city, :zip_code, :lat, :lng, :mile_radius, :friend_gender, :friend_age)
            ON CONFLICT (user_id)
            DO UPDATE SET
              city = excluded.city,
              zip_code = excluded.zip_code,
              lat = excluded.lat,
              lng = excluded.lng,
              mile_radius = excluded.mile_radius,
              friend_gender = excluded.friend_gender,
              friend_age = excluded.friend_age
            """
        ),
        {
            "user_id": user_id,
            "city": city,
            "zip_code": zip_code,
            "lat": lat,
            "lng": lng,
            "mile_radius": mile_radius,
            "friend_gender": json.dumps(sorted(g.value for g in Gender)),
            "friend_age": "18-60",
        },
    )


def _upsert_dislikes(db, user_id: int, picks: dict[int, int]) -> None:
    db.execute(
        text(
            """
            INSERT INTO disliked_selections (user_id, category_id, selection_id)
            VALUES (:user_id, :category_id, :selection_id)
            ON CONFLICT (user_id, category_id)
            DO UPDATE SET selection_id = excluded.selection_id
            """
        ),
        [{"user_id": user_id, "category_id": c, "selection_id": s} for c, s in sorted(picks.items())],
    )


def seed_demo_data(
    db,
    n_users: int = 20,
    seed: int = 42,
    city: str = "Irvine",
    reset: bool = False,
    category_count: int = DISLIKE_CATEGORY_COUNT,
    max_group_id: int = DEMO_AUTO_ACCEPT_MAX_GROUP_ID,
) -> dict[str, Any]:
    """Create or refresh the demo population around one city.

    Demo users cycle through group ids ``1..max_group_id`` so every seeded
    pair starts out accepted, and all of them accept any gender aged 18-60
    within a few miles, so each one has a full match list.
    """
    if city not in CITIES:
        raise ValueError(f"unknown demo city {city!r}; choose from {sorted(CITIES)}")
    if n_users < 0:
        raise ValueError("n_users must not be negative")

    rng = random.Random(seed)
    if reset:
        _reset_demo_data(db)

    _, center_lat, center_lng = CITIES[city]
    genders = [g.value for g in Gender]
    user_ids: list[int] = []
    for i in range(n_users):
        user_id = _upsert_demo_user(
            db,
            email=f"demo_{city.lower()}_{i + 1}@hatemates.example",
            first_name=f"{FIRST_NAMES[i % len(FIRST_NAMES)]} {i + 1}",
            demo_group_id=(i % max_group_id) + 1,
        )
        _upsert_match_info(
            db,
            user_id,
            birthday=date(1980, 1, 1) + timedelta(days=rng.randint(0, 365 * 22)),
            gender=rng.choice(genders),
            city=city,
            lat=round(center_lat + rng.uniform(-0.02, 0.02), 6),
            lng=round(center_lng + rng.uniform(-0.02, 0.02), 6),
            mile_radius=rng.choice(MILE_RADIUS_OPTIONS),
        )
        _upsert_dislikes(db, user_id, {c: rng.randint(1, SELECTIONS_PER_CATEGORY) for c in range(1, category_count + 1)})
        user_ids.append(user_id)
    db.commit()

    return {
        "city": city,
        "users": len(user_ids),
        "first_user_id": min(user_ids) if user_ids else None,
        "reset": reset,
    }
