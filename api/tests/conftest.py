import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hatemates import engine as match_engine
from hatemates import models  # noqa: F401
from hatemates.auth import deps as auth_deps
from hatemates.database import Base

# Two points 5.0 km apart on the same meridian.
BASE_LAT = 40.0
BASE_LNG = -74.0
FIVE_KM_NORTH = 40.04492


@pytest.fixture
def session_factory(monkeypatch):
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    factory = sessionmaker(bind=eng, autoflush=False, autocommit=False, future=True)
    monkeypatch.setattr(match_engine, "SessionLocal", factory)
    monkeypatch.setattr(auth_deps, "SessionLocal", factory)
    yield factory
    eng.dispose()


def add_user(
    factory,
    user_id: int,
    *,
    demo_group_id: int | None = None,
    birthday: str = "1994-06-01",
    gender: str = "female",
    lat: float = BASE_LAT,
    lng: float = BASE_LNG,
    mile_radius: float = 5,
    friend_gender=("female", "male", "non-binary"),
    friend_age: str = "18-60",
    dislikes: dict[int, int] | None = None,
    with_preferences: bool = True,
) -> None:
    with factory() as db:
        db.execute(
            text(
                "INSERT INTO users (user_id, first_name, email, demo_group_id) "
                "VALUES (:user_id, :first_name, :email, :demo_group_id)"
            ),
            {"user_id": user_id, "first_name": f"user{user_id}", "email": f"user{user_id}@example.com", "demo_group_id": demo_group_id},
        )
        db.execute(
            text("INSERT INTO user_infos (user_id, birthday, gender) VALUES (:user_id, :birthday, :gender)"),
            {"user_id": user_id, "birthday": birthday, "gender": gender},
        )
        if with_preferences:
            db.execute(
                text(
                    """
                    INSERT INTO friend_preferences (user_id, city, zip_code, lat, lng, mile_radius, friend_gender, friend_age)
                    VALUES (:user_id, 'Testville', '00000', :lat, :lng, :mile_radius, :friend_gender, :friend_age)
                    """
                ),
                {
                    "user_id": user_id,
                    "lat": lat,
                    "lng": lng,
                    "mile_radius": mile_radius,
                    "friend_gender": friend_gender if isinstance(friend_gender, str) else json.dumps(list(friend_gender)),
                    "friend_age": friend_age,
                },
            )
        for category_id, selection_id in (dislikes or {}).items():
            db.execute(
                text(
                    "INSERT INTO disliked_selections (user_id, category_id, selection_id) "
                    "VALUES (:user_id, :category_id, :selection_id)"
                ),
                {"user_id": user_id, "category_id": category_id, "selection_id": selection_id},
            )
        db.commit()


def move_user(factory, user_id: int, lat: float, lng: float) -> None:
    with factory() as db:
        db.execute(
            text("UPDATE friend_preferences SET lat = :lat, lng = :lng WHERE user_id = :user_id"),
            {"user_id": user_id, "lat": lat, "lng": lng},
        )
        db.commit()


def pair_row(factory, user_id1: int, user_id2: int) -> dict | None:
    with factory() as db:
        row = db.execute(
            text("SELECT * FROM match_pairs WHERE user_id1 = :a AND user_id2 = :b"),
            {"a": user_id1, "b": user_id2},
        ).mappings().first()
    return dict(row) if row else None
