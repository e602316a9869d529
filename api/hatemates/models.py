from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from .database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    demo_group_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserInfo(Base):
    __tablename__ = "user_infos"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    birthday = Column(Date, nullable=False)
    gender = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    contact = Column(String, nullable=True)


class FriendPreference(Base):
    __tablename__ = "friend_preferences"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    city = Column(String, nullable=True)
    zip_code = Column(String, nullable=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    mile_radius = Column(Float, nullable=False)
    # JSON array of genders, e.g. '["female", "non-binary"]'
    friend_gender = Column(String, nullable=False)
    friend_age = Column(String, nullable=False)


class DislikedSelection(Base):
    __tablename__ = "disliked_selections"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(Integer, primary_key=True)
    selection_id = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("category_id > 0", name="ck_disliked_category_positive"),
        CheckConstraint("selection_id > 0", name="ck_disliked_selection_positive"),
    )


class MatchPair(Base):
    __tablename__ = "match_pairs"

    user_id1 = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    user_id2 = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    match_type = Column(String, nullable=False)
    user1_status = Column(String, nullable=False, default="pending")
    user2_status = Column(String, nullable=False, default="pending")
    match_status = Column(String, nullable=False, default="pending")
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("user_id1 < user_id2", name="ck_match_pairs_canonical_order"),
        Index("idx_match_pairs_user_id2", "user_id2"),
    )


class MatchSelection(Base):
    __tablename__ = "match_selections"

    user_id1 = Column(Integer, primary_key=True)
    user_id2 = Column(Integer, primary_key=True)
    category_id = Column(Integer, primary_key=True)
    selection_id = Column(Integer, primary_key=True)

    __table_args__ = (
        CheckConstraint("user_id1 < user_id2", name="ck_match_selections_canonical_order"),
        Index("idx_match_selections_user_id2", "user_id2"),
    )
