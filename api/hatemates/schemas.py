from typing import Any

from pydantic import BaseModel, Field

from .services.scoring import MatchTier


class PairIn(BaseModel):
    user_id1: int = Field(gt=0)
    user_id2: int = Field(gt=0)
    match_type: MatchTier


class PairSelectionIn(BaseModel):
    user_id1: int = Field(gt=0)
    user_id2: int = Field(gt=0)
    category_id: int = Field(gt=0)
    selection_id: int = Field(gt=0)


class ReconcileRequest(BaseModel):
    candidates: list[PairIn] = Field(default_factory=list)
    shared_dislikes: list[PairSelectionIn] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    other_user_id: int = Field(gt=0)
    status: str = Field(min_length=1)


class SelectionOut(BaseModel):
    category_id: int
    selection_id: int


class MatchPairOut(BaseModel):
    user_id1: int
    user_id2: int
    match_type: MatchTier
    user1_status: str
    user2_status: str
    match_status: str
    match_selections: list[SelectionOut] = Field(default_factory=list)
    age: int | None = None
    mileage: float | None = None


class CandidateOut(BaseModel):
    user_id: int
    age: int
    mileage: float
    gender: str
    match_type: MatchTier
    shared_dislikes: int


class CandidatesResponse(BaseModel):
    candidates: list[CandidateOut]
    shared_dislikes: list[PairSelectionIn]
    message: str | None = None


class MatchesResponse(BaseModel):
    matches: list[dict[str, Any]]
    message: str | None = None
