from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import engine
from ..auth.deps import get_current_user
from ..schemas import CandidateOut, CandidatesResponse, MatchesResponse, MatchPairOut, ReconcileRequest, StatusUpdateRequest
from ..services.reconciliation import MatchProposal
from ..services.scoring import PairKey, PairSelection

router = APIRouter()

NO_CANDIDATES_MESSAGE = "no potential matches exist"


def _candidate_out(scored) -> CandidateOut:
    c = scored.candidate
    return CandidateOut(
        user_id=c.user_id,
        age=c.age,
        mileage=c.mileage,
        gender=c.gender.value,
        match_type=scored.tier,
        shared_dislikes=scored.overlap,
    )


def _selection_dicts(selections: list[PairSelection]) -> list[dict[str, int]]:
    return [
        {"user_id1": s.user_id1, "user_id2": s.user_id2, "category_id": s.category_id, "selection_id": s.selection_id}
        for s in selections
    ]


@router.get("/users/me/match-info")
def get_match_info(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, bool]:
    return engine.has_match_info(current_user["id"])


@router.get("/matches/candidates", response_model=CandidatesResponse)
def get_candidates(current_user: dict[str, Any] = Depends(get_current_user)) -> CandidatesResponse:
    computation = engine.compute_candidates(current_user["id"])
    if computation is None or computation.is_empty:
        return CandidatesResponse(candidates=[], shared_dislikes=[], message=NO_CANDIDATES_MESSAGE)
    return CandidatesResponse(
        candidates=[_candidate_out(c) for c in computation.candidates],
        shared_dislikes=_selection_dicts(computation.shared_dislikes),
    )


@router.post("/matches/reconcile", response_model=list[MatchPairOut])
def post_reconcile(payload: ReconcileRequest, current_user: dict[str, Any] = Depends(get_current_user)) -> list[dict[str, Any]]:
    user_id = current_user["id"]
    proposals = []
    for pair in payload.candidates:
        key = PairKey.strict(pair.user_id1, pair.user_id2)
        proposals.append(MatchProposal(other_user_id=key.other(user_id), other_demo_group_id=None, tier=pair.match_type))
    shared = [PairSelection(s.user_id1, s.user_id2, s.category_id, s.selection_id) for s in payload.shared_dislikes]
    return engine.reconcile(user_id, proposals, shared)


@router.post("/matches/refresh")
def post_refresh(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    out = engine.refresh_matches(current_user["id"])
    if out is None:
        return {"candidates": [], "matches": [], "message": "Add your profile and friend preferences to get matches"}
    return {
        "candidates": [_candidate_out(c).model_dump(mode="json") for c in out["candidates"]],
        "matches": [MatchPairOut(**p).model_dump(mode="json") for p in out["pairs"]],
        "message": None if out["candidates"] else NO_CANDIDATES_MESSAGE,
    }


@router.get("/matches/pending", response_model=MatchesResponse)
def get_pending_matches(current_user: dict[str, Any] = Depends(get_current_user)) -> MatchesResponse:
    rows = engine.list_pending_matches(current_user["id"])
    return MatchesResponse(matches=rows, message=None if rows else "No matches are waiting on you")


@router.get("/matches/accepted", response_model=MatchesResponse)
def get_accepted_matches(current_user: dict[str, Any] = Depends(get_current_user)) -> MatchesResponse:
    rows = engine.list_accepted_matches(current_user["id"])
    return MatchesResponse(matches=rows, message=None if rows else "No accepted matches yet")


@router.get("/matches/map")
def get_match_map(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    info = engine.match_map_info(current_user["id"])
    if info is None:
        raise HTTPException(status_code=404, detail="No location on file")
    return info


@router.post("/matches/status", response_model=MatchPairOut)
def post_match_status(payload: StatusUpdateRequest, current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    row = engine.update_status_for_user(current_user["id"], payload.other_user_id, payload.status)
    if row is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return row
