from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from hatemates import engine, repo
from hatemates.errors import StoreFailure, ValidationError
from hatemates.services.reconciliation import MatchProposal
from hatemates.services.scoring import MatchTier, PairSelection
from hatemates.services.state_machine import ACCEPTED, PENDING, REJECTED

from conftest import BASE_LNG, FIVE_KM_NORTH, add_user, move_user, pair_row

TODAY = date(2026, 1, 15)


def _two_nearby_users(factory, **second):
    add_user(factory, 1, dislikes={1: 1, 2: 2, 3: 3})
    add_user(factory, 2, lat=FIVE_KM_NORTH, dislikes={1: 1, 2: 2, 3: 9}, **second)


def test_compute_candidates_tiers_by_shared_dislikes(session_factory):
    _two_nearby_users(session_factory)
    out = engine.compute_candidates(1, today=TODAY)

    assert [c.candidate.user_id for c in out.candidates] == [2]
    scored = out.candidates[0]
    assert scored.overlap == 2
    assert scored.tier is MatchTier.GOOD
    assert scored.candidate.age == 31
    assert scored.candidate.mileage == 3.1
    assert out.shared_dislikes == [PairSelection(1, 2, 1, 1), PairSelection(1, 2, 2, 2)]


def test_compute_candidates_without_match_info_is_none(session_factory):
    add_user(session_factory, 1, with_preferences=False)
    assert engine.compute_candidates(1, today=TODAY) is None
    assert engine.compute_candidates(42, today=TODAY) is None
    assert engine.has_match_info(1) == {"has_profile": True, "has_preferences": False, "ready": False}


def test_compute_candidates_skips_unusable_pool_rows(session_factory):
    _two_nearby_users(session_factory)
    add_user(session_factory, 3, friend_age="")
    out = engine.compute_candidates(1, today=TODAY)
    assert [c.candidate.user_id for c in out.candidates] == [2]


def test_compute_candidates_empty_pool(session_factory):
    add_user(session_factory, 1)
    out = engine.compute_candidates(1, today=TODAY)
    assert out.is_empty
    assert out.shared_dislikes == []


def test_reconcile_creates_pending_pair_with_evidence(session_factory):
    _two_nearby_users(session_factory)
    out = engine.compute_candidates(1, today=TODAY)
    rows = engine.reconcile(1, out.candidates, out.shared_dislikes)

    assert len(rows) == 1
    row = rows[0]
    assert (row["user_id1"], row["user_id2"]) == (1, 2)
    assert row["match_type"] == "good"
    assert (row["user1_status"], row["user2_status"], row["match_status"]) == (PENDING, PENDING, PENDING)
    assert row["match_selections"] == [
        {"category_id": 1, "selection_id": 1},
        {"category_id": 2, "selection_id": 2},
    ]


def test_reconcile_twice_is_idempotent(session_factory):
    _two_nearby_users(session_factory)
    out = engine.compute_candidates(1, today=TODAY)
    first = engine.reconcile(1, out.candidates, out.shared_dislikes)
    second = engine.reconcile(1, out.candidates, out.shared_dislikes)
    assert first == second


def test_reconcile_from_the_other_side_hits_the_same_pair(session_factory):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)
    engine.update_status_for_user(1, 2, "accept")

    engine.refresh_matches(2, today=TODAY)
    row = pair_row(session_factory, 1, 2)
    assert (row["user1_status"], row["user2_status"], row["match_status"]) == (ACCEPTED, PENDING, PENDING)
    assert row["match_type"] == "good"


def test_moving_away_retires_pair_and_keeps_statuses(session_factory):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)
    engine.update_status_for_user(1, 2, "accept")

    move_user(session_factory, 2, 45.0, BASE_LNG)
    out = engine.refresh_matches(1, today=TODAY)

    assert out["candidates"] == []
    pair = out["pairs"][0]
    assert pair["match_type"] == "no longer a match"
    assert (pair["user1_status"], pair["user2_status"], pair["match_status"]) == (ACCEPTED, PENDING, PENDING)
    assert pair["match_selections"] == []
    assert pair["mileage"] is None
    assert engine.list_pending_matches(2, today=TODAY) == []


def test_refresh_without_match_info_is_none(session_factory):
    add_user(session_factory, 1, with_preferences=False)
    assert engine.refresh_matches(1, today=TODAY) is None


def test_full_acceptance_flow(session_factory):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)

    pending = engine.list_pending_matches(1, today=TODAY)
    assert [p["other_user_id"] for p in pending] == [2]
    assert pending[0]["age"] == 31
    assert pending[0]["mileage"] == 3.1
    assert len(pending[0]["match_selections"]) == 2

    row = engine.update_status_for_user(1, 2, "accept")
    assert (row["user1_status"], row["match_status"]) == (ACCEPTED, PENDING)
    assert engine.list_pending_matches(1, today=TODAY) == []
    assert [p["other_user_id"] for p in engine.list_pending_matches(2, today=TODAY)] == [1]

    row = engine.update_status_for_user(2, 1, "accepted")
    assert row["match_status"] == ACCEPTED

    accepted = engine.list_accepted_matches(1, today=TODAY)
    assert [a["other_user_id"] for a in accepted] == [2]
    assert accepted[0]["first_name"] == "user2"

    info = engine.match_map_info(2, today=TODAY)
    assert info["current_user_location"] == {"lat": FIVE_KM_NORTH, "lng": BASE_LNG, "mile_radius": 5.0}
    assert [m["other_user_id"] for m in info["match_list"]] == [1]
    assert info["match_list"][0]["mileage"] == 3.1


def test_decline_is_terminal(session_factory):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)

    assert engine.update_pair_status(1, 2, "user2", "decline")["match_status"] == REJECTED
    row = engine.update_pair_status(1, 2, "user2", "accept")
    assert (row["user2_status"], row["match_status"]) == (REJECTED, REJECTED)
    assert engine.update_pair_status(1, 2, 1, "accept")["match_status"] == REJECTED


def test_update_pair_status_validates_input(session_factory):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)

    assert engine.update_pair_status(1, 3, 1, "accept") is None
    with pytest.raises(ValidationError):
        engine.update_pair_status(2, 1, 1, "accept")
    with pytest.raises(ValidationError):
        engine.update_pair_status(1, 2, "user3", "accept")
    with pytest.raises(ValidationError):
        engine.update_pair_status(1, 2, 1, "pending")


def test_seeded_demo_users_are_connected_on_first_run(session_factory):
    add_user(session_factory, 1, demo_group_id=2, dislikes={1: 1})
    add_user(session_factory, 2, demo_group_id=3, dislikes={1: 1})
    add_user(session_factory, 3, dislikes={1: 1})

    out = engine.refresh_matches(1, today=TODAY)
    assert [(p["user_id1"], p["user_id2"]) for p in out["pairs"]] == [(1, 2)]
    assert out["pairs"][0]["match_status"] == ACCEPTED


def test_demo_visitor_still_has_to_answer(session_factory):
    add_user(session_factory, 2, demo_group_id=3, dislikes={1: 1})
    add_user(session_factory, 7, demo_group_id=40, dislikes={1: 1})

    engine.refresh_matches(7, today=TODAY)
    row = pair_row(session_factory, 2, 7)
    assert (row["user1_status"], row["user2_status"], row["match_status"]) == (ACCEPTED, PENDING, PENDING)
    assert [p["other_user_id"] for p in engine.list_pending_matches(7, today=TODAY)] == [2]


def test_reconcile_rejects_candidate_outside_population(session_factory):
    add_user(session_factory, 1, dislikes={1: 1})
    add_user(session_factory, 2, demo_group_id=1, dislikes={1: 1})

    with pytest.raises(ValidationError):
        engine.reconcile(1, [MatchProposal(2, None, MatchTier.GOOD)], [PairSelection(1, 2, 1, 1)])
    with pytest.raises(ValidationError):
        engine.reconcile(1, [MatchProposal(9, None, MatchTier.GOOD)], [PairSelection(1, 9, 1, 1)])
    assert pair_row(session_factory, 1, 2) is None


def test_reconcile_rejects_tier_that_disagrees_with_evidence(session_factory):
    _two_nearby_users(session_factory)
    with pytest.raises(ValidationError):
        engine.reconcile(1, [MatchProposal(2, None, MatchTier.PERFECT)], [PairSelection(1, 2, 1, 1)])
    assert pair_row(session_factory, 1, 2) is None


def test_store_errors_surface_as_store_failure(monkeypatch):
    class _BrokenSession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(engine, "SessionLocal", lambda: _BrokenSession())
    with pytest.raises(StoreFailure) as exc_info:
        engine.compute_candidates(1, today=TODAY)
    assert exc_info.value.operation == "compute_candidates"
    with pytest.raises(StoreFailure):
        engine.reconcile(1, [], [])


def test_concurrent_status_change_is_reported(session_factory, monkeypatch):
    _two_nearby_users(session_factory)
    engine.refresh_matches(1, today=TODAY)
    monkeypatch.setattr(repo, "update_side_status", lambda *args, **kwargs: 0)

    with pytest.raises(StoreFailure):
        engine.update_pair_status(1, 2, 1, "accept")
    assert pair_row(session_factory, 1, 2)["user1_status"] == PENDING


def test_failed_write_leaves_nothing_behind(session_factory, monkeypatch):
    _two_nearby_users(session_factory)
    out = engine.compute_candidates(1, today=TODAY)

    def _broken(*args, **kwargs):
        raise OperationalError("INSERT INTO match_selections", {}, Exception("connection lost"))

    monkeypatch.setattr(repo, "replace_match_selections", _broken)
    with pytest.raises(StoreFailure):
        engine.reconcile(1, out.candidates, out.shared_dislikes)
    assert pair_row(session_factory, 1, 2) is None


def test_dislikes_beyond_configured_categories_do_not_count(session_factory):
    picks = {c: c for c in range(1, 12)}
    add_user(session_factory, 1, dislikes=picks)
    add_user(session_factory, 2, lat=FIVE_KM_NORTH, dislikes=picks)

    out = engine.compute_candidates(1, today=TODAY)
    assert out.candidates[0].overlap == 10
    assert out.candidates[0].tier is MatchTier.PERFECT
    assert len(out.shared_dislikes) == 10
