import json
from datetime import datetime, timedelta

import pytest

from core.errors import ActiveProposalExists, ProposalNotFound, StatusTransitionConflict
from core.proposal import ProposalStore
from models.proposal import MovementProposal, Vote


def make_proposal(proposal_id="p1", session_id="s1", created_at=None):
    return MovementProposal(
        id=proposal_id,
        session_id=session_id,
        proposer_id="pc1",
        target_location_id="forest",
        movement_method="ride",
        reason="test",
        estimated_time=15,
        created_at=created_at or datetime.now(),
        tags=["scouting"],
    )


def make_vote(proposal_id="p1", voter_id="pc1", choice="approve", vote_id="v1", timestamp=None):
    return Vote(
        id=vote_id,
        proposal_id=proposal_id,
        voter_id=voter_id,
        voter_type="human",
        choice=choice,
        reason="",
        timestamp=timestamp or datetime.now(),
    )


def test_create_records_proposer_vote():
    store = ProposalStore()
    store.create_proposal(make_proposal(), make_vote())

    votes = store.list_votes("p1")
    assert len(votes) == 1
    assert votes[0].voter_id == "pc1"
    assert votes[0].choice == "approve"


def test_second_active_proposal_in_session_is_rejected():
    store = ProposalStore()
    store.create_proposal(make_proposal("p1"), make_vote("p1"))

    with pytest.raises(ActiveProposalExists):
        store.create_proposal(make_proposal("p2"), make_vote("p2"))

    assert store.get_proposal("p2") is None


def test_other_sessions_are_independent():
    store = ProposalStore()
    store.create_proposal(make_proposal("p1", "s1"), make_vote("p1"))
    store.create_proposal(make_proposal("p2", "s2"), make_vote("p2"))

    assert store.get_active_proposal("s2").id == "p2"


def test_new_proposal_allowed_after_resolution():
    store = ProposalStore()
    store.create_proposal(make_proposal("p1"), make_vote("p1"))
    store.set_status("p1", "rejected")

    store.create_proposal(make_proposal("p2"), make_vote("p2"))

    assert store.get_active_proposal("s1").id == "p2"


def test_upsert_keeps_single_effective_vote():
    store = ProposalStore()
    store.create_proposal(make_proposal(), make_vote())
    now = datetime.now()
    store.upsert_vote(make_vote(voter_id="pc2", choice="approve", vote_id="a", timestamp=now))
    store.upsert_vote(make_vote(voter_id="pc2", choice="reject", vote_id="b", timestamp=now + timedelta(seconds=1)))

    pc2_votes = [v for v in store.list_votes("p1") if v.voter_id == "pc2"]
    assert len(pc2_votes) == 1
    assert pc2_votes[0].choice == "reject"
    assert pc2_votes[0].id == "a"


def test_upsert_vote_for_unknown_proposal():
    store = ProposalStore()

    with pytest.raises(ProposalNotFound):
        store.upsert_vote(make_vote(proposal_id="missing"))


def test_compare_and_set_status():
    store = ProposalStore()
    store.create_proposal(make_proposal(), make_vote())

    store.set_status("p1", "approved", expected="voting")
    with pytest.raises(StatusTransitionConflict) as excinfo:
        store.set_status("p1", "rejected", expected="voting")

    assert excinfo.value.actual == "approved"
    assert store.get_proposal("p1").status == "approved"


def test_invalid_status_value():
    store = ProposalStore()
    store.create_proposal(make_proposal(), make_vote())

    with pytest.raises(ValueError):
        store.set_status("p1", "paused")


def test_json_persistence_round_trip(tmp_path):
    store = ProposalStore(str(tmp_path))
    store.create_proposal(make_proposal(), make_vote())
    store.upsert_vote(make_vote(voter_id="pc2", choice="abstain", vote_id="v2"))

    reloaded = ProposalStore(str(tmp_path))

    proposal = reloaded.get_proposal("p1")
    assert proposal.tags == ["scouting"]
    assert proposal.status == "voting"
    assert {v.voter_id: v.choice for v in reloaded.list_votes("p1")} == {"pc1": "approve", "pc2": "abstain"}


def test_reload_marks_interrupted_execution_failed(tmp_path):
    store = ProposalStore(str(tmp_path))
    store.create_proposal(make_proposal(), make_vote())
    store.set_status("p1", "executing")

    reloaded = ProposalStore(str(tmp_path))

    assert reloaded.get_proposal("p1").status == "failed"
    with open(tmp_path / "proposals.json", encoding="utf-8") as f:
        assert json.load(f)[0]["status"] == "executing"
