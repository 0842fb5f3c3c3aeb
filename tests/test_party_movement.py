import pytest

from core.party_movement import estimate_movement_time

from conftest import FixedPolicy, ai_pc, create, make_service, npc, pc


@pytest.mark.parametrize("method, minutes", [
    ("walk", 30), ("run", 21), ("ride", 15), ("fly", 9), ("teleport", 3), ("vehicle", 12),
])
def test_estimate_movement_time(method, minutes):
    assert estimate_movement_time(method) == pytest.approx(minutes)


def test_create_proposal_records_proposer_vote(service):
    data = create(service, movement_method="fly")

    assert data["status"] == "voting"
    assert data["estimated_time"] == pytest.approx(9.0)
    assert data["estimated_cost"] == {"action_points": 1}

    summary = service.get_voting_summary(data["id"])["data"]
    assert summary["votes"] == {"approve": 1, "reject": 0, "abstain": 0}
    proposer = [d for d in summary["voter_details"] if d["voter_id"] == "pc1"][0]
    assert proposer["is_proposer"]
    assert proposer["vote_reason"] == "提案者による自動賛成"


def test_second_active_proposal_is_refused(service):
    first = create(service)

    result = service.create_proposal("s1", "pc2", "castle", "walk", "城へ")

    assert result == {
        "success": False,
        "error": result["error"],
        "code": "ACTIVE_PROPOSAL_EXISTS",
    }
    assert first["id"] in result["error"]


@pytest.mark.parametrize("kwargs", [
    {"movement_method": "swim"},
    {"urgency": "critical"},
    {"difficulty": "impossible"},
    {"target_location_id": ""},
    {"voting_deadline": "not a date"},
])
def test_invalid_create_request(service, kwargs):
    params = {
        "session_id": "s1",
        "proposer_id": "pc1",
        "target_location_id": "forest",
        "movement_method": "walk",
        "reason": "test",
    }
    params.update(kwargs)

    result = service.create_proposal(**params)

    assert not result["success"]
    assert result["code"] == "INVALID_REQUEST"
    assert service.store.get_active_proposal("s1") is None


def test_solo_party_is_approved_immediately():
    service = make_service([pc("pc1"), npc("npc1")])

    data = create(service)

    assert service.get_proposal(data["id"])["data"]["status"] == "approved"
    assert data["id"] not in service.scheduler.tasks


def test_unknown_proposal_envelope(service):
    result = service.get_proposal("missing")

    assert not result["success"]
    assert result["code"] == "PROPOSAL_NOT_FOUND"


def test_vote_after_approval_is_closed(service):
    data = create(service)
    service.cast_vote(data["id"], "pc2", "approve")

    result = service.cast_vote(data["id"], "pc3", "reject")

    assert result["code"] == "VOTING_CLOSED"


def test_cancel_proposal_twice(service):
    data = create(service)

    first = service.cancel_proposal(data["id"], "気が変わった")
    second = service.cancel_proposal(data["id"])

    assert first["success"]
    assert first["data"]["status"] == "rejected"
    assert second["code"] == "VOTING_CLOSED"
    # キャンセル後は新しい提案を作れる
    create(service, target_location_id="castle")


def test_execute_unapproved_returns_not_approved(service):
    data = create(service)

    result = service.execute_movement(data["id"])

    assert result["code"] == "NOT_APPROVED"


def test_partial_failure_envelope():
    service = make_service([pc("pc1"), pc("pc2", location=None)])
    data = create(service)
    assert service.get_proposal(data["id"])["data"]["status"] == "approved"

    result = service.execute_movement(data["id"])

    assert not result["success"]
    assert result["code"] == "PARTIAL_MOVEMENT_FAILURE"
    assert service.get_proposal(data["id"])["data"]["status"] == "failed"


def test_end_to_end_state_and_history(service):
    data = create(service)
    service.cast_vote(data["id"], "pc2", "approve", "行こう")

    result = service.execute_movement(data["id"])
    state = service.get_party_movement_state("s1")["data"]

    assert result["success"]
    assert result["data"]["turns_advanced"] == 1
    assert state["current_location_id"] == "forest"
    assert state["active_proposal"] is None
    assert state["voting_summary"] is None
    assert [m["character_id"] for m in state["party_members"]] == ["pc1", "pc2", "pc3"]
    assert len(state["recent_movements"]) == 1
    assert state["recent_movements"][0]["success"] is True

    history = service.get_movement_history("s1")["data"]
    assert history[0]["proposal_id"] == data["id"]


def test_state_includes_active_proposal(service):
    data = create(service)

    state = service.get_party_movement_state("s1")["data"]

    assert state["active_proposal"]["id"] == data["id"]
    assert state["voting_summary"]["required_approvals"] == 2
    assert state["settings"]["voting_system"] == "majority"


def test_state_for_unknown_session(service):
    result = service.get_party_movement_state("nowhere")

    assert result["code"] == "SESSION_NOT_FOUND"


def test_force_execute_cancels_ai_voting():
    policy = FixedPolicy("reject")
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), ai_pc("ai1")], policy=policy)
    data = create(service)

    result = service.execute_movement(data["id"], force_execute=True)

    assert result["success"]
    assert data["id"] not in service.scheduler.tasks
    assert policy.calls == []


def test_mixed_voting_status():
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), ai_pc("ai1")], policy=FixedPolicy())
    data = create(service)

    status = service.get_mixed_voting_status(data["id"])["data"]

    stats = status["real_time_stats"]
    assert status["proposal_status"] == "voting"
    assert stats["human_voting_progress"] == pytest.approx(100 / 3)
    assert stats["ai_voting_progress"] == 0
    assert stats["pending_human_voters"] == ["PC2", "PC3"]
    assert stats["processing_ai_voters"] == ["AI1"]
    voting_stats = status["voting_summary"]["voting_statistics"]
    assert voting_stats["human_voters"]["voted"] == 1
    assert voting_stats["ai_voters"]["pending"] == 1
    service.shutdown()


def test_settings_defaults_and_partial_update(service):
    defaults = service.get_consensus_settings("s1")["data"]
    assert defaults["voting_system"] == "majority"
    assert defaults["turn_based_movement_cost"] == 1

    updated = service.update_consensus_settings("s1", {"turn_based_movement_cost": 2})["data"]

    assert updated["turn_based_movement_cost"] == 2
    assert updated["voting_system"] == "majority"
    assert create(service)["estimated_cost"] == {"action_points": 2}


def test_unknown_setting_is_rejected(service):
    result = service.update_consensus_settings("s1", {"quorum": 3})

    assert result["code"] == "INVALID_REQUEST"


def test_unanimous_setting_changes_required_approvals(service):
    service.update_consensus_settings("s1", {"voting_system": "unanimous"})
    data = create(service)

    summary = service.cast_vote(data["id"], "pc2", "approve")["data"]

    assert summary["required_approvals"] == 3
    assert not summary["consensus_reached"]


def test_bad_settings_update_does_not_break_session(service):
    result = service.update_consensus_settings("s1", {"turn_based_movement_cost": None})

    assert result["code"] == "INVALID_REQUEST"
    assert create(service)["estimated_cost"] == {"action_points": 1}


def test_misspelled_voting_system_is_refused(service):
    result = service.update_consensus_settings("s1", {"voting_system": "Unanimous"})

    assert result["code"] == "INVALID_REQUEST"
    assert service.get_consensus_settings("s1")["data"]["voting_system"] == "majority"


def test_locks_released_after_execution_and_cancel(service):
    executed = create(service)
    service.cast_vote(executed["id"], "pc2", "approve")
    service.execute_movement(executed["id"])

    cancelled = create(service, target_location_id="castle")
    service.cancel_proposal(cancelled["id"])

    assert service.voting._locks == {}


def test_bogus_ids_do_not_grow_lock_table(service):
    for i in range(50):
        assert service.cast_vote(f"bogus-{i}", "pc2", "approve")["code"] == "PROPOSAL_NOT_FOUND"
        assert service.cancel_proposal(f"bogus-{i}")["code"] == "PROPOSAL_NOT_FOUND"

    assert service.voting._locks == {}
