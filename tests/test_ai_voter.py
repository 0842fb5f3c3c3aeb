from collections import deque

import pytest

from core.ai_voter import ClaudeVotePolicy, RuleBasedVotePolicy
from core.errors import AIVoteGenerationError
from models.party import PartyMember
from models.proposal import MovementProposal

from conftest import FixedPolicy, ai_pc, create, make_service, pc


class SequenceRandom:
    """random() が決められた値を順に返す乱数生成器"""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)

    def uniform(self, a, b):
        return a


class StaticCharacters:
    def get_character(self, character_id):
        return {"name": "リナ", "description": "慎重な魔法使い"}


class BrokenCharacters:
    def get_character(self, character_id):
        raise RuntimeError("character store unavailable")


class MissingCharacters:
    def get_character(self, character_id):
        return None


class StubClaude:
    model = "claude-test"

    def __init__(self, result):
        self.result = result

    def query_json(self, prompt, system_prompt=""):
        return self.result


def proposal(urgency="normal"):
    return MovementProposal(
        id="p1",
        session_id="s1",
        proposer_id="pc1",
        target_location_id="forest",
        movement_method="walk",
        reason="薬草を探しに行く",
        estimated_time=30,
        urgency=urgency,
    )


def member():
    return PartyMember.from_dict(ai_pc("ai1"))


def test_high_urgency_approves_with_high_confidence():
    policy = RuleBasedVotePolicy(StaticCharacters(), rng=SequenceRandom([0.9]))

    decision = policy.decide(proposal("high"), member())

    assert decision.choice == "approve"
    assert decision.confidence == 90
    assert decision.character_name == "リナ"
    assert decision.influencing_factors["character_personality"] == "慎重な魔法使い"


def test_low_urgency_may_abstain():
    policy = RuleBasedVotePolicy(StaticCharacters(), rng=SequenceRandom([0.1, 0.9]))

    decision = policy.decide(proposal("low"), member())

    assert decision.choice == "abstain"
    assert decision.confidence == 65


def test_low_urgency_otherwise_approves():
    policy = RuleBasedVotePolicy(StaticCharacters(), rng=SequenceRandom([0.7, 0.9]))

    assert policy.decide(proposal("low"), member()).choice == "approve"


def test_occasional_reject_overrides_urgency():
    policy = RuleBasedVotePolicy(StaticCharacters(), rng=SequenceRandom([0.01]))

    decision = policy.decide(proposal("high"), member())

    assert decision.choice == "reject"
    assert decision.reason.startswith("リナ:")


@pytest.mark.parametrize("provider", [BrokenCharacters(), MissingCharacters()])
def test_character_lookup_failure_raises(provider):
    policy = RuleBasedVotePolicy(provider, rng=SequenceRandom([0.9]))

    with pytest.raises(AIVoteGenerationError):
        policy.decide(proposal(), member())


def test_claude_policy_uses_returned_choice():
    policy = ClaudeVotePolicy(StaticCharacters(), StubClaude({"choice": "reject", "reason": "危険すぎる", "confidence": 70}))

    decision = policy.decide(proposal(), member())

    assert decision.choice == "reject"
    assert decision.reason == "リナ: 危険すぎる"
    assert decision.confidence == 70
    assert decision.influencing_factors["model"] == "claude-test"


def test_claude_policy_rejects_unusable_response():
    policy = ClaudeVotePolicy(StaticCharacters(), StubClaude({}))

    with pytest.raises(AIVoteGenerationError):
        policy.decide(proposal(), member())


# ============================================================
# スケジューラ
# ============================================================
def test_ai_agents_vote_in_background():
    policy = FixedPolicy("approve")
    service = make_service([pc("pc1"), pc("pc2"), ai_pc("ai1"), ai_pc("ai2")], policy=policy)
    data = create(service)

    # 提案直後はまだAIは投票していない
    assert service.store.get_vote(data["id"], "ai1") is None

    service.scheduler.join(data["id"], timeout=5)

    assert service.store.get_proposal(data["id"]).status == "approved"
    # 1人目の賛成で合意に達したため2人目は投票しない
    assert policy.calls == ["ai1"]


def test_ai_error_becomes_abstention_and_proposal_still_resolves():
    events = []
    service = make_service(
        [pc("pc1"), ai_pc("ai1"), ai_pc("ai2")],
        policy=RuleBasedVotePolicy(BrokenCharacters()),
        emit_callback=lambda e, d: events.append((e, d)),
    )
    data = create(service)

    service.scheduler.join(data["id"], timeout=5)

    votes = {v.voter_id: v for v in service.store.list_votes(data["id"])}
    assert votes["ai1"].choice == "abstain"
    assert votes["ai2"].choice == "abstain"
    assert "エラーが発生したため棄権します" in votes["ai1"].reason
    assert service.store.get_proposal(data["id"]).status == "rejected"
    assert all(d.is_error for d in service.scheduler.decision_log)
    assert len([e for e, _ in events if e == "ai_vote_decision"]) == 2


def test_ai_agent_who_already_voted_is_skipped():
    policy = FixedPolicy("abstain")
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), ai_pc("ai1"), ai_pc("ai2")], policy=policy)
    data = create(service)
    service.cast_vote(data["id"], "ai1", "reject", "手動で投票")

    service.scheduler.join(data["id"], timeout=5)

    assert policy.calls == ["ai2"]
    assert service.store.get_vote(data["id"], "ai1").choice == "reject"


def test_resolved_proposal_gets_no_ai_votes():
    policy = FixedPolicy("reject")
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), ai_pc("ai1")], policy=policy)
    data = create(service)
    service.cast_vote(data["id"], "pc2", "approve")

    service.scheduler.join(data["id"], timeout=5)

    assert policy.calls == []
    assert service.store.get_vote(data["id"], "ai1") is None
    assert service.store.get_proposal(data["id"]).status == "approved"


def test_cancel_stops_scheduled_ai_voting():
    policy = FixedPolicy("approve")
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), ai_pc("ai1")], policy=policy)
    data = create(service)
    assert data["id"] in service.scheduler.tasks

    result = service.cancel_proposal(data["id"], "やめておく")

    assert result["success"]
    assert data["id"] not in service.scheduler.tasks
    assert policy.calls == []
    assert service.store.get_proposal(data["id"]).status == "rejected"


def test_no_ai_members_schedules_nothing():
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3")])
    data = create(service)

    assert data["id"] not in service.scheduler.tasks


def test_decision_log_keeps_only_recent_entries():
    service = make_service([pc("pc1"), pc("pc2"), pc("pc3"), pc("pc4"), ai_pc("ai1"), ai_pc("ai2")], policy=FixedPolicy("abstain"))
    service.scheduler.decision_log = deque(maxlen=1)
    data = create(service)

    service.scheduler.join(data["id"], timeout=5)

    assert [d.character_id for d in service.scheduler.decision_log] == ["ai2"]
