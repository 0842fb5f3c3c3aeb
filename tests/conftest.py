import random

import pytest

from config import Config
from core.party_movement import PartyMovementService
from services.location_service import LocationService
from services.party_roster import PartyRoster
from services.time_service import TimeService


class FastConfig(Config):
    DATA_DIR = ""
    SOCKETIO_ASYNC_MODE = "threading"
    AI_VOTE_INITIAL_DELAY_MIN = 0
    AI_VOTE_INITIAL_DELAY_MAX = 0
    AI_VOTE_GAP_MIN = 0
    AI_VOTE_GAP_MAX = 0
    AI_VOTE_POLICY = "rule"


class CountingTimeService(TimeService):
    """advance_time の呼び出し回数を記録する"""

    def __init__(self):
        super().__init__()
        self.calls = []

    def advance_time(self, campaign_id):
        self.calls.append(campaign_id)
        return super().advance_time(campaign_id)


class FixedPolicy:
    """常に同じ選択をする投票判断ポリシー"""

    def __init__(self, choice="approve"):
        self.choice = choice
        self.calls = []

    def decide(self, proposal, member):
        from models.ai_decision import AIVoteDecision

        self.calls.append(member.character_id)
        return AIVoteDecision(
            proposal_id=proposal.id,
            character_id=member.character_id,
            character_name=member.character_name,
            choice=self.choice,
            reason=f"{member.character_name}: fixed {self.choice}",
            confidence=80,
        )


def pc(character_id, player_id="player", location="town"):
    return {
        "character_id": character_id,
        "character_name": character_id.upper(),
        "character_type": "PC",
        "player_id": player_id,
        "current_location_id": location,
        "description": f"{character_id} の説明",
    }


def ai_pc(character_id, location="town"):
    return pc(character_id, player_id=None, location=location)


def npc(character_id, location="town"):
    return {
        "character_id": character_id,
        "character_name": character_id.upper(),
        "character_type": "NPC",
        "current_location_id": location,
    }


def make_party(members, session_id="s1", campaign_id="c1"):
    """ロスターと、メンバーを配置済みの位置サービスを作る"""
    roster = PartyRoster()
    roster.add_session(session_id, campaign_id)
    locations = LocationService()
    for data in members:
        member = roster.add_member(session_id, data)
        if member.current_location_id:
            locations.place_character(member.character_id, member.current_location_id)
    return roster, locations


def make_service(members, policy=None, time_service=None, config=FastConfig, seed=0, emit_callback=None):
    roster, locations = make_party(members)
    time_service = time_service or CountingTimeService()
    return PartyMovementService.build(
        roster,
        locations,
        time_service,
        config=config,
        emit_callback=emit_callback,
        rng=random.Random(seed),
        policy=policy,
    )


def create(service, proposer_id="pc1", **kwargs):
    params = {
        "session_id": "s1",
        "proposer_id": proposer_id,
        "target_location_id": "forest",
        "movement_method": "walk",
        "reason": "森の調査に向かう",
        "urgency": "normal",
    }
    params.update(kwargs)
    result = service.create_proposal(**params)
    assert result["success"], result
    return result["data"]


@pytest.fixture
def three_humans():
    return [pc("pc1", "p1"), pc("pc2", "p2"), pc("pc3", "p3")]


@pytest.fixture
def service(three_humans):
    svc = make_service(three_humans)
    yield svc
    svc.shutdown()
