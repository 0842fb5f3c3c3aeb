"""パーティ移動合意エンジン - データモデル"""
from models.ai_decision import AIVoteDecision
from models.party import CharacterType, PartyMember
from models.proposal import MovementProposal, Vote
from models.settings import ConsensusSettings
from models.summary import VoterDetail, VoterGroupStats, VotingSummary

__all__ = [
    "AIVoteDecision",
    "CharacterType",
    "ConsensusSettings",
    "MovementProposal",
    "PartyMember",
    "Vote",
    "VoterDetail",
    "VoterGroupStats",
    "VotingSummary",
]
