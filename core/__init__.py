"""パーティ移動合意エンジン - コアロジック"""
from core.ai_voter import AIVoteScheduler, ClaudeVotePolicy, RuleBasedVotePolicy
from core.movement_executor import MovementExecutor
from core.party_movement import PartyMovementService
from core.proposal import ProposalStore
from core.settings_registry import ConsensusSettingsRegistry
from core.voting import VotingManager

__all__ = [
    "AIVoteScheduler",
    "ClaudeVotePolicy",
    "ConsensusSettingsRegistry",
    "MovementExecutor",
    "PartyMovementService",
    "ProposalStore",
    "RuleBasedVotePolicy",
    "VotingManager",
]
