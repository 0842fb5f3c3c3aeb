"""投票集計 データモデル（常に投票データから再計算され、永続化しない）"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class VoterDetail:
    voter_id: str
    voter_name: str
    voter_type: str  # "human" / "ai_agent"
    has_voted: bool
    is_proposer: bool
    choice: Optional[str] = None
    vote_reason: Optional[str] = None
    voted_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "voter_id": self.voter_id,
            "voter_name": self.voter_name,
            "voter_type": self.voter_type,
            "has_voted": self.has_voted,
            "is_proposer": self.is_proposer,
            "choice": self.choice,
            "vote_reason": self.vote_reason,
            "voted_at": self.voted_at.isoformat() if self.voted_at else None,
        }


@dataclass
class VoterGroupStats:
    """投票者タイプ別（人間 / AI）の集計"""
    total: int = 0
    voted: int = 0
    pending: int = 0
    breakdown: Dict[str, int] = field(
        default_factory=lambda: {"approve": 0, "reject": 0, "abstain": 0}
    )

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "voted": self.voted,
            "pending": self.pending,
            "breakdown": dict(self.breakdown),
        }


@dataclass
class VotingSummary:
    proposal_id: str
    total_eligible_voters: int
    votes: Dict[str, int]
    voter_details: List[VoterDetail]
    required_approvals: int
    consensus_reached: bool
    consensus_type: str  # "unanimous" / "majority" / "none"
    human_voters: VoterGroupStats = field(default_factory=VoterGroupStats)
    ai_voters: VoterGroupStats = field(default_factory=VoterGroupStats)

    @property
    def current_approvals(self) -> int:
        return self.votes.get("approve", 0)

    @property
    def voted_count(self) -> int:
        return sum(1 for v in self.voter_details if v.has_voted)

    @property
    def remaining_count(self) -> int:
        return self.total_eligible_voters - self.voted_count

    def to_dict(self) -> dict:
        return {
            "proposal_id": self.proposal_id,
            "total_eligible_voters": self.total_eligible_voters,
            "votes": dict(self.votes),
            "voter_details": [v.to_dict() for v in self.voter_details],
            "required_approvals": self.required_approvals,
            "current_approvals": self.current_approvals,
            "consensus_reached": self.consensus_reached,
            "consensus_type": self.consensus_type,
            "voting_statistics": {
                "human_voters": self.human_voters.to_dict(),
                "ai_voters": self.ai_voters.to_dict(),
            },
        }
