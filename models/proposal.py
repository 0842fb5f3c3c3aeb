"""移動提案・投票 データモデル"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


MOVEMENT_METHODS = ("walk", "run", "ride", "fly", "teleport", "vehicle")
URGENCY_LEVELS = ("low", "normal", "high")
DIFFICULTY_LEVELS = ("easy", "normal", "hard", "dangerous")
VOTE_CHOICES = ("approve", "reject", "abstain")

PROPOSAL_STATUSES = (
    "pending", "voting", "approved", "rejected", "executing", "completed", "failed",
)
# セッションごとに同時に1件しか存在できない状態
ACTIVE_STATUSES = ("pending", "voting")


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Vote:
    id: str
    proposal_id: str
    voter_id: str
    voter_type: str  # "human" / "ai_agent"
    choice: str  # "approve" / "reject" / "abstain"
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "proposal_id": self.proposal_id,
            "voter_id": self.voter_id,
            "voter_type": self.voter_type,
            "choice": self.choice,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vote":
        return cls(
            id=data["id"],
            proposal_id=data["proposal_id"],
            voter_id=data["voter_id"],
            voter_type=data.get("voter_type", "human"),
            choice=data["choice"],
            reason=data.get("reason", ""),
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(),
        )


@dataclass
class MovementProposal:
    id: str
    session_id: str
    proposer_id: str
    target_location_id: str
    movement_method: str  # MOVEMENT_METHODS
    reason: str
    estimated_time: float  # 分
    estimated_cost: Dict[str, int] = field(default_factory=lambda: {"action_points": 1})
    status: str = "voting"  # PROPOSAL_STATUSES
    created_at: datetime = field(default_factory=datetime.now)
    voting_deadline: Optional[datetime] = None
    urgency: str = "normal"  # "low" / "normal" / "high"
    difficulty: str = "normal"  # "easy" / "normal" / "hard" / "dangerous"
    tags: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def action_points(self) -> int:
        return int(self.estimated_cost.get("action_points", 1))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "proposer_id": self.proposer_id,
            "target_location_id": self.target_location_id,
            "movement_method": self.movement_method,
            "reason": self.reason,
            "estimated_time": self.estimated_time,
            "estimated_cost": dict(self.estimated_cost),
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "voting_deadline": self.voting_deadline.isoformat() if self.voting_deadline else None,
            "urgency": self.urgency,
            "difficulty": self.difficulty,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MovementProposal":
        """永続化データ（to_dict の出力）から復元する"""
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            proposer_id=data["proposer_id"],
            target_location_id=data["target_location_id"],
            movement_method=data["movement_method"],
            reason=data.get("reason", ""),
            estimated_time=data.get("estimated_time", 0),
            estimated_cost=dict(data.get("estimated_cost") or {"action_points": 1}),
            status=data.get("status", "voting"),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
            voting_deadline=_parse_datetime(data.get("voting_deadline")),
            urgency=data.get("urgency", "normal"),
            difficulty=data.get("difficulty", "normal"),
            tags=list(data.get("tags") or []),
        )
