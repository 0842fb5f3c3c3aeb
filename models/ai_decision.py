"""AIエージェント投票判断 データモデル"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass
class AIVoteDecision:
    proposal_id: str
    character_id: str
    character_name: str
    choice: str  # "approve" / "reject" / "abstain"
    reason: str
    confidence: int = 0  # 0-100
    influencing_factors: Dict[str, Any] = field(default_factory=dict)
    processing_time_ms: int = 0
    is_error: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "proposal_id": self.proposal_id,
            "character_id": self.character_id,
            "character_name": self.character_name,
            "choice": self.choice,
            "reason": self.reason,
            "confidence": self.confidence,
            "influencing_factors": self.influencing_factors,
            "processing_time_ms": self.processing_time_ms,
            "is_error": self.is_error,
            "timestamp": self.timestamp.isoformat(),
        }
