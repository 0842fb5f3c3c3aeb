"""合意設定 データモデル"""
from dataclasses import dataclass, asdict, fields
from datetime import datetime
from typing import Optional

from config import DEFAULT_CONSENSUS_SETTINGS

VOTING_SYSTEMS = ("majority", "unanimous")


@dataclass
class ConsensusSettings:
    session_id: str
    voting_system: str = DEFAULT_CONSENSUS_SETTINGS["voting_system"]  # "majority" / "unanimous"
    required_approval_percentage: float = DEFAULT_CONSENSUS_SETTINGS["required_approval_percentage"]
    voting_time_limit: int = DEFAULT_CONSENSUS_SETTINGS["voting_time_limit"]
    allow_abstention: bool = DEFAULT_CONSENSUS_SETTINGS["allow_abstention"]
    leader_can_override: bool = DEFAULT_CONSENSUS_SETTINGS["leader_can_override"]
    leader_vote_weight: float = DEFAULT_CONSENSUS_SETTINGS["leader_vote_weight"]
    auto_approve_if_no_response: bool = DEFAULT_CONSENSUS_SETTINGS["auto_approve_if_no_response"]
    auto_approve_time_limit: int = DEFAULT_CONSENSUS_SETTINGS["auto_approve_time_limit"]
    turn_based_movement_cost: int = DEFAULT_CONSENSUS_SETTINGS["turn_based_movement_cost"]
    updated_at: Optional[datetime] = None

    @classmethod
    def field_names(cls) -> set:
        """更新可能なフィールド名（session_id / updated_at 以外）"""
        return {f.name for f in fields(cls)} - {"session_id", "updated_at"}

    @classmethod
    def field_types(cls) -> dict:
        """更新可能なフィールドの型（str / int / float / bool）"""
        names = cls.field_names()
        return {f.name: f.type for f in fields(cls) if f.name in names}

    def to_dict(self) -> dict:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ConsensusSettings":
        known = cls.field_names()
        values = {k: v for k, v in data.items() if k in known}
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(session_id=data["session_id"], updated_at=updated_at, **values)
