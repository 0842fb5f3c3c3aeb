"""パーティメンバー データモデル"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# player_id がこの値、または未設定のPCはAIエージェントが操作する
AI_AGENT_PLAYER_ID = "ai-agent"


class CharacterType(Enum):
    PC = "PC"
    NPC = "NPC"


@dataclass
class PartyMember:
    character_id: str
    character_name: str
    character_type: CharacterType
    is_leader: bool = False
    player_id: Optional[str] = None
    current_location_id: Optional[str] = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PartyMember":
        """ロスター提供元の辞書エントリからPartyMemberインスタンスを生成"""
        return cls(
            character_id=data["character_id"],
            character_name=data.get("character_name", data["character_id"]),
            character_type=CharacterType(data.get("character_type", "PC")),
            is_leader=data.get("is_leader", False),
            player_id=data.get("player_id"),
            current_location_id=data.get("current_location_id"),
            description=data.get("description", ""),
        )

    @property
    def can_vote(self) -> bool:
        """投票権はPCのみ（NPCは投票しない）"""
        return self.character_type == CharacterType.PC

    @property
    def is_ai_controlled(self) -> bool:
        return self.can_vote and (
            self.player_id is None or self.player_id == AI_AGENT_PLAYER_ID
        )

    @property
    def voter_type(self) -> str:
        return "ai_agent" if self.is_ai_controlled else "human"

    def to_dict(self) -> dict:
        """フロントエンド向け辞書表現"""
        return {
            "character_id": self.character_id,
            "character_name": self.character_name,
            "character_type": self.character_type.value,
            "is_leader": self.is_leader,
            "player_id": self.player_id,
            "current_location_id": self.current_location_id,
            "voter_type": self.voter_type,
        }
