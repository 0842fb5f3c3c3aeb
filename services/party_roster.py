"""
Party Roster - セッション参加者とキャラクター情報の提供元
セッション → キャンペーンの対応、パーティメンバー一覧、
AI投票判断用のキャラクター情報（名前・説明）を保持する。
"""
import json
from typing import Dict, List, Optional

from models.party import PartyMember
from utils.logger import get_logger

logger = get_logger("PartyRoster")


class PartyRoster:
    """インメモリのロスター / キャラクター情報プロバイダ"""

    def __init__(self):
        self.sessions: Dict[str, str] = {}            # session_id -> campaign_id
        self.members: Dict[str, List[PartyMember]] = {}  # session_id -> members
        self.characters: Dict[str, dict] = {}         # character_id -> {"name", "description"}

    def add_session(self, session_id: str, campaign_id: str):
        self.sessions[session_id] = campaign_id
        self.members.setdefault(session_id, [])

    def add_member(self, session_id: str, member) -> PartyMember:
        """
        パーティメンバーを追加する。

        Args:
            session_id: セッションID（未登録なら session_id をキャンペーンIDとして登録）
            member: PartyMember または PartyMember.from_dict に渡せる辞書
        """
        if isinstance(member, dict):
            member = PartyMember.from_dict(member)
        if session_id not in self.sessions:
            self.add_session(session_id, session_id)

        self.members[session_id].append(member)
        self.characters[member.character_id] = {
            "name": member.character_name,
            "description": member.description,
        }
        return member

    def get_party_members(self, session_id: str) -> List[PartyMember]:
        """セッションのパーティメンバー（PC → NPC、名前順）"""
        return sorted(
            self.members.get(session_id, []),
            key=lambda m: (m.character_type.value, m.character_name),
        )

    def get_member(self, session_id: str, character_id: str) -> Optional[PartyMember]:
        for member in self.members.get(session_id, []):
            if member.character_id == character_id:
                return member
        return None

    def get_campaign_id(self, session_id: str) -> Optional[str]:
        return self.sessions.get(session_id)

    def get_character(self, character_id: str) -> Optional[dict]:
        """AI投票判断のナレーション用キャラクター情報（読み取り専用）"""
        return self.characters.get(character_id)

    def load_json(self, path: str) -> int:
        """
        JSONファイルからセッションとメンバーを読み込む。

        形式: [{"session_id": "...", "campaign_id": "...", "members": [{...}, ...]}, ...]

        Returns:
            読み込んだメンバー数
        """
        with open(path, "r", encoding="utf-8") as f:
            sessions = json.load(f)

        count = 0
        for entry in sessions:
            session_id = entry["session_id"]
            self.add_session(session_id, entry.get("campaign_id", session_id))
            for member in entry.get("members", []):
                self.add_member(session_id, member)
                count += 1

        logger.info("Loaded %d party members from %s", count, path)
        return count
