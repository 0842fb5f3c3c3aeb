"""
Location Service - キャラクターの現在位置と移動
"""
from datetime import datetime
from typing import Dict, Optional, Set

from utils.logger import get_logger

logger = get_logger("LocationService")


class LocationMoveError(Exception):
    """キャラクターを移動できなかった"""
    pass


class LocationService:
    """インメモリの位置管理サービス"""

    def __init__(self, locations: Optional[Set[str]] = None):
        """
        Args:
            locations: 移動先として有効なロケーションID。None の場合は制限しない
        """
        self.locations = set(locations) if locations is not None else None
        self.positions: Dict[str, str] = {}  # character_id -> location_id

    def place_character(self, character_id: str, location_id: str):
        self.positions[character_id] = location_id

    def get_location(self, character_id: str) -> Optional[str]:
        return self.positions.get(character_id)

    def move_character(
        self,
        character_id: str,
        to_location_id: str,
        method: str,
        estimated_duration: float,
    ) -> dict:
        """
        キャラクターを移動する。

        Raises:
            LocationMoveError: 未配置のキャラクター、または存在しない移動先
        """
        if character_id not in self.positions:
            raise LocationMoveError(f"Character {character_id} has no current location")
        if self.locations is not None and to_location_id not in self.locations:
            raise LocationMoveError(f"Unknown location: {to_location_id}")

        from_location_id = self.positions[character_id]
        self.positions[character_id] = to_location_id

        movement = {
            "character_id": character_id,
            "from_location_id": from_location_id,
            "to_location_id": to_location_id,
            "method": method,
            "estimated_duration": estimated_duration,
            "timestamp": datetime.now().isoformat(),
        }
        logger.debug("Character moved: %s %s -> %s (%s)", character_id, from_location_id, to_location_id, method)
        return movement
