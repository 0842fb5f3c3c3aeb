"""パーティ移動合意エンジン - 外部コラボレーター"""
from services.claude_service import ClaudeService
from services.location_service import LocationMoveError, LocationService
from services.party_roster import PartyRoster
from services.time_service import TimeService

__all__ = [
    "ClaudeService",
    "LocationMoveError",
    "LocationService",
    "PartyRoster",
    "TimeService",
]
