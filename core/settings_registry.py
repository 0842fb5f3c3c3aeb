"""合意設定レジストリ - ConsensusSettingsRegistry"""
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from gevent.lock import RLock

from core.errors import InvalidRequest
from models.settings import VOTING_SYSTEMS, ConsensusSettings
from utils.logger import get_logger

logger = get_logger("ConsensusSettings")

SETTINGS_FILE = "consensus_settings.json"


def _check_type(key: str, value):
    """設定値が ConsensusSettings のフィールド型に合うか確認する"""
    expected = ConsensusSettings.field_types()[key]

    # bool は int のサブクラスなので数値フィールドでは別扱いにする
    if expected is bool:
        valid = isinstance(value, bool)
    elif expected is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    elif expected is float:
        valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    else:
        valid = isinstance(value, expected)

    if not valid:
        raise InvalidRequest(
            f"Invalid type for {key}: expected {expected.__name__}, got {type(value).__name__}"
        )
    if key == "voting_system" and value not in VOTING_SYSTEMS:
        raise InvalidRequest(f"Invalid voting system: {value}")


class ConsensusSettingsRegistry:
    """セッションごとの合意設定を管理する（初回参照時にデフォルト値で作成）"""

    def __init__(self, data_dir: Optional[str] = None):
        self.settings: Dict[str, ConsensusSettings] = {}
        self.data_dir = Path(data_dir) if data_dir else None
        self._lock = RLock()

        if self.data_dir:
            os.makedirs(self.data_dir, exist_ok=True)
            self._load()

    def get(self, session_id: str) -> ConsensusSettings:
        """合意設定を返す。未作成ならデフォルト値で作成して保存する"""
        with self._lock:
            settings = self.settings.get(session_id)
            if settings is None:
                settings = ConsensusSettings(session_id=session_id, updated_at=datetime.now())
                self.settings[session_id] = settings
                self._save()
                logger.info("Default consensus settings created for session %s", session_id)
            return settings

    def update(self, session_id: str, partial: dict) -> ConsensusSettings:
        """
        合意設定を部分更新する（指定されたキーのみ上書き）。

        検証するのは型と投票方式の値のみ。値の範囲（割合が0-100か等）は呼び出し側の責任とする。

        Raises:
            InvalidRequest: 未知の設定キー、型の合わない値、未知の投票方式が含まれる場合
        """
        unknown = set(partial or {}) - ConsensusSettings.field_names()
        if unknown:
            raise InvalidRequest(f"Unknown consensus settings: {', '.join(sorted(unknown))}")
        for key, value in (partial or {}).items():
            _check_type(key, value)

        with self._lock:
            current = self.get(session_id)
            merged = current.to_dict()
            merged.update(partial or {})
            merged["updated_at"] = datetime.now().isoformat()
            settings = ConsensusSettings.from_dict(merged)
            self.settings[session_id] = settings
            self._save()

        logger.info("Consensus settings updated for session %s: %s", session_id, partial)
        return settings

    def _save(self):
        if not self.data_dir:
            return
        data = [s.to_dict() for s in self.settings.values()]
        with open(self.data_dir / SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

    def _load(self):
        path = self.data_dir / SETTINGS_FILE
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for data in json.load(f):
                settings = ConsensusSettings.from_dict(data)
                self.settings[settings.session_id] = settings
