"""
パーティ移動合意エンジン - ロガーユーティリティ
コンポーネントごとの名前付きロガーを、共通のファイル / コンソール出力付きで提供する。

環境変数:
    LOG_DIR   ログ出力先ディレクトリ（既定: <プロジェクト>/logs）
    LOG_LEVEL コンソール出力のレベル（既定: INFO）。ファイルには常にDEBUG以上を書く
"""
import os
import logging
from logging.handlers import RotatingFileHandler

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_LOG_DIR = os.getenv("LOG_DIR") or os.path.join(_PROJECT_ROOT, "logs")
_LOG_FILE = os.path.join(_LOG_DIR, "party_movement.log")
_CONSOLE_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_FORMATTER = logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")

# 5MB x 3世代
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

os.makedirs(_LOG_DIR, exist_ok=True)


def _handlers():
    file_handler = RotatingFileHandler(
        _LOG_FILE, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, _CONSOLE_LEVEL, logging.INFO))

    for handler in (file_handler, console_handler):
        handler.setFormatter(_FORMATTER)
        yield handler


def get_logger(name: str) -> logging.Logger:
    """
    名前付きロガーを取得する（ハンドラの設定は名前ごとに1回だけ）。

    Args:
        name: コンポーネント名（例: "VotingManager", "AIVoteScheduler"）
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    for handler in _handlers():
        logger.addHandler(handler)
    return logger
