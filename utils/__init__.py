"""パーティ移動合意エンジン - ユーティリティ"""
from utils.logger import get_logger

__all__ = ["get_logger"]
