"""
パーティ移動合意エンジン - 設定管理
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """アプリケーション設定"""

    # Flask
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret-key")
    DEBUG = os.getenv("FLASK_DEBUG", "false").lower() == "true"
    PORT = int(os.getenv("PORT", "5000"))
    SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "gevent")

    # 永続化（空文字の場合はインメモリのみ）
    DATA_DIR = os.getenv("DATA_DIR", "")
    PARTY_SEED_FILE = os.getenv("PARTY_SEED_FILE", "")

    # AI投票スケジューラ（秒）
    AI_VOTE_INITIAL_DELAY_MIN = float(os.getenv("AI_VOTE_INITIAL_DELAY_MIN", "3"))
    AI_VOTE_INITIAL_DELAY_MAX = float(os.getenv("AI_VOTE_INITIAL_DELAY_MAX", "8"))
    AI_VOTE_GAP_MIN = float(os.getenv("AI_VOTE_GAP_MIN", "1"))
    AI_VOTE_GAP_MAX = float(os.getenv("AI_VOTE_GAP_MAX", "3"))

    # AI投票判断
    AI_VOTE_POLICY = os.getenv("AI_VOTE_POLICY", "rule")  # "rule" / "claude"
    AI_REJECT_PROBABILITY = float(os.getenv("AI_REJECT_PROBABILITY", "0.05"))
    AI_LOW_URGENCY_ABSTAIN_PROBABILITY = float(os.getenv("AI_LOW_URGENCY_ABSTAIN_PROBABILITY", "0.5"))

    # Anthropic
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
    CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")


# ============================================================
# 移動方法ごとの所要時間倍率（基本30分）
# ============================================================
BASE_MOVEMENT_MINUTES = 30

MOVEMENT_TIME_MULTIPLIERS = {
    "walk": 1.0,
    "run": 0.7,
    "ride": 0.5,
    "fly": 0.3,
    "teleport": 0.1,
    "vehicle": 0.4,
}

# ============================================================
# 合意設定のデフォルト値（セッションごとに初回アクセス時に作成）
# ============================================================
DEFAULT_CONSENSUS_SETTINGS = {
    "voting_system": "majority",          # "majority" / "unanimous"
    "required_approval_percentage": 50,
    "voting_time_limit": 30,              # 分
    "allow_abstention": True,
    "leader_can_override": False,
    "leader_vote_weight": 1,
    "auto_approve_if_no_response": False,
    "auto_approve_time_limit": 60,        # 分
    "turn_based_movement_cost": 1,
}
