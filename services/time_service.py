"""
Time Service - キャンペーンの日付・時間帯（ターン）進行
"""
from typing import Dict, List, Optional

from utils.logger import get_logger

logger = get_logger("TimeService")

DEFAULT_DAY_PERIODS = ["朝", "昼", "夕方", "夜"]


class TimeService:
    """キャンペーンごとに「日」と「時間帯」を管理し、1回の呼び出しで1時間帯進める"""

    def __init__(self, day_periods: Optional[List[str]] = None, max_days: Optional[int] = None):
        self.day_periods = day_periods or list(DEFAULT_DAY_PERIODS)
        self.max_days = max_days
        self.clocks: Dict[str, dict] = {}  # campaign_id -> {"day": int, "period": int}

    def get_clock(self, campaign_id: str) -> dict:
        return self.clocks.setdefault(campaign_id, {"day": 1, "period": 0})

    def advance_time(self, campaign_id: str) -> dict:
        """
        時間を1時間帯進める。最後の時間帯を超えたら翌日の最初の時間帯へ。

        Returns:
            {"new_period": int, "new_day": int または None, "message": str}
        """
        clock = self.get_clock(campaign_id)
        new_period = clock["period"] + 1
        new_day = None

        if new_period >= len(self.day_periods):
            new_day = clock["day"] + 1
            new_period = 0
            clock["day"] = new_day
            clock["period"] = new_period
            if self.max_days and new_day > self.max_days:
                message = "キャンペーン期間が終了しました！"
            else:
                message = f"{new_day}日目が始まりました"
        else:
            clock["period"] = new_period
            message = f"{self.day_periods[new_period]}になりました"

        logger.info("Time advanced [%s]: day=%d period=%d (%s)", campaign_id, clock["day"], new_period, message)
        return {"new_period": new_period, "new_day": new_day, "message": message}
