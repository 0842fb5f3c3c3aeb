"""
パーティ移動の実行 - MovementExecutor
承認済みの提案に基づいてパーティ全員を移動し、全員成功した場合のみ時間を進める。
"""
from collections import deque
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Deque, List, Optional

from core.errors import (
    InvalidRequest,
    NotApproved,
    PartialMovementFailure,
    PartyMovementError,
    TimeAdvanceFailure,
)
from core.proposal import ProposalStore
from utils.logger import get_logger

logger = get_logger("MovementExecutor")

# forceExecute でも実行できない状態（実行中・実行済み・失敗済み）
NON_EXECUTABLE_STATUSES = ("executing", "completed", "failed")

# 保持する移動履歴の件数（全セッション合計）
HISTORY_LIMIT = 1000


class MovementExecutor:
    """
    承認済み提案の移動を all-or-nothing で実行する。

    状態遷移: approved -> executing -> completed / failed
    （completed の後のターン進行に失敗した場合は failed にする）
    executing は execute() の中でのみ存在し、呼び出しが戻る時には必ず解決している。
    """

    def __init__(
        self,
        store: ProposalStore,
        roster,
        location_service,
        time_service,
        lock_for: Optional[Callable] = None,
        release_lock: Optional[Callable] = None,
        emit_callback: Optional[Callable] = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        """
        Args:
            store: ProposalStore
            roster: パーティメンバーとキャンペーンIDの提供元
            location_service: move_character(...) を持つ位置サービス
            time_service: advance_time(campaign_id) を持つ時間サービス
            lock_for: 提案IDごとのロックを返す関数（投票処理と直列化するため）
            release_lock: 実行が終わった提案のロックを破棄する関数
            emit_callback: WebSocketイベント送信用コールバック
            history_limit: 保持する移動履歴の最大件数（全セッション合計）
        """
        self.store = store
        self.roster = roster
        self.locations = location_service
        self.time = time_service
        self.lock_for = lock_for
        self.release_lock = release_lock
        self.emit = emit_callback
        self.movement_history: Deque[dict] = deque(maxlen=history_limit)

    def _notify(self, event: str, data: dict):
        """WebSocketイベントを送信する（コールバックが設定されている場合）"""
        if self.emit:
            try:
                self.emit(event, data)
            except Exception as e:
                logger.warning("Failed to emit event %s: %s", event, e)

    def execute(self, proposal_id: str, force_execute: bool = False) -> dict:
        """
        パーティ移動を実行する。

        Args:
            proposal_id: 提案ID
            force_execute: 承認されていない提案でも実行する（管理者による強制実行）
        Returns:
            {"new_location_id", "turns_advanced", "actual_duration", "actual_cost", ...}
        Raises:
            ProposalNotFound: 提案が存在しない
            NotApproved: 未承認で force_execute が指定されていない
            PartialMovementFailure: 1人でも移動に失敗した（ターンは進行しない）
            TimeAdvanceFailure: 移動後のターン進行に失敗した
        """
        lock = self.lock_for(proposal_id) if self.lock_for else nullcontext()
        with lock:
            proposal = self.store.require_proposal(proposal_id)

            if proposal.status != "approved":
                if not force_execute or proposal.status in NON_EXECUTABLE_STATUSES:
                    raise NotApproved(proposal_id, proposal.status)
                logger.warning("Force executing proposal [%s] in status %s", proposal_id, proposal.status)

            members = self.roster.get_party_members(proposal.session_id)
            if not members:
                raise InvalidRequest(f"パーティメンバーがいません: session={proposal.session_id}")

            self.store.set_status(proposal_id, "executing", expected=proposal.status)
            try:
                return self._move_party(proposal, members)
            except PartyMovementError:
                raise
            except Exception:
                logger.exception("Party movement aborted [%s]", proposal_id)
                self.store.set_status(proposal_id, "failed", expected="executing")
                raise
            finally:
                if self.release_lock:
                    self.release_lock(proposal_id)

    def _move_party(self, proposal, members) -> dict:
        from_location_id = self.locations.get_location(members[0].character_id)

        failed = []
        for member in members:
            try:
                self.locations.move_character(
                    character_id=member.character_id,
                    to_location_id=proposal.target_location_id,
                    method=proposal.movement_method,
                    estimated_duration=proposal.estimated_time,
                )
            except Exception as e:
                logger.error(
                    "Failed to move character %s to %s: %s",
                    member.character_id, proposal.target_location_id, e,
                )
                failed.append(member.character_id)

        if failed:
            self.store.set_status(proposal.id, "failed", expected="executing")
            self._record_history(proposal, from_location_id, success=False)
            logger.error(
                "Party movement failed [%s]: %d/%d characters could not move",
                proposal.id, len(failed), len(members),
            )
            self._notify("movement_failed", {
                "proposal_id": proposal.id,
                "failed_characters": failed,
                "total_characters": len(members),
            })
            raise PartialMovementFailure(proposal.id, len(failed), len(members))

        self.store.set_status(proposal.id, "completed", expected="executing")

        # ターン消費は移動が全員成功した後にのみ行う
        turns = proposal.action_points
        turns_advanced = 0
        time_message = None
        campaign_id = self.roster.get_campaign_id(proposal.session_id) or proposal.session_id
        try:
            for i in range(turns):
                time_result = self.time.advance_time(campaign_id)
                turns_advanced = i + 1
                time_message = time_result.get("message")
                logger.info("Turn %d/%d advanced: %s", turns_advanced, turns, time_result)
        except Exception as e:
            # 時間進行の失敗は実行全体の失敗として扱う
            self.store.set_status(proposal.id, "failed", expected="completed")
            self._record_history(proposal, from_location_id, success=False)
            logger.error(
                "Failed to advance turns [%s]: %d/%d advanced: %s",
                proposal.id, turns_advanced, turns, e,
            )
            self._notify("movement_failed", {
                "proposal_id": proposal.id,
                "failed_characters": [],
                "total_characters": len(members),
                "turns_advanced": turns_advanced,
                "error": str(e),
            })
            raise TimeAdvanceFailure(proposal.id, turns_advanced, turns, str(e)) from e

        self._record_history(proposal, from_location_id, success=True)
        result = {
            "proposal_id": proposal.id,
            "new_location_id": proposal.target_location_id,
            "actual_duration": proposal.estimated_time,
            "actual_cost": dict(proposal.estimated_cost),
            "turns_advanced": turns_advanced,
            "time_message": time_message,
        }
        logger.info(
            "Party movement executed [%s]: -> %s, turns=%d",
            proposal.id, proposal.target_location_id, turns_advanced,
        )
        self._notify("movement_executed", result)
        return result

    def _record_history(self, proposal, from_location_id: Optional[str], success: bool):
        self.movement_history.append({
            "proposal_id": proposal.id,
            "session_id": proposal.session_id,
            "from_location_id": from_location_id,
            "to_location_id": proposal.target_location_id,
            "method": proposal.movement_method,
            "duration": proposal.estimated_time,
            "success": success,
            "timestamp": datetime.now().isoformat(),
        })

    def get_movement_history(self, session_id: str, limit: int = 10) -> List[dict]:
        """セッションの移動履歴（新しい順）"""
        history = [h for h in self.movement_history if h["session_id"] == session_id]
        return list(reversed(history))[:limit]
