"""
パーティ移動サービス - PartyMovementService
提案作成・投票・集計・実行・設定・キャンセルの外部向け操作をまとめ、
すべての結果を {"success", "data", "error", "code"} のエンベロープで返す。
"""
import functools
import random
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import BASE_MOVEMENT_MINUTES, MOVEMENT_TIME_MULTIPLIERS
from core.ai_voter import AIVoteScheduler, ClaudeVotePolicy, RuleBasedVotePolicy
from core.errors import (
    InvalidRequest,
    PartyMovementError,
    SessionNotFound,
    StatusTransitionConflict,
    VotingClosed,
)
from core.movement_executor import MovementExecutor
from core.proposal import ProposalStore
from core.settings_registry import ConsensusSettingsRegistry
from core.voting import VotingManager
from models.proposal import (
    ACTIVE_STATUSES,
    DIFFICULTY_LEVELS,
    MOVEMENT_METHODS,
    URGENCY_LEVELS,
    MovementProposal,
    Vote,
)
from utils.logger import get_logger

logger = get_logger("PartyMovementService")

# 混合投票の完了予測（1人あたりの想定所要分）
AI_VOTE_ESTIMATE_MINUTES = 3
HUMAN_VOTE_ESTIMATE_MINUTES = 8


def _envelope(func):
    """操作の戻り値・例外をレスポンスエンベロープに変換する"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return {"success": True, "data": func(*args, **kwargs)}
        except PartyMovementError as e:
            logger.info("%s failed: [%s] %s", func.__name__, e.code, e.message)
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.exception("%s failed unexpectedly", func.__name__)
            return {"success": False, "error": str(e) or "内部エラーが発生しました", "code": "INTERNAL_ERROR"}

    return wrapper


def estimate_movement_time(movement_method: str) -> float:
    """移動方法から所要時間（分）を見積もる"""
    return BASE_MOVEMENT_MINUTES * MOVEMENT_TIME_MULTIPLIERS.get(movement_method, 1.0)


class PartyMovementService:
    """パーティ移動合意エンジンの外部向けインターフェース"""

    def __init__(
        self,
        store: ProposalStore,
        roster,
        settings_registry: ConsensusSettingsRegistry,
        voting_manager: VotingManager,
        scheduler: AIVoteScheduler,
        executor: MovementExecutor,
        location_service,
        emit_callback: Optional[Callable] = None,
    ):
        self.store = store
        self.roster = roster
        self.settings_registry = settings_registry
        self.voting = voting_manager
        self.scheduler = scheduler
        self.executor = executor
        self.locations = location_service
        self.emit = emit_callback

    @classmethod
    def build(
        cls,
        roster,
        location_service,
        time_service,
        config=None,
        emit_callback: Optional[Callable] = None,
        rng: Optional[random.Random] = None,
        policy=None,
    ) -> "PartyMovementService":
        """
        依存コンポーネントを組み立ててサービスを生成する。

        Args:
            roster: PartyRoster 互換のロスター / キャラクター情報提供元
            location_service: LocationService 互換の位置サービス
            time_service: TimeService 互換の時間サービス
            config: Config オブジェクト（DATA_DIR、AI投票設定）
            emit_callback: WebSocketイベント送信用コールバック
            rng: AI投票の乱数生成器（テスト用）
            policy: AI投票判断ポリシー。None の場合は config.AI_VOTE_POLICY に従う
        """
        data_dir = getattr(config, "DATA_DIR", "") or None
        rng = rng or random.Random()

        store = ProposalStore(data_dir)
        settings_registry = ConsensusSettingsRegistry(data_dir)
        voting = VotingManager(store, roster, settings_registry, emit_callback)

        if policy is None:
            policy = cls._build_policy(roster, config, rng)

        scheduler = AIVoteScheduler(
            store, roster, voting, policy, config=config, rng=rng, emit_callback=emit_callback,
        )
        executor = MovementExecutor(
            store, roster, location_service, time_service,
            lock_for=voting.lock_for, release_lock=voting.release, emit_callback=emit_callback,
        )
        return cls(
            store, roster, settings_registry, voting, scheduler, executor,
            location_service, emit_callback,
        )

    @staticmethod
    def _build_policy(roster, config, rng):
        if getattr(config, "AI_VOTE_POLICY", "rule") == "claude":
            from services.claude_service import ClaudeService

            claude = ClaudeService(
                api_key=getattr(config, "ANTHROPIC_API_KEY", ""),
                model=getattr(config, "CLAUDE_MODEL", "claude-sonnet-4-20250514"),
            )
            return ClaudeVotePolicy(roster, claude)

        return RuleBasedVotePolicy(
            roster,
            rng=rng,
            reject_probability=getattr(config, "AI_REJECT_PROBABILITY", 0.05),
            low_urgency_abstain_probability=getattr(config, "AI_LOW_URGENCY_ABSTAIN_PROBABILITY", 0.5),
        )

    def _notify(self, event: str, data: dict):
        if self.emit:
            try:
                self.emit(event, data)
            except Exception as e:
                logger.warning("Failed to emit event %s: %s", event, e)

    # ------------------------------------------------------------
    # 提案
    # ------------------------------------------------------------
    @_envelope
    def create_proposal(
        self,
        session_id: str,
        proposer_id: str,
        target_location_id: str,
        movement_method: str,
        reason: str,
        urgency: str = "normal",
        voting_deadline=None,
        difficulty: str = "normal",
        tags: Optional[list] = None,
    ) -> dict:
        """
        移動提案を作成する。提案者の賛成票を同時に記録し、AI投票をスケジュールする。
        """
        if not session_id or not proposer_id or not target_location_id:
            raise InvalidRequest("session_id, proposer_id, target_location_id are required")
        if movement_method not in MOVEMENT_METHODS:
            raise InvalidRequest(f"Invalid movement method: {movement_method}")
        if urgency not in URGENCY_LEVELS:
            raise InvalidRequest(f"Invalid urgency: {urgency}")
        if difficulty not in DIFFICULTY_LEVELS:
            raise InvalidRequest(f"Invalid difficulty: {difficulty}")
        if isinstance(voting_deadline, str):
            try:
                voting_deadline = datetime.fromisoformat(voting_deadline)
            except ValueError as e:
                raise InvalidRequest(f"Invalid voting deadline: {voting_deadline}") from e

        settings = self.settings_registry.get(session_id)
        now = datetime.now()
        proposal = MovementProposal(
            id=str(uuid.uuid4()),
            session_id=session_id,
            proposer_id=proposer_id,
            target_location_id=target_location_id,
            movement_method=movement_method,
            reason=reason or "",
            estimated_time=estimate_movement_time(movement_method),
            estimated_cost={"action_points": int(settings.turn_based_movement_cost)},
            status="voting",
            created_at=now,
            voting_deadline=voting_deadline,
            urgency=urgency,
            difficulty=difficulty,
            tags=list(tags or []),
        )

        proposer = self.roster.get_member(session_id, proposer_id)
        proposer_vote = Vote(
            id=str(uuid.uuid4()),
            proposal_id=proposal.id,
            voter_id=proposer_id,
            voter_type=proposer.voter_type if proposer else "human",
            choice="approve",
            reason="提案者による自動賛成",
            timestamp=now,
        )
        self.store.create_proposal(proposal, proposer_vote)
        self._notify("proposal_created", proposal.to_dict())

        # 少人数パーティでは提案者の票だけで決まることがある
        _, status = self.voting.evaluate(proposal.id)
        if status == "voting":
            self.scheduler.schedule_voting(proposal.id, session_id)

        return proposal.to_dict()

    @_envelope
    def get_proposal(self, proposal_id: str) -> dict:
        return self.store.require_proposal(proposal_id).to_dict()

    @_envelope
    def cancel_proposal(self, proposal_id: str, reason: Optional[str] = None) -> dict:
        """アクティブな提案をキャンセル（rejected）し、予定中のAI投票を中断する"""
        with self.voting.lock_for(proposal_id):
            proposal = self.store.require_proposal(proposal_id)
            try:
                self.store.set_status(proposal_id, "rejected", expected=ACTIVE_STATUSES)
            except StatusTransitionConflict as e:
                raise VotingClosed(proposal_id, e.actual) from e
            self.voting.release(proposal_id)

        self.scheduler.cancel(proposal_id)
        logger.info("Movement proposal cancelled: %s (reason=%s)", proposal_id, reason)
        data = {"proposal_id": proposal.id, "status": "rejected", "reason": reason}
        self._notify("proposal_cancelled", data)
        return data

    # ------------------------------------------------------------
    # 投票
    # ------------------------------------------------------------
    @_envelope
    def cast_vote(self, proposal_id: str, voter_id: str, choice: str, reason: str = "") -> dict:
        summary = self.voting.cast_vote(proposal_id, voter_id, choice, reason)
        return summary.to_dict()

    @_envelope
    def get_voting_summary(self, proposal_id: str) -> dict:
        return self.voting.get_voting_summary(proposal_id).to_dict()

    @_envelope
    def get_mixed_voting_status(self, proposal_id: str) -> dict:
        """人間 / AI 別の投票進捗と完了予測"""
        proposal = self.store.require_proposal(proposal_id)
        summary = self.voting.get_voting_summary(proposal_id)
        human = summary.human_voters
        ai = summary.ai_voters

        if proposal.status not in ACTIVE_STATUSES or (human.pending == 0 and ai.pending == 0):
            estimated_completion = datetime.now()
        else:
            minutes = max(ai.pending * AI_VOTE_ESTIMATE_MINUTES, human.pending * HUMAN_VOTE_ESTIMATE_MINUTES)
            estimated_completion = datetime.now() + timedelta(minutes=minutes)

        return {
            "proposal_status": proposal.status,
            "voting_summary": summary.to_dict(),
            "real_time_stats": {
                "human_voting_progress": (human.voted / human.total) * 100 if human.total else 100,
                "ai_voting_progress": (ai.voted / ai.total) * 100 if ai.total else 100,
                "estimated_completion": estimated_completion.isoformat(),
                "pending_human_voters": [
                    v.voter_name for v in summary.voter_details
                    if v.voter_type == "human" and not v.has_voted
                ],
                "processing_ai_voters": [
                    v.voter_name for v in summary.voter_details
                    if v.voter_type == "ai_agent" and not v.has_voted
                ],
            },
        }

    # ------------------------------------------------------------
    # 実行
    # ------------------------------------------------------------
    @_envelope
    def execute_movement(self, proposal_id: str, force_execute: bool = False) -> dict:
        if force_execute:
            self.scheduler.cancel(proposal_id)
        return self.executor.execute(proposal_id, force_execute=force_execute)

    @_envelope
    def get_movement_history(self, session_id: str, limit: int = 10) -> list:
        return self.executor.get_movement_history(session_id, limit)

    # ------------------------------------------------------------
    # 設定
    # ------------------------------------------------------------
    @_envelope
    def get_consensus_settings(self, session_id: str) -> dict:
        return self.settings_registry.get(session_id).to_dict()

    @_envelope
    def update_consensus_settings(self, session_id: str, partial: dict) -> dict:
        return self.settings_registry.update(session_id, partial or {}).to_dict()

    # ------------------------------------------------------------
    # 状態
    # ------------------------------------------------------------
    @_envelope
    def get_party_movement_state(self, session_id: str) -> dict:
        """パーティの現在地・メンバー・アクティブな提案・設定・最近の移動をまとめて返す"""
        members = self.roster.get_party_members(session_id)
        if not members:
            raise SessionNotFound(session_id)

        active = self.store.get_active_proposal(session_id)
        summary = self.voting.get_voting_summary(active.id) if active else None

        return {
            "session_id": session_id,
            "current_location_id": self.locations.get_location(members[0].character_id),
            "party_members": [m.to_dict() for m in members],
            "active_proposal": active.to_dict() if active else None,
            "voting_summary": summary.to_dict() if summary else None,
            "settings": self.settings_registry.get(session_id).to_dict(),
            "recent_movements": self.executor.get_movement_history(session_id, 10),
            "last_updated": datetime.now().isoformat(),
        }

    def shutdown(self):
        self.scheduler.shutdown()
