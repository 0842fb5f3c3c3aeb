"""投票ロジック - VotingManager"""
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from gevent.lock import RLock

from core.consensus import DECISION_VOTING, decide, summarize
from core.errors import InvalidRequest, StatusTransitionConflict, VoterNotEligible, VotingClosed
from core.proposal import ProposalStore
from core.settings_registry import ConsensusSettingsRegistry
from models.proposal import VOTE_CHOICES, Vote
from models.summary import VotingSummary
from utils.logger import get_logger

logger = get_logger("VotingManager")

# 以降に投票・承認が起こらない状態（rejected からの強制実行は compare-and-set のみで保護）
FINISHED_STATUSES = ("rejected", "completed", "failed")


class VotingManager:
    """
    投票の実行とコンセンサス判定を管理する。

    「投票 → 再集計 → 状態遷移」は提案IDごとのロックで直列化し、
    状態遷移は voting からの compare-and-set で行う。
    人間の投票（リクエスト処理）とAI投票（スケジューラ）の両方がここを通る。
    """

    def __init__(
        self,
        store: ProposalStore,
        roster,
        settings_registry: ConsensusSettingsRegistry,
        emit_callback: Optional[Callable] = None,
    ):
        self.store = store
        self.roster = roster
        self.settings_registry = settings_registry
        self.emit = emit_callback
        self._locks: Dict[str, RLock] = {}
        self._locks_guard = RLock()

    def lock_for(self, proposal_id: str) -> RLock:
        """
        提案ごとの直列化ポイント。

        ロックを保持するのは存在する未終了の提案のみ。
        終了済みの提案には使い捨てのロックを返す（以降の状態遷移は compare-and-set が守る）。

        Raises:
            ProposalNotFound: 提案が存在しない
        """
        proposal = self.store.require_proposal(proposal_id)
        with self._locks_guard:
            lock = self._locks.get(proposal_id)
            if lock is None:
                lock = RLock()
                if proposal.status not in FINISHED_STATUSES:
                    self._locks[proposal_id] = lock
            return lock

    def release(self, proposal_id: str):
        """終了した提案のロックを破棄する"""
        proposal = self.store.get_proposal(proposal_id)
        if proposal is None or proposal.status in FINISHED_STATUSES:
            with self._locks_guard:
                self._locks.pop(proposal_id, None)

    def _notify(self, event: str, data: dict):
        """WebSocketイベントを送信する（コールバックが設定されている場合）"""
        if self.emit:
            try:
                self.emit(event, data)
            except Exception as e:
                logger.warning("Failed to emit event %s: %s", event, e)

    def cast_vote(
        self,
        proposal_id: str,
        voter_id: str,
        choice: str,
        reason: str = "",
    ) -> VotingSummary:
        """
        投票を記録し、集計とコンセンサス判定を行う。

        同じ投票者の再投票は前の票を置き換える。

        Args:
            proposal_id: 対象の提案ID
            voter_id: 投票者のキャラクターID
            choice: "approve" / "reject" / "abstain"
            reason: 投票理由
        Returns:
            投票後の VotingSummary
        Raises:
            ProposalNotFound / VotingClosed / VoterNotEligible / InvalidRequest
        """
        if choice not in VOTE_CHOICES:
            raise InvalidRequest(f"Invalid vote choice: {choice}")

        with self.lock_for(proposal_id):
            proposal = self.store.require_proposal(proposal_id)
            if proposal.status != "voting":
                raise VotingClosed(proposal_id, proposal.status)

            member = self.roster.get_member(proposal.session_id, voter_id)
            if member is None or not member.can_vote:
                raise VoterNotEligible(voter_id)

            vote = self.store.upsert_vote(Vote(
                id=str(uuid.uuid4()),
                proposal_id=proposal_id,
                voter_id=voter_id,
                voter_type=member.voter_type,
                choice=choice,
                reason=reason,
                timestamp=datetime.now(),
            ))
            logger.info(
                "Vote cast [%s]: %s (%s) -> %s", proposal_id, voter_id, vote.voter_type, choice,
            )
            self._notify("vote_cast", vote.to_dict())

            summary, _ = self.evaluate(proposal_id)
            return summary

    def get_voting_summary(self, proposal_id: str) -> VotingSummary:
        """投票状況のサマリを返す（毎回投票データから再計算）"""
        proposal = self.store.require_proposal(proposal_id)
        roster = self.roster.get_party_members(proposal.session_id)
        settings = self.settings_registry.get(proposal.session_id)
        return summarize(proposal, self.store.list_votes(proposal_id), roster, settings)

    def evaluate(self, proposal_id: str) -> Tuple[VotingSummary, str]:
        """
        集計を作り直し、投票中であれば判定結果に応じて状態を遷移させる。

        Returns:
            (VotingSummary, 判定後の提案状態)
        """
        with self.lock_for(proposal_id):
            summary = self.get_voting_summary(proposal_id)
            self._notify("voting_update", summary.to_dict())

            proposal = self.store.require_proposal(proposal_id)
            if proposal.status != "voting":
                self.release(proposal_id)
                return summary, proposal.status

            decision = decide(summary)
            if decision == DECISION_VOTING:
                return summary, proposal.status

            try:
                self.store.set_status(proposal_id, decision, expected="voting")
            except StatusTransitionConflict as e:
                logger.warning("Consensus transition skipped [%s]: %s", proposal_id, e)
                return summary, e.actual

            logger.info(
                "Proposal %s [%s]: approve=%d reject=%d abstain=%d required=%d",
                decision, proposal_id, summary.votes["approve"], summary.votes["reject"],
                summary.votes["abstain"], summary.required_approvals,
            )
            self._notify("proposal_status_changed", {
                "proposal_id": proposal_id,
                "status": decision,
                "consensus_type": summary.consensus_type,
            })
            self.release(proposal_id)
            return summary, decision
