"""
AIエージェント投票スケジューラ - AIVoteScheduler
提案が投票フェーズに入ったら、AI操作のPCごとにランダムな遅延で順番に投票する。
"""
import random
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

import gevent

from core.errors import AIVoteGenerationError, PartyMovementError, VotingClosed
from models.ai_decision import AIVoteDecision
from models.party import PartyMember
from models.proposal import VOTE_CHOICES, MovementProposal
from utils.logger import get_logger

logger = get_logger("AIVoteScheduler")

# 直近のAI投票判断の保持件数
DECISION_LOG_LIMIT = 500


# ============================================================
# 投票判断ポリシー
# ============================================================
class RuleBasedVotePolicy:
    """
    緊急度に基づくルールベースの投票判断。

    - high: 賛成
    - low: 一定確率で棄権、それ以外は賛成
    - normal: 賛成
    - 緊急度に関係なく、まれに反対
    """

    BASE_CONFIDENCE = 75

    def __init__(
        self,
        character_provider,
        rng: Optional[random.Random] = None,
        reject_probability: float = 0.05,
        low_urgency_abstain_probability: float = 0.5,
    ):
        self.characters = character_provider
        self.rng = rng or random.Random()
        self.reject_probability = reject_probability
        self.low_urgency_abstain_probability = low_urgency_abstain_probability

    def _load_character(self, member: PartyMember) -> dict:
        try:
            character = self.characters.get_character(member.character_id)
        except Exception as e:
            raise AIVoteGenerationError(f"キャラクター情報の取得に失敗しました: {e}") from e
        if not character:
            raise AIVoteGenerationError(
                f"キャラクター情報が見つかりません: {member.character_id}"
            )
        return character

    def decide(self, proposal: MovementProposal, member: PartyMember) -> AIVoteDecision:
        started = time.monotonic()
        character = self._load_character(member)
        name = character.get("name") or member.character_name
        urgency = proposal.urgency

        if urgency == "high":
            choice = "approve"
            reason = f"{name}: 緊急事態のようですね。急いで移動しましょう。"
        elif urgency == "low":
            if self.rng.random() < self.low_urgency_abstain_probability:
                choice = "abstain"
                reason = f"{name}: そんなに急ぐ必要はないかもしれません。他の意見も聞きたいです。"
            else:
                choice = "approve"
                reason = f"{name}: 賛成します。のんびり移動しましょう。"
        else:
            choice = "approve"
            reason = f"{name}: {proposal.reason} 良い判断だと思います。"

        # まれに反対意見
        if self.rng.random() < self.reject_probability:
            choice = "reject"
            reason = f"{name}: 今は移動すべきではないと思います。もう少し検討しませんか？"

        confidence = self.BASE_CONFIDENCE
        if urgency == "high":
            confidence += 15
        elif urgency == "low":
            confidence -= 10

        return AIVoteDecision(
            proposal_id=proposal.id,
            character_id=member.character_id,
            character_name=name,
            choice=choice,
            reason=reason,
            confidence=confidence,
            influencing_factors={
                "character_personality": character.get("description") or "不明",
                "situational_factors": [f"緊急度: {urgency}", f"移動理由: {proposal.reason}"],
                "risk_assessment": {
                    "high": "高リスク対応", "low": "低リスク状況",
                }.get(urgency, "通常リスク"),
                "party_consideration": "仲間との協調を重視",
            },
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )


VOTE_SYSTEM_PROMPT = (
    "あなたはTRPGのパーティの一員として、パーティ全体の移動提案に投票します。"
    "キャラクターの性格と状況を踏まえ、次のJSONだけを返してください:\n"
    '{"choice": "approve" | "reject" | "abstain", "reason": "キャラクターの台詞としての理由", '
    '"confidence": 0-100}'
)


class ClaudeVotePolicy(RuleBasedVotePolicy):
    """Claude にキャラクターとして投票判断させるポリシー"""

    def __init__(self, character_provider, claude_service):
        super().__init__(character_provider)
        self.claude = claude_service

    def decide(self, proposal: MovementProposal, member: PartyMember) -> AIVoteDecision:
        started = time.monotonic()
        character = self._load_character(member)
        name = character.get("name") or member.character_name

        prompt = (
            f"キャラクター名: {name}\n"
            f"キャラクター説明: {character.get('description') or '（なし）'}\n\n"
            f"移動先: {proposal.target_location_id}\n"
            f"移動方法: {proposal.movement_method}\n"
            f"移動理由: {proposal.reason}\n"
            f"緊急度: {proposal.urgency}\n"
            f"難易度: {proposal.difficulty}\n"
            f"所要時間（分）: {proposal.estimated_time}"
        )
        result = self.claude.query_json(prompt, VOTE_SYSTEM_PROMPT)

        choice = result.get("choice")
        if choice not in VOTE_CHOICES:
            raise AIVoteGenerationError(f"Claude から有効な投票判断を得られませんでした: {result}")

        return AIVoteDecision(
            proposal_id=proposal.id,
            character_id=member.character_id,
            character_name=name,
            choice=choice,
            reason=f"{name}: {result.get('reason', '')}".strip(),
            confidence=int(result.get("confidence", 0) or 0),
            influencing_factors={"policy": "claude", "model": self.claude.model},
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )


# ============================================================
# スケジューラ
# ============================================================
class AIVoteScheduler:
    """
    AI操作キャラクターの自動投票をバックグラウンド（gevent greenlet）で実行する。

    タスクは提案IDごとに保持し、提案のキャンセル時に中断できる。
    """

    INITIAL_DELAY_MIN = 3.0
    INITIAL_DELAY_MAX = 8.0
    VOTE_GAP_MIN = 1.0
    VOTE_GAP_MAX = 3.0

    def __init__(
        self,
        store,
        roster,
        voting_manager,
        policy,
        config=None,
        rng: Optional[random.Random] = None,
        emit_callback: Optional[Callable] = None,
    ):
        """
        Args:
            store: ProposalStore
            roster: パーティメンバーの提供元（get_party_members）
            voting_manager: VotingManager（投票の記録と判定）
            policy: decide(proposal, member) -> AIVoteDecision を持つ判断ポリシー
            config: Config オブジェクト（遅延設定の上書き用）
            rng: 遅延時間の乱数生成器
            emit_callback: WebSocketイベント送信用コールバック
        """
        self.store = store
        self.roster = roster
        self.voting = voting_manager
        self.policy = policy
        self.rng = rng or random.Random()
        self.emit = emit_callback
        self.tasks: Dict[str, gevent.Greenlet] = {}
        self.decision_log: Deque[AIVoteDecision] = deque(maxlen=DECISION_LOG_LIMIT)

        if config:
            self.INITIAL_DELAY_MIN = getattr(config, "AI_VOTE_INITIAL_DELAY_MIN", self.INITIAL_DELAY_MIN)
            self.INITIAL_DELAY_MAX = getattr(config, "AI_VOTE_INITIAL_DELAY_MAX", self.INITIAL_DELAY_MAX)
            self.VOTE_GAP_MIN = getattr(config, "AI_VOTE_GAP_MIN", self.VOTE_GAP_MIN)
            self.VOTE_GAP_MAX = getattr(config, "AI_VOTE_GAP_MAX", self.VOTE_GAP_MAX)

    def _notify(self, event: str, data: dict):
        if self.emit:
            try:
                self.emit(event, data)
            except Exception as e:
                logger.warning("Failed to emit event %s: %s", event, e)

    def schedule_voting(self, proposal_id: str, session_id: str) -> Optional[gevent.Greenlet]:
        """
        AIエージェントの自動投票をスケジュールする（ノンブロッキング）。

        Returns:
            投票タスクの greenlet。AI操作のPCがいなければ None
        """
        ai_members = [
            m for m in self.roster.get_party_members(session_id)
            if m.can_vote and m.is_ai_controlled
        ]
        if not ai_members:
            logger.info("No AI agent characters found for session %s", session_id)
            return None

        logger.info(
            "Scheduling AI agent voting for proposal %s (%d voters)", proposal_id, len(ai_members),
        )
        task = gevent.spawn(self._run, proposal_id, ai_members)
        self.tasks[proposal_id] = task
        task.link(lambda g: self._forget(proposal_id, g))
        return task

    def _forget(self, proposal_id: str, task: gevent.Greenlet):
        if self.tasks.get(proposal_id) is task:
            del self.tasks[proposal_id]

    def cancel(self, proposal_id: str) -> bool:
        """予定されているAI投票を中断する。中断したタスクがあれば True"""
        task = self.tasks.pop(proposal_id, None)
        if task is None or task.dead:
            return False
        task.kill(block=False)
        logger.info("AI agent voting cancelled for proposal %s", proposal_id)
        return True

    def join(self, proposal_id: str, timeout: Optional[float] = None):
        task = self.tasks.get(proposal_id)
        if task is not None:
            task.join(timeout=timeout)

    def shutdown(self):
        gevent.killall(list(self.tasks.values()))
        self.tasks.clear()

    def _still_voting(self, proposal_id: str) -> bool:
        proposal = self.store.get_proposal(proposal_id)
        return proposal is not None and proposal.status == "voting"

    def _run(self, proposal_id: str, ai_members: List[PartyMember]):
        """AI投票の本体。初回の思考時間の後、1人ずつ間隔を空けて投票する"""
        gevent.sleep(self.rng.uniform(self.INITIAL_DELAY_MIN, self.INITIAL_DELAY_MAX))

        for index, member in enumerate(ai_members):
            if index > 0:
                gevent.sleep(self.rng.uniform(self.VOTE_GAP_MIN, self.VOTE_GAP_MAX))

            if not self._still_voting(proposal_id):
                logger.info("Proposal %s is no longer in voting status, skipping AI voting", proposal_id)
                return

            if self.store.get_vote(proposal_id, member.character_id):
                logger.info("AI character %s already voted, skipping", member.character_id)
                continue

            decision = self._generate_decision(proposal_id, member)
            try:
                self.voting.cast_vote(proposal_id, member.character_id, decision.choice, decision.reason)
            except VotingClosed:
                logger.info("Proposal %s closed before AI vote of %s", proposal_id, member.character_id)
                return
            except PartyMovementError as e:
                logger.warning("AI vote rejected for %s: %s", member.character_id, e)
                continue

            logger.info(
                "AI character %s voted: %s (confidence=%d)",
                decision.character_name, decision.choice, decision.confidence,
            )

        # 全AI投票完了後に最終判定
        if self.store.get_proposal(proposal_id):
            self.voting.evaluate(proposal_id)

    def _generate_decision(self, proposal_id: str, member: PartyMember) -> AIVoteDecision:
        """判断ポリシーを呼び出す。失敗時は理由付きの棄権票にする"""
        proposal = self.store.get_proposal(proposal_id)
        try:
            decision = self.policy.decide(proposal, member)
        except Exception as e:
            if not isinstance(e, AIVoteGenerationError):
                logger.exception("Unexpected error in AI vote policy for %s", member.character_id)
            logger.warning("AI character %s abstains due to error: %s", member.character_id, e)
            decision = AIVoteDecision(
                proposal_id=proposal_id,
                character_id=member.character_id,
                character_name=member.character_name,
                choice="abstain",
                reason=f"AIエージェント({member.character_name})：投票処理でエラーが発生したため棄権します ({e})",
                influencing_factors={"error": str(e)},
                is_error=True,
            )

        self.decision_log.append(decision)
        self._notify("ai_vote_decision", decision.to_dict())
        return decision
