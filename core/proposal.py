"""移動提案ストア - ProposalStore"""
import json
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from gevent.lock import RLock

from core.errors import ActiveProposalExists, ProposalNotFound, StatusTransitionConflict
from models.proposal import PROPOSAL_STATUSES, MovementProposal, Vote
from utils.logger import get_logger

logger = get_logger("ProposalStore")

PROPOSALS_FILE = "proposals.json"
VOTES_FILE = "votes.json"


class ProposalStore:
    """
    移動提案と投票の記録を管理する。

    - セッションごとにアクティブ（pending / voting）な提案は1件まで
    - 投票は (proposal_id, voter_id) ごとに1件。後から来た票で上書きする
    - data_dir を指定した場合、変更のたびにJSONファイルへ書き出し、起動時に読み込む
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.proposals: Dict[str, MovementProposal] = {}
        self.votes: Dict[str, Dict[str, Vote]] = {}  # proposal_id -> voter_id -> Vote
        self.data_dir = Path(data_dir) if data_dir else None
        self._lock = RLock()

        if self.data_dir:
            os.makedirs(self.data_dir, exist_ok=True)
            self._load()

    # ------------------------------------------------------------
    # 提案
    # ------------------------------------------------------------
    def create_proposal(self, proposal: MovementProposal, proposer_vote: Vote) -> MovementProposal:
        """
        移動提案を作成し、提案者の賛成票を同時に記録する。

        Raises:
            ActiveProposalExists: 同じセッションにアクティブな提案がある場合
        """
        with self._lock:
            active = self.get_active_proposal(proposal.session_id)
            if active:
                raise ActiveProposalExists(proposal.session_id, active.id)

            self.proposals[proposal.id] = proposal
            self.votes[proposal.id] = {proposer_vote.voter_id: proposer_vote}
            self._save()

        logger.info(
            "Proposal created [%s]: session=%s proposer=%s target=%s",
            proposal.id, proposal.session_id, proposal.proposer_id, proposal.target_location_id,
        )
        return proposal

    def get_proposal(self, proposal_id: str) -> Optional[MovementProposal]:
        return self.proposals.get(proposal_id)

    def require_proposal(self, proposal_id: str) -> MovementProposal:
        proposal = self.proposals.get(proposal_id)
        if not proposal:
            raise ProposalNotFound(proposal_id)
        return proposal

    def get_active_proposal(self, session_id: str) -> Optional[MovementProposal]:
        """セッションのアクティブ（pending / voting）な提案を返す"""
        active = [
            p for p in self.proposals.values()
            if p.session_id == session_id and p.is_active
        ]
        if not active:
            return None
        return max(active, key=lambda p: p.created_at)

    def list_proposals(
        self, session_id: str, statuses: Optional[Iterable[str]] = None
    ) -> List[MovementProposal]:
        """セッションの提案一覧を新しい順に返す"""
        wanted = set(statuses) if statuses else None
        result = [
            p for p in self.proposals.values()
            if p.session_id == session_id and (wanted is None or p.status in wanted)
        ]
        return sorted(result, key=lambda p: p.created_at, reverse=True)

    def set_status(
        self,
        proposal_id: str,
        status: str,
        expected: Union[str, Iterable[str], None] = None,
    ) -> MovementProposal:
        """
        提案の状態を更新する。

        expected を指定した場合は compare-and-set として動作し、
        現在の状態が expected に含まれなければ更新せずに例外を送出する。

        Raises:
            ProposalNotFound: 提案が存在しない
            StatusTransitionConflict: 現在の状態が expected と一致しない
        """
        if status not in PROPOSAL_STATUSES:
            raise ValueError(f"Invalid proposal status: {status}")

        if isinstance(expected, str):
            expected = (expected,)
        elif expected is not None:
            expected = tuple(expected)

        with self._lock:
            proposal = self.require_proposal(proposal_id)
            if expected is not None and proposal.status not in expected:
                raise StatusTransitionConflict(proposal_id, expected, proposal.status)

            previous = proposal.status
            proposal.status = status
            self._save()

        logger.info("Proposal status [%s]: %s -> %s", proposal_id, previous, status)
        return proposal

    # ------------------------------------------------------------
    # 投票
    # ------------------------------------------------------------
    def upsert_vote(self, vote: Vote) -> Vote:
        """
        投票を記録する。同じ投票者の既存票があれば置き換える（IDは既存票のものを引き継ぐ）。
        """
        with self._lock:
            self.require_proposal(vote.proposal_id)
            ballot = self.votes.setdefault(vote.proposal_id, {})
            existing = ballot.get(vote.voter_id)
            if existing:
                vote.id = existing.id
            ballot[vote.voter_id] = vote
            self._save()
        return vote

    def get_vote(self, proposal_id: str, voter_id: str) -> Optional[Vote]:
        return self.votes.get(proposal_id, {}).get(voter_id)

    def list_votes(self, proposal_id: str) -> List[Vote]:
        """提案の有効票を時刻順に返す"""
        return sorted(self.votes.get(proposal_id, {}).values(), key=lambda v: v.timestamp)

    # ------------------------------------------------------------
    # 永続化
    # ------------------------------------------------------------
    def _save(self):
        if not self.data_dir:
            return

        proposals = [p.to_dict() for p in self.proposals.values()]
        votes = [v.to_dict() for ballot in self.votes.values() for v in ballot.values()]

        with open(self.data_dir / PROPOSALS_FILE, "w", encoding="utf-8") as f:
            json.dump(proposals, f, indent=2, ensure_ascii=False, default=str)
        with open(self.data_dir / VOTES_FILE, "w", encoding="utf-8") as f:
            json.dump(votes, f, indent=2, ensure_ascii=False, default=str)

    def _load(self):
        proposals_path = self.data_dir / PROPOSALS_FILE
        votes_path = self.data_dir / VOTES_FILE

        if proposals_path.exists():
            with open(proposals_path, "r", encoding="utf-8") as f:
                for data in json.load(f):
                    proposal = MovementProposal.from_dict(data)
                    if proposal.status == "executing":
                        # 実行途中で停止した提案は完了扱いにできない
                        logger.warning("Proposal [%s] was left executing, marking failed", proposal.id)
                        proposal.status = "failed"
                    self.proposals[proposal.id] = proposal

        if votes_path.exists():
            with open(votes_path, "r", encoding="utf-8") as f:
                for data in json.load(f):
                    vote = Vote.from_dict(data)
                    self.votes.setdefault(vote.proposal_id, {})[vote.voter_id] = vote

        logger.info(
            "Loaded %d proposals / %d ballots from %s",
            len(self.proposals), len(self.votes), self.data_dir,
        )
