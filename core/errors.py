"""パーティ移動合意エンジン固有のエラー"""


class PartyMovementError(Exception):
    """エンジン内エラーの基底クラス。code はレスポンスエンベロープにそのまま載る"""

    code = "PARTY_MOVEMENT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(PartyMovementError):
    code = "INVALID_REQUEST"


class ActiveProposalExists(PartyMovementError):
    code = "ACTIVE_PROPOSAL_EXISTS"

    def __init__(self, session_id: str, proposal_id: str):
        self.session_id = session_id
        self.proposal_id = proposal_id
        super().__init__(f"既にアクティブな移動提案が存在します (session={session_id}, proposal={proposal_id})")


class ProposalNotFound(PartyMovementError):
    code = "PROPOSAL_NOT_FOUND"

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(f"移動提案が見つかりません: {proposal_id}")


class VotingClosed(PartyMovementError):
    code = "VOTING_CLOSED"

    def __init__(self, proposal_id: str, status: str):
        self.proposal_id = proposal_id
        self.status = status
        super().__init__(f"投票期間が終了しています (proposal={proposal_id}, status={status})")


class VoterNotEligible(PartyMovementError):
    code = "VOTER_NOT_ELIGIBLE"

    def __init__(self, voter_id: str):
        self.voter_id = voter_id
        super().__init__(f"投票権がありません: {voter_id}")


class NotApproved(PartyMovementError):
    code = "NOT_APPROVED"

    def __init__(self, proposal_id: str, status: str):
        self.proposal_id = proposal_id
        self.status = status
        super().__init__(f"承認されていない移動は実行できません (proposal={proposal_id}, status={status})")


class PartialMovementFailure(PartyMovementError):
    code = "PARTIAL_MOVEMENT_FAILURE"

    def __init__(self, proposal_id: str, failed: int, total: int):
        self.proposal_id = proposal_id
        self.failed = failed
        self.total = total
        super().__init__(
            f"移動に失敗しました（{failed}/{total}人の移動が失敗）。ターンは進行されません。"
        )


class TimeAdvanceFailure(PartyMovementError):
    """全員の移動後、ターン進行の途中で時間サービスが失敗した"""

    code = "TIME_ADVANCE_FAILED"

    def __init__(self, proposal_id: str, turns_advanced: int, turns_required: int, reason: str):
        self.proposal_id = proposal_id
        self.turns_advanced = turns_advanced
        self.turns_required = turns_required
        super().__init__(
            f"ターンの進行に失敗しました（{turns_advanced}/{turns_required}ターン進行済み）: {reason}"
        )


class StatusTransitionConflict(PartyMovementError):
    """compare-and-set による状態遷移で、期待した状態が既に変わっていた"""

    code = "STATUS_CONFLICT"

    def __init__(self, proposal_id: str, expected, actual: str):
        self.proposal_id = proposal_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"提案の状態が変化しています (proposal={proposal_id}, expected={expected}, actual={actual})"
        )


class AIVoteGenerationError(PartyMovementError):
    """AI投票判断の生成失敗。スケジューラ内で棄権票として回収され、呼び出し元には出ない"""

    code = "AI_VOTE_GENERATION_ERROR"


class SessionNotFound(PartyMovementError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"セッションが見つかりません: {session_id}")
