"""投票集計とコンセンサス判定（純粋関数）"""
import math
from typing import Iterable, List

from models.party import PartyMember
from models.proposal import MovementProposal, Vote
from models.settings import ConsensusSettings
from models.summary import VoterDetail, VoterGroupStats, VotingSummary


# 判定結果
DECISION_VOTING = "voting"
DECISION_APPROVED = "approved"
DECISION_REJECTED = "rejected"


def required_approvals(total_eligible_voters: int, voting_system: str) -> int:
    """
    合意に必要な賛成票数。

    majority: ceil(投票権者数 / 2)
    unanimous: 投票権者数
    """
    if voting_system == "unanimous":
        return total_eligible_voters
    return math.ceil(total_eligible_voters / 2)


def summarize(
    proposal: MovementProposal,
    votes: Iterable[Vote],
    roster: Iterable[PartyMember],
    settings: ConsensusSettings,
) -> VotingSummary:
    """
    提案の投票集計を投票データとロスターから毎回作り直す。

    集計対象は投票権者（PC）の票のみ。同じ投票者の票が複数渡された場合は
    時刻が最も新しいものを有効票とする。
    """
    latest = {}
    for vote in sorted(votes, key=lambda v: v.timestamp):
        latest[vote.voter_id] = vote

    counts = {"approve": 0, "reject": 0, "abstain": 0}
    human = VoterGroupStats()
    ai = VoterGroupStats()
    details: List[VoterDetail] = []

    for member in roster:
        if not member.can_vote:
            continue

        vote = latest.get(member.character_id)
        group = ai if member.is_ai_controlled else human
        group.total += 1

        if vote:
            counts[vote.choice] += 1
            group.voted += 1
            group.breakdown[vote.choice] += 1
        else:
            group.pending += 1

        details.append(VoterDetail(
            voter_id=member.character_id,
            voter_name=member.character_name,
            voter_type=member.voter_type,
            has_voted=vote is not None,
            is_proposer=member.character_id == proposal.proposer_id,
            choice=vote.choice if vote else None,
            vote_reason=vote.reason if vote else None,
            voted_at=vote.timestamp if vote else None,
        ))

    total = len(details)
    required = required_approvals(total, settings.voting_system)
    consensus_reached = total > 0 and counts["approve"] >= required

    if consensus_reached and counts["approve"] == total:
        consensus_type = "unanimous"
    elif consensus_reached:
        consensus_type = "majority"
    else:
        consensus_type = "none"

    return VotingSummary(
        proposal_id=proposal.id,
        total_eligible_voters=total,
        votes=counts,
        voter_details=details,
        required_approvals=required,
        consensus_reached=consensus_reached,
        consensus_type=consensus_type,
        human_voters=human,
        ai_voters=ai,
    )


def is_rejected(summary: VotingSummary) -> bool:
    """
    否決が確定しているか判定する。

    1. 全員投票済みで合意未達
    2. 過半数が反対（残りの票に関係なく確定）
    3. 未投票者が全員賛成しても必要賛成数に届かない
    投票権者が1人もいない提案は承認され得ないため否決とする。
    """
    total = summary.total_eligible_voters
    if total == 0:
        return True

    approve = summary.votes["approve"]
    reject = summary.votes["reject"]
    remaining = summary.remaining_count

    all_voted = remaining == 0 and not summary.consensus_reached
    majority_rejects = reject > total // 2
    cannot_reach = approve + remaining < summary.required_approvals

    return all_voted or majority_rejects or cannot_reach


def decide(summary: VotingSummary) -> str:
    """
    コンセンサスを判定する。

    必要賛成数に達した時点で "approved"（残りの投票を待たない）、
    否決が確定していれば "rejected"、それ以外は "voting"。
    """
    if summary.consensus_reached:
        return DECISION_APPROVED
    if is_rejected(summary):
        return DECISION_REJECTED
    return DECISION_VOTING
