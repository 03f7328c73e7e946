"""Election lifecycle actions: candidates, legacy registration, phases, votes.

Each action checks what it can against the last synced view, submits exactly
one ledger transaction, waits for confirmation, and then resyncs. The view is
never edited locally; it only changes when the resync commits.
"""

import logging

from election.eligibility import ineligibility_reason, is_vote_eligible
from election.exceptions import (
    AlreadyVotedError,
    ElectionError,
    InvalidInputError,
    NotEligibleError,
    NotVotingPhaseError,
    PipelineDisabledError,
    UnauthorizedError,
)
from election.ledger.base import (
    TX_ADD_CANDIDATE,
    TX_END_ELECTION,
    TX_REGISTER_VOTER,
    TX_RESET_ALL,
    TX_START_ELECTION,
    TX_VOTE,
    TransactionReceipt,
)
from election.ledger.utils import is_canonical_address
from election.session import Session
from election.state import ElectionView, Phase

logger = logging.getLogger(__name__)


def _require_admin(session: Session) -> ElectionView:
    view = session.require_view()
    if not session.caller_status.is_admin:
        raise UnauthorizedError("Only the election admin can do that.")
    return view


async def _commit(session: Session, action: str, function: str, *args: object) -> TransactionReceipt:
    async with session.pending_action(action):
        receipt = await session.submit(function, *args)
    await session.resync(action)
    return receipt


async def add_candidate(session: Session, name: str) -> TransactionReceipt:
    _require_admin(session)
    name = str(name or "").strip()
    if not name:
        raise InvalidInputError("Please enter a candidate name.")

    receipt = await _commit(session, "add_candidate", TX_ADD_CANDIDATE, name)
    logger.info("Candidate submitted name=%r tx_hash=%s", name, receipt.tx_hash)
    return receipt


async def register_voter(session: Session, address: str) -> TransactionReceipt:
    view = _require_admin(session)
    address = str(address or "").strip()
    if not is_canonical_address(address):
        raise InvalidInputError("Please enter a valid wallet address (0x followed by 40 hex digits).")
    if view.voter_list_finalized:
        raise PipelineDisabledError("The voter list is finalized; legacy registration is closed.")

    return await _commit(session, "register_voter", TX_REGISTER_VOTER, address)


async def start_election(session: Session) -> TransactionReceipt:
    view = _require_admin(session)
    if view.phase != Phase.IDLE:
        raise ElectionError(f"The election can only be started from Idle (currently {view.phase}).")
    if not view.candidates:
        raise ElectionError("Please add at least one candidate before starting the election.")

    return await _commit(session, "start_election", TX_START_ELECTION)


async def end_election(session: Session) -> TransactionReceipt:
    view = _require_admin(session)
    if view.phase != Phase.VOTING:
        raise NotVotingPhaseError(f"Only a running election can be ended (currently {view.phase}).")

    return await _commit(session, "end_election", TX_END_ELECTION)


async def reset_all(session: Session) -> TransactionReceipt:
    view = _require_admin(session)
    logger.info("Election reset requested round=%d candidates=%d", view.round, len(view.candidates))
    return await _commit(session, "reset_all", TX_RESET_ALL)


async def vote(session: Session, candidate_id: int) -> TransactionReceipt:
    view = session.require_view()
    status = session.caller_status

    if view.phase != Phase.VOTING:
        raise NotVotingPhaseError("Voting is not active right now.")
    if not is_vote_eligible(view, status):
        raise NotEligibleError(ineligibility_reason(view, status) or "You are not eligible to vote.")
    if status.has_voted_this_round:
        raise AlreadyVotedError("You have already voted in this round.")

    try:
        candidate_id = int(candidate_id)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid candidate id: {candidate_id!r}") from exc
    if view.candidate(candidate_id) is None:
        raise InvalidInputError(f"Candidate #{candidate_id} is not part of round {view.round}.")

    receipt = await _commit(session, "vote", TX_VOTE, candidate_id)
    logger.info(
        "ledgerballot.election.vote_cast round=%d candidate_id=%d tx_hash=%s",
        view.round,
        candidate_id,
        receipt.tx_hash,
        extra={
            "event": "ledgerballot.election.vote_cast",
            "component": "election",
            "outcome": "confirmed",
            "round": view.round,
            "candidate_id": candidate_id,
            "tx_hash": receipt.tx_hash,
        },
    )
    return receipt
