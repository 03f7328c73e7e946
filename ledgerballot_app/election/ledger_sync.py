import logging
from dataclasses import dataclass

from election.ledger.base import (
    FN_ADMIN,
    FN_CANDIDATE,
    FN_CANDIDATE_COUNT,
    FN_ENDED,
    FN_HAS_VOTED,
    FN_IS_REGISTERED,
    FN_IS_WALLET_LINKED,
    FN_ROUND,
    FN_STARTED,
    FN_TITLE,
    FN_VOTER_BY_WALLET,
    FN_VOTER_LIST_STATUS,
    FN_WINNER,
    Ledger,
)
from election.ledger.exceptions import LedgerCallError, LedgerError, LedgerUnavailableError
from election.ledger.utils import same_address, short_address
from election.state import CallerStatus, Candidate, ElectionView, Phase, SyncResult, VoterIdentity, Winner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _VoterDatabaseFacts:
    finalized: bool = False
    total_voters: int = 0
    is_wallet_linked: bool = False
    authenticated_voter: VoterIdentity | None = None


_LEGACY_VOTER_DATABASE = _VoterDatabaseFacts()


async def _read_voter_database(
    ledger: Ledger,
    caller_address: str | None,
    *,
    authenticated_voter: VoterIdentity | None,
) -> _VoterDatabaseFacts:
    """Read the voter-list facts, or fall back to legacy mode.

    Deployments that predate the voter database revert (or lack) these
    functions; that only downgrades eligibility to the legacy allow-list. An
    unreachable ledger is still an error.
    """

    try:
        finalized, total_voters = await ledger.call(FN_VOTER_LIST_STATUS, caller=caller_address)
        if caller_address is None:
            return _VoterDatabaseFacts(finalized=bool(finalized), total_voters=int(total_voters))

        is_linked = bool(await ledger.call(FN_IS_WALLET_LINKED, caller_address, caller=caller_address))
        if is_linked and authenticated_voter is None:
            name, unique_id = await ledger.call(FN_VOTER_BY_WALLET, caller_address, caller=caller_address)
            authenticated_voter = VoterIdentity(name=str(name), unique_id=str(unique_id))
    except LedgerCallError as exc:
        logger.info("Voter database unsupported by this deployment; using legacy eligibility: %s", exc)
        return _LEGACY_VOTER_DATABASE

    return _VoterDatabaseFacts(
        finalized=bool(finalized),
        total_voters=int(total_voters),
        is_wallet_linked=is_linked,
        authenticated_voter=authenticated_voter,
    )


async def _read_election(
    ledger: Ledger,
    caller_address: str | None,
    *,
    authenticated_voter: VoterIdentity | None,
    generation: int,
) -> SyncResult:
    title = str(await ledger.call(FN_TITLE, caller=caller_address))
    admin = str(await ledger.call(FN_ADMIN, caller=caller_address))
    started = bool(await ledger.call(FN_STARTED, caller=caller_address))
    ended = bool(await ledger.call(FN_ENDED, caller=caller_address))
    round_number = int(await ledger.call(FN_ROUND, caller=caller_address))
    count = int(await ledger.call(FN_CANDIDATE_COUNT, caller=caller_address))

    candidates: list[Candidate] = []
    for candidate_id in range(1, count + 1):
        name, votes = await ledger.call(FN_CANDIDATE, candidate_id, caller=caller_address)
        candidates.append(Candidate(id=candidate_id, name=str(name), vote_count=int(votes)))

    is_registered = False
    has_voted = False
    if caller_address is not None:
        is_registered = bool(await ledger.call(FN_IS_REGISTERED, caller_address, caller=caller_address))
        has_voted = bool(await ledger.call(FN_HAS_VOTED, caller_address, caller=caller_address))

    voter_db = await _read_voter_database(ledger, caller_address, authenticated_voter=authenticated_voter)

    phase = Phase.from_flags(started=started, ended=ended)
    winner: Winner | None = None
    if phase == Phase.ENDED:
        winner_id, winner_name, winner_votes = await ledger.call(FN_WINNER, caller=caller_address)
        # The contract reports id 0 when the round ended without candidates.
        if int(winner_id) > 0:
            winner = Winner(candidate_id=int(winner_id), name=str(winner_name), votes=int(winner_votes))

    view = ElectionView(
        title=title,
        admin=admin,
        phase=phase,
        round=round_number,
        candidates=tuple(candidates),
        voter_list_finalized=voter_db.finalized,
        total_voters=voter_db.total_voters,
        winner=winner,
        generation=generation,
    )
    caller_status = CallerStatus(
        address=caller_address,
        is_admin=same_address(caller_address, admin),
        is_registered_legacy=is_registered,
        is_wallet_linked=voter_db.is_wallet_linked,
        authenticated_voter=voter_db.authenticated_voter,
        has_voted_this_round=has_voted,
    )
    return SyncResult(view=view, caller_status=caller_status)


async def sync_election(
    ledger: Ledger,
    caller_address: str | None,
    *,
    authenticated_voter: VoterIdentity | None = None,
    generation: int = 0,
) -> SyncResult:
    """Fetch one consistent snapshot of the election for ``caller_address``.

    Raises LedgerUnavailableError when any read other than the voter-database
    facts fails; callers keep their previous snapshot in that case.
    """

    try:
        result = await _read_election(
            ledger,
            caller_address,
            authenticated_voter=authenticated_voter,
            generation=generation,
        )
    except LedgerUnavailableError:
        raise
    except LedgerError as exc:
        raise LedgerUnavailableError(f"Election sync aborted: {exc}") from exc

    logger.debug(
        "Election synced generation=%d caller=%s phase=%s round=%d candidates=%d finalized=%s",
        generation,
        short_address(caller_address),
        result.view.phase,
        result.view.round,
        len(result.view.candidates),
        result.view.voter_list_finalized,
    )
    return result
