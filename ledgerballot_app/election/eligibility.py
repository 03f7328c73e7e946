"""Who may vote: the legacy allow-list or the finalized voter database.

Before the admin finalizes the voter list, eligibility is membership in the
allow-list maintained with ``registerVoter``. Afterwards only voters who
authenticated against the voter database (by unique id, or because their
wallet is linked to a record) may vote; the allow-list no longer counts.
"""

import logging

from election.exceptions import InvalidCredentialError, InvalidInputError
from election.ledger.base import FN_AUTHENTICATE
from election.ledger.utils import short_address
from election.session import Session
from election.state import CallerStatus, ElectionView, VoterIdentity

logger = logging.getLogger(__name__)

LEGACY = "legacy"
FINALIZED = "finalized"


def eligibility_regime(view: ElectionView) -> str:
    return FINALIZED if view.voter_list_finalized else LEGACY


def is_vote_eligible(view: ElectionView, status: CallerStatus) -> bool:
    if view.voter_list_finalized:
        return status.authenticated_voter is not None
    return status.is_registered_legacy


def ineligibility_reason(view: ElectionView, status: CallerStatus) -> str | None:
    if is_vote_eligible(view, status):
        return None
    if view.voter_list_finalized:
        return "Authenticate with your unique ID to vote; the voter list has been finalized."
    return "You are not registered to vote. Contact the admin to get registered."


async def authenticate_voter(session: Session, unique_id: str) -> VoterIdentity:
    """Authenticate the connected wallet against the finalized voter database.

    On success the voter stays authenticated for the rest of the session (until
    the identity changes) and a resync is requested so eligibility is
    recomputed from fresh ledger facts.
    """

    unique_id = str(unique_id or "").strip()
    if not unique_id:
        raise InvalidInputError("Please enter your unique ID.")

    session.require_view()

    async with session.pending_action("authenticate"):
        name, is_valid = await session.ledger.call(FN_AUTHENTICATE, unique_id, caller=session.address)

    if not is_valid:
        logger.info("Voter authentication rejected caller=%s", short_address(session.address))
        raise InvalidCredentialError("Invalid unique ID. You are not registered for this election.")

    voter = VoterIdentity(name=str(name), unique_id=unique_id)
    session.set_authenticated_voter(voter)
    logger.info("Voter authenticated caller=%s", short_address(session.address))

    await session.resync("authenticate")
    return voter


def forget_authentication(session: Session) -> None:
    """Drop the session's voter credential ("use a different ID").

    A wallet linked to a voter record re-authenticates on the next sync.
    """

    session.forget_authenticated_voter()
