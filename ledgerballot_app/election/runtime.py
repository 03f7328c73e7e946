"""Wiring for processes that talk to the configured ledger deployment."""

import contextlib
import logging
from collections.abc import AsyncIterator

from election.exceptions import ElectionNotSyncedError
from election.identity import LocalAccountIdentity
from election.ledger.web3_ledger import Web3Ledger
from election.session import Session

logger = logging.getLogger(__name__)


def build_identity(*, account: str | None = None) -> LocalAccountIdentity:
    identity = LocalAccountIdentity.from_settings()
    if account:
        identity.switch_account(account)
    return identity


def build_ledger(identity: LocalAccountIdentity) -> Web3Ledger:
    return Web3Ledger(identity=identity)


@contextlib.asynccontextmanager
async def open_session(*, account: str | None = None, synced: bool = True) -> AsyncIterator[Session]:
    """Yield a started session for the configured account.

    With ``synced`` the first reconciliation run has committed before the body
    runs, so actions can check their preconditions right away.
    """

    identity = build_identity(account=account)
    ledger = build_ledger(identity)
    try:
        async with Session(ledger=ledger, identity=identity) as session:
            if synced:
                # Wrong network or no account: require_view reports the reason.
                if session.reconciler is None:
                    session.require_view()
                    raise ElectionNotSyncedError("No reconciliation loop is running.")
                await session.refresh()
            yield session
    finally:
        await ledger.close()
