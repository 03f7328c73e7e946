import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import AsyncIterator
from types import TracebackType
from typing import Any

from django.conf import settings

from election.exceptions import (
    ActionPendingError,
    ElectionNotSyncedError,
    UnauthorizedError,
    WrongNetworkError,
)
from election.identity import IdentityChange, IdentityProvider
from election.ledger.base import Ledger, TransactionReceipt
from election.ledger.exceptions import LedgerUnavailableError
from election.ledger.utils import short_address
from election.reconcile import ReconciliationLoop
from election.state import CallerStatus, ElectionView, SyncResult, VoterIdentity

logger = logging.getLogger(__name__)


class Session:
    """One connected identity's view of the election.

    The session is the single owner of the reconciliation loop. Identity
    changes arrive as messages on a queue; each one tears the old loop down,
    forgets the view and any voter authentication, and starts a fresh loop for
    the new address.
    """

    def __init__(
        self,
        *,
        ledger: Ledger,
        identity: IdentityProvider,
        interval_seconds: float | None = None,
        expected_chain_id: int | None = None,
    ) -> None:
        self._ledger = ledger
        self._identity = identity
        self._interval_seconds = interval_seconds
        self._expected_chain_id = int(
            expected_chain_id if expected_chain_id is not None else settings.LEDGER_CHAIN_ID
        )

        self._address: str | None = None
        self._chain_id: int | None = None
        self._authenticated_voter: VoterIdentity | None = None
        self._credential_forgotten_through: int | None = None
        self._reconciler: ReconciliationLoop | None = None
        self._pending: set[str] = set()

        self._identity_events: asyncio.Queue[IdentityChange] = asyncio.Queue()
        self._identity_worker: asyncio.Task[None] | None = None
        self._unsubscribe_identity: Any = None

    async def __aenter__(self) -> "Session":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def chain_id(self) -> int | None:
        return self._chain_id

    @property
    def network_ok(self) -> bool:
        return self._chain_id == self._expected_chain_id

    @property
    def reconciler(self) -> ReconciliationLoop | None:
        return self._reconciler

    @property
    def view(self) -> ElectionView | None:
        if self._reconciler is None:
            return None
        return self._reconciler.view

    @property
    def caller_status(self) -> CallerStatus:
        if self._reconciler is None:
            return CallerStatus(address=self._address)

        status = self._reconciler.caller_status
        forgotten_through = self._credential_forgotten_through
        if forgotten_through is not None and self._reconciler.committed_generation <= forgotten_through:
            return dataclasses.replace(status, authenticated_voter=None)
        if self._authenticated_voter is not None and status.authenticated_voter is None:
            return dataclasses.replace(status, authenticated_voter=self._authenticated_voter)
        return status

    @property
    def authenticated_voter(self) -> VoterIdentity | None:
        return self._authenticated_voter

    def set_authenticated_voter(self, voter: VoterIdentity | None) -> None:
        self._authenticated_voter = voter
        if voter is not None:
            self._credential_forgotten_through = None

    def forget_authenticated_voter(self) -> None:
        """Drop the voter credential now; syncs already under way still carry it."""

        self._authenticated_voter = None
        if self._reconciler is not None:
            self._credential_forgotten_through = self._reconciler.generation
            self._reconciler.request_sync("forget_authentication")

    async def start(self) -> None:
        if self._identity_worker is not None:
            return
        self._unsubscribe_identity = self._identity.subscribe(self._on_identity_change)
        self._identity_worker = asyncio.get_running_loop().create_task(self._consume_identity_events())
        await self._activate(IdentityChange(address=self._identity.address, chain_id=self._identity.chain_id))

    async def close(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None

        if self._identity_worker is not None:
            self._identity_worker.cancel()
            await asyncio.gather(self._identity_worker, return_exceptions=True)
            self._identity_worker = None

        await self._teardown()

    async def identity_settled(self) -> None:
        """Wait until every queued identity change has been applied."""

        await self._identity_events.join()

    def require_view(self) -> ElectionView:
        if self._address is None:
            raise UnauthorizedError("Connect an account first.")
        if not self.network_ok:
            raise WrongNetworkError(
                f"Switch to {settings.LEDGER_NETWORK_NAME} (chain id {self._expected_chain_id}); "
                f"the connected network is {self._chain_id}."
            )
        view = self.view
        if view is None:
            raise ElectionNotSyncedError("Election state has not been synchronized yet.")
        return view

    async def refresh(self) -> SyncResult:
        if self._reconciler is None:
            raise ElectionNotSyncedError("No account is connected.")
        return await self._reconciler.refresh("refresh")

    async def resync(self, reason: str) -> SyncResult | None:
        """Resync after a committed mutation.

        A failed read here does not undo the mutation; the loop's timer and the
        ledger notifications will pick the change up.
        """

        if self._reconciler is None:
            return None
        try:
            return await self._reconciler.refresh(reason)
        except LedgerUnavailableError as exc:
            logger.warning("Resync after %s failed; keeping the previous view: %s", reason, exc)
            return None

    async def submit(self, function: str, *args: Any) -> TransactionReceipt:
        if self._address is None:
            raise UnauthorizedError("Connect an account first.")
        pending = await self._ledger.transact(function, *args, sender=self._address)
        receipt = await pending.wait()
        logger.info(
            "ledgerballot.ledger.transaction_confirmed function=%s tx_hash=%s sender=%s",
            function,
            receipt.tx_hash,
            short_address(self._address),
            extra={
                "event": "ledgerballot.ledger.transaction_confirmed",
                "component": "ledger",
                "outcome": "confirmed",
                "function": function,
                "tx_hash": receipt.tx_hash,
            },
        )
        return receipt

    @contextlib.asynccontextmanager
    async def pending_action(self, action: str) -> AsyncIterator[None]:
        if action in self._pending:
            raise ActionPendingError(f"{action} is still waiting for ledger confirmation.")
        self._pending.add(action)
        try:
            yield
        finally:
            self._pending.discard(action)

    def is_pending(self, action: str) -> bool:
        return action in self._pending

    def _on_identity_change(self, change: IdentityChange) -> None:
        self._identity_events.put_nowait(change)

    async def _consume_identity_events(self) -> None:
        while True:
            change = await self._identity_events.get()
            try:
                await self._activate(change)
            except Exception:
                logger.exception("Identity change failed address=%s", short_address(change.address))
            finally:
                self._identity_events.task_done()

    async def _teardown(self) -> None:
        if self._reconciler is not None:
            await self._reconciler.stop()
            self._reconciler = None

    async def _activate(self, change: IdentityChange) -> None:
        await self._teardown()
        self._authenticated_voter = None
        self._credential_forgotten_through = None
        self._address = change.address
        self._chain_id = change.chain_id

        if change.address is None:
            logger.info("Session idle: no account connected")
            return

        if not self.network_ok:
            logger.warning(
                "Session idle: account %s is on chain %s, expected %s",
                short_address(change.address),
                change.chain_id,
                self._expected_chain_id,
            )
            return

        self._reconciler = ReconciliationLoop(
            ledger=self._ledger,
            address=change.address,
            interval_seconds=self._interval_seconds,
            authenticated_voter=lambda: self._authenticated_voter,
        )
        self._reconciler.start()
