"""Keeps one identity's view of the election in step with the ledger.

All triggers (explicit refresh, the polling timer, ledger notifications, and
completed local mutations) go through ``request_sync``. At most one sync runs at
a time; triggers that arrive meanwhile collapse into a single follow-up run.
Results are committed by generation, never by arrival order.
"""

import asyncio
import logging
from collections.abc import Callable

from django.conf import settings

from election.exceptions import ElectionNotSyncedError
from election.ledger.base import Ledger, Unsubscribe
from election.ledger.exceptions import LedgerUnavailableError
from election.ledger.utils import short_address
from election.ledger_sync import sync_election
from election.state import CallerStatus, ElectionView, Phase, SyncResult, VoterIdentity

logger = logging.getLogger(__name__)

_POLLING_PHASES = frozenset({Phase.VOTING, Phase.ENDED})

type CommitListener = Callable[[SyncResult], None]


class ReconciliationLoop:
    def __init__(
        self,
        *,
        ledger: Ledger,
        address: str | None,
        interval_seconds: float | None = None,
        authenticated_voter: Callable[[], VoterIdentity | None] = lambda: None,
    ) -> None:
        self._ledger = ledger
        self._address = address
        self._interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.ELECTION_SYNC_INTERVAL_SECONDS
        )
        self._authenticated_voter = authenticated_voter

        self._generation = 0
        self._committed_generation = 0
        self._result: SyncResult | None = None

        self._run_task: asyncio.Task[None] | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._rerun_requested = False
        self._next_waiters: list[asyncio.Future[SyncResult]] = []
        self._unsubscribe: Unsubscribe | None = None
        self._listeners: list[CommitListener] = []
        self._started = False
        self._stopped = False

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def committed_generation(self) -> int:
        return self._committed_generation

    @property
    def in_flight(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    @property
    def timer_active(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def view(self) -> ElectionView | None:
        return self._result.view if self._result is not None else None

    @property
    def caller_status(self) -> CallerStatus:
        if self._result is None:
            return CallerStatus(address=self._address)
        return self._result.caller_status

    @property
    def result(self) -> SyncResult | None:
        return self._result

    def add_listener(self, listener: CommitListener) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._unsubscribe = self._ledger.subscribe(self._on_ledger_event)
        logger.info("Reconciliation loop started caller=%s", short_address(self._address))
        self.request_sync("start")

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = [t for t in (self._timer_task, self._run_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer_task = None
        self._run_task = None

        for waiter in self._next_waiters:
            waiter.cancel()
        self._next_waiters = []
        logger.info("Reconciliation loop stopped caller=%s", short_address(self._address))

    def request_sync(self, reason: str) -> None:
        if self._stopped:
            return

        if self.in_flight:
            self._rerun_requested = True
            logger.debug("Sync coalesced reason=%s generation=%d", reason, self._generation)
            return

        self._launch(reason)

    async def refresh(self, reason: str = "refresh") -> SyncResult:
        """Request a sync and wait for a run that started after this call.

        Raises LedgerUnavailableError when that run fails.
        """

        if self._stopped:
            raise ElectionNotSyncedError("The reconciliation loop is not running.")

        waiter: asyncio.Future[SyncResult] = asyncio.get_running_loop().create_future()
        self._next_waiters.append(waiter)
        self.request_sync(reason)
        return await waiter

    def _launch(self, reason: str) -> None:
        self._generation += 1
        generation = self._generation
        waiters, self._next_waiters = self._next_waiters, []
        self._run_task = asyncio.get_running_loop().create_task(self._run(generation, reason, waiters))

    async def _run(self, generation: int, reason: str, waiters: list[asyncio.Future[SyncResult]]) -> None:
        try:
            result = await sync_election(
                self._ledger,
                self._address,
                authenticated_voter=self._authenticated_voter(),
                generation=generation,
            )
        except LedgerUnavailableError as exc:
            logger.warning(
                "ledgerballot.reconcile.sync_failed generation=%d reason=%s error=%s",
                generation,
                reason,
                exc,
                extra={
                    "event": "ledgerballot.reconcile.sync_failed",
                    "component": "reconcile",
                    "outcome": "failed",
                    "generation": generation,
                    "trigger": reason,
                },
            )
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(exc)
        except asyncio.CancelledError:
            for waiter in waiters:
                waiter.cancel()
            raise
        except Exception as exc:
            logger.exception("Election sync crashed generation=%d reason=%s", generation, reason)
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(exc)
        else:
            self._commit(generation, result)
            committed = self._result if self._result is not None else result
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(committed)

        if self._rerun_requested and not self._stopped:
            self._rerun_requested = False
            self._launch("coalesced")

    def _commit(self, generation: int, result: SyncResult) -> bool:
        if generation <= self._committed_generation:
            logger.info(
                "Discarding stale sync result generation=%d committed_generation=%d",
                generation,
                self._committed_generation,
            )
            return False

        self._committed_generation = generation
        self._result = result
        self._update_timer(result.view.phase)

        logger.info(
            "ledgerballot.reconcile.commit generation=%d phase=%s round=%d candidates=%d",
            generation,
            result.view.phase,
            result.view.round,
            len(result.view.candidates),
            extra={
                "event": "ledgerballot.reconcile.commit",
                "component": "reconcile",
                "outcome": "committed",
                "generation": generation,
                "phase": str(result.view.phase),
                "round": result.view.round,
            },
        )
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Commit listener failed generation=%d listener=%r", generation, listener)
        return True

    def _update_timer(self, phase: Phase) -> None:
        if self._stopped:
            return

        if phase in _POLLING_PHASES and not self.timer_active:
            self._timer_task = asyncio.get_running_loop().create_task(self._tick())
        elif phase not in _POLLING_PHASES and self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            self.request_sync("timer")

    def _on_ledger_event(self, event_name: str) -> None:
        self.request_sync(f"event:{event_name}")
