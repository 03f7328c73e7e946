import asyncio
from typing import Any, override

from election.management.base import LedgerCommand
from election.session import Session
from election.state import SyncResult


class Command(LedgerCommand):
    help = "Keep the election view in sync and print every committed change."

    @override
    def add_arguments(self, parser) -> None:
        super().add_arguments(parser)
        parser.add_argument(
            "--duration",
            type=float,
            default=None,
            help="Stop after this many seconds (default: run until interrupted).",
        )

    @override
    async def run(self, session: Session, options: dict[str, Any]) -> None:
        duration: float | None = options.get("duration")

        def _print_commit(result: SyncResult) -> None:
            view = result.view
            tally = ", ".join(f"{c.name}={c.vote_count}" for c in view.candidates) or "no candidates"
            self.stdout.write(f"[generation {view.generation}] {view.phase} round {view.round}: {tally}")

        view = session.require_view()
        assert session.reconciler is not None
        session.reconciler.add_listener(_print_commit)
        self.stdout.write(f"Watching '{view.title}' as {session.address}")
        if session.reconciler.result is not None:
            _print_commit(session.reconciler.result)

        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(max(duration, 0))
