from typing import Any, override

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from election.eligibility import eligibility_regime, ineligibility_reason
from election.exceptions import ElectionError
from election.ledger.exceptions import LedgerError
from election.runtime import open_session
from election.session import Session
from election.state import CallerStatus, ElectionView


def describe_view(view: ElectionView, status: CallerStatus) -> list[str]:
    lines = [
        f"Election: {view.title}",
        f"Admin: {view.admin}",
        f"Phase: {view.phase}",
        f"Round: {view.round}",
        f"Voter list: {'finalized' if view.voter_list_finalized else 'open'} ({view.total_voters} voters)",
        f"Eligibility: {eligibility_regime(view)}",
    ]
    if view.candidates:
        lines.append("Candidates:")
        lines.extend(f"  #{c.id} {c.name}: {c.vote_count} votes" for c in view.candidates)
    else:
        lines.append("Candidates: none")
    if view.winner is not None:
        lines.append(f"Winner: {view.winner.name} (#{view.winner.candidate_id}) with {view.winner.votes} votes")

    lines.append(f"Account: {status.address}{' (admin)' if status.is_admin else ''}")
    if status.authenticated_voter is not None:
        lines.append(
            f"Authenticated voter: {status.authenticated_voter.name} ({status.authenticated_voter.unique_id})"
        )
    lines.append(f"Voted this round: {'yes' if status.has_voted_this_round else 'no'}")
    reason = ineligibility_reason(view, status)
    if reason:
        lines.append(f"Not eligible: {reason}")
    return lines


class LedgerCommand(BaseCommand):
    """Base for commands that act as one configured account against the ledger.

    Subclasses implement ``run``; engine and ledger errors become CommandError.
    """

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--account",
            default="",
            help="Address of the configured key to act as (defaults to the first key).",
        )

    @override
    def handle(self, *args, **options) -> None:
        try:
            async_to_sync(self._run_in_session)(options)
        except (ElectionError, LedgerError) as exc:
            raise CommandError(str(exc)) from exc

    async def _run_in_session(self, options: dict[str, Any]) -> None:
        account = str(options.get("account") or "").strip() or None
        async with open_session(account=account) as session:
            await self.run(session, options)

    async def run(self, session: Session, options: dict[str, Any]) -> None:
        raise NotImplementedError
