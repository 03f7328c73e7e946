from typing import Any, override

from election import lifecycle
from election.eligibility import authenticate_voter
from election.management.base import LedgerCommand
from election.session import Session


class Command(LedgerCommand):
    help = "Cast the configured account's vote for a candidate in the current round."

    @override
    def add_arguments(self, parser) -> None:
        super().add_arguments(parser)
        parser.add_argument("candidate_id", type=int)
        parser.add_argument(
            "--unique-id",
            default="",
            help="Voter unique ID to authenticate with once the voter list is finalized.",
        )

    @override
    async def run(self, session: Session, options: dict[str, Any]) -> None:
        view = session.require_view()
        unique_id = str(options.get("unique_id") or "").strip()

        if view.voter_list_finalized and unique_id and session.caller_status.authenticated_voter is None:
            voter = await authenticate_voter(session, unique_id)
            self.stdout.write(f"Authenticated as {voter.name}")

        receipt = await lifecycle.vote(session, options["candidate_id"])
        self.stdout.write(self.style.SUCCESS(f"Vote for #{options['candidate_id']} confirmed in {receipt.tx_hash}"))
