from typing import Any, override

from django.core.management.base import CommandError

from election import lifecycle
from election.management.base import LedgerCommand
from election.session import Session
from election.voter_import import finalize_voter_list

ACTIONS = ("add-candidate", "register-voter", "start", "end", "reset", "finalize")


class Command(LedgerCommand):
    help = "Run an admin action against the election: add-candidate, register-voter, start, end, reset, finalize."

    @override
    def add_arguments(self, parser) -> None:
        super().add_arguments(parser)
        parser.add_argument("action", choices=ACTIONS)
        parser.add_argument(
            "value",
            nargs="?",
            default="",
            help="Candidate name for add-candidate, wallet address for register-voter.",
        )
        parser.add_argument(
            "--yes",
            action="store_true",
            help="Confirm a reset (clears candidates and starts a new round).",
        )

    @override
    async def run(self, session: Session, options: dict[str, Any]) -> None:
        action = str(options["action"])
        value = str(options.get("value") or "")

        match action:
            case "add-candidate":
                receipt = await lifecycle.add_candidate(session, value)
            case "register-voter":
                receipt = await lifecycle.register_voter(session, value)
            case "start":
                receipt = await lifecycle.start_election(session)
            case "end":
                receipt = await lifecycle.end_election(session)
            case "reset":
                if not options.get("yes"):
                    raise CommandError("Refusing to reset without --yes.")
                receipt = await lifecycle.reset_all(session)
            case "finalize":
                receipt = await finalize_voter_list(session)
                if receipt is None:
                    self.stdout.write("Voter list is already finalized.")
                    return
            case _:
                raise CommandError(f"Unknown action: {action}")

        self.stdout.write(self.style.SUCCESS(f"{action} confirmed in {receipt.tx_hash}"))
