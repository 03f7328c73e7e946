from typing import Any, override

from election.management.base import LedgerCommand, describe_view
from election.session import Session


class Command(LedgerCommand):
    help = "Synchronize once with the ledger and print the election state."

    @override
    async def run(self, session: Session, options: dict[str, Any]) -> None:
        view = session.require_view()
        for line in describe_view(view, session.caller_status):
            self.stdout.write(line)
