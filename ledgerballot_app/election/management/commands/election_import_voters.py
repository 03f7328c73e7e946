from pathlib import Path
from typing import Any, override

from django.core.management.base import CommandError

from election.csv_import_utils import decode_csv_bytes
from election.exceptions import MalformedInputError
from election.ledger.utils import is_canonical_address
from election.management.base import LedgerCommand
from election.session import Session
from election.voter_import import ParsedVoterCsv, import_voters, parse_voter_csv


class Command(LedgerCommand):
    help = "Add voters from a CSV file (name, unique_id, wallet_id) to the ledger's voter database."

    @override
    def add_arguments(self, parser) -> None:
        super().add_arguments(parser)
        parser.add_argument("csv_path", help="Path to the voter CSV file.")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Parse and validate the file without submitting any transaction.",
        )
        parser.add_argument("--name-column", default="", help="Header holding the voter name.")
        parser.add_argument("--unique-id-column", default="", help="Header holding the voter unique ID.")
        parser.add_argument("--wallet-id-column", default="", help="Header holding the voter wallet address.")
        parser.add_argument(
            "--failed-rows-out",
            default="",
            help="Write the rows that failed, with the reason, to this CSV path.",
        )

    def _parse(self, options: dict[str, Any]) -> ParsedVoterCsv:
        path = Path(str(options["csv_path"]))
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise CommandError(f"Unable to read {path}: {exc}") from exc

        overrides = {
            "name": str(options.get("name_column") or ""),
            "unique_id": str(options.get("unique_id_column") or ""),
            "wallet_id": str(options.get("wallet_id_column") or ""),
        }
        try:
            return parse_voter_csv(decode_csv_bytes(payload), column_overrides=overrides)
        except MalformedInputError as exc:
            raise CommandError(exc.reason) from exc

    @override
    def handle(self, *args, **options) -> None:
        parsed = self._parse(options)

        if options.get("dry_run"):
            invalid = sum(1 for row in parsed.rows if not is_canonical_address(row.wallet_id))
            self.stdout.write(
                f"[dry-run] {len(parsed.rows)} rows ready, {invalid} with an invalid wallet address, "
                f"{len(parsed.dropped)} malformed rows skipped."
            )
            return

        options["_parsed"] = parsed
        super().handle(*args, **options)

    @override
    async def run(self, session: Session, options: dict[str, Any]) -> None:
        result = await import_voters(session, options["_parsed"])

        self.stdout.write(f"batch_id={result.batch_id}")
        if result.succeeded > 0:
            self.stdout.write(self.style.SUCCESS(result.summary()))
        else:
            self.stdout.write(self.style.ERROR(result.summary()))
        for failure in result.failures:
            self.stdout.write(f"  row {failure.row.row_number} ({failure.row.name}): {failure.reason}")

        out_path = str(options.get("failed_rows_out") or "").strip()
        if out_path and result.failures:
            Path(out_path).write_text(result.failed_rows_csv(), encoding="utf-8")
            self.stdout.write(f"Failed rows written to {out_path}")
