import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

from election.csv_import_utils import norm_csv_header, read_csv_rows, resolve_column_header, rows_to_csv
from election.exceptions import (
    ActionPendingError,
    MalformedInputError,
    PipelineDisabledError,
    UnauthorizedError,
)
from election.ledger.base import TX_ADD_VOTER_DATA, TX_FINALIZE_VOTER_LIST, TransactionReceipt
from election.ledger.exceptions import LedgerError
from election.ledger.utils import is_canonical_address
from election.session import Session
from election.state import Phase

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: tuple[str, ...] = ("name", "unique_id", "wallet_id")

# Rows shorter than this never reach the ledger.
_MIN_ROW_FIELDS = 3

REASON_INVALID_WALLET = "invalid_wallet_address"

_IMPORT_ACTION = "import_voters"


@dataclass(frozen=True)
class VoterRow:
    row_number: int
    name: str
    unique_id: str
    wallet_id: str


@dataclass(frozen=True)
class DroppedRow:
    row_number: int
    values: tuple[str, ...]


@dataclass(frozen=True)
class ParsedVoterCsv:
    headers: tuple[str, ...]
    rows: tuple[VoterRow, ...]
    dropped: tuple[DroppedRow, ...] = ()


@dataclass(frozen=True)
class FailedRow:
    row: VoterRow
    reason: str


@dataclass
class ImportResult:
    batch_id: uuid.UUID
    total: int
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    failures: list[FailedRow] = field(default_factory=list)

    @property
    def invalid_address(self) -> int:
        return sum(1 for f in self.failures if f.reason == REASON_INVALID_WALLET)

    @property
    def is_partial_failure(self) -> bool:
        return self.succeeded > 0 and self.failed > 0

    def summary(self) -> str:
        if self.succeeded > 0:
            text = f"Successfully added {self.succeeded} voters. {self.failed} failed."
        else:
            text = f"Failed to add any voters. {self.failed} errors occurred."
        if self.dropped:
            text = f"{text} {self.dropped} malformed rows were skipped."
        return text

    def failed_rows_csv(self) -> str:
        return rows_to_csv(
            ["row", "name", "unique_id", "wallet_id", "reason"],
            [
                [str(f.row.row_number), f.row.name, f.row.unique_id, f.row.wallet_id, f.reason]
                for f in self.failures
            ],
        )


def parse_voter_csv(text: str, *, column_overrides: Mapping[str, str] | None = None) -> ParsedVoterCsv:
    """Parse a voter CSV with ``name``, ``unique_id`` and ``wallet_id`` columns.

    Header matching ignores case and punctuation ("Unique ID" matches
    ``unique_id``). Missing columns fail the whole payload; rows that are too
    short to carry all three values are set aside as dropped.
    """

    rows = read_csv_rows(text)
    if not rows:
        raise MalformedInputError("The CSV file is empty.")

    headers = rows[0]
    header_by_norm: dict[str, str] = {}
    for header in headers:
        header_by_norm.setdefault(norm_csv_header(header), header)

    overrides = dict(column_overrides or {})
    indexes: dict[str, int] = {}
    missing: list[str] = []
    for column in REQUIRED_COLUMNS:
        try:
            resolved = resolve_column_header(column, headers, header_by_norm, overrides, column)
        except ValueError as exc:
            raise MalformedInputError(str(exc)) from exc
        if resolved is None:
            missing.append(column)
            continue
        indexes[column] = headers.index(resolved)

    if missing:
        raise MalformedInputError(f"CSV must contain columns: {', '.join(REQUIRED_COLUMNS)}")

    widest = max(indexes.values())
    voter_rows: list[VoterRow] = []
    dropped: list[DroppedRow] = []
    for row_number, values in enumerate(rows[1:], start=2):
        if len(values) < _MIN_ROW_FIELDS or len(values) <= widest:
            dropped.append(DroppedRow(row_number=row_number, values=tuple(values)))
            continue
        voter_rows.append(
            VoterRow(
                row_number=row_number,
                name=values[indexes["name"]],
                unique_id=values[indexes["unique_id"]],
                wallet_id=values[indexes["wallet_id"]],
            )
        )

    if dropped:
        logger.info("Voter CSV: dropped %d malformed rows", len(dropped))

    return ParsedVoterCsv(headers=tuple(headers), rows=tuple(voter_rows), dropped=tuple(dropped))


def _check_pipeline_open(session: Session) -> None:
    view = session.require_view()
    if not session.caller_status.is_admin:
        raise UnauthorizedError("Only admin can upload voters.")
    if view.voter_list_finalized:
        raise PipelineDisabledError("The voter list is finalized; reset the election to import again.")
    if view.phase != Phase.IDLE:
        raise PipelineDisabledError(f"Voters can only be imported while the election is Idle (currently {view.phase}).")


async def import_voters(session: Session, parsed: ParsedVoterCsv) -> ImportResult:
    """Submit every well-formed row to the ledger, one transaction at a time.

    A failing row is recorded and the batch moves on; nothing is rolled back.
    """

    _check_pipeline_open(session)
    if not parsed.rows:
        raise MalformedInputError("No valid data to upload.")

    result = ImportResult(batch_id=uuid.uuid4(), total=len(parsed.rows), dropped=len(parsed.dropped))
    outcome = "applied"

    async with session.pending_action(_IMPORT_ACTION):
        try:
            for row in parsed.rows:
                if not is_canonical_address(row.wallet_id):
                    logger.warning("Voter CSV row %d: invalid wallet address %r", row.row_number, row.wallet_id)
                    result.failed += 1
                    result.failures.append(FailedRow(row=row, reason=REASON_INVALID_WALLET))
                    continue

                try:
                    await session.submit(TX_ADD_VOTER_DATA, row.name, row.unique_id, row.wallet_id)
                except LedgerError as exc:
                    logger.warning("Voter CSV row %d: adding %r failed: %s", row.row_number, row.name, exc)
                    result.failed += 1
                    result.failures.append(FailedRow(row=row, reason=str(exc)))
                    continue

                result.succeeded += 1
        except BaseException:
            outcome = "failed"
            raise
        finally:
            correlation_id = str(result.batch_id)
            logger.info(
                (
                    "event=ledgerballot.voters.csv_import.batch_applied "
                    f"component=voters outcome={outcome} "
                    f"correlation_id={correlation_id} batch_id={result.batch_id} "
                    f"rows_total={result.total} rows_applied={result.succeeded} rows_failed={result.failed} "
                    f"rows_dropped={result.dropped}"
                ),
                extra={
                    "event": "ledgerballot.voters.csv_import.batch_applied",
                    "component": "voters",
                    "outcome": outcome,
                    "correlation_id": correlation_id,
                    "batch_id": result.batch_id,
                    "rows_total": result.total,
                    "rows_applied": result.succeeded,
                    "rows_failed": result.failed,
                    "rows_dropped": result.dropped,
                },
            )

    if result.succeeded > 0:
        await session.resync(_IMPORT_ACTION)
    return result


async def finalize_voter_list(session: Session) -> TransactionReceipt | None:
    """Close the voter list. Returns None when it was already finalized."""

    view = session.require_view()
    if not session.caller_status.is_admin:
        raise UnauthorizedError("Only admin can finalize voter list.")
    if view.voter_list_finalized:
        logger.info("Voter list already finalized total_voters=%d", view.total_voters)
        return None
    if session.is_pending(_IMPORT_ACTION):
        raise ActionPendingError("A voter import is still running; finalize after it completes.")

    async with session.pending_action("finalize_voter_list"):
        receipt = await session.submit(TX_FINALIZE_VOTER_LIST)
    await session.resync("finalize_voter_list")
    return receipt
