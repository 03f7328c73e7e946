"""The narrow interface the election engine uses to reach the ledger.

Reads and writes are named after the election contract's ABI functions so the
web3 binding can forward them unchanged; the engine never touches web3 types.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

# Read functions.
FN_TITLE = "electionTitle"
FN_ADMIN = "admin"
FN_STARTED = "electionStarted"
FN_ENDED = "electionEnded"
FN_ROUND = "currentRound"
FN_CANDIDATE_COUNT = "candidatesCount"
FN_CANDIDATE = "getCandidate"
FN_IS_REGISTERED = "registeredVoters"
FN_HAS_VOTED = "hasVoted"
FN_VOTER_LIST_STATUS = "getVoterListStatus"
FN_IS_WALLET_LINKED = "isWalletLinked"
FN_VOTER_BY_WALLET = "getVoterByWallet"
FN_AUTHENTICATE = "authenticateVoter"
FN_WINNER = "getWinner"

# Mutating functions.
TX_ADD_CANDIDATE = "addCandidate"
TX_REGISTER_VOTER = "registerVoter"
TX_ADD_VOTER_DATA = "addVoterData"
TX_FINALIZE_VOTER_LIST = "finalizeVoterList"
TX_START_ELECTION = "startElection"
TX_END_ELECTION = "endElection"
TX_RESET_ALL = "resetAll"
TX_VOTE = "vote"

# Change notifications. They only ever trigger a resync.
LEDGER_EVENTS: tuple[str, ...] = (
    "CandidateAdded",
    "ElectionStarted",
    "ElectionEnded",
    "VoteCast",
    "VoterRegistered",
    "ElectionReset",
    "VoterDataAdded",
    "VoterListFinalized",
)


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    function: str
    block_number: int | None = None


class PendingTransaction(Protocol):
    tx_hash: str
    function: str

    async def wait(self) -> TransactionReceipt:
        """Resolve once the ledger confirms; raise LedgerOperationFailed otherwise."""
        ...


type LedgerEventCallback = Callable[[str], None]
type Unsubscribe = Callable[[], None]


class Ledger(Protocol):
    async def call(self, function: str, *args: Any, caller: str | None = None) -> Any: ...

    async def transact(self, function: str, *args: Any, sender: str) -> PendingTransaction: ...

    def subscribe(self, callback: LedgerEventCallback) -> Unsubscribe: ...

    async def probe(self) -> int:
        """Return the chain id the ledger answers on."""
        ...
