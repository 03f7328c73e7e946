import asyncio
import logging
from typing import Any, override

from django.conf import settings
from web3 import AsyncWeb3
from web3.exceptions import (
    ABIFunctionNotFound,
    BadFunctionCallOutput,
    ContractLogicError,
    Web3Exception,
)

from election.identity import IdentityProvider
from election.ledger.base import (
    LEDGER_EVENTS,
    LedgerEventCallback,
    PendingTransaction,
    TransactionReceipt,
    Unsubscribe,
)
from election.ledger.circuit_breaker import READS_BREAKER, TRANSACTIONS_BREAKER
from election.ledger.client import (
    _build_election_contract,
    _build_ledger_client,
    _with_ledger_circuit,
    load_election_abi,
)
from election.ledger.exceptions import (
    LedgerCallError,
    LedgerMisconfiguredError,
    LedgerOperationFailed,
    LedgerUnavailableError,
)
from election.ledger.utils import _revert_reason, is_canonical_address

logger = logging.getLogger("election.ledger")


def _to_contract_arg(value: Any) -> Any:
    if isinstance(value, str) and is_canonical_address(value):
        return AsyncWeb3.to_checksum_address(value)
    return value


def _event_topics() -> dict[str, str]:
    """Map topic0 (hex, lowercase) to event name for the events we listen to."""

    topics: dict[str, str] = {}
    for entry in load_election_abi():
        if entry.get("type") != "event" or entry.get("name") not in LEDGER_EVENTS:
            continue
        signature = f"{entry['name']}({','.join(str(i['type']) for i in entry.get('inputs', []))})"
        topics[AsyncWeb3.to_hex(AsyncWeb3.keccak(text=signature)).lower()] = str(entry["name"])
    return topics


class Web3PendingTransaction:
    def __init__(self, *, w3: AsyncWeb3, tx_hash: str, function: str, timeout_seconds: float) -> None:
        self._w3 = w3
        self.tx_hash = tx_hash
        self.function = function
        self._timeout_seconds = timeout_seconds

    async def wait(self) -> TransactionReceipt:
        try:
            receipt = await _with_ledger_circuit(
                lambda: self._w3.eth.wait_for_transaction_receipt(self.tx_hash, timeout=self._timeout_seconds),
                breaker_name=TRANSACTIONS_BREAKER,
                description=f"{self.function} receipt",
            )
        except Web3Exception as exc:
            raise LedgerOperationFailed(
                _revert_reason(exc),
                function=self.function,
                tx_hash=self.tx_hash,
            ) from exc
        if int(receipt.get("status", 0)) != 1:
            raise LedgerOperationFailed(
                f"{self.function} transaction reverted",
                function=self.function,
                tx_hash=self.tx_hash,
            )
        return TransactionReceipt(
            tx_hash=self.tx_hash,
            function=self.function,
            block_number=receipt.get("blockNumber"),
        )


class Web3Ledger:
    """Election contract reached over EVM JSON-RPC.

    Transactions are signed by the identity provider; change notifications are
    produced by polling the contract's logs.
    """

    def __init__(
        self,
        *,
        identity: IdentityProvider,
        rpc_url: str | None = None,
        contract_address: str | None = None,
        poll_interval_seconds: float | None = None,
        receipt_timeout_seconds: float | None = None,
    ) -> None:
        self._identity = identity
        self._w3 = _build_ledger_client(rpc_url=rpc_url)
        self._contract = _build_election_contract(self._w3, contract_address=contract_address)
        self._poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.LEDGER_EVENT_POLL_INTERVAL_SECONDS
        )
        self._receipt_timeout_seconds = (
            receipt_timeout_seconds
            if receipt_timeout_seconds is not None
            else settings.LEDGER_RECEIPT_TIMEOUT_SECONDS
        )
        self._callbacks: list[LedgerEventCallback] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._topics = _event_topics()

    async def call(self, function: str, *args: Any, caller: str | None = None) -> Any:
        try:
            contract_fn = self._contract.get_function_by_name(function)
        except (ABIFunctionNotFound, ValueError) as exc:
            raise LedgerCallError(f"{function} is not supported by this deployment") from exc

        call_args = [_to_contract_arg(a) for a in args]
        tx_params: dict[str, Any] = {}
        if caller:
            tx_params["from"] = _to_contract_arg(caller)

        try:
            result = await _with_ledger_circuit(
                lambda: contract_fn(*call_args).call(tx_params),
                breaker_name=READS_BREAKER,
                description=function,
            )
        except (BadFunctionCallOutput, Web3Exception) as exc:
            raise LedgerCallError(f"{function} failed: {_revert_reason(exc)}") from exc

        if isinstance(result, list):
            return tuple(result)
        return result

    async def transact(self, function: str, *args: Any, sender: str) -> PendingTransaction:
        if not is_canonical_address(sender):
            raise LedgerMisconfiguredError(f"Cannot sign {function}: sender {sender!r} is not an address")

        try:
            contract_fn = self._contract.get_function_by_name(function)
        except (ABIFunctionNotFound, ValueError) as exc:
            raise LedgerOperationFailed(f"{function} is not supported by this deployment", function=function) from exc

        from_address = AsyncWeb3.to_checksum_address(sender)
        call_args = [_to_contract_arg(a) for a in args]

        async def _send() -> str:
            nonce = await self._w3.eth.get_transaction_count(from_address, "pending")
            tx = await contract_fn(*call_args).build_transaction(
                {
                    "from": from_address,
                    "nonce": nonce,
                    "chainId": self._identity.chain_id,
                }
            )
            signed = self._identity.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            return AsyncWeb3.to_hex(tx_hash)

        try:
            tx_hash = await _with_ledger_circuit(
                _send,
                breaker_name=TRANSACTIONS_BREAKER,
                description=function,
            )
        except LedgerUnavailableError:
            raise
        except ContractLogicError as exc:
            raise LedgerOperationFailed(_revert_reason(exc), function=function) from exc
        except (Web3Exception, ValueError) as exc:
            # Node-side rejections (nonce, funds, underpriced replacement) arrive as RPC errors.
            raise LedgerOperationFailed(_revert_reason(exc), function=function) from exc

        logger.info("Ledger transaction submitted function=%s tx_hash=%s", function, tx_hash)
        return Web3PendingTransaction(
            w3=self._w3,
            tx_hash=tx_hash,
            function=function,
            timeout_seconds=self._receipt_timeout_seconds,
        )

    def subscribe(self, callback: LedgerEventCallback) -> Unsubscribe:
        self._callbacks.append(callback)
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_events())

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            if not self._callbacks and self._poll_task is not None:
                self._poll_task.cancel()
                self._poll_task = None

        return unsubscribe

    async def probe(self) -> int:
        return int(
            await _with_ledger_circuit(
                lambda: self._w3.eth.chain_id,
                breaker_name=READS_BREAKER,
                description="chain_id",
            )
        )

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self._callbacks.clear()
        await self._w3.provider.disconnect()

    async def _poll_events(self) -> None:
        from_block: int | None = None
        while True:
            try:
                latest = int(await _with_ledger_circuit(lambda: self._w3.eth.block_number, description="block_number"))
                if from_block is None:
                    from_block = latest + 1
                elif latest >= from_block:
                    logs = await _with_ledger_circuit(
                        lambda: self._w3.eth.get_logs(
                            {
                                "address": self._contract.address,
                                "fromBlock": from_block,
                                "toBlock": latest,
                            }
                        ),
                        description="get_logs",
                    )
                    for log in logs:
                        self._dispatch_log(log)
                    from_block = latest + 1
            except LedgerUnavailableError as exc:
                # Notifications are best effort; the reconciliation timer backstops them.
                logger.info("Ledger event poll skipped: %s", exc)

            await asyncio.sleep(self._poll_interval_seconds)

    def _dispatch_log(self, log: Any) -> None:
        topics = log.get("topics") or []
        if not topics:
            return
        event_name = self._topics.get(AsyncWeb3.to_hex(topics[0]).lower())
        if event_name is None:
            return

        for callback in list(self._callbacks):
            callback(event_name)


__all__ = [
    "Web3Ledger",
    "Web3PendingTransaction",
]
