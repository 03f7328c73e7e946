import json
import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

import aiohttp
from django.conf import settings
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.contract import AsyncContract

from election.ledger.circuit_breaker import (
    READS_BREAKER,
    _is_ledger_availability_error,
    _ledger_circuit_open,
    _record_ledger_availability_failure,
    _reset_ledger_circuit_failures,
)
from election.ledger.exceptions import LedgerMisconfiguredError, LedgerUnavailableError
from election.ledger.utils import is_canonical_address

logger = logging.getLogger("election.ledger")

_ABI_PATH = Path(__file__).resolve().parent / "abi" / "Election.json"


@lru_cache(maxsize=1)
def load_election_abi() -> list[dict[str, Any]]:
    payload = json.loads(_ABI_PATH.read_text(encoding="utf-8"))
    # Accept both a bare ABI list and a build artifact ({"abi": [...]}).
    if isinstance(payload, dict):
        payload = payload.get("abi", [])
    if not isinstance(payload, list):
        raise LedgerMisconfiguredError(f"Election ABI at {_ABI_PATH} is not a list")
    return payload


def _build_ledger_client(
    *,
    rpc_url: str | None = None,
    timeout_seconds: float | None = None,
) -> AsyncWeb3:
    url = str(rpc_url or settings.LEDGER_RPC_URL or "").strip()
    if not url:
        raise LedgerMisconfiguredError("LEDGER_RPC_URL is not configured")

    timeout = timeout_seconds if timeout_seconds is not None else settings.LEDGER_REQUEST_TIMEOUT_SECONDS
    return AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)}))


def _build_election_contract(w3: AsyncWeb3, *, contract_address: str | None = None) -> AsyncContract:
    address = str(contract_address or settings.LEDGER_CONTRACT_ADDRESS or "").strip()
    if not is_canonical_address(address):
        raise LedgerMisconfiguredError(f"LEDGER_CONTRACT_ADDRESS is not a valid address: {address!r}")

    return w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=load_election_abi())


async def _with_ledger_circuit[T](
    fn: Callable[[], Awaitable[T]],
    *,
    breaker_name: str = READS_BREAKER,
    description: str = "",
) -> T:
    if _ledger_circuit_open(breaker_name):
        raise LedgerUnavailableError(f"Ledger circuit breaker is open ({breaker_name})")

    try:
        result = await fn()
    except Exception as exc:
        if _is_ledger_availability_error(exc):
            _record_ledger_availability_failure(breaker_name)
            logger.warning("Ledger unavailable during %s: %r", description or breaker_name, exc)
            raise LedgerUnavailableError(f"Ledger is unavailable: {exc}") from exc
        raise

    _reset_ledger_circuit_failures(breaker_name)
    return result


__all__ = [
    "load_election_abi",
    "_build_ledger_client",
    "_build_election_contract",
    "_with_ledger_circuit",
]
