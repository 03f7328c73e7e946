import asyncio
import logging
import socket

import aiohttp
from django.conf import settings
from django.core.cache import cache
from web3.exceptions import ProviderConnectionError, TimeExhausted

logger = logging.getLogger("election.ledger")

READS_BREAKER = "ledger.reads"
TRANSACTIONS_BREAKER = "ledger.transactions"


def _circuit_open_cache_key(breaker_name: str) -> str:
    return f"{breaker_name}.circuit_open"


def _circuit_failures_cache_key(breaker_name: str) -> str:
    return f"{breaker_name}.circuit_consecutive_failures"


def _log_circuit_breaker_transition(
    *,
    breaker_name: str,
    from_state: str,
    to_state: str,
    failure_count: int,
    cooldown_seconds: int,
) -> None:
    logger.warning(
        "ledgerballot.ledger.circuit_breaker.transition breaker_name=%s from_state=%s to_state=%s failure_count=%d cooldown_seconds=%d",
        breaker_name,
        from_state,
        to_state,
        failure_count,
        cooldown_seconds,
        extra={
            "event": "ledgerballot.ledger.circuit_breaker.transition",
            "component": "ledger",
            "from_state": from_state,
            "to_state": to_state,
            "outcome": "transition",
            "correlation_id": "ledger.circuit_breaker",
            "breaker_name": breaker_name,
            "failure_count": failure_count,
            "cooldown_seconds": cooldown_seconds,
        },
    )


def _ledger_circuit_open(breaker_name: str = READS_BREAKER) -> bool:
    try:
        return bool(cache.get(_circuit_open_cache_key(breaker_name)))
    except Exception:
        return False


def _open_ledger_circuit(breaker_name: str, *, failure_count: int = 0) -> None:
    cooldown_seconds = settings.LEDGER_CIRCUIT_BREAKER_COOLDOWN_SECONDS
    was_open = _ledger_circuit_open(breaker_name)

    try:
        cache.add(_circuit_open_cache_key(breaker_name), True, timeout=cooldown_seconds)
    except Exception:
        return

    if not was_open and _ledger_circuit_open(breaker_name):
        _log_circuit_breaker_transition(
            breaker_name=breaker_name,
            from_state="closed",
            to_state="open",
            failure_count=failure_count,
            cooldown_seconds=cooldown_seconds,
        )


def _reset_ledger_circuit_failures(breaker_name: str = READS_BREAKER) -> None:
    was_open = _ledger_circuit_open(breaker_name)

    try:
        cache.delete(_circuit_failures_cache_key(breaker_name))
        cache.delete(_circuit_open_cache_key(breaker_name))
    except Exception:
        return

    if was_open:
        _log_circuit_breaker_transition(
            breaker_name=breaker_name,
            from_state="open",
            to_state="closed",
            failure_count=0,
            cooldown_seconds=settings.LEDGER_CIRCUIT_BREAKER_COOLDOWN_SECONDS,
        )


def _record_ledger_availability_failure(breaker_name: str = READS_BREAKER) -> None:
    cooldown_seconds = settings.LEDGER_CIRCUIT_BREAKER_COOLDOWN_SECONDS
    threshold = settings.LEDGER_CIRCUIT_BREAKER_CONSECUTIVE_FAILURES
    failures_key = _circuit_failures_cache_key(breaker_name)

    try:
        cache.add(failures_key, 0, timeout=cooldown_seconds)
        failures = int(cache.incr(failures_key))
    except Exception:
        return

    if failures >= threshold:
        _open_ledger_circuit(breaker_name, failure_count=failures)


def _is_ledger_availability_error(exc: BaseException) -> bool:
    return isinstance(
        exc,
        (
            aiohttp.ClientConnectionError,
            aiohttp.ServerTimeoutError,
            asyncio.TimeoutError,
            TimeExhausted,
            ProviderConnectionError,
            ConnectionError,
            socket.timeout,
        ),
    )


__all__ = [
    "READS_BREAKER",
    "TRANSACTIONS_BREAKER",
    "_ledger_circuit_open",
    "_reset_ledger_circuit_failures",
    "_record_ledger_availability_failure",
    "_is_ledger_availability_error",
]
