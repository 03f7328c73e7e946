import logging

from asgiref.sync import async_to_sync
from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from election.identity import LocalAccountIdentity
from election.ledger.base import Ledger
from election.ledger.web3_ledger import Web3Ledger

logger = logging.getLogger(__name__)


def _build_probe_ledger() -> Ledger:
    # Probing needs no signing key; an empty identity is enough.
    return Web3Ledger(identity=LocalAccountIdentity([]))


async def _probe_chain_id() -> int:
    ledger = _build_probe_ledger()
    try:
        return await ledger.probe()
    finally:
        close = getattr(ledger, "close", None)
        if close is not None:
            await close()


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    try:
        chain_id = async_to_sync(_probe_chain_id)()
    except Exception as exc:
        logger.exception("Health check readyz failed")
        return JsonResponse({"status": "not ready", "error": str(exc)}, status=503)

    if chain_id != settings.LEDGER_CHAIN_ID:
        logger.error("Health check readyz: ledger chain id %s, expected %s", chain_id, settings.LEDGER_CHAIN_ID)
        return JsonResponse(
            {"status": "not ready", "error": f"unexpected chain id {chain_id}"},
            status=503,
        )

    return JsonResponse({"status": "ready", "ledger": "ok", "chain_id": chain_id})
