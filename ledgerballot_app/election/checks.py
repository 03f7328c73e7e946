from django.conf import settings
from django.core.checks import Error, Warning, register

from election.ledger.utils import is_canonical_address


@register()
def check_ledger_settings(_app_configs=None, **_kwargs) -> list[Error | Warning]:
    issues: list[Error | Warning] = []

    if not is_canonical_address(str(settings.LEDGER_CONTRACT_ADDRESS or "")):
        issues.append(
            Error(
                f"LEDGER_CONTRACT_ADDRESS {settings.LEDGER_CONTRACT_ADDRESS!r} is not a 0x-prefixed 40-hex-digit address.",
                id="election.E001",
            )
        )
    if not str(settings.LEDGER_RPC_URL or "").strip():
        issues.append(
            Warning(
                "LEDGER_RPC_URL is not set; readiness probes and ledger commands will fail.",
                id="election.W001",
            )
        )
    if not str(settings.LEDGER_PRIVATE_KEYS or "").strip():
        issues.append(
            Warning(
                "LEDGER_PRIVATE_KEYS is not set; ledger commands cannot sign transactions.",
                id="election.W002",
            )
        )
    return issues
