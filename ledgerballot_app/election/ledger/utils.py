import re

_CANONICAL_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_canonical_address(value: object) -> bool:
    """Return True for a 0x-prefixed, 40-hex-digit account identifier."""

    if not isinstance(value, str):
        return False
    return bool(_CANONICAL_ADDRESS_RE.fullmatch(value))


def same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def short_address(address: str | None) -> str:
    if not address:
        return "<none>"
    if len(address) <= 12:
        return address
    return f"{address[:6]}…{address[-4:]}"


def _compact_repr(value: object, *, limit: int = 400) -> str:
    rendered = repr(value)
    if len(rendered) > limit:
        return f"{rendered[:limit]}…"
    return rendered


def _revert_reason(exc: BaseException) -> str:
    """Extract the human-readable revert reason from a web3 error.

    web3 exposes it as ``message`` on ContractLogicError; older releases only
    put it in ``args[0]``, sometimes prefixed with "execution reverted: ".
    """

    message = getattr(exc, "message", None)
    if not isinstance(message, str) or not message.strip():
        message = str(exc.args[0]) if exc.args else str(exc)

    text = message.strip()
    prefix = "execution reverted:"
    if text.lower().startswith(prefix):
        text = text[len(prefix):].strip()
    return text or _compact_repr(exc)


__all__ = [
    "is_canonical_address",
    "same_address",
    "short_address",
    "_compact_repr",
    "_revert_reason",
]
