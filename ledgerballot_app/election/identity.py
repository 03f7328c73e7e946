import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from django.conf import settings
from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount

from election.ledger.exceptions import LedgerMisconfiguredError
from election.ledger.utils import same_address, short_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityChange:
    address: str | None
    chain_id: int


type IdentityCallback = Callable[[IdentityChange], None]


class IdentityProvider(Protocol):
    @property
    def address(self) -> str | None: ...

    @property
    def chain_id(self) -> int: ...

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]: ...

    def sign_transaction(self, tx: dict[str, Any]) -> SignedTransaction: ...


class LocalAccountIdentity:
    """Identity backed by locally held private keys.

    The first key is the active account. ``switch_account``, ``switch_network``
    and ``disconnect`` notify subscribers the same way a browser wallet emits
    accountsChanged/chainChanged.
    """

    def __init__(self, private_keys: Iterable[str], *, chain_id: int | None = None) -> None:
        self._accounts: list[LocalAccount] = [Account.from_key(key) for key in private_keys if str(key).strip()]
        self._active: LocalAccount | None = self._accounts[0] if self._accounts else None
        self._chain_id = int(chain_id if chain_id is not None else settings.LEDGER_CHAIN_ID)
        self._callbacks: list[IdentityCallback] = []

    @classmethod
    def from_settings(cls) -> "LocalAccountIdentity":
        keys = [k.strip() for k in str(settings.LEDGER_PRIVATE_KEYS or "").split(",") if k.strip()]
        if not keys:
            raise LedgerMisconfiguredError("LEDGER_PRIVATE_KEYS is not configured")
        return cls(keys)

    @property
    def address(self) -> str | None:
        return self._active.address if self._active is not None else None

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def addresses(self) -> list[str]:
        return [a.address for a in self._accounts]

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def switch_account(self, address: str) -> None:
        for account in self._accounts:
            if same_address(account.address, address):
                if self._active is account:
                    return
                self._active = account
                self._notify()
                return
        raise LedgerMisconfiguredError(f"No private key configured for {address}")

    def switch_network(self, chain_id: int) -> None:
        if int(chain_id) == self._chain_id:
            return
        self._chain_id = int(chain_id)
        self._notify()

    def disconnect(self) -> None:
        if self._active is None:
            return
        self._active = None
        self._notify()

    def sign_transaction(self, tx: dict[str, Any]) -> SignedTransaction:
        if self._active is None:
            raise LedgerMisconfiguredError("No account is connected")
        return self._active.sign_transaction(tx)

    def _notify(self) -> None:
        change = IdentityChange(address=self.address, chain_id=self._chain_id)
        logger.info("Identity changed address=%s chain_id=%s", short_address(change.address), change.chain_id)
        for callback in list(self._callbacks):
            callback(change)
