import logging


class HealthEndpointFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "/healthz" in message or "/readyz" in message:
            return " 200 " not in message
        return True


class Web3RequestNoiseFilter(logging.Filter):
    """Drop per-request chatter from web3's HTTP providers.

    The event poller issues a request every few seconds; only warnings and
    errors from the provider are worth keeping.
    """

    _NOISY_PREFIXES = ("web3.providers", "web3._utils.http", "web3.manager")

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return not record.name.startswith(self._NOISY_PREFIXES)
