"""Error taxonomy for the CoffeeCoin ledger."""


class LedgerError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(LedgerError):
    """A required setting (RPC endpoint, contract, key, ABI entry) is missing."""


class InvalidInputError(LedgerError, ValueError):
    """Caller supplied a malformed address or amount."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class UpstreamError(LedgerError):
    """An RPC node or the indexing API failed or returned an unusable answer."""


class EtherscanError(UpstreamError):
    """Etherscan answered with status "0" or an unexpected payload."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class ResultWindowExceeded(EtherscanError):
    """Etherscan refuses to page past its result window."""


class ChainTransactionError(LedgerError):
    """A signed transaction reverted or could not be submitted."""

    def __init__(self, message: str, eth_drip_status: str = None):
        super().__init__(message)
        self.eth_drip_status = eth_drip_status
