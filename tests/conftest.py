"""Shared fixtures and fakes for the ledger test-suite.

Etherscan is faked at the HTTP session level so the real EtherscanClient
(pagination, error handling) runs; the chain is faked at the Web3Client
level.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest

from coffeecoin_ledger.api_clients import EtherscanClient
from coffeecoin_ledger.config import Config
from coffeecoin_ledger.exceptions import ChainTransactionError, UpstreamError
from coffeecoin_ledger.service import LedgerService

CONTRACT = "0x" + "c0" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
SERVER = "0x" + "5e" * 20
MINT_SELECTOR = "0x40c10f19"


def mint_input(recipient: str, amount: int) -> str:
    """ABI-encoded call data for mint(recipient, amount)."""
    return MINT_SELECTOR + recipient[2:].lower().rjust(64, "0") + format(amount, "064x")


def token_row(tx_hash: str, sender: str, recipient: str, value: int, block: int = 1,
              log_index: str = "0", symbol: Optional[str] = "CFC") -> Dict[str, Any]:
    row = {
        "hash": tx_hash,
        "blockNumber": str(block),
        "timeStamp": str(1_700_000_000 + block),
        "from": sender,
        "to": recipient,
        "value": str(value),
        "logIndex": log_index,
        "contractAddress": CONTRACT,
    }
    if symbol:
        row["tokenSymbol"] = symbol
    return row


def normal_row(tx_hash: str, call_data: str, sender: str = SERVER, is_error: str = "0",
               block: int = 1) -> Dict[str, Any]:
    return {
        "hash": tx_hash,
        "blockNumber": str(block),
        "timeStamp": str(1_700_000_000 + block),
        "from": sender,
        "to": CONTRACT,
        "value": "0",
        "input": call_data,
        "isError": is_error,
        "gasUsed": "50000",
    }


def ok(result: Any) -> Dict[str, Any]:
    return {"status": "1", "message": "OK", "result": result}


def no_records() -> Dict[str, Any]:
    return {"status": "0", "message": "No transactions found", "result": []}


def api_error(message: str = "NOTOK", result: str = "Max rate limit reached") -> Dict[str, Any]:
    return {"status": "0", "message": message, "result": result}


class FakeResponse:
    def __init__(self, payload: Dict[str, Any]):
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Dict[str, Any]:
        return self._payload


class FakeSession:
    """Stands in for requests.Session; answers by Etherscan ``action``.

    A handler is either a payload dict or a callable taking the query params
    and returning a payload (or raising).
    """

    def __init__(self, handlers: Optional[Dict[str, Any]] = None):
        self.handlers: Dict[str, Any] = dict(handlers or {})
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params: Dict[str, Any], timeout: float = None) -> FakeResponse:
        self.calls.append(dict(params))
        handler = self.handlers.get(params["action"])
        if handler is None:
            raise AssertionError(f"unexpected Etherscan action {params['action']}")
        payload = handler(params) if callable(handler) else handler
        return FakeResponse(payload)

    def actions(self) -> List[str]:
        return [call["action"] for call in self.calls]


def paged(rows: List[Dict[str, Any]]) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """Handler serving ``rows`` page by page according to page/offset."""

    def handler(params: Dict[str, Any]) -> Dict[str, Any]:
        page, offset = int(params["page"]), int(params["offset"])
        chunk = rows[(page - 1) * offset: page * offset]
        return ok(chunk) if chunk else no_records()

    return handler


class FakeChain:
    """In-memory replacement for Web3Client."""

    def __init__(self):
        self.name = "CoffeeCoin"
        self.symbol = "CFC"
        self.supply = 1_000
        self.balances: Dict[str, int] = {}
        self.native_balances: Dict[str, int] = {SERVER.lower(): 10 ** 18}
        self.minted: List[tuple] = []
        self.sent: List[tuple] = []
        self.fail_reads = False
        self.fail_mint: Optional[str] = None
        self.fail_send: Optional[str] = None

    def _read(self, value):
        if self.fail_reads:
            raise UpstreamError("RPC unavailable")
        return value

    def get_token_name(self) -> str:
        return self._read(self.name)

    def get_token_symbol(self) -> str:
        return self._read(self.symbol)

    def get_total_supply(self) -> int:
        return self._read(self.supply)

    def get_balance(self, address: str) -> int:
        return self._read(self.balances.get(address.lower(), 0))

    @property
    def server_address(self) -> str:
        return SERVER

    def get_native_balance(self, address: str) -> int:
        return self.native_balances.get(address.lower(), 0)

    def mint(self, recipient: str, amount: int) -> str:
        if self.fail_mint:
            raise ChainTransactionError(f"Failed to mint tokens: {self.fail_mint}")
        self.minted.append((recipient, amount))
        self.balances[recipient.lower()] = self.balances.get(recipient.lower(), 0) + amount
        return "0x" + "ab" * 32

    def send_eth(self, recipient: str, value_wei: int) -> str:
        if self.fail_send:
            raise ChainTransactionError(self.fail_send)
        self.sent.append((recipient, value_wei))
        return "0x" + "cd" * 32


@pytest.fixture
def config() -> Config:
    return Config(
        rpc_url="http://localhost:8545",
        contract_address=CONTRACT,
        server_wallet_private_key="0x" + "11" * 32,
        etherscan_api_key="test-key",
        page_delay=0,
        page_size=3,
    )


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    sleeps: List[float] = []
    monkeypatch.setattr("coffeecoin_ledger.api_clients.time.sleep", sleeps.append)
    return sleeps


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def etherscan(config, session) -> EtherscanClient:
    return EtherscanClient(config, session=session)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def service(config, etherscan, chain) -> LedgerService:
    return LedgerService(config, etherscan, chain)
