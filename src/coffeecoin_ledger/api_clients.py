import time
import logging
from typing import Optional, List, Dict, Any

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .abi import COFFEE_COIN_ABI
from .config import Config
from .exceptions import (
    ChainTransactionError,
    ConfigurationError,
    EtherscanError,
    InvalidInputError,
    ResultWindowExceeded,
    UpstreamError,
)
from .models import PageScan, StopReason
from .utils import is_valid_ethereum_address, parse_int

# Set up logging
logger = logging.getLogger(__name__)

NO_RECORDS_MESSAGES = ("No transactions found", "No records found")
RESULT_WINDOW_MESSAGE = "Result window is too large"
LATEST_BLOCK = 99999999


class EtherscanClient:
    """Client for Etherscan API."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.etherscan_base_url
        self.api_key = config.etherscan_api_key
        self.session = session or requests.Session()

    def _make_request(self, params: Dict[str, Any]) -> Any:
        """Make a request to Etherscan API and return its ``result``.

        "No records" answers come back as an empty list.
        """
        if not self.api_key:
            raise ConfigurationError("Etherscan API key is not configured")

        params = dict(params, apikey=self.api_key)

        try:
            response = self.session.get(
                self.base_url, params=params, timeout=self.config.request_timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamError(
                f"Etherscan request failed ({params.get('action')}): {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError(
                f"Etherscan returned a non-object payload ({params.get('action')})")

        if str(data.get("status")) == "1":
            return data.get("result")

        message = str(data.get("message") or "Unknown error")
        if message in NO_RECORDS_MESSAGES:
            return []
        if RESULT_WINDOW_MESSAGE in message or RESULT_WINDOW_MESSAGE in str(data.get("result")):
            raise ResultWindowExceeded(message, data.get("result"))
        raise EtherscanError(
            f"Etherscan API error ({params.get('action')}): {message}", data.get("result"))

    def fetch_all_pages(self, params: Dict[str, Any], max_pages: int = 5,
                        page_size: Optional[int] = None, start_page: int = 1) -> PageScan:
        """Fetch up to ``max_pages`` pages of a txlist/tokentx style query.

        Never raises for upstream failures: a failing page ends the scan and
        the rows gathered so far are returned. A page shorter than
        ``page_size`` is taken as the last one.
        """
        page_size = page_size or self.config.page_size
        action = params.get("action")
        target = params.get("contractaddress") or params.get("address")
        scan = PageScan()
        seen = set()

        logger.info(
            f"Fetching '{action}' for {target}: max {max_pages} pages of {page_size}")

        for attempt in range(max_pages):
            page = start_page + attempt
            try:
                rows = self._make_request(dict(params, page=page, offset=page_size))
            except ResultWindowExceeded as e:
                logger.info(f"Etherscan result window reached for '{action}' on page {page}: {e}")
                scan.stop_reason = StopReason.NO_RECORDS
                break
            except (UpstreamError, ConfigurationError) as e:
                logger.warning(
                    f"Stopping '{action}' pagination on page {page}: {e}")
                scan.stop_reason = StopReason.ERROR
                scan.error = str(e)
                break

            if not isinstance(rows, list):
                logger.warning(
                    f"Unexpected Etherscan result for '{action}' on page {page}: {rows!r}")
                scan.stop_reason = StopReason.ERROR
                scan.error = "Etherscan result is not a list"
                break

            if not rows:
                scan.stop_reason = StopReason.NO_RECORDS
                break

            scan.pages_fetched += 1
            for row in rows:
                key = (row.get("hash"), row.get("logIndex")) if isinstance(row, dict) else None
                if key is not None and key[0] and key in seen:
                    continue
                if key is not None:
                    seen.add(key)
                scan.items.append(row)

            if len(rows) < page_size:
                scan.stop_reason = StopReason.LAST_PAGE
                break

            if attempt < max_pages - 1:
                time.sleep(self.config.page_delay)
        else:
            scan.stop_reason = StopReason.PAGE_CAP

        logger.info(
            f"Fetched {len(scan.items)} items for '{action}' over {scan.pages_fetched} pages "
            f"(stopped: {scan.stop_reason.value})")
        return scan

    def get_token_transfers(self, contract_address: str, address: Optional[str] = None,
                            page: int = 1, offset: int = 100, sort: str = "desc") -> List[Dict[str, Any]]:
        """Get token transfer events for a contract, optionally for one holder."""
        params = {
            "module": "account",
            "action": "tokentx",
            "contractaddress": contract_address,
            "startblock": 0,
            "endblock": LATEST_BLOCK,
            "page": page,
            "offset": offset,
            "sort": sort,
        }
        if address:
            params["address"] = address

        result = self._make_request(params)
        if not isinstance(result, list):
            logger.error(f"Etherscan tokentx result is not a list: {result!r}")
            return []
        return result

    def get_normal_transactions(self, address: str, page: int = 1, offset: int = 10,
                                sort: str = "desc") -> List[Dict[str, Any]]:
        """Get normal transactions for an address."""
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": LATEST_BLOCK,
            "page": page,
            "offset": offset,
            "sort": sort,
        }

        result = self._make_request(params)
        if not isinstance(result, list):
            raise EtherscanError(f"Etherscan txlist result is not a list: {result!r}", result)
        return result

    def token_transfer_query(self, contract_address: str) -> Dict[str, Any]:
        return {
            "module": "account",
            "action": "tokentx",
            "contractaddress": contract_address,
            "startblock": 0,
            "endblock": LATEST_BLOCK,
            "sort": "asc",
        }

    def normal_transaction_query(self, address: str) -> Dict[str, Any]:
        return {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": LATEST_BLOCK,
            "sort": "asc",
        }

    def get_contract_creation(self, contract_address: str) -> Optional[Dict[str, Any]]:
        """Return ``{contractCreator, txHash}`` for a contract, None if unknown."""
        params = {
            "module": "contract",
            "action": "getcontractcreation",
            "contractaddresses": contract_address,
        }
        result = self._make_request(params)
        if isinstance(result, list) and result:
            return result[0]
        return None

    def get_eth_balance(self, address: str) -> int:
        """Native balance in wei."""
        params = {
            "module": "account",
            "action": "balance",
            "address": address,
            "tag": "latest",
        }
        return parse_int(self._make_request(params))

    def get_transaction_count(self, address: str, limit: int) -> int:
        """Number of normal transactions, counted up to ``limit``."""
        rows = self.get_normal_transactions(address, page=1, offset=limit, sort="asc")
        return len(rows)


class Web3Client:
    """Client for CoffeeCoin contract reads and server-signed transactions."""

    def __init__(self, config: Config, w3: Optional[Web3] = None):
        self.config = config
        self.w3 = w3 or Web3(Web3.HTTPProvider(
            config.rpc_url, request_kwargs={"timeout": config.request_timeout}))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(config.contract_address),
            abi=COFFEE_COIN_ABI,
        )

    def _call(self, description: str, fn):
        try:
            return fn.call()
        except Exception as e:
            logger.error(f"Error fetching {description} (RPC): {e}")
            raise UpstreamError(f"Failed to fetch {description}: {e}") from e

    def get_token_name(self) -> str:
        return self._call("token name", self.contract.functions.name())

    def get_token_symbol(self) -> str:
        return self._call("token symbol", self.contract.functions.symbol())

    def get_total_supply(self) -> int:
        return int(self._call("total supply", self.contract.functions.totalSupply()))

    def get_balance(self, address: str) -> int:
        if not is_valid_ethereum_address(address):
            raise InvalidInputError("Invalid user address for balance check.", field="address")
        return int(self._call(
            f"balance of {address}",
            self.contract.functions.balanceOf(Web3.to_checksum_address(address))))

    def _server_account(self):
        if not self.config.server_wallet_private_key:
            raise ConfigurationError(
                "Signing not configured: SERVER_WALLET_PRIVATE_KEY missing.")
        return self.w3.eth.account.from_key(self.config.server_wallet_private_key)

    @property
    def server_address(self) -> str:
        return self._server_account().address

    def get_native_balance(self, address: str) -> int:
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as e:
            raise UpstreamError(f"Failed to read ETH balance of {address}: {e}") from e

    def _send(self, account, tx: Dict[str, Any], description: str) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        hex_hash = Web3.to_hex(tx_hash)
        logger.info(f"{description} tx sent: {hex_hash}. Waiting for confirmation...")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        status = receipt["status"]
        if status != 1:
            raise ChainTransactionError(
                f"{description} tx failed on-chain. Status: {status}. Hash: {hex_hash}")
        logger.info(f"{description} confirmed: {hex_hash}")
        return hex_hash

    def mint(self, recipient: str, amount: int) -> str:
        """Mint ``amount`` base units to ``recipient``; returns the tx hash."""
        if not is_valid_ethereum_address(recipient):
            raise InvalidInputError("Invalid recipient address for minting.", field="recipientAddress")
        if amount <= 0:
            raise InvalidInputError("Mint amount must be positive.", field="amount")

        account = self._server_account()
        logger.info(f"Minting {amount} tokens to {recipient} via RPC...")
        try:
            tx = self.contract.functions.mint(
                Web3.to_checksum_address(recipient), amount
            ).build_transaction({
                "from": account.address,
                "nonce": self.w3.eth.get_transaction_count(account.address),
            })
            return self._send(account, tx, "Mint")
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            logger.error(f"Mint reverted: {reason}")
            raise ChainTransactionError(f"Failed to mint tokens: {reason}") from e
        except (TimeExhausted, Web3Exception, ValueError) as e:
            logger.error(f"Mint failed: {e}")
            raise ChainTransactionError(f"Failed to mint tokens: {e}") from e

    def send_eth(self, recipient: str, value_wei: int) -> str:
        """Send native currency from the server wallet; returns the tx hash."""
        account = self._server_account()
        tx = {
            "to": Web3.to_checksum_address(recipient),
            "value": value_wei,
            "gas": 21000,
            "gasPrice": self.w3.eth.gas_price,
            "nonce": self.w3.eth.get_transaction_count(account.address),
            "chainId": self.w3.eth.chain_id,
        }
        return self._send(account, tx, "ETH transfer")
