import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .utils import is_valid_ethereum_address, normalize_address

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

WEI_PER_ETHER = 10 ** 18


@dataclass
class Config:
    """Application configuration."""

    # Chain access
    rpc_url: str
    contract_address: str
    server_wallet_private_key: Optional[str] = None

    # API Keys
    etherscan_api_key: Optional[str] = None
    admin_api_key: Optional[str] = None

    # API URLs
    etherscan_base_url: str = "https://api-sepolia.etherscan.io/api"

    # Pagination settings
    page_delay: float = 0.3  # seconds between Etherscan page requests
    page_size: int = 1000
    overview_txlist_max_pages: int = 5
    overview_tokentx_max_pages: int = 10
    history_page_size: int = 100
    request_timeout: float = 30.0

    # Faucet settings (wei)
    eth_drip_amount_wei: int = WEI_PER_ETHER // 100            # 0.01 ETH
    min_eth_balance_for_no_drip_wei: int = WEI_PER_ETHER // 200  # 0.005 ETH
    max_tx_count_for_drip: int = 5

    # Display / server settings
    default_token_symbol: str = "CFC"
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    @property
    def etherscan_enabled(self) -> bool:
        return bool(self.etherscan_api_key)

    @property
    def signing_enabled(self) -> bool:
        return bool(self.server_wallet_private_key)

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        rpc_url = os.getenv("SEPOLIA_RPC_URL")
        if not rpc_url:
            raise ConfigurationError(
                "SEPOLIA_RPC_URL environment variable is required")

        contract_address = os.getenv("COFFEE_COIN_CONTRACT_ADDRESS")
        if not contract_address:
            raise ConfigurationError(
                "COFFEE_COIN_CONTRACT_ADDRESS environment variable is required")
        if not is_valid_ethereum_address(contract_address):
            raise ConfigurationError(
                f"COFFEE_COIN_CONTRACT_ADDRESS is not a valid address: {contract_address}")

        config = cls(
            rpc_url=rpc_url,
            contract_address=normalize_address(contract_address),
            server_wallet_private_key=os.getenv("SERVER_WALLET_PRIVATE_KEY") or None,
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY") or None,
            admin_api_key=os.getenv("ADMIN_API_KEY") or None,
            etherscan_base_url=os.getenv(
                "ETHERSCAN_BASE_URL", "https://api-sepolia.etherscan.io/api"),
            page_delay=float(os.getenv("PAGE_DELAY", "0.3")),
            page_size=int(os.getenv("PAGE_SIZE", "1000")),
            overview_txlist_max_pages=int(
                os.getenv("OVERVIEW_TXLIST_MAX_PAGES", "5")),
            overview_tokentx_max_pages=int(
                os.getenv("OVERVIEW_TOKENTX_MAX_PAGES", "10")),
            history_page_size=int(os.getenv("HISTORY_PAGE_SIZE", "100")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
            eth_drip_amount_wei=int(
                os.getenv("ETH_DRIP_AMOUNT_WEI", str(WEI_PER_ETHER // 100))),
            min_eth_balance_for_no_drip_wei=int(
                os.getenv("MIN_ETH_BALANCE_FOR_NO_DRIP_WEI", str(WEI_PER_ETHER // 200))),
            max_tx_count_for_drip=int(os.getenv("MAX_TX_COUNT_FOR_DRIP", "5")),
            default_token_symbol=os.getenv("DEFAULT_TOKEN_SYMBOL", "CFC"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "3001")),
        )

        if not config.signing_enabled:
            logger.warning(
                "SERVER_WALLET_PRIVATE_KEY is not set. Minting and ETH drips will fail if attempted.")
        if not config.etherscan_enabled:
            logger.warning(
                "ETHERSCAN_API_KEY is not set. Admin overview and history features will be limited.")

        return config


@lru_cache()
def get_config() -> Config:
    """Return the process-wide configuration, loaded once."""
    return Config.from_env()
