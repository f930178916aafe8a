"""
Ledger service: stitches RPC reads, Etherscan history and the pure ledger
functions into the operations exposed over HTTP and the CLI.
"""

import logging
import secrets
import string
from typing import Any, List, Optional

from .abi import COFFEE_COIN_ABI, MINT_SIGNATURE, SelectorRegistry
from .api_clients import EtherscanClient, Web3Client
from .config import Config
from .exceptions import (
    ChainTransactionError,
    ConfigurationError,
    InvalidInputError,
    LedgerError,
    UpstreamError,
)
from .ledger import (
    classify_transfers,
    is_drip_eligible,
    mint_distribution,
    sum_minted,
    summarize_transfers,
    to_recent_interaction,
)
from .models import (
    ClassifiedTransfer,
    ContractOverview,
    DripEligibility,
    DripResult,
    EarnResult,
    MintDistributionBucket,
    RecentInteraction,
    RedemptionRecord,
    Tracked,
)
from .utils import format_ether, is_valid_ethereum_address, parse_raw_transactions

logger = logging.getLogger(__name__)

INSUFFICIENT_FAUCET_FUNDS = "Faucet wallet has insufficient funds."
MAX_INTERACTIONS_OFFSET = 100
VOUCHER_ALPHABET = string.ascii_uppercase + string.digits


def parse_positive_amount(value: Any, field: str) -> int:
    """Parse a whole-number amount given as int or string; must be > 0."""
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidInputError(f"'{field}' is required.", field=field)
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidInputError(f"'{field}' must be a valid whole number.", field=field)
        value = int(value)
    try:
        amount = int(str(value).strip())
    except ValueError:
        raise InvalidInputError(f"'{field}' must be a valid whole number.", field=field)
    if amount <= 0:
        raise InvalidInputError(f"'{field}' must be a positive whole number.", field=field)
    return amount


def require_address(address: Optional[str], field: str = "address") -> str:
    if not is_valid_ethereum_address(address):
        raise InvalidInputError(f"Invalid '{field}'.", field=field)
    return address


class LedgerService:
    """Operations over the CoffeeCoin contract and its Etherscan history."""

    def __init__(self, config: Config, etherscan: EtherscanClient, chain: Web3Client,
                 selectors: Optional[SelectorRegistry] = None):
        self.config = config
        self.etherscan = etherscan
        self.chain = chain
        self.selectors = selectors or SelectorRegistry.from_abi(COFFEE_COIN_ABI)

    @classmethod
    def from_config(cls, config: Config) -> "LedgerService":
        return cls(config, EtherscanClient(config), Web3Client(config))

    # ------------------------------------------------------------------
    # Contract reads
    # ------------------------------------------------------------------

    def token_info(self) -> dict:
        return {"name": self.chain.get_token_name(), "symbol": self.chain.get_token_symbol()}

    def total_supply(self) -> int:
        return self.chain.get_total_supply()

    def balance_of(self, address: str) -> int:
        require_address(address)
        return self.chain.get_balance(address)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _require_etherscan(self, purpose: str) -> None:
        if not self.config.etherscan_enabled:
            raise ConfigurationError(f"Etherscan API key not configured for {purpose}.")

    def transaction_history(self, address: str) -> List[ClassifiedTransfer]:
        """Most recent CoffeeCoin transfers touching ``address``, newest first."""
        require_address(address)
        self._require_etherscan("transaction history")

        logger.info(f"Fetching transaction history for {address}")
        rows = self.etherscan.get_token_transfers(
            self.config.contract_address,
            address=address,
            page=1,
            offset=self.config.history_page_size,
            sort="desc",
        )
        transfers = parse_raw_transactions(rows)
        return classify_transfers(transfers, address, self.config.default_token_symbol)

    def recent_interactions(self, page: int = 1, offset: int = 10) -> List[RecentInteraction]:
        """One page of normal transactions sent to the contract, labelled."""
        if page < 1:
            raise InvalidInputError(
                "Invalid 'page' parameter. Must be a number greater than or equal to 1.", field="page")
        if offset < 1 or offset > MAX_INTERACTIONS_OFFSET:
            raise InvalidInputError(
                "Invalid 'offset' parameter. Must be a number between 1 and 100.", field="offset")
        self._require_etherscan("recent interactions")

        logger.info(
            f"Fetching recent contract interactions for {self.config.contract_address}, page: {page}, offset: {offset}")
        rows = self.etherscan.get_normal_transactions(
            self.config.contract_address, page=page, offset=offset, sort="desc")
        return [
            to_recent_interaction(row, self.selectors, self.config.contract_address)
            for row in rows
            if isinstance(row, dict)
        ]

    def mint_distribution(self, count: int = 50, top: int = 7) -> List[MintDistributionBucket]:
        interactions = self.recent_interactions(page=1, offset=count)
        return mint_distribution(interactions, self.config.default_token_symbol, top=top)

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    def contract_overview(self) -> ContractOverview:
        """Live token reads plus best-effort history aggregates.

        Name, symbol and supply are required. Creator lookup and both history
        scans degrade independently to ``unknown`` when Etherscan fails.
        """
        contract = self.config.contract_address
        overview = ContractOverview(
            contract_address=contract,
            total_supply=str(self.chain.get_total_supply()),
            token_name=self.chain.get_token_name(),
            token_symbol=self.chain.get_token_symbol(),
        )

        if not self.config.etherscan_enabled:
            logger.warning(
                "ETHERSCAN_API_KEY not set. Overview will be limited to live contract reads.")
            return overview

        self._fill_creator(overview)
        self._fill_mint_totals(overview)
        self._fill_transfer_totals(overview)
        return overview

    def _fill_creator(self, overview: ContractOverview) -> None:
        try:
            creation = self.etherscan.get_contract_creation(overview.contract_address)
        except (UpstreamError, ConfigurationError) as e:
            logger.warning(f"Could not fetch contract creation from Etherscan: {e}")
            return

        if not creation:
            overview.creator_address = Tracked.absent("no creation record")
            overview.creation_tx_hash = Tracked.absent("no creation record")
            return
        overview.creator_address = _tracked_string(creation.get("contractCreator"))
        overview.creation_tx_hash = _tracked_string(creation.get("txHash"))

    def _fill_mint_totals(self, overview: ContractOverview) -> None:
        scan = self.etherscan.fetch_all_pages(
            self.etherscan.normal_transaction_query(overview.contract_address),
            max_pages=self.config.overview_txlist_max_pages,
        )
        if not scan.reachable:
            return

        transactions = parse_raw_transactions(scan.items)
        overview.total_contract_transactions = Tracked.present(len(scan.items))

        mint_selector = self.selectors.mint_selector
        if mint_selector is None:
            overview.total_minted = Tracked.absent(f"{MINT_SIGNATURE} not tracked")
        else:
            overview.total_minted = Tracked.present(str(sum_minted(transactions, mint_selector)))

        logger.info(
            f"Calculated from {len(scan.items)} contract txs: totalMinted={overview.total_minted.value}")

    def _fill_transfer_totals(self, overview: ContractOverview) -> None:
        scan = self.etherscan.fetch_all_pages(
            self.etherscan.token_transfer_query(overview.contract_address),
            max_pages=self.config.overview_tokentx_max_pages,
        )
        if not scan.reachable:
            return

        summary = summarize_transfers(parse_raw_transactions(scan.items))
        overview.total_redeemed_to_zero_address = Tracked.present(
            str(summary.total_redeemed_to_zero_address))
        overview.number_of_holders = Tracked.present(summary.number_of_holders)

        logger.info(
            f"Calculated from {summary.transfer_count} token transfer events: "
            f"totalRedeemedToZeroAddress={summary.total_redeemed_to_zero_address}, "
            f"numberOfHolders={summary.number_of_holders}")

    # ------------------------------------------------------------------
    # Faucet
    # ------------------------------------------------------------------

    def check_drip_eligibility(self, address: str) -> DripEligibility:
        """Decide whether ``address`` should get an ETH top-up. Never raises."""
        if not self.config.etherscan_enabled:
            return DripEligibility(False, 0, -1, "Etherscan API key missing for drip check.")
        if not self.config.signing_enabled:
            return DripEligibility(False, 0, -1, "Server wallet missing for drip.")
        if not is_valid_ethereum_address(address):
            return DripEligibility(False, 0, -1, "Invalid user address for drip check.")

        floor = self.config.min_eth_balance_for_no_drip_wei
        ceiling = self.config.max_tx_count_for_drip
        try:
            balance = self.etherscan.get_eth_balance(address)
            tx_count = self.etherscan.get_transaction_count(address, limit=ceiling + 1)
        except Exception as e:
            logger.error(f"Drip eligibility check failed for {address}: {e}")
            return DripEligibility(False, 0, -1, f"Eligibility check error: {e}")

        logger.info(f"Drip check for {address}: ETH {format_ether(balance)}, TXs {tx_count}")

        if is_drip_eligible(balance, tx_count, floor, ceiling):
            return DripEligibility(True, balance, tx_count, "Eligible for ETH drip.")

        reasons = []
        if balance >= floor:
            reasons.append(f"Has {format_ether(balance)} ETH.")
        if tx_count >= ceiling:
            reasons.append(f"Has {tx_count} TXs.")
        return DripEligibility(False, balance, tx_count, f"Not eligible. {' '.join(reasons)}".strip())

    def attempt_drip(self, address: str) -> DripResult:
        """Send a small ETH top-up when the wallet qualifies. Never raises."""
        logger.info(f"Attempting ETH drip for {address}")
        if not self.config.signing_enabled:
            return DripResult(False, "Faucet (server wallet) not configured.")
        if not is_valid_ethereum_address(address):
            return DripResult(False, "Invalid recipient address for ETH drip.")

        eligibility = self.check_drip_eligibility(address)
        if not eligibility.should_drip:
            logger.info(f"Not dripping to {address}: {eligibility.message}")
            return DripResult(False, eligibility.message)

        amount = self.config.eth_drip_amount_wei
        try:
            faucet_balance = self.chain.get_native_balance(self.chain.server_address)
            if faucet_balance < amount:
                logger.warning(f"Faucet wallet {self.chain.server_address} has insufficient funds.")
                return DripResult(False, INSUFFICIENT_FAUCET_FUNDS)

            tx_hash = self.chain.send_eth(address, amount)
        except Exception as e:
            logger.error(f"Error sending ETH drip to {address}: {e}")
            return DripResult(False, f"Failed to send test ETH: {e}")

        return DripResult(
            True, f"Successfully dripped {format_ether(amount)} ETH. Tx: {tx_hash}", tx_hash)

    # ------------------------------------------------------------------
    # Minting and points
    # ------------------------------------------------------------------

    def mint(self, recipient: str, amount: Any) -> str:
        require_address(recipient, "recipientAddress")
        value = parse_positive_amount(amount, "amount")
        logger.info(f"Minting {value} tokens to {recipient}")
        return self.chain.mint(recipient, value)

    def earn_points(self, wallet: str, points: Any) -> EarnResult:
        """Best-effort ETH drip, then mint ``points`` to ``wallet``."""
        require_address(wallet, "wallet")
        amount = parse_positive_amount(points, "pointsToEarn")

        drip = self.attempt_drip(wallet)
        logger.info(f"ETH drip attempt for {wallet}: {drip.message}")

        try:
            tx_hash = self.chain.mint(wallet, amount)
        except LedgerError as e:
            raise ChainTransactionError(
                f"Failed to mint CoffeeCoins: {e}", eth_drip_status=drip.message) from e

        return EarnResult(
            transaction_hash=tx_hash,
            recipient_address=wallet,
            amount=amount,
            new_balance=self.chain.get_balance(wallet),
            eth_drip_status=drip.message,
        )

    def record_redemption(self, reward_id: Optional[str], points_burned: Any,
                          burn_tx_hash: Optional[str]) -> RedemptionRecord:
        if not reward_id or points_burned is None or not burn_tx_hash:
            raise InvalidInputError("Missing required fields for redemption record.")
        points = parse_positive_amount(points_burned, "pointsBurned")

        suffix = "".join(secrets.choice(VOUCHER_ALPHABET) for _ in range(5))
        voucher = f"VOUCHER-{str(reward_id).upper()}-{suffix}"
        logger.info(f"Recorded redemption of {points} points for reward {reward_id}, tx {burn_tx_hash}")
        return RedemptionRecord(
            reward_id=str(reward_id),
            points_burned=points,
            burn_tx_hash=burn_tx_hash,
            voucher_code=voucher,
        )


def _tracked_string(value: Optional[str]) -> Tracked:
    return Tracked.present(value) if value else Tracked.absent()
