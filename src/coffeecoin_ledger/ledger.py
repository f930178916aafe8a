"""
Classification and aggregation over Etherscan transaction history.

Everything here is a pure function of already-fetched rows; network access
lives in :mod:`coffeecoin_ledger.api_clients`.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .abi import (
    SelectorRegistry,
    call_selector,
    decode_mint_amount,
    decode_mint_amount_from_layout,
    function_label,
    MINT_SIGNATURE,
)
from .models import (
    ClassifiedTransfer,
    MintDistributionBucket,
    RawTransaction,
    RecentInteraction,
    TransferType,
    ZERO_ADDRESS,
)
from .utils import is_valid_ethereum_address

logger = logging.getLogger(__name__)

NO_CALL_DATA_LABEL = "ETH Transfer or Direct Call"

COFFEE_NAMES = [
    "Espresso Roast", "Latte Blend", "Cappuccino Classic", "Mocha Delight",
    "Americano Strong", "Macchiato Swirl", "Flat White Smooth", "Cold Brew Bold",
    "Decaf Peace", "Single Origin Gem",
]


def _lower(address: Optional[str]) -> Optional[str]:
    if not is_valid_ethereum_address(address):
        return None
    return address.lower()


def classify_transfer(tx: RawTransaction, viewpoint: str) -> TransferType:
    """Classify a token transfer relative to ``viewpoint``.

    Mint and burn legs are checked before plain receive/send. Malformed or
    missing addresses classify as ``unknown_transfer``.
    """
    me = _lower(viewpoint)
    sender = _lower(tx.from_address)
    recipient = _lower(tx.to_address)

    if me is None or sender is None or recipient is None:
        return TransferType.UNKNOWN

    if sender == ZERO_ADDRESS and recipient == me:
        return TransferType.EARNED
    if recipient == ZERO_ADDRESS and sender == me:
        return TransferType.REDEEMED
    if recipient == me:
        return TransferType.RECEIVED
    if sender == me:
        return TransferType.SENT
    return TransferType.UNKNOWN


def classify_transfers(transactions: Iterable[RawTransaction], viewpoint: str,
                       default_symbol: str = "CFC") -> List[ClassifiedTransfer]:
    """Classify every transfer in order, from one wallet's point of view."""
    return [
        ClassifiedTransfer(
            transaction_hash=tx.hash,
            block_number=tx.block_number,
            timestamp=tx.timestamp,
            type=classify_transfer(tx, viewpoint),
            amount=str(tx.value),
            from_address=tx.from_address,
            to_address=tx.to_address,
            token_symbol=tx.token_symbol or default_symbol,
        )
        for tx in transactions
    ]


def sum_minted(transactions: Iterable[RawTransaction], mint_selector: Optional[str]) -> int:
    """Sum the amount argument of every successful ``mint`` call.

    Calls whose input does not decode are skipped.
    """
    total = 0
    if not mint_selector:
        return total

    for tx in transactions:
        if tx.is_error:
            continue
        amount = decode_mint_amount(tx.input, mint_selector)
        if amount is None:
            if call_selector(tx.input) == mint_selector:
                logger.debug(f"Skipping undecodable mint call in {tx.hash}")
            continue
        total += amount
    return total


@dataclass
class TransferSummary:
    total_redeemed_to_zero_address: int
    number_of_holders: int
    transfer_count: int


def summarize_transfers(transfers: Iterable[RawTransaction]) -> TransferSummary:
    """Value burned to the zero address and distinct non-zero recipients."""
    redeemed = 0
    holders = set()
    count = 0

    for tx in transfers:
        count += 1
        recipient = _lower(tx.to_address)
        if recipient is None:
            continue
        if recipient == ZERO_ADDRESS:
            redeemed += tx.value
        else:
            holders.add(recipient)

    return TransferSummary(
        total_redeemed_to_zero_address=redeemed,
        number_of_holders=len(holders),
        transfer_count=count,
    )


def describe_function_call(call_data: Optional[str], selectors: SelectorRegistry) -> str:
    """Human-readable label for a transaction's call data."""
    selector = call_selector(call_data)
    if selector is None:
        return NO_CALL_DATA_LABEL

    signature = selectors.signature(selector)
    if signature is None:
        return f"{selector} (Unknown)"

    if signature == MINT_SIGNATURE:
        amount = decode_mint_amount(call_data, selector)
        if amount is not None:
            return f"mint(..., {amount})"
    return function_label(signature)


def to_recent_interaction(row: Dict[str, str], selectors: SelectorRegistry,
                          contract_address: str) -> RecentInteraction:
    """Decorate a raw txlist row with its decoded function label."""
    call_data = row.get("input") or ""
    method_id = call_selector(call_data) or row.get("methodId") or call_data[:10]

    return RecentInteraction(
        block_number=row.get("blockNumber", ""),
        timestamp=row.get("timeStamp", ""),
        hash=row.get("hash", ""),
        from_address=row.get("from", ""),
        to_address=row.get("to", ""),
        value=row.get("value", "0"),
        contract_address=row.get("contractAddress") or contract_address,
        input=call_data,
        method_id=method_id,
        function_name=describe_function_call(call_data, selectors),
        is_error=row.get("isError", "0"),
        gas_used=row.get("gasUsed", ""),
    )


def _amount_from_label(function_name: str) -> Optional[int]:
    prefix, _, rest = function_name.partition("mint(..., ")
    if prefix or not rest.endswith(")"):
        return None
    try:
        return int(rest[:-1].strip())
    except ValueError:
        return None


def coffee_name_for_amount(amount: int, symbol: str) -> str:
    """Stable display name for a mint amount."""
    text = str(amount)
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return f"{COFFEE_NAMES[abs(h) % len(COFFEE_NAMES)]} ({text} {symbol})"


def mint_distribution(interactions: Iterable[RecentInteraction], symbol: str,
                      top: int = 7) -> List[MintDistributionBucket]:
    """Group successful mint calls by amount, largest amounts first."""
    buckets: Dict[int, List[int]] = defaultdict(lambda: [0, 0])

    for tx in interactions:
        if tx.is_error != "0" or not tx.function_name.lower().startswith("mint("):
            continue

        amount = _amount_from_label(tx.function_name)
        if amount is None:
            amount = decode_mint_amount_from_layout(tx.input)
        if not amount:
            continue

        buckets[amount][0] += 1
        buckets[amount][1] += amount

    ordered = sorted(buckets.items(), key=lambda item: item[0], reverse=True)[:top]
    return [
        MintDistributionBucket(
            amount=amount,
            count=count,
            total_value=total,
            label=coffee_name_for_amount(amount, symbol),
        )
        for amount, (count, total) in ordered
    ]


def is_drip_eligible(balance_wei: int, tx_count: int, balance_floor_wei: int,
                     tx_count_ceiling: int) -> bool:
    """A wallet qualifies for a top-up when it is both poor and new."""
    return balance_wei < balance_floor_wei and tx_count < tx_count_ceiling
