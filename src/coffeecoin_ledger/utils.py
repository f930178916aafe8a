"""
Utility functions for address handling and Etherscan row parsing.
"""

from typing import List, Dict, Any, Optional
from decimal import Decimal, ROUND_DOWN
import re
import logging

from .models import RawTransaction

logger = logging.getLogger(__name__)


def is_valid_ethereum_address(address: Optional[str]) -> bool:
    """Check if a string is a valid Ethereum address."""
    if not address or not isinstance(address, str):
        return False

    # Remove 0x prefix if present
    if address.startswith('0x'):
        address = address[2:]

    # Check if it's 40 hex characters
    return bool(re.match(r'^[0-9a-fA-F]{40}$', address))


def normalize_address(address: Optional[str]) -> str:
    """Normalize an Ethereum address to lowercase with 0x prefix."""
    if not address:
        return ""

    address = address.lower()
    if not address.startswith('0x'):
        address = '0x' + address

    return address


def wei_to_ether(wei: int) -> Decimal:
    """Convert Wei to Ether."""
    try:
        return Decimal(wei) / Decimal('1000000000000000000')
    except (ValueError, TypeError, ArithmeticError) as e:
        logger.warning(f"Error converting wei to ether: {wei}, error: {e}")
        return Decimal('0')


def format_ether(wei: int) -> str:
    """Render a wei amount as an ETH string without trailing zeros."""
    ether = wei_to_ether(wei).quantize(Decimal('0.000001'), rounding=ROUND_DOWN)
    text = format(ether.normalize(), 'f')
    return text


def format_number(num: Any) -> str:
    """Format an integer token amount with thousands separators."""
    try:
        return f"{int(num):,}"
    except (ValueError, TypeError):
        return str(num)


def parse_int(value: Any, default: int = 0) -> int:
    """Parse a decimal or 0x-prefixed string into an int."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.startswith(('0x', '0X')):
        return int(text, 16)
    return int(text)


def parse_raw_transactions(raw_transactions: List[Dict[str, Any]]) -> List[RawTransaction]:
    """Parse raw Etherscan rows into RawTransaction objects.

    Rows without a hash or with unparseable numeric fields are skipped.
    Missing ``from``/``to`` fields are kept as empty strings.
    """
    transactions = []

    if not raw_transactions:
        return transactions

    for tx in raw_transactions:
        try:
            if not isinstance(tx, dict) or not tx.get('hash'):
                logger.warning(f"Skipping transaction without hash: {tx}")
                continue

            transaction = RawTransaction(
                hash=tx['hash'],
                block_number=parse_int(tx.get('blockNumber')),
                timestamp=parse_int(tx.get('timeStamp')),
                from_address=tx.get('from') or "",
                to_address=tx.get('to') or "",
                value=parse_int(tx.get('value')),
                input=tx.get('input') or "",
                is_error=str(tx.get('isError', '0')) == '1',
                gas_used=parse_int(tx['gasUsed']) if tx.get('gasUsed') else None,
                token_symbol=tx.get('tokenSymbol') or None,
                log_index=tx.get('logIndex'),
                method_id=tx.get('methodId'),
                contract_address=tx.get('contractAddress') or None,
            )

            transactions.append(transaction)

        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Error parsing transaction {tx.get('hash', 'unknown')}: {e}")
            continue

    logger.debug(
        f"Parsed {len(transactions)} valid transactions from {len(raw_transactions)} raw transactions")
    return transactions
