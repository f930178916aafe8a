"""
CoffeeCoin contract ABI, function selectors and call-data decoding.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MINT_SIGNATURE = "mint(address,uint256)"
REDEEM_AND_BURN_SIGNATURE = "redeemAndBurn(address,uint256)"

# 0x + 4-byte selector + 32-byte address word + 32-byte amount word
MINT_CALLDATA_LENGTH = 2 + 8 + 64 + 64


def _function(name: str, inputs: List[Dict[str, str]], outputs: List[Dict[str, str]] = None,
              mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs or [],
        "stateMutability": mutability,
    }


COFFEE_COIN_ABI: List[Dict[str, Any]] = [
    _function("name", [], [{"name": "", "type": "string"}], "view"),
    _function("symbol", [], [{"name": "", "type": "string"}], "view"),
    _function("decimals", [], [{"name": "", "type": "uint8"}], "view"),
    _function("totalSupply", [], [{"name": "", "type": "uint256"}], "view"),
    _function("balanceOf", [{"name": "account", "type": "address"}],
              [{"name": "", "type": "uint256"}], "view"),
    _function("transfer", [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
              [{"name": "", "type": "bool"}]),
    _function("approve", [{"name": "spender", "type": "address"}, {"name": "value", "type": "uint256"}],
              [{"name": "", "type": "bool"}]),
    _function("transferFrom", [{"name": "from", "type": "address"}, {"name": "to", "type": "address"},
                               {"name": "value", "type": "uint256"}],
              [{"name": "", "type": "bool"}]),
    _function("mint", [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}]),
    _function("burn", [{"name": "value", "type": "uint256"}]),
    _function("redeemAndBurn", [{"name": "from", "type": "address"}, {"name": "amount", "type": "uint256"}]),
    _function("transferOwnership", [{"name": "newOwner", "type": "address"}]),
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
    },
]


def function_signature(entry: Dict[str, Any]) -> str:
    """Canonical signature of an ABI function entry, e.g. ``mint(address,uint256)``."""
    types = ",".join(arg["type"] for arg in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def selector_for(signature: str) -> str:
    """First four bytes of keccak256(signature), 0x-prefixed lowercase hex."""
    return "0x" + bytes(Web3.keccak(text=signature)[:4]).hex()


@dataclass
class SelectorRegistry:
    """Explicit mapping between function signatures and their selectors.

    Built once from the ABI. Signatures listed as required must be present,
    otherwise construction fails; optional ones that are missing are recorded
    in ``disabled`` so callers can report them as not tracked.
    """
    by_signature: Dict[str, str] = field(default_factory=dict)
    disabled: List[str] = field(default_factory=list)

    @classmethod
    def from_abi(cls, abi: Iterable[Dict[str, Any]],
                 required: Iterable[str] = (MINT_SIGNATURE,),
                 optional: Iterable[str] = (REDEEM_AND_BURN_SIGNATURE,)) -> "SelectorRegistry":
        by_signature = {
            function_signature(entry): selector_for(function_signature(entry))
            for entry in abi
            if entry.get("type") == "function"
        }

        missing = [sig for sig in required if sig not in by_signature]
        if missing:
            raise ConfigurationError(
                f"Contract ABI is missing required functions: {', '.join(missing)}")

        disabled = [sig for sig in optional if sig not in by_signature]
        for sig in disabled:
            logger.info(f"Function '{sig}' not in ABI; its tracking is disabled")

        return cls(by_signature=by_signature, disabled=disabled)

    def selector(self, signature: str) -> Optional[str]:
        return self.by_signature.get(signature)

    def signature(self, selector: str) -> Optional[str]:
        selector = (selector or "").lower()
        for sig, sel in self.by_signature.items():
            if sel == selector:
                return sig
        return None

    def is_tracked(self, signature: str) -> bool:
        return signature in self.by_signature

    @property
    def mint_selector(self) -> Optional[str]:
        return self.selector(MINT_SIGNATURE)


def call_selector(call_data: Optional[str]) -> Optional[str]:
    """Return the 0x-prefixed 4-byte selector of call data, if it has one."""
    if not call_data or call_data == "0x" or len(call_data) < 10:
        return None
    return call_data[:10].lower()


def decode_mint_amount(call_data: Optional[str], mint_selector: Optional[str]) -> Optional[int]:
    """Decode the amount argument of ``mint(address,uint256)`` call data.

    Returns None when the selector does not match, the call data is shorter
    than selector + two argument words, or the arguments do not decode.
    Trailing bytes after the arguments are ignored.
    """
    if not mint_selector or call_selector(call_data) != mint_selector.lower():
        return None
    if len(call_data) < MINT_CALLDATA_LENGTH:
        return None

    try:
        _recipient, amount = decode(["address", "uint256"], bytes.fromhex(call_data[10:]))
    except (DecodingError, ValueError) as e:
        logger.debug(f"Could not decode mint call data {call_data[:18]}...: {e}")
        return None
    return int(amount)


def decode_mint_amount_from_layout(call_data: Optional[str]) -> Optional[int]:
    """Read the amount word directly from fixed-layout mint call data.

    Used only when the full selector + address + amount layout is present.
    """
    if not call_data or not call_data.startswith("0x") or len(call_data) < MINT_CALLDATA_LENGTH:
        return None

    amount_word = call_data[10 + 64:10 + 64 + 64]
    try:
        return int(amount_word, 16)
    except ValueError:
        return None


def function_label(signature: str) -> str:
    """``mint(address,uint256)`` -> ``mint(...)``."""
    return f"{signature.split('(', 1)[0]}(...)"
