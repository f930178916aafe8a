"""
Data models for CoffeeCoin ledger aggregation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class TransferType(str, Enum):
    """Viewpoint-relative kind of a token transfer."""
    EARNED = "earned"
    REDEEMED = "redeemed"
    RECEIVED = "received"
    SENT = "sent"
    UNKNOWN = "unknown_transfer"


class Availability(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"    # explicitly not tracked or no record exists
    UNKNOWN = "unknown"  # upstream failed or is not configured


@dataclass(frozen=True)
class Tracked:
    """A value that may be known, known to be absent, or unknown."""
    availability: Availability
    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def present(cls, value: Any) -> "Tracked":
        return cls(Availability.PRESENT, value)

    @classmethod
    def absent(cls, reason: Optional[str] = None) -> "Tracked":
        return cls(Availability.ABSENT, None, reason)

    @classmethod
    def unknown(cls, reason: Optional[str] = None) -> "Tracked":
        return cls(Availability.UNKNOWN, None, reason)

    @property
    def is_present(self) -> bool:
        return self.availability is Availability.PRESENT

    @property
    def is_unknown(self) -> bool:
        return self.availability is Availability.UNKNOWN


@dataclass
class RawTransaction:
    """One row from the Etherscan txlist / tokentx endpoints."""
    hash: str
    block_number: int
    timestamp: int
    from_address: str
    to_address: str
    value: int
    input: str = ""
    is_error: bool = False
    gas_used: Optional[int] = None
    token_symbol: Optional[str] = None
    log_index: Optional[str] = None
    method_id: Optional[str] = None
    contract_address: Optional[str] = None


@dataclass
class ClassifiedTransfer:
    """Token transfer seen from one wallet's point of view."""
    transaction_hash: str
    block_number: int
    timestamp: int
    type: TransferType
    amount: str
    from_address: str
    to_address: str
    token_symbol: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "amount": self.amount,
            "from": self.from_address,
            "to": self.to_address,
            "tokenSymbol": self.token_symbol,
        }


class StopReason(str, Enum):
    LAST_PAGE = "last_page"
    NO_RECORDS = "no_records"
    PAGE_CAP = "page_cap"
    ERROR = "error"


@dataclass
class PageScan:
    """Accumulated rows of a bounded, paginated Etherscan query."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    stop_reason: StopReason = StopReason.PAGE_CAP
    error: Optional[str] = None

    @property
    def reachable(self) -> bool:
        """False only when the history source failed before any page arrived."""
        return not (self.stop_reason is StopReason.ERROR and self.pages_fetched == 0)


@dataclass
class ContractOverview:
    """Aggregate snapshot of the CoffeeCoin contract."""
    contract_address: str
    total_supply: str
    token_name: str
    token_symbol: str
    creator_address: Tracked = field(default_factory=Tracked.unknown)
    creation_tx_hash: Tracked = field(default_factory=Tracked.unknown)
    total_minted: Tracked = field(default_factory=Tracked.unknown)
    total_redeemed_to_zero_address: Tracked = field(default_factory=Tracked.unknown)
    number_of_holders: Tracked = field(default_factory=Tracked.unknown)
    total_contract_transactions: Tracked = field(default_factory=Tracked.unknown)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "contractAddress": self.contract_address,
            "creatorAddress": self.creator_address.value if self.creator_address.is_present else None,
            "creationTxHash": self.creation_tx_hash.value if self.creation_tx_hash.is_present else None,
            "totalSupply": self.total_supply,
            "tokenName": self.token_name,
            "tokenSymbol": self.token_symbol,
        }
        optional = {
            "totalMinted": self.total_minted,
            "totalRedeemedToZeroAddress": self.total_redeemed_to_zero_address,
            "numberOfHolders": self.number_of_holders,
            "totalContractTransactions": self.total_contract_transactions,
        }
        for key, tracked in optional.items():
            if tracked.is_present:
                data[key] = tracked.value

        data["unavailableFields"] = [
            key for key, tracked in [
                ("creatorAddress", self.creator_address),
                ("creationTxHash", self.creation_tx_hash),
                *optional.items(),
            ] if tracked.is_unknown
        ]
        return data


@dataclass
class RecentInteraction:
    """A normal transaction against the contract, labelled with its call."""
    block_number: str
    timestamp: str
    hash: str
    from_address: str
    to_address: str
    value: str
    contract_address: str
    input: str
    method_id: str
    function_name: str
    is_error: str
    gas_used: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockNumber": self.block_number,
            "timeStamp": self.timestamp,
            "hash": self.hash,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "contractAddress": self.contract_address,
            "input": self.input,
            "methodId": self.method_id,
            "functionName": self.function_name,
            "isError": self.is_error,
            "gasUsed": self.gas_used,
        }


@dataclass
class MintDistributionBucket:
    """How often a given amount was minted in the scanned history."""
    amount: int
    count: int
    total_value: int
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.label,
            "amount": str(self.amount),
            "numberOfMints": self.count,
            "totalTokens": str(self.total_value),
        }


@dataclass
class DripEligibility:
    should_drip: bool
    eth_balance_wei: int
    tx_count: int  # -1 when it could not be determined
    message: str


@dataclass
class DripResult:
    dripped: bool
    message: str
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"dripped": self.dripped, "message": self.message}
        if self.tx_hash:
            data["hash"] = self.tx_hash
        return data


@dataclass
class EarnResult:
    transaction_hash: str
    recipient_address: str
    amount: int
    new_balance: int
    eth_drip_status: str


@dataclass
class RedemptionRecord:
    reward_id: str
    points_burned: int
    burn_tx_hash: str
    voucher_code: str
