"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    """Kinds of state-changing calls the sequencer submits."""
    APPROVE = "approve"
    AUTHORIZE_ROUTER = "authorize_router"
    DEPOSIT = "deposit"
    REDEEM = "redeem"
    ROUTE = "route"              # Swap/bridge executed by the aggregator's router
    STAKE = "stake"              # Native asset into a liquid-staking token
    WRAP = "wrap"                # Held token into its wrapped form


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    PENDING = "pending"          # Created, not yet submitted
    SUBMITTED = "submitted"      # Broadcast to network
    CONFIRMING = "confirming"    # Included, waiting for confirmations
    CONFIRMED = "confirmed"      # Successfully confirmed
    FAILED = "failed"            # Rejected before inclusion
    REVERTED = "reverted"        # On-chain revert
    TIMEOUT = "timeout"          # Confirmation deadline passed


@dataclass
class GasEstimate:
    """Gas estimation for a transaction."""
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    estimated_cost_wei: int = 0

    def __post_init__(self):
        if self.estimated_cost_wei == 0:
            self.estimated_cost_wei = self.gas_limit * self.max_fee_per_gas


@dataclass
class PreparedTransaction:
    """A transaction ready to be signed and broadcast."""
    tx_id: str                                  # Internal tracking ID
    tx_type: TransactionType
    chain_id: int
    from_address: str
    to_address: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    gas_estimate: Optional[GasEstimate] = None
    nonce: Optional[int] = None

    # Metadata
    description: str = ""
    params: Dict[str, Any] = field(default_factory=dict)   # Decoded call arguments, for logs
    created_at: datetime = field(default_factory=_utcnow)

    def call_object(self) -> Dict[str, Any]:
        """JSON-RPC call object (eth_call / eth_estimateGas)."""
        call = {
            "from": self.from_address,
            "to": self.to_address,
            "data": self.data,
        }
        if self.value > 0:
            call["value"] = hex(self.value)
        return call

    def to_signable(self) -> Dict[str, Any]:
        """EIP-1559 transaction dict for the signer."""
        if self.nonce is None or self.gas_estimate is None:
            raise ValueError(f"Transaction {self.tx_id} needs a nonce and gas estimate before signing")
        return {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "to": self.to_address,
            "value": self.value,
            "data": self.data,
            "gas": self.gas_estimate.gas_limit,
            "maxFeePerGas": self.gas_estimate.max_fee_per_gas,
            "maxPriorityFeePerGas": self.gas_estimate.max_priority_fee_per_gas,
        }


@dataclass
class TransactionResult:
    """Receipt-level result of a submitted transaction."""
    tx_id: str
    tx_type: TransactionType
    tx_hash: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    chain_id: int = 1
    description: str = ""

    # Ordering within the run
    submitted_seq: Optional[int] = None
    confirmed_seq: Optional[int] = None

    # Confirmation details
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    gas_used: Optional[int] = None
    effective_gas_price: Optional[int] = None

    # Timing
    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    @property
    def is_final(self) -> bool:
        return self.status in {
            TransactionStatus.CONFIRMED,
            TransactionStatus.FAILED,
            TransactionStatus.REVERTED,
            TransactionStatus.TIMEOUT,
        }


@dataclass
class ExecutionContext:
    """Settings that govern how the sequencer submits and waits."""
    gas_multiplier: float = 1.1                 # Safety margin
    max_priority_fee_wei: Optional[int] = None
    confirmation_timeout_seconds: Optional[float] = 600.0   # None waits indefinitely
    poll_interval_seconds: float = 2.0
    required_confirmations: int = 1

    @classmethod
    def from_settings(cls, settings: Any) -> "ExecutionContext":
        return cls(
            gas_multiplier=settings.gas_multiplier,
            confirmation_timeout_seconds=settings.confirmation_deadline,
            poll_interval_seconds=settings.poll_interval_seconds,
            required_confirmations=settings.required_confirmations,
        )
