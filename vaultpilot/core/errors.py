"""
Error taxonomy for the orchestration pipeline.

Every error here is fatal to the running workflow: nothing is retried
internally, because re-submitting a fund-moving call blindly can execute the
same intent twice. Errors carry the step that failed so the operator can
reconcile a partially completed run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors, used when reporting a failed run."""

    ROUTING = "routing"                 # Aggregator had nothing usable
    PROVIDER = "provider"               # Aggregator transport / HTTP failure
    ALLOWANCE = "allowance"             # Approval could not be established
    AUTHORIZATION = "authorization"     # Router not accepted by the vault
    SUBMISSION = "submission"           # Node refused the transaction
    TRANSACTION_REVERTED = "transaction_reverted"
    TIMEOUT = "timeout"                 # No receipt before the deadline
    INSUFFICIENT_FUNDS = "insufficient_funds"
    VALIDATION = "validation"           # Nothing to do / inconsistent target


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory
    operator_retryable: bool = False
    suggested_action: Optional[str] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class OrchestrationError(Exception):
    """Base class for every failure surfaced by a workflow."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.context = context or ErrorContext(category=self.category)

    def describe(self) -> Dict[str, Any]:
        """Flat representation for structured logging."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "step": self.step,
            "category": self.context.category.value,
            "operator_retryable": self.context.operator_retryable,
            "suggested_action": self.context.suggested_action,
            "tx_hash": self.context.tx_hash,
            **self.context.details,
        }


class NoRouteFound(OrchestrationError):
    """The aggregator returned zero candidate routes."""

    category = ErrorCategory.ROUTING

    def __init__(self, message: str = "No route found", *, step: str = "quote", request: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                operator_retryable=True,
                suggested_action="Check token addresses and amount, or retry later",
                details={"request": request} if request else {},
            ),
        )


class MalformedQuote(OrchestrationError):
    """The aggregator response lacks an executor, payload or minimum output."""

    category = ErrorCategory.ROUTING

    def __init__(self, message: str = "Malformed quote", *, step: str = "quote", missing: Optional[list] = None):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                suggested_action="Inspect the aggregator response",
                details={"missing": missing} if missing else {},
            ),
        )


class AggregatorError(OrchestrationError):
    """Non-2xx or transport failure talking to the aggregator."""

    category = ErrorCategory.PROVIDER

    def __init__(self, message: str, *, step: str = "quote", status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                operator_retryable=True,
                suggested_action="Check the aggregator API key and connectivity",
                details={"status_code": status_code, "body": body},
            ),
        )


class TransactionReverted(OrchestrationError):
    """The chain included the transaction but reported failure."""

    category = ErrorCategory.TRANSACTION_REVERTED

    def __init__(
        self,
        message: str = "Transaction reverted",
        *,
        step: Optional[str] = None,
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Review transaction parameters before re-running",
                details={"revert_reason": reason} if reason else {},
            ),
        )
        self.tx_hash = tx_hash


class ApprovalRejected(TransactionReverted):
    """The ERC-20 approval transaction reverted."""

    category = ErrorCategory.ALLOWANCE


class SubmissionError(OrchestrationError):
    """The node rejected the transaction before inclusion (nonce, gas, connectivity)."""

    category = ErrorCategory.SUBMISSION

    def __init__(self, message: str, *, step: Optional[str] = None, chain_id: Optional[int] = None):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                operator_retryable=True,
                chain_id=chain_id,
                suggested_action="Check nonce, gas balance and RPC connectivity, then re-run",
            ),
        )


class ConfirmationTimeout(OrchestrationError):
    """No confirmed receipt before the configured deadline."""

    category = ErrorCategory.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Check the transaction in an explorer before re-running",
                details={"timeout_seconds": timeout_seconds},
            ),
        )
        self.tx_hash = tx_hash


class RouterNotAuthorized(OrchestrationError):
    """The vault does not accept the quoted router and auto-authorization is off."""

    category = ErrorCategory.AUTHORIZATION

    def __init__(self, router: str, holding_contract: str, *, step: str = "router_gate"):
        super().__init__(
            f"Router {router} is not authorized on {holding_contract}",
            step=step,
            context=ErrorContext(
                category=self.category,
                suggested_action="Authorize the router on the vault or enable auto_allow_router",
                details={"router": router, "holding_contract": holding_contract},
            ),
        )
        self.router = router
        self.holding_contract = holding_contract


class NothingToRedeem(OrchestrationError):
    """The requested fraction of the position rounds down to zero shares."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str = "No shares to redeem", *, total_shares: int = 0, fraction_bps: int = 0):
        super().__init__(
            message,
            step="redeem",
            context=ErrorContext(
                category=self.category,
                details={"total_shares": total_shares, "fraction_bps": fraction_bps},
            ),
        )


class InsufficientBalance(OrchestrationError):
    """The account does not hold enough of the asset for the requested step."""

    category = ErrorCategory.INSUFFICIENT_FUNDS

    def __init__(
        self,
        message: str = "Insufficient balance",
        *,
        step: Optional[str] = None,
        asset: Optional[str] = None,
        required: Optional[int] = None,
        available: Optional[int] = None,
    ):
        super().__init__(
            message,
            step=step,
            context=ErrorContext(
                category=self.category,
                suggested_action="Add funds to the signer or reduce the amount",
                details={"asset": asset, "required": required, "available": available},
            ),
        )


class VaultAssetMismatch(OrchestrationError):
    """The vault's underlying asset is not the asset the route produces."""

    category = ErrorCategory.VALIDATION

    def __init__(self, vault: str, expected: str, actual: str):
        super().__init__(
            f"Vault {vault} takes {actual}, expected {expected}",
            step="deposit",
            context=ErrorContext(
                category=self.category,
                details={"vault": vault, "expected": expected, "actual": actual},
            ),
        )
