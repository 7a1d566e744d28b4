"""
Transaction Execution Layer

Provides the infrastructure for putting the orchestrator's calls on chain:
- TransactionSequencer: submits one transaction at a time and waits for it
- NonceManager: keeps nonces consistent with the node's pending count
- TransactionBuilder: encodes approvals, router authorizations, deposits
- LocalSigner: signs with the configured key

Usage:
    from vaultpilot.core.execution import (
        LocalSigner,
        TransactionBuilder,
        TransactionSequencer,
    )

    sequencer = TransactionSequencer(rpc, LocalSigner(private_key))

    tx = TransactionBuilder.build_erc20_approve(
        chain_id=1,
        owner_address=sequencer.address,
        token_address="0x...",
        spender_address="0x...",
        amount=1_000_000,
    )
    receipt = await sequencer.submit_and_confirm(tx)
"""

from .models import (
    TransactionType,
    TransactionStatus,
    GasEstimate,
    PreparedTransaction,
    TransactionResult,
    ExecutionContext,
)

from .nonce_manager import (
    NonceManager,
    NonceState,
)

from .tx_builder import (
    TransactionBuilder,
)

from .signer import (
    LocalSigner,
)

from .sequencer import (
    TransactionSequencer,
)

__all__ = [
    # Models
    "TransactionType",
    "TransactionStatus",
    "GasEstimate",
    "PreparedTransaction",
    "TransactionResult",
    "ExecutionContext",
    # Nonce Manager
    "NonceManager",
    "NonceState",
    # Transaction Builder
    "TransactionBuilder",
    # Signing
    "LocalSigner",
    # Sequencer
    "TransactionSequencer",
]
