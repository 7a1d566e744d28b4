"""
Workflows compose the routing components into complete runs.

Usage:
    from vaultpilot.core.workflows import VaultRouterPlan, VaultRouterWorkflow

    workflow = VaultRouterWorkflow(plan, reader=reader, sequencer=sequencer, resolver=resolver)
    outcome = await workflow.run_cycle(amount=1_000_000, fraction_bps=5000)
"""

from .models import (
    VaultRouterPlan,
    SwapDepositPlan,
    DepositOutcome,
    RedeemOutcome,
    CycleOutcome,
    SwapDepositOutcome,
    VaultKind,
)
from .router_vault import VaultRouterWorkflow, shares_to_redeem
from .swap_deposit import ChainSession, SwapDepositWorkflow

__all__ = [
    "VaultRouterPlan",
    "SwapDepositPlan",
    "DepositOutcome",
    "RedeemOutcome",
    "CycleOutcome",
    "SwapDepositOutcome",
    "VaultKind",
    "VaultRouterWorkflow",
    "shares_to_redeem",
    "ChainSession",
    "SwapDepositWorkflow",
]
