"""
Router-gated vault workflows.

Deposit: pull the base asset from the signer into the vault, let the vault
convert it through the aggregator's router and mint shares. Redeem: burn a
fraction of the shares, convert the derivative back through the router and
pay the base asset out to the signer.

Each step reads live chain state before acting and waits for confirmation
before the next one, so a failed run can simply be re-run.
"""

from __future__ import annotations

import logging
from typing import Optional

from ...services.chain_reader import ChainReader
from ..errors import InsufficientBalance, NothingToRedeem
from ..execution.sequencer import TransactionSequencer
from ..execution.tx_builder import TransactionBuilder
from ..models import Asset
from ..routing.allowance import AllowanceManager
from ..routing.resolver import QuoteResolver
from ..routing.router_gate import RouterGate
from .models import CycleOutcome, DepositOutcome, RedeemOutcome, VaultRouterPlan

logger = logging.getLogger(__name__)

FULL_BPS = 10_000


def shares_to_redeem(total_shares: int, fraction_bps: int) -> int:
    """``floor(total * bps / 10000)``; anything at or above 10000 bps redeems everything."""
    if fraction_bps <= 0:
        raise ValueError("fraction_bps must be positive")
    if total_shares < 0:
        raise ValueError("total_shares must be non-negative")
    if fraction_bps >= FULL_BPS:
        return total_shares
    return total_shares * fraction_bps // FULL_BPS


class VaultRouterWorkflow:
    def __init__(
        self,
        plan: VaultRouterPlan,
        *,
        reader: ChainReader,
        sequencer: TransactionSequencer,
        resolver: QuoteResolver,
        allowance: Optional[AllowanceManager] = None,
        router_gate: Optional[RouterGate] = None,
    ) -> None:
        self.plan = plan
        self.reader = reader
        self.sequencer = sequencer
        self.resolver = resolver
        self.allowance = allowance or AllowanceManager(reader, sequencer)
        self.router_gate = router_gate or RouterGate(reader, sequencer)

    @property
    def signer(self) -> str:
        return self.sequencer.address

    async def deposit(self, amount: int) -> DepositOutcome:
        """Convert ``amount`` of the source asset and deposit it into the vault."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        plan = self.plan

        balance = await self.reader.balance_of(plan.source_asset, self.signer)
        if balance < amount:
            raise InsufficientBalance(
                f"Signer holds {balance}, deposit needs {amount}",
                step="deposit",
                asset=plan.source_asset,
                required=amount,
                available=balance,
            )

        # The vault pulls the base asset from the signer
        approval = await self.allowance.ensure_allowance(
            Asset(plan.source_asset, plan.chain_id),
            owner=self.signer,
            spender=plan.vault,
            required_amount=amount,
        )

        # The vault is both sender and recipient of the routed funds
        quote = await self.resolver.resolve_route(
            source_asset=plan.source_asset,
            dest_asset=plan.target_asset,
            source_amount=amount,
            source_chain=plan.chain_id,
            dest_chain=plan.chain_id,
            source_address=plan.vault,
            dest_address=plan.vault,
            slippage_bps=plan.slippage_bps,
        )

        await self.router_gate.require_router_authorized(plan.vault, quote.router, plan.auto_authorize)

        min_shares = await self.reader.preview_deposit(plan.share_token, quote.min_amount_out)
        logger.info("previewDeposit(%s) = %s shares", quote.min_amount_out, min_shares)

        tx = TransactionBuilder.build_deposit_via_router(
            chain_id=plan.chain_id,
            owner_address=self.signer,
            vault_address=plan.vault,
            amount=amount,
            quote=quote,
            min_shares=min_shares,
            abi=self.reader.vault_abi,
        )
        receipt = await self.sequencer.submit_and_confirm(tx)

        position = await self.reader.position(plan.vault, self.signer)
        logger.info(
            "Position after deposit: shares=%s assets=%s",
            position.share_balance,
            position.underlying_estimate,
        )
        return DepositOutcome(
            quote=quote,
            approval=approval,
            min_shares=min_shares,
            deposit=receipt,
            position=position,
        )

    async def redeem(self, fraction_bps: int) -> RedeemOutcome:
        """Redeem ``fraction_bps`` of the signer's shares back into the source asset."""
        plan = self.plan

        total_shares = await self.reader.user_shares(plan.vault, self.signer)
        shares = shares_to_redeem(total_shares, fraction_bps)
        if shares == 0:
            raise NothingToRedeem(
                f"{fraction_bps} bps of {total_shares} shares rounds to zero",
                total_shares=total_shares,
                fraction_bps=fraction_bps,
            )

        expected_out = await self.reader.preview_redeem(plan.share_token, shares)
        if expected_out == 0:
            raise NothingToRedeem(
                f"Redeeming {shares} shares previews to zero assets",
                total_shares=total_shares,
                fraction_bps=fraction_bps,
            )
        logger.info("Redeeming %s of %s shares (~%s underlying)", shares, total_shares, expected_out)

        quote = await self.resolver.resolve_route(
            source_asset=plan.target_asset,
            dest_asset=plan.source_asset,
            source_amount=expected_out,
            source_chain=plan.chain_id,
            dest_chain=plan.chain_id,
            source_address=plan.vault,
            dest_address=plan.vault,
            slippage_bps=plan.slippage_bps,
        )

        await self.router_gate.require_router_authorized(plan.vault, quote.router, plan.auto_authorize)

        tx = TransactionBuilder.build_withdraw_via_router(
            chain_id=plan.chain_id,
            owner_address=self.signer,
            vault_address=plan.vault,
            shares=shares,
            quote=quote,
            abi=self.reader.vault_abi,
        )
        receipt = await self.sequencer.submit_and_confirm(tx)

        signer_balance = await self.reader.balance_of(plan.source_asset, self.signer)
        position = await self.reader.position(plan.vault, self.signer)
        logger.info("Signer balance after redeem: %s", signer_balance)
        return RedeemOutcome(
            shares_redeemed=shares,
            expected_out=expected_out,
            quote=quote,
            withdrawal=receipt,
            position=position,
            signer_balance=signer_balance,
        )

    async def run_cycle(self, amount: int, fraction_bps: int) -> CycleOutcome:
        """Deposit, then redeem part of the resulting position."""
        deposit = await self.deposit(amount)
        redeem = await self.redeem(fraction_bps)
        return CycleOutcome(deposit=deposit, redeem=redeem)
