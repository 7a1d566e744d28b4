"""
Swap-and-deposit: the signer executes an aggregator route itself, then
deposits whatever derivative it received into a vault. Between the two, the
plan may stake a delivered native balance and wrap the staked token. The
vault is either a standard ERC-4626 or a collateral vault taking
``deposit(onBehalfOf, amount)``.

Same-chain and cross-chain routes are both supported. For a cross-chain route
the source chain confirms only the departure, so the workflow polls the
destination balance until the bridged funds land.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ...services.chain_reader import ChainReader
from ...services.evm import is_native, same_address
from ..errors import ConfirmationTimeout, InsufficientBalance, VaultAssetMismatch
from ..execution.sequencer import TransactionSequencer
from ..execution.tx_builder import TransactionBuilder
from ..models import Asset
from ..routing.allowance import AllowanceManager
from ..routing.resolver import QuoteResolver
from .models import SwapDepositOutcome, SwapDepositPlan, VaultKind

logger = logging.getLogger(__name__)


@dataclass
class ChainSession:
    """Reader and sequencer bound to the same chain and signer."""

    reader: ChainReader
    sequencer: TransactionSequencer

    @property
    def chain_id(self) -> int:
        return self.sequencer.chain_id

    @property
    def allowance(self) -> AllowanceManager:
        return AllowanceManager(self.reader, self.sequencer)


class SwapDepositWorkflow:
    def __init__(
        self,
        plan: SwapDepositPlan,
        *,
        resolver: QuoteResolver,
        source: ChainSession,
        destination: Optional[ChainSession] = None,
    ) -> None:
        self.plan = plan
        self.resolver = resolver
        self.source = source
        self.destination = destination or source

        if self.source.chain_id != plan.source_chain:
            raise ValueError(f"Source session is on chain {self.source.chain_id}, plan expects {plan.source_chain}")
        if self.destination.chain_id != plan.dest_chain:
            raise ValueError(
                f"Destination session is on chain {self.destination.chain_id}, plan expects {plan.dest_chain}"
            )

    @property
    def signer(self) -> str:
        return self.source.sequencer.address

    async def _spendable(self, amount: Optional[int]) -> int:
        plan = self.plan
        if not is_native(plan.source_asset):
            if amount is None or amount <= 0:
                raise ValueError("amount is required for ERC-20 sources")
            balance = await self.source.reader.balance_of(plan.source_asset, self.signer)
            if balance < amount:
                raise InsufficientBalance(
                    f"Signer holds {balance}, route needs {amount}",
                    step="route",
                    asset=plan.source_asset,
                    required=amount,
                    available=balance,
                )
            return amount

        balance = await self.source.reader.native_balance(self.signer)
        if amount is None:
            if balance <= plan.gas_buffer_wei:
                raise InsufficientBalance(
                    f"Native balance {balance} does not cover the gas buffer {plan.gas_buffer_wei}",
                    step="route",
                    asset=plan.source_asset,
                    required=plan.gas_buffer_wei + 1,
                    available=balance,
                )
            return balance - plan.gas_buffer_wei

        if amount <= 0:
            raise ValueError("amount must be positive")
        if balance < amount + plan.gas_buffer_wei:
            raise InsufficientBalance(
                f"Native balance {balance} cannot cover {amount} plus gas buffer",
                step="route",
                asset=plan.source_asset,
                required=amount + plan.gas_buffer_wei,
                available=balance,
            )
        return amount

    async def _wait_for_arrival(self, baseline: int, tx_hash: Optional[str]) -> int:
        """Poll the destination balance until it rises above ``baseline``."""
        context = self.destination.sequencer.context
        timeout = context.confirmation_timeout_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            balance = await self.destination.reader.balance_of(self.plan.target_asset, self.signer)
            if balance > baseline:
                return balance
            if deadline is not None and loop.time() >= deadline:
                raise ConfirmationTimeout(
                    f"Bridged funds did not arrive on chain {self.plan.dest_chain} after {timeout}s",
                    step="bridge",
                    tx_hash=tx_hash,
                    chain_id=self.plan.dest_chain,
                    timeout_seconds=timeout,
                )
            logger.debug("Waiting for bridged funds on chain %s", self.plan.dest_chain)
            await asyncio.sleep(context.poll_interval_seconds)

    async def _stake(self, balance: int):
        """Stake the delivered native balance, keeping the gas buffer back."""
        plan = self.plan
        if balance <= plan.gas_buffer_wei:
            raise InsufficientBalance(
                f"Native balance {balance} does not cover the gas buffer {plan.gas_buffer_wei}",
                step="stake",
                asset=plan.target_asset,
                required=plan.gas_buffer_wei + 1,
                available=balance,
            )
        value = balance - plan.gas_buffer_wei
        logger.info("Staking %s wei with %s", value, plan.stake_contract)
        result = await self.destination.sequencer.submit_and_confirm(
            TransactionBuilder.build_stake(
                chain_id=plan.dest_chain,
                owner_address=self.signer,
                staking_contract=plan.stake_contract,
                value=value,
            )
        )
        staked = await self.destination.reader.balance_of(plan.stake_contract, self.signer)
        if staked == 0:
            raise InsufficientBalance(
                f"Staking {value} wei minted no {plan.stake_contract}",
                step="stake",
                asset=plan.stake_contract,
                required=1,
                available=0,
            )
        return staked, result

    async def _wrap(self, asset: str, amount: int):
        plan = self.plan
        await self.destination.allowance.ensure_allowance(
            Asset(asset, plan.dest_chain),
            owner=self.signer,
            spender=plan.wrapper,
            required_amount=amount,
        )
        result = await self.destination.sequencer.submit_and_confirm(
            TransactionBuilder.build_wrap(
                chain_id=plan.dest_chain,
                owner_address=self.signer,
                wrapper_address=plan.wrapper,
                amount=amount,
            )
        )
        wrapped = await self.destination.reader.balance_of(plan.wrapper, self.signer)
        if wrapped == 0:
            raise InsufficientBalance(
                f"Wrapping {amount} of {asset} produced no {plan.wrapper}",
                step="wrap",
                asset=plan.wrapper,
                required=1,
                available=0,
            )
        return wrapped, result

    async def _check_vault_asset(self) -> None:
        plan = self.plan
        reader = self.destination.reader
        if plan.vault_kind is VaultKind.COLLATERAL:
            accepted = await reader.vault_collateral(plan.vault)
        else:
            accepted = await reader.vault_asset(plan.vault)
        if not same_address(accepted, plan.deposit_asset):
            raise VaultAssetMismatch(plan.vault, expected=plan.deposit_asset, actual=accepted)

    async def run(self, amount: Optional[int] = None) -> SwapDepositOutcome:
        """Route ``amount`` (or the native balance minus the gas buffer) and deposit the result."""
        plan = self.plan
        spend = await self._spendable(amount)
        cross_chain = plan.source_chain != plan.dest_chain

        baseline = 0
        if cross_chain:
            baseline = await self.destination.reader.balance_of(plan.target_asset, self.signer)

        quote = await self.resolver.resolve_route(
            source_asset=plan.source_asset,
            dest_asset=plan.target_asset,
            source_amount=spend,
            source_chain=plan.source_chain,
            dest_chain=plan.dest_chain,
            source_address=self.signer,
            dest_address=self.signer,
            slippage_bps=plan.slippage_bps,
            allow_bridges=plan.allow_bridges,
            prefer_exchanges=plan.prefer_exchanges,
        )

        if not is_native(plan.source_asset):
            await self.source.allowance.ensure_allowance(
                Asset(plan.source_asset, plan.source_chain),
                owner=self.signer,
                spender=quote.router,
                required_amount=spend,
            )

        route = await self.source.sequencer.submit_and_confirm(
            TransactionBuilder.build_from_quote(quote, self.signer)
        )

        if cross_chain:
            received = await self._wait_for_arrival(baseline, route.tx_hash)
        else:
            received = await self.destination.reader.balance_of(plan.target_asset, self.signer)
        if received == 0:
            raise InsufficientBalance(
                f"No {plan.target_asset} received from the route",
                step="deposit",
                asset=plan.target_asset,
                required=1,
                available=0,
            )
        logger.info("Received %s of %s", received, plan.target_asset)

        held_asset, held = plan.target_asset, received
        stake = wrap = None
        if plan.stake_contract:
            held, stake = await self._stake(received)
            held_asset = plan.stake_contract
        if plan.wrapper:
            held, wrap = await self._wrap(held_asset, held)
            held_asset = plan.wrapper

        await self._check_vault_asset()
        logger.info("Depositing %s of %s into %s vault %s", held, held_asset, plan.vault_kind.value, plan.vault)

        await self.destination.allowance.ensure_allowance(
            Asset(held_asset, plan.dest_chain),
            owner=self.signer,
            spender=plan.vault,
            required_amount=held,
        )
        if plan.vault_kind is VaultKind.COLLATERAL:
            deposit_tx = TransactionBuilder.build_collateral_deposit(
                chain_id=plan.dest_chain,
                owner_address=self.signer,
                vault_address=plan.vault,
                amount=held,
            )
        else:
            deposit_tx = TransactionBuilder.build_erc4626_deposit(
                chain_id=plan.dest_chain,
                owner_address=self.signer,
                vault_address=plan.vault,
                assets=held,
            )
        deposit = await self.destination.sequencer.submit_and_confirm(deposit_tx)

        if plan.vault_kind is VaultKind.COLLATERAL:
            position = await self.destination.reader.collateral_position(plan.vault, self.signer)
        else:
            position = await self.destination.reader.erc4626_position(plan.vault, self.signer)
        logger.info(
            "Vault position: shares=%s assets=%s",
            position.share_balance,
            position.underlying_estimate,
        )
        return SwapDepositOutcome(
            quote=quote,
            route=route,
            received=received,
            deposit=deposit,
            position=position,
            deposited=held,
            stake=stake,
            wrap=wrap,
        )
