#!/usr/bin/env python3
"""CLI for running the vault workflows against a live chain"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import httpx
import structlog

from vaultpilot.config import Settings, get_settings
from vaultpilot.core.errors import OrchestrationError
from vaultpilot.core.workflows import (
    CycleOutcome,
    DepositOutcome,
    RedeemOutcome,
    SwapDepositOutcome,
    SwapDepositPlan,
    VaultKind,
)
from vaultpilot.logging_config import setup_logging
from vaultpilot.providers.rpc import RpcError
from vaultpilot.runtime import Runtime
from vaultpilot.services.evm import chain_name, checksum, from_base_units, is_native

logger = logging.getLogger("vaultpilot.cli")


def parse_amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"Amount must be a positive number, got {value!r}")
    return amount


def print_deposit(outcome: DepositOutcome, decimals: int) -> None:
    print("\n✅ Deposit confirmed")
    print("=" * 50)
    if outcome.approval:
        print(f"Approval:  {outcome.approval.tx_hash}")
    print(f"Route:     {outcome.quote.route_label or 'aggregator'} via {outcome.quote.router}")
    print(f"Min out:   {outcome.quote.min_amount_out}")
    print(f"Min shares: {outcome.min_shares}")
    print(f"Deposit:   {outcome.deposit.tx_hash} (block {outcome.deposit.block_number})")
    print(f"Shares:    {outcome.position.share_balance}")
    print(f"Assets:    {from_base_units(outcome.position.underlying_estimate, decimals)}")


def print_redeem(outcome: RedeemOutcome, decimals: int) -> None:
    print("\n✅ Redeem confirmed")
    print("=" * 50)
    print(f"Shares redeemed: {outcome.shares_redeemed}")
    print(f"Expected out:    {outcome.expected_out}")
    print(f"Withdrawal:      {outcome.withdrawal.tx_hash} (block {outcome.withdrawal.block_number})")
    print(f"Shares left:     {outcome.position.share_balance}")
    print(f"Signer balance:  {from_base_units(outcome.signer_balance, decimals)}")


def print_swap_deposit(outcome: SwapDepositOutcome) -> None:
    request = outcome.quote.request
    print("\n✅ Swap and deposit confirmed")
    print("=" * 50)
    print(f"Route:     {chain_name(request.source_chain)} → {chain_name(request.dest_chain)}")
    print(f"Route tx:  {outcome.route.tx_hash}")
    print(f"Received:  {outcome.received}")
    if outcome.stake:
        print(f"Stake tx:  {outcome.stake.tx_hash}")
    if outcome.wrap:
        print(f"Wrap tx:   {outcome.wrap.tx_hash}")
    print(f"Deposited: {outcome.deposited}")
    print(f"Deposit:   {outcome.deposit.tx_hash}")
    print(f"Shares:    {outcome.position.share_balance}")
    print(f"Assets:    {outcome.position.underlying_estimate}")


async def cli_vault(settings: Settings, command: str, amount: Decimal, fraction_bps: int) -> None:
    runtime = Runtime(settings)
    structlog.contextvars.bind_contextvars(workflow=command, signer=runtime.address)
    try:
        workflow = runtime.vault_router_workflow()
        source_asset = workflow.plan.source_asset
        decimals = await workflow.reader.decimals(source_asset)
        base_amount = await workflow.reader.to_base_units(source_asset, amount)

        if command == "deposit":
            print_deposit(await workflow.deposit(base_amount), decimals)
        elif command == "redeem":
            print_redeem(await workflow.redeem(fraction_bps), decimals)
        else:
            outcome: CycleOutcome = await workflow.run_cycle(base_amount, fraction_bps)
            print_deposit(outcome.deposit, decimals)
            print_redeem(outcome.redeem, decimals)
    finally:
        structlog.contextvars.clear_contextvars()
        await runtime.close()


async def cli_swap_deposit(settings: Settings, args: argparse.Namespace) -> None:
    source_chain = args.from_chain or settings.chain_id
    plan = SwapDepositPlan.from_settings(
        settings,
        source_chain=source_chain,
        dest_chain=args.to_chain or source_chain,
        source_asset=checksum(args.from_token),
        target_asset=checksum(args.to_token),
        vault=checksum(args.vault),
        stake_contract=checksum(args.stake_contract) if args.stake_contract else None,
        wrapper=checksum(args.wrapper) if args.wrapper else None,
        vault_kind=VaultKind(args.vault_kind) if args.vault_kind else None,
        allow_bridges=tuple(args.allow_bridge) if args.allow_bridge else None,
        prefer_exchanges=tuple(args.prefer_exchange) if args.prefer_exchange else None,
    )

    runtime = Runtime(settings)
    structlog.contextvars.bind_contextvars(workflow="swap-deposit", signer=runtime.address)
    try:
        workflow = runtime.swap_deposit_workflow(plan)
        base_amount: Optional[int] = None
        if args.amount is not None:
            base_amount = await workflow.source.reader.to_base_units(plan.source_asset, parse_amount(args.amount))
        elif not is_native(plan.source_asset):
            base_amount = await workflow.source.reader.to_base_units(plan.source_asset, settings.amount)
        print_swap_deposit(await workflow.run(base_amount))
    finally:
        structlog.contextvars.clear_contextvars()
        await runtime.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vault orchestration CLI")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    deposit_parser = subparsers.add_parser("deposit", help="Deposit the source asset into the vault via the router")
    deposit_parser.add_argument("--amount", help="Amount in human units (default: AMOUNT)")

    redeem_parser = subparsers.add_parser("redeem", help="Redeem part of the vault position back to the source asset")
    redeem_parser.add_argument("--bps", type=int, help="Fraction to redeem in bps (default: WITHDRAW_FRACTION_BPS)")

    cycle_parser = subparsers.add_parser("cycle", help="Deposit, then redeem part of the position")
    cycle_parser.add_argument("--amount", help="Amount in human units (default: AMOUNT)")
    cycle_parser.add_argument("--bps", type=int, help="Fraction to redeem in bps (default: WITHDRAW_FRACTION_BPS)")

    swap_parser = subparsers.add_parser("swap-deposit", help="Route from the signer, then deposit into a vault")
    swap_parser.add_argument("--from-chain", type=int, help="Source chain id (default: CHAIN_ID)")
    swap_parser.add_argument("--to-chain", type=int, help="Destination chain id (default: source chain)")
    swap_parser.add_argument("--from-token", required=True, help="Source asset (0x0 for the native asset)")
    swap_parser.add_argument("--to-token", required=True, help="Asset the route delivers (0x0 when staking the native asset)")
    swap_parser.add_argument("--vault", required=True, help="Vault receiving the deposit")
    swap_parser.add_argument(
        "--vault-kind",
        choices=[kind.value for kind in VaultKind],
        help="erc4626 or collateral (default: DEPOSIT_VAULT_KIND)",
    )
    swap_parser.add_argument("--stake-contract", help="Stake the delivered native asset into this token")
    swap_parser.add_argument("--wrapper", help="Wrap the held token with this contract before depositing")
    swap_parser.add_argument("--allow-bridge", action="append", help="Bridge the route may use (repeatable)")
    swap_parser.add_argument("--prefer-exchange", action="append", help="Exchange to prefer (repeatable)")
    swap_parser.add_argument("--amount", help="Amount in human units (native default: balance minus gas buffer)")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    command = args.command.lower()
    missing = settings.missing_required(vault=command != "swap-deposit")
    if missing:
        print(f"❌ Missing configuration: {', '.join(missing)}")
        return 2

    try:
        if command == "swap-deposit":
            await cli_swap_deposit(settings, args)
        else:
            amount = getattr(args, "amount", None)
            amount = parse_amount(amount) if amount is not None else settings.amount
            bps = getattr(args, "bps", None)
            if bps is None:
                bps = settings.withdraw_fraction_bps
            elif bps <= 0:
                raise ValueError(f"--bps must be positive, got {bps}")
            await cli_vault(settings, command, amount, bps)
    except OrchestrationError as e:
        logger.error("Workflow failed: %s", e.describe())
        print(f"❌ {e.step or 'workflow'}: {e}")
        return 1
    except (RpcError, httpx.HTTPError) as e:
        # Chain reads fail outside any transaction step; report the command
        logger.error("Node request failed during %s: %s", command, e)
        print(f"❌ {command}: {e}")
        return 1
    except ValueError as e:
        print(f"❌ Error: {e}")
        return 1

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
