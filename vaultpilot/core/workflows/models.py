"""Typed models used by the workflows."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from ...services.evm import checksum, is_native
from ..execution.models import TransactionResult
from ..models import Position, Quote


@dataclass(frozen=True)
class VaultRouterPlan:
    """Addresses and policy for the router-gated vault workflows."""

    chain_id: int
    vault: str                      # Holding contract that custodies the position
    source_asset: str               # Base asset pulled from the signer (e.g. USDC)
    target_asset: str               # Yield-bearing asset the vault holds (e.g. sUSDe)
    share_token: str                # ERC-4626 used to preview deposits/redemptions
    auto_authorize: bool = True
    slippage_bps: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "VaultRouterPlan":
        return cls(
            chain_id=settings.chain_id,
            vault=checksum(settings.vault_address),
            source_asset=checksum(settings.source_asset_address),
            target_asset=checksum(settings.target_asset_address),
            share_token=checksum(settings.target_vault_4626_address),
            auto_authorize=settings.auto_allow_router,
            slippage_bps=settings.slippage_bps,
        )


class VaultKind(str, Enum):
    """How the destination vault takes deposits."""
    ERC4626 = "erc4626"          # asset(), deposit(assets, receiver)
    COLLATERAL = "collateral"    # collateral(), deposit(onBehalfOf, amount)


@dataclass(frozen=True)
class SwapDepositPlan:
    """Route the signer's own funds into a derivative, then deposit it in a vault.

    Optional steps between the route and the deposit:

    - ``stake_contract``: the route delivers the native asset, which is staked
      (minus the gas buffer) with ``submit(address)`` into this token.
    - ``wrapper``: the held token is approved to and wrapped by this contract
      with ``wrap(uint256)``; the wrapped token is what gets deposited.
    """

    source_chain: int
    dest_chain: int
    source_asset: str
    target_asset: str
    vault: str
    slippage_bps: Optional[int] = None
    gas_buffer_wei: int = 0
    stake_contract: Optional[str] = None
    wrapper: Optional[str] = None
    vault_kind: VaultKind = VaultKind.ERC4626
    allow_bridges: Tuple[str, ...] = ()
    prefer_exchanges: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.stake_contract and not is_native(self.target_asset):
            raise ValueError("Staking needs the route to deliver the native asset")
        if is_native(self.target_asset) and not self.stake_contract:
            raise ValueError("A native target asset cannot be deposited without a stake contract")

    @property
    def deposit_asset(self) -> str:
        """Token that ends up in the vault after the optional stake and wrap steps."""
        return self.wrapper or self.stake_contract or self.target_asset

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "SwapDepositPlan":
        """Plan defaults from settings; ``overrides`` carries the per-run chains and addresses."""
        values = dict(
            source_chain=settings.chain_id,
            dest_chain=settings.chain_id,
            source_asset=checksum(settings.source_asset_address),
            target_asset=checksum(settings.target_asset_address),
            vault=checksum(settings.target_vault_4626_address) if settings.target_vault_4626_address else "",
            slippage_bps=settings.slippage_bps,
            gas_buffer_wei=settings.gas_buffer_wei,
            stake_contract=checksum(settings.stake_contract_address) if settings.stake_contract_address else None,
            wrapper=checksum(settings.wrapper_address) if settings.wrapper_address else None,
            vault_kind=VaultKind(settings.deposit_vault_kind),
            allow_bridges=tuple(settings.lifi_allow_bridges),
            prefer_exchanges=tuple(settings.lifi_prefer_exchanges),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class DepositOutcome:
    quote: Quote
    approval: Optional[TransactionResult]
    min_shares: int
    deposit: TransactionResult
    position: Position


@dataclass
class RedeemOutcome:
    shares_redeemed: int
    expected_out: int
    quote: Quote
    withdrawal: TransactionResult
    position: Position
    signer_balance: int


@dataclass
class CycleOutcome:
    deposit: DepositOutcome
    redeem: RedeemOutcome


@dataclass
class SwapDepositOutcome:
    quote: Quote
    route: TransactionResult
    received: int                   # Target asset delivered by the route
    deposit: TransactionResult
    position: Position
    deposited: int = 0              # Amount of the deposit asset put into the vault
    stake: Optional[TransactionResult] = None
    wrap: Optional[TransactionResult] = None
