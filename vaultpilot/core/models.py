"""Typed models shared by the routing components and workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..services.evm import is_native


@dataclass(frozen=True)
class Asset:
    """A fungible token on a specific chain. Decimals are read from chain when needed."""

    address: str
    chain_id: int
    symbol: str = ""

    @property
    def is_native(self) -> bool:
        return is_native(self.address)

    def __str__(self) -> str:
        label = self.symbol or self.address
        return f"{label}@{self.chain_id}"


@dataclass(frozen=True)
class RouteRequest:
    """A conversion intent sent to the aggregator."""

    source_asset: str
    dest_asset: str
    source_amount: int
    source_chain: int
    dest_chain: int
    source_address: str
    dest_address: str
    slippage_bps: int = 50
    allow_bridges: Tuple[str, ...] = ()
    prefer_exchanges: Tuple[str, ...] = ()

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "fromChain": self.source_chain,
            "toChain": self.dest_chain,
            "fromToken": self.source_asset,
            "toToken": self.dest_asset,
            "fromAmount": str(self.source_amount),
            "fromAddress": self.source_address,
            "toAddress": self.dest_address,
            "slippage": self.slippage_bps / 10_000,
        }
        # Repeated query keys, the way the quote endpoint takes list filters
        if self.allow_bridges:
            params["allowBridges"] = list(self.allow_bridges)
        if self.prefer_exchanges:
            params["preferExchanges"] = list(self.prefer_exchanges)
        return params


@dataclass
class Quote:
    """An executable route. Single-use; consume it promptly after fetching."""

    router: str                       # Executor that will move the funds
    payload: str                      # Opaque calldata for the router
    min_amount_out: int               # Guaranteed minimum destination amount
    route_label: str                  # Aggregator tool name, informational
    request: RouteRequest
    value: int = 0                    # Native value to attach (native source only)
    amount_out_estimate: Optional[int] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class Position:
    """An account's stake in a vault, as read from chain."""

    account: str
    vault: str
    share_balance: int
    underlying_estimate: int

    @property
    def is_empty(self) -> bool:
        return self.share_balance == 0


@dataclass(frozen=True)
class VaultAbi:
    """Function signatures of the router-gated vault."""

    router_allowed: str = "isRouterAllowed(address)"
    set_router_allowed: str = "setRouterAllowed(address,bool)"
    deposit_via_router: str = "depositUSDCViaRouter(uint256,address,bytes,uint256,uint256)"
    withdraw_via_router: str = "withdrawSplitToUSDC(uint256,address,bytes,uint256)"
    user_shares: str = "userShares(address)"
    current_assets: str = "currentAssetsOf(address)"

    @classmethod
    def from_settings(cls, settings: Any) -> "VaultAbi":
        return cls(
            router_allowed=settings.vault_router_allowed_signature,
            set_router_allowed=settings.vault_set_router_allowed_signature,
            deposit_via_router=settings.vault_deposit_via_router_signature,
            withdraw_via_router=settings.vault_withdraw_via_router_signature,
            user_shares=settings.vault_user_shares_signature,
            current_assets=settings.vault_current_assets_signature,
        )
