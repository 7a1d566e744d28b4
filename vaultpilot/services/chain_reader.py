"""Read-only view of token, vault and router state on one chain.

Nothing here is cached: every call goes to the node, so callers always act
on live state.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..core.models import Position, VaultAbi
from ..providers.rpc import RpcClient
from .abi import decode_address, decode_bool, decode_string, decode_uint, encode_call
from .evm import is_native, to_base_units


class ChainReader:
    def __init__(self, rpc: RpcClient, *, vault_abi: Optional[VaultAbi] = None) -> None:
        self.rpc = rpc
        self.vault_abi = vault_abi or VaultAbi()

    @property
    def chain_id(self) -> int:
        return self.rpc.chain_id

    async def _call(self, contract: str, signature: str, *args) -> str:
        return await self.rpc.eth_call(contract, encode_call(signature, *args))

    # ERC-20

    async def balance_of(self, asset: str, account: str) -> int:
        if is_native(asset):
            return await self.rpc.get_balance(account)
        return decode_uint(await self._call(asset, "balanceOf(address)", account))

    async def native_balance(self, account: str) -> int:
        return await self.rpc.get_balance(account)

    async def allowance(self, asset: str, owner: str, spender: str) -> int:
        return decode_uint(await self._call(asset, "allowance(address,address)", owner, spender))

    async def decimals(self, asset: str) -> int:
        if is_native(asset):
            return 18
        return decode_uint(await self._call(asset, "decimals()"))

    async def symbol(self, asset: str) -> str:
        if is_native(asset):
            return "ETH"
        return decode_string(await self._call(asset, "symbol()"))

    async def to_base_units(self, asset: str, amount: Decimal) -> int:
        """Scale a human amount using the token's on-chain decimals."""
        return to_base_units(amount, await self.decimals(asset))

    # ERC-4626

    async def preview_deposit(self, vault: str, assets: int) -> int:
        return decode_uint(await self._call(vault, "previewDeposit(uint256)", assets))

    async def preview_redeem(self, vault: str, shares: int) -> int:
        return decode_uint(await self._call(vault, "previewRedeem(uint256)", shares))

    async def convert_to_assets(self, vault: str, shares: int) -> int:
        return decode_uint(await self._call(vault, "convertToAssets(uint256)", shares))

    async def vault_asset(self, vault: str) -> str:
        return decode_address(await self._call(vault, "asset()"))

    async def erc4626_position(self, vault: str, account: str) -> Position:
        shares = await self.balance_of(vault, account)
        underlying = await self.convert_to_assets(vault, shares) if shares else 0
        return Position(account=account, vault=vault, share_balance=shares, underlying_estimate=underlying)

    # Collateral vault (deposit(onBehalfOf, amount), e.g. restaking vaults)

    async def vault_collateral(self, vault: str) -> str:
        return decode_address(await self._call(vault, "collateral()"))

    async def collateral_position(self, vault: str, account: str) -> Position:
        return Position(
            account=account,
            vault=vault,
            share_balance=decode_uint(await self._call(vault, "activeSharesOf(address)", account)),
            underlying_estimate=decode_uint(await self._call(vault, "activeBalanceOf(address)", account)),
        )

    # Router-gated vault

    async def router_authorized(self, holding_contract: str, router: str) -> bool:
        return decode_bool(await self._call(holding_contract, self.vault_abi.router_allowed, router))

    async def user_shares(self, vault: str, account: str) -> int:
        return decode_uint(await self._call(vault, self.vault_abi.user_shares, account))

    async def current_assets_of(self, vault: str, account: str) -> int:
        return decode_uint(await self._call(vault, self.vault_abi.current_assets, account))

    async def position(self, vault: str, account: str) -> Position:
        return Position(
            account=account,
            vault=vault,
            share_balance=await self.user_shares(vault, account),
            underlying_estimate=await self.current_assets_of(vault, account),
        )
