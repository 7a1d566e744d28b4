"""
Shared fixtures: an in-memory EVM node and a stubbed aggregator.

``FakeNode`` implements the ``RpcClient`` surface the reader and sequencer
use. Reads are answered by selector; a broadcast transaction is executed
against the in-memory state as soon as it is sent, so the real
``ChainReader`` and ``TransactionSequencer`` run unchanged on top of it.
"""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock

import pytest
from eth_utils import keccak

from vaultpilot.core.execution import ExecutionContext, LocalSigner, TransactionSequencer
from vaultpilot.core.models import VaultAbi
from vaultpilot.core.routing import AllowanceManager, QuoteResolver, RouterGate
from vaultpilot.providers.rpc import RpcError
from vaultpilot.services.abi import decode_call, selector
from vaultpilot.services.chain_reader import ChainReader

# Well-known development key (never holds real funds)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_SIGNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

SOURCE = "0x1111111111111111111111111111111111111111"
TARGET = "0x2222222222222222222222222222222222222222"
VAULT = "0x3333333333333333333333333333333333333333"
SHARE_TOKEN = "0x4444444444444444444444444444444444444444"
ROUTER = "0x5555555555555555555555555555555555555555"
OTHER_ROUTER = "0x6666666666666666666666666666666666666666"
NATIVE = "0x0000000000000000000000000000000000000000"
STAKED = "0x7777777777777777777777777777777777777777"
WRAPPED = "0x8888888888888888888888888888888888888888"
COLLATERAL_VAULT = "0x9999999999999999999999999999999999999999"


class Revert(Exception):
    pass


def _word(value: int) -> str:
    return "0x" + hex(value)[2:].rjust(64, "0")


def _address_word(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


class FakeNode:
    """In-memory chain with ERC-20 tokens, vaults (ERC-4626, collateral, router-gated) and liquid staking."""

    signer = TEST_SIGNER
    source = SOURCE
    target = TARGET
    vault = VAULT
    share_token = SHARE_TOKEN
    router = ROUTER
    other_router = OTHER_ROUTER
    native = NATIVE
    staked = STAKED
    wrapped = WRAPPED
    collateral_vault = COLLATERAL_VAULT

    def __init__(self, chain_id: int = 1, abi: Optional[VaultAbi] = None):
        self.chain_id = chain_id
        self.abi = abi or VaultAbi()

        self.token_balances: Dict[Tuple[str, str], int] = {}
        self.native_balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.decimals: Dict[str, int] = {}

        # ERC-4626: vault -> underlying asset, and the share price as (num, den)
        self.vault_assets: Dict[str, str] = {SHARE_TOKEN.lower(): TARGET}
        self.share_price: Tuple[int, int] = (1, 1)

        # Router-gated vault
        self.allowed_routers: Dict[str, Set[str]] = {}
        self.user_shares: Dict[Tuple[str, str], int] = {}
        self.user_assets: Dict[Tuple[str, str], int] = {}
        self.vault_source: Dict[str, str] = {VAULT.lower(): SOURCE}
        self.ignore_authorizations = False

        # Liquid staking (token minted 1:1 for native value), wrappers (wrapper -> inner token,
        # at wrap_price inner per wrapped) and collateral vaults (vault -> collateral token)
        self.wrapper_inner: Dict[str, str] = {WRAPPED.lower(): STAKED}
        self.wrap_price: Tuple[int, int] = (10, 9)
        self.collateral: Dict[str, str] = {COLLATERAL_VAULT.lower(): WRAPPED}
        self.collateral_shares: Dict[Tuple[str, str], int] = {}

        # Aggregator routers executed directly by the signer: router -> fill callback
        self.route_fills: Dict[str, Callable[["FakeNode", Dict[str, Any]], None]] = {}

        # Failure injection
        self.revert_selectors: Set[str] = set()
        self.reject_sends = False
        self.withhold_receipts = False

        self.nonce = 0
        self.block = 100
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Tuple[str, str]] = []       # (to, signature) in broadcast order
        self.transactions: List[Dict[str, Any]] = []   # call objects in broadcast order
        self.calls: List[Tuple[str, str]] = []      # (to, selector) of every read
        self._pending_call: Optional[Dict[str, Any]] = None

        self._reads: Dict[str, Callable[[str, str], str]] = {
            selector("balanceOf(address)"): self._read_balance,
            selector("allowance(address,address)"): self._read_allowance,
            selector("decimals()"): lambda to, data: _word(self.decimals.get(to.lower(), 6)),
            selector("previewDeposit(uint256)"): self._read_preview_deposit,
            selector("previewRedeem(uint256)"): self._read_preview_redeem,
            selector("convertToAssets(uint256)"): self._read_preview_redeem,
            selector("asset()"): lambda to, data: _address_word(self.vault_assets[to.lower()]),
            selector(self.abi.router_allowed): self._read_router_allowed,
            selector(self.abi.user_shares): self._read_user_shares,
            selector(self.abi.current_assets): self._read_current_assets,
            selector("collateral()"): lambda to, data: _address_word(self.collateral[to.lower()]),
            selector("activeSharesOf(address)"): self._read_collateral_shares,
            selector("activeBalanceOf(address)"): self._read_collateral_shares,
        }
        self._writes: Dict[str, Tuple[str, Callable[[Dict[str, Any], List[Any]], None]]] = {
            selector("approve(address,uint256)"): ("approve(address,uint256)", self._approve),
            selector(self.abi.set_router_allowed): (self.abi.set_router_allowed, self._set_router_allowed),
            selector(self.abi.deposit_via_router): (self.abi.deposit_via_router, self._deposit_via_router),
            selector(self.abi.withdraw_via_router): (self.abi.withdraw_via_router, self._withdraw_via_router),
            selector("deposit(uint256,address)"): ("deposit(uint256,address)", self._erc4626_deposit),
            selector("deposit(address,uint256)"): ("deposit(address,uint256)", self._collateral_deposit),
            selector("submit(address)"): ("submit(address)", self._stake),
            selector("wrap(uint256)"): ("wrap(uint256)", self._wrap),
        }

    # State helpers

    def set_balance(self, token: str, account: str, amount: int) -> None:
        self.token_balances[(token.lower(), account.lower())] = amount

    def balance(self, token: str, account: str) -> int:
        return self.token_balances.get((token.lower(), account.lower()), 0)

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[(token.lower(), owner.lower(), spender.lower())] = amount

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    def allow_router(self, vault: str, router: str) -> None:
        self.allowed_routers.setdefault(vault.lower(), set()).add(router.lower())

    def router_allowed(self, vault: str, router: str) -> bool:
        return router.lower() in self.allowed_routers.get(vault.lower(), set())

    def set_position(self, vault: str, account: str, shares: int, assets: int) -> None:
        self.user_shares[(vault.lower(), account.lower())] = shares
        self.user_assets[(vault.lower(), account.lower())] = assets

    def preview_deposit(self, assets: int) -> int:
        num, den = self.share_price
        return assets * den // num

    def preview_redeem(self, shares: int) -> int:
        num, den = self.share_price
        return shares * num // den

    def sent_signatures(self) -> List[str]:
        return [signature for _, signature in self.sent]

    # Reads

    def _read_balance(self, to: str, data: str) -> str:
        (account,) = decode_call("balanceOf(address)", data)
        return _word(self.balance(to, account))

    def _read_allowance(self, to: str, data: str) -> str:
        owner, spender = decode_call("allowance(address,address)", data)
        return _word(self.allowance(to, owner, spender))

    def _read_preview_deposit(self, to: str, data: str) -> str:
        (assets,) = decode_call("previewDeposit(uint256)", data)
        return _word(self.preview_deposit(assets))

    def _read_preview_redeem(self, to: str, data: str) -> str:
        shares = int(data[10:74], 16)
        return _word(self.preview_redeem(shares))

    def _read_router_allowed(self, to: str, data: str) -> str:
        (router,) = decode_call(self.abi.router_allowed, data)
        return _word(1 if self.router_allowed(to, router) else 0)

    def _read_user_shares(self, to: str, data: str) -> str:
        (account,) = decode_call(self.abi.user_shares, data)
        return _word(self.user_shares.get((to.lower(), account.lower()), 0))

    def _read_current_assets(self, to: str, data: str) -> str:
        (account,) = decode_call(self.abi.current_assets, data)
        return _word(self.user_assets.get((to.lower(), account.lower()), 0))

    def _read_collateral_shares(self, to: str, data: str) -> str:
        # activeSharesOf and activeBalanceOf both take one address; shares track assets 1:1
        account = "0x" + data[-40:]
        return _word(self.collateral_shares.get((to.lower(), account.lower()), 0))

    # Writes

    def _approve(self, tx: Dict[str, Any], args: List[Any]) -> None:
        spender, amount = args
        self.set_allowance(tx["to"], tx["from"], spender, amount)

    def _set_router_allowed(self, tx: Dict[str, Any], args: List[Any]) -> None:
        router, allowed = args
        if self.ignore_authorizations:
            return
        routers = self.allowed_routers.setdefault(tx["to"].lower(), set())
        if allowed:
            routers.add(router.lower())
        else:
            routers.discard(router.lower())

    def _deposit_via_router(self, tx: Dict[str, Any], args: List[Any]) -> None:
        amount, router, _payload, min_out, min_shares = args
        vault, owner = tx["to"], tx["from"]
        token = self.vault_source[vault.lower()]
        if not self.router_allowed(vault, router):
            raise Revert("router not allowed")
        if self.allowance(token, owner, vault) < amount or self.balance(token, owner) < amount:
            raise Revert("transfer amount exceeds allowance")

        minted = self.preview_deposit(min_out)
        if minted < min_shares:
            raise Revert("slippage")
        self.set_balance(token, owner, self.balance(token, owner) - amount)
        self.set_allowance(token, owner, vault, self.allowance(token, owner, vault) - amount)
        key = (vault.lower(), owner.lower())
        self.user_shares[key] = self.user_shares.get(key, 0) + minted
        self.user_assets[key] = self.user_assets.get(key, 0) + min_out

    def _withdraw_via_router(self, tx: Dict[str, Any], args: List[Any]) -> None:
        shares, router, _payload, min_out = args
        vault, owner = tx["to"], tx["from"]
        key = (vault.lower(), owner.lower())
        if not self.router_allowed(vault, router):
            raise Revert("router not allowed")
        if shares > self.user_shares.get(key, 0):
            raise Revert("insufficient shares")

        redeemed = self.preview_redeem(shares)
        self.user_shares[key] -= shares
        self.user_assets[key] = max(0, self.user_assets.get(key, 0) - redeemed)
        token = self.vault_source[vault.lower()]
        self.set_balance(token, owner, self.balance(token, owner) + min_out)

    def _erc4626_deposit(self, tx: Dict[str, Any], args: List[Any]) -> None:
        assets, receiver = args
        vault, owner = tx["to"], tx["from"]
        asset = self.vault_assets[vault.lower()]
        if self.allowance(asset, owner, vault) < assets or self.balance(asset, owner) < assets:
            raise Revert("transfer amount exceeds allowance")
        self.set_balance(asset, owner, self.balance(asset, owner) - assets)
        self.set_allowance(asset, owner, vault, self.allowance(asset, owner, vault) - assets)
        self.set_balance(vault, receiver, self.balance(vault, receiver) + self.preview_deposit(assets))

    def _collateral_deposit(self, tx: Dict[str, Any], args: List[Any]) -> None:
        on_behalf_of, amount = args
        vault, owner = tx["to"], tx["from"]
        token = self.collateral[vault.lower()]
        if self.allowance(token, owner, vault) < amount or self.balance(token, owner) < amount:
            raise Revert("transfer amount exceeds allowance")
        self.set_balance(token, owner, self.balance(token, owner) - amount)
        self.set_allowance(token, owner, vault, self.allowance(token, owner, vault) - amount)
        key = (vault.lower(), on_behalf_of.lower())
        self.collateral_shares[key] = self.collateral_shares.get(key, 0) + amount

    def _stake(self, tx: Dict[str, Any], args: List[Any]) -> None:
        value = int(tx.get("value", "0x0"), 16)
        sender = tx["from"].lower()
        if self.native_balances.get(sender, 0) < value:
            raise Revert("insufficient funds")
        self.native_balances[sender] -= value
        self.set_balance(tx["to"], sender, self.balance(tx["to"], sender) + value)

    def _wrap(self, tx: Dict[str, Any], args: List[Any]) -> None:
        (amount,) = args
        wrapper, owner = tx["to"], tx["from"]
        inner = self.wrapper_inner[wrapper.lower()]
        if self.allowance(inner, owner, wrapper) < amount or self.balance(inner, owner) < amount:
            raise Revert("transfer amount exceeds allowance")
        num, den = self.wrap_price
        self.set_balance(inner, owner, self.balance(inner, owner) - amount)
        self.set_allowance(inner, owner, wrapper, self.allowance(inner, owner, wrapper) - amount)
        self.set_balance(wrapper, owner, self.balance(wrapper, owner) + amount * den // num)

    def _execute(self, tx: Dict[str, Any]) -> str:
        to = tx["to"].lower()
        if to in self.route_fills:
            self.sent.append((to, "route"))
            self.route_fills[to](self, tx)
            return "route"

        sel = tx["data"][:10].lower()
        if sel not in self._writes:
            raise Revert(f"unknown selector {sel}")
        signature, handler = self._writes[sel]
        self.sent.append((to, signature))
        if sel in self.revert_selectors:
            raise Revert("forced revert")
        handler(tx, decode_call(signature, tx["data"]))
        return signature

    # RpcClient surface

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        sel = data[:10].lower()
        self.calls.append((to.lower(), sel))
        if sel not in self._reads:
            raise RpcError("eth_call", {"code": -32000, "message": "execution reverted"})
        return self._reads[sel](to, data)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return self.native_balances.get(address.lower(), 0)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return self.nonce

    async def estimate_gas(self, call_obj: Dict[str, Any]) -> int:
        self._pending_call = dict(call_obj)
        return 100_000

    async def fee_history(self, blocks: int = 1, percentiles: Optional[List[int]] = None) -> Dict[str, Any]:
        return {"baseFeePerGas": [hex(10**9)], "reward": [[hex(10**9)]]}

    async def send_raw_transaction(self, raw_tx: str) -> str:
        if self.reject_sends:
            raise RpcError("eth_sendRawTransaction", {"code": -32000, "message": "nonce too low"})
        tx, self._pending_call = self._pending_call, None
        self.transactions.append(tx)
        tx_hash = "0x" + keccak(hexstr=raw_tx).hex()

        status = 1
        try:
            self._execute(tx)
        except Revert:
            status = 0

        self.nonce += 1
        self.block += 1
        self.receipts[tx_hash] = {
            "blockNumber": hex(self.block),
            "blockHash": "0x" + "ab" * 32,
            "gasUsed": hex(60_000),
            "effectiveGasPrice": hex(2 * 10**9),
            "status": hex(status),
        }
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        if self.withhold_receipts:
            return None
        return self.receipts.get(tx_hash)

    async def block_number(self) -> int:
        return self.block

    async def close(self) -> None:
        return None


def lifi_quote(
    router: str = ROUTER,
    *,
    min_out_ratio: Tuple[int, int] = (95, 100),
    tool: str = "1inch",
    value: int = 0,
) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """Build a LI.FI-shaped quote response from the request parameters."""

    def respond(params: Dict[str, Any]) -> Dict[str, Any]:
        amount = int(params["fromAmount"])
        num, den = min_out_ratio
        return {
            "tool": tool,
            "action": {"fromToken": {"address": params["fromToken"]}, "toToken": {"address": params["toToken"]}},
            "estimate": {
                "toAmount": str(amount * 99 // 100),
                "toAmountMin": str(amount * num // den),
            },
            "transactionRequest": {
                "to": router,
                "data": "0xdeadbeef" + "00" * 4,
                "value": hex(value),
            },
        }

    return respond


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def signer() -> LocalSigner:
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(confirmation_timeout_seconds=1.0, poll_interval_seconds=0)


@pytest.fixture
def sequencer(node, signer, context) -> TransactionSequencer:
    return TransactionSequencer(node, signer, context=context)


@pytest.fixture
def reader(node) -> ChainReader:
    return ChainReader(node, vault_abi=node.abi)


@pytest.fixture
def provider():
    """Aggregator stub; set ``provider.quote.side_effect`` to shape responses."""
    stub = AsyncMock()
    stub.quote = AsyncMock(side_effect=lifi_quote())
    return stub


@pytest.fixture
def quote_factory():
    return lifi_quote


@pytest.fixture
def resolver(provider) -> QuoteResolver:
    return QuoteResolver(provider)


@pytest.fixture
def allowance_manager(reader, sequencer) -> AllowanceManager:
    return AllowanceManager(reader, sequencer)


@pytest.fixture
def router_gate(reader, sequencer) -> RouterGate:
    return RouterGate(reader, sequencer)


@pytest.fixture
def make_node():
    """Factory for additional nodes (e.g. the destination of a cross-chain route)."""
    return FakeNode
