"""
Transaction builder for the calls the orchestrator submits.
"""

import secrets
from typing import Optional

from ...services.abi import encode_call
from ..models import Quote, VaultAbi
from .models import PreparedTransaction, TransactionType


ERC20_APPROVE_SIGNATURE = "approve(address,uint256)"
ERC4626_DEPOSIT_SIGNATURE = "deposit(uint256,address)"
COLLATERAL_DEPOSIT_SIGNATURE = "deposit(address,uint256)"
STAKE_SIGNATURE = "submit(address)"
WRAP_SIGNATURE = "wrap(uint256)"

NO_REFERRAL = "0x0000000000000000000000000000000000000000"


class TransactionBuilder:
    """
    Builds transactions for the orchestration pipeline.

    Handles:
    - ERC20 approvals (always for an exact amount)
    - Router authorization on the vault
    - Router-mediated deposits and withdrawals on the vault
    - Plain ERC-4626 and collateral-vault deposits
    - Liquid staking and wrapping
    - Aggregator route execution from a quote
    """

    @staticmethod
    def generate_tx_id() -> str:
        """Generate a unique transaction ID."""
        return f"tx_{secrets.token_hex(16)}"

    @staticmethod
    def build_erc20_approve(
        chain_id: int,
        owner_address: str,
        token_address: str,
        spender_address: str,
        amount: int,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build an ERC20 approval transaction.

        Args:
            chain_id: The chain ID
            owner_address: The token owner (sender)
            token_address: The ERC20 token contract
            spender_address: The address being approved to spend
            amount: The exact amount to approve
            description: Human-readable description

        Returns:
            PreparedTransaction ready to be signed
        """
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.APPROVE,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=token_address.lower(),
            data=encode_call(ERC20_APPROVE_SIGNATURE, spender_address, amount),
            description=description or f"Approve {spender_address[:10]}... for {amount}",
            params={"spender": spender_address, "amount": amount},
        )

    @staticmethod
    def build_set_router_allowed(
        chain_id: int,
        owner_address: str,
        holding_contract: str,
        router: str,
        abi: VaultAbi,
        allowed: bool = True,
    ) -> PreparedTransaction:
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.AUTHORIZE_ROUTER,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=holding_contract.lower(),
            data=encode_call(abi.set_router_allowed, router, allowed),
            description=f"Allow router {router[:10]}... on {holding_contract[:10]}...",
            params={"router": router, "allowed": allowed},
        )

    @staticmethod
    def build_deposit_via_router(
        chain_id: int,
        owner_address: str,
        vault_address: str,
        amount: int,
        quote: Quote,
        min_shares: int,
        abi: VaultAbi,
    ) -> PreparedTransaction:
        """
        Build the vault deposit that pulls ``amount`` and converts it through the router.

        The quote's minimum output is passed through untouched.
        """
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.DEPOSIT,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=vault_address.lower(),
            data=encode_call(
                abi.deposit_via_router,
                amount,
                quote.router,
                quote.payload,
                quote.min_amount_out,
                min_shares,
            ),
            description=f"Deposit {amount} via {quote.route_label or 'router'}",
            params={
                "amount": amount,
                "router": quote.router,
                "min_out": quote.min_amount_out,
                "min_shares": min_shares,
            },
        )

    @staticmethod
    def build_withdraw_via_router(
        chain_id: int,
        owner_address: str,
        vault_address: str,
        shares: int,
        quote: Quote,
        abi: VaultAbi,
    ) -> PreparedTransaction:
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.REDEEM,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=vault_address.lower(),
            data=encode_call(
                abi.withdraw_via_router,
                shares,
                quote.router,
                quote.payload,
                quote.min_amount_out,
            ),
            description=f"Redeem {shares} shares via {quote.route_label or 'router'}",
            params={"shares": shares, "router": quote.router, "min_out": quote.min_amount_out},
        )

    @staticmethod
    def build_erc4626_deposit(
        chain_id: int,
        owner_address: str,
        vault_address: str,
        assets: int,
        receiver: Optional[str] = None,
    ) -> PreparedTransaction:
        receiver = receiver or owner_address
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.DEPOSIT,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=vault_address.lower(),
            data=encode_call(ERC4626_DEPOSIT_SIGNATURE, assets, receiver),
            description=f"Deposit {assets} into {vault_address[:10]}...",
            params={"assets": assets, "receiver": receiver},
        )

    @staticmethod
    def build_from_quote(
        quote: Quote,
        from_address: str,
    ) -> PreparedTransaction:
        """
        Build the transaction that executes an aggregator route directly from the signer.
        """
        if not quote.payload:
            raise ValueError("Quote has no transaction data")

        payload = quote.payload if quote.payload.startswith("0x") else f"0x{quote.payload}"
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.ROUTE,
            chain_id=quote.request.source_chain,
            from_address=from_address.lower(),
            to_address=quote.router.lower(),
            data=payload,
            value=quote.value,
            description=f"Route via {quote.route_label or 'aggregator'} to chain {quote.request.dest_chain}",
            params={"min_out": quote.min_amount_out, "value": quote.value},
        )

    @staticmethod
    def build_collateral_deposit(
        chain_id: int,
        owner_address: str,
        vault_address: str,
        amount: int,
        on_behalf_of: Optional[str] = None,
    ) -> PreparedTransaction:
        """Deposit into a collateral vault, which takes ``deposit(onBehalfOf, amount)``."""
        on_behalf_of = on_behalf_of or owner_address
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.DEPOSIT,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=vault_address.lower(),
            data=encode_call(COLLATERAL_DEPOSIT_SIGNATURE, on_behalf_of, amount),
            description=f"Deposit {amount} collateral into {vault_address[:10]}...",
            params={"amount": amount, "on_behalf_of": on_behalf_of},
        )

    @staticmethod
    def build_stake(
        chain_id: int,
        owner_address: str,
        staking_contract: str,
        value: int,
        referral: str = NO_REFERRAL,
    ) -> PreparedTransaction:
        """Stake ``value`` wei of the native asset via ``submit(referral)``."""
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.STAKE,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=staking_contract.lower(),
            data=encode_call(STAKE_SIGNATURE, referral),
            value=value,
            description=f"Stake {value} wei with {staking_contract[:10]}...",
            params={"value": value, "referral": referral},
        )

    @staticmethod
    def build_wrap(
        chain_id: int,
        owner_address: str,
        wrapper_address: str,
        amount: int,
    ) -> PreparedTransaction:
        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.WRAP,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=wrapper_address.lower(),
            data=encode_call(WRAP_SIGNATURE, amount),
            description=f"Wrap {amount} into {wrapper_address[:10]}...",
            params={"amount": amount},
        )
