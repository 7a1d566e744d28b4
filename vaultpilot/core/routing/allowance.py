"""ERC-20 allowance management ahead of pull-based operations."""

from __future__ import annotations

import logging
from typing import Optional

from ...services.chain_reader import ChainReader
from ...services.evm import is_native, same_address
from ..errors import ApprovalRejected, TransactionReverted
from ..execution.models import TransactionResult
from ..execution.sequencer import TransactionSequencer
from ..execution.tx_builder import TransactionBuilder
from ..models import Asset

logger = logging.getLogger(__name__)


class AllowanceManager:
    """Makes sure ``spender`` may pull at least the required amount from ``owner``."""

    def __init__(self, reader: ChainReader, sequencer: TransactionSequencer) -> None:
        self.reader = reader
        self.sequencer = sequencer

    async def ensure_allowance(
        self,
        asset: Asset,
        owner: str,
        spender: str,
        required_amount: int,
    ) -> Optional[TransactionResult]:
        """Approve exactly ``required_amount`` if the live allowance falls short.

        Returns the approval receipt, or ``None`` when nothing had to be sent.

        Raises:
            ApprovalRejected: the approval transaction reverted
        """
        if asset.is_native or is_native(asset.address):
            return None
        if required_amount < 0:
            raise ValueError("required_amount must be non-negative")
        if not same_address(owner, self.sequencer.address):
            raise ValueError(f"Only the signer can approve; owner {owner} is not {self.sequencer.address}")

        current = await self.reader.allowance(asset.address, owner, spender)
        if current >= required_amount:
            logger.debug(
                "Allowance sufficient for %s: %s >= %s (spender %s)",
                asset,
                current,
                required_amount,
                spender,
            )
            return None

        logger.info(
            "Approving %s for %s (current allowance %s)",
            spender,
            required_amount,
            current,
        )
        tx = TransactionBuilder.build_erc20_approve(
            chain_id=asset.chain_id,
            owner_address=owner,
            token_address=asset.address,
            spender_address=spender,
            amount=required_amount,
            description=f"Approve {asset} for {spender[:10]}...",
        )
        try:
            return await self.sequencer.submit_and_confirm(tx)
        except TransactionReverted as exc:
            raise ApprovalRejected(
                f"Approval of {required_amount} {asset} for {spender} reverted",
                step="approve",
                tx_hash=exc.tx_hash,
                chain_id=asset.chain_id,
            ) from exc
