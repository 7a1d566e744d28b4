"""
Transaction sequencer: the only component that mutates chain state.

Handles the full lifecycle of one transaction at a time:
- Gas estimation
- Nonce assignment
- Signing and broadcast
- Confirmation monitoring (bounded by a configurable deadline)

Submission and confirmation are serialized behind a single lock, so a
dependent transaction is never broadcast before its prerequisite has a
confirmed receipt. Nothing is retried: a revert or a rejected submission is
raised to the workflow.
"""

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from ...providers.rpc import RpcClient, RpcError
from ..errors import ConfirmationTimeout, SubmissionError, TransactionReverted
from .models import (
    ExecutionContext,
    GasEstimate,
    PreparedTransaction,
    TransactionResult,
    TransactionStatus,
)
from .nonce_manager import NonceManager
from .signer import LocalSigner


logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


class TransactionSequencer:
    """Submits transactions for one signer on one chain, strictly in order."""

    def __init__(
        self,
        rpc: RpcClient,
        signer: LocalSigner,
        *,
        context: Optional[ExecutionContext] = None,
        nonce_manager: Optional[NonceManager] = None,
    ):
        self.rpc = rpc
        self.signer = signer
        self.context = context or ExecutionContext()
        self.nonce_manager = nonce_manager or NonceManager(rpc)
        self._lock = asyncio.Lock()
        self._sequence = itertools.count(1)
        self._journal: List[TransactionResult] = []

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def chain_id(self) -> int:
        return self.rpc.chain_id

    @property
    def journal(self) -> List[TransactionResult]:
        """Every transaction this sequencer attempted, in submission order."""
        return list(self._journal)

    async def estimate_gas(self, tx: PreparedTransaction) -> GasEstimate:
        """Estimate gas limit (with safety margin) and EIP-1559 fees."""
        try:
            gas_limit = await self.rpc.estimate_gas(tx.call_object())
            fee_history = await self.rpc.fee_history(1, [50])
        except (RpcError, httpx.HTTPError) as e:
            raise SubmissionError(
                f"Gas estimation failed for {tx.tx_type.value}: {e}",
                step=tx.tx_type.value,
                chain_id=tx.chain_id,
            ) from e

        gas_limit = int(gas_limit * self.context.gas_multiplier)

        base_fee = int(fee_history["baseFeePerGas"][-1], 16)
        rewards = fee_history.get("reward") or []
        if rewards and rewards[0]:
            priority_fee = int(rewards[0][0], 16)
        else:
            priority_fee = DEFAULT_PRIORITY_FEE_WEI

        if self.context.max_priority_fee_wei is not None:
            priority_fee = min(priority_fee, self.context.max_priority_fee_wei)

        return GasEstimate(
            gas_limit=gas_limit,
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def submit(self, tx: PreparedTransaction) -> TransactionResult:
        """Sign and broadcast ``tx``; returns once the node accepted it."""
        if tx.from_address.lower() != self.address.lower():
            raise ValueError(f"Transaction {tx.tx_id} is not from the signer {self.address}")
        if tx.chain_id != self.chain_id:
            raise ValueError(f"Transaction {tx.tx_id} targets chain {tx.chain_id}, sequencer is on {self.chain_id}")

        result = TransactionResult(
            tx_id=tx.tx_id,
            tx_type=tx.tx_type,
            chain_id=tx.chain_id,
            description=tx.description,
        )

        try:
            if tx.gas_estimate is None:
                tx.gas_estimate = await self.estimate_gas(tx)

            if tx.nonce is None:
                try:
                    tx.nonce = await self.nonce_manager.get_next_nonce(self.address)
                except (RpcError, httpx.HTTPError) as e:
                    raise SubmissionError(
                        f"Could not fetch nonce: {e}", step=tx.tx_type.value, chain_id=tx.chain_id
                    ) from e

            # Nothing below may leave the nonce reserved unless the node took the tx
            try:
                raw_tx = self.signer.sign(tx)
            except Exception as e:
                await self.nonce_manager.release_nonce(self.address, tx.nonce)
                raise SubmissionError(
                    f"Could not sign {tx.tx_type.value} transaction: {e}",
                    step=tx.tx_type.value,
                    chain_id=tx.chain_id,
                ) from e

            try:
                tx_hash = await self.rpc.send_raw_transaction(raw_tx)
            except (RpcError, httpx.HTTPError) as e:
                await self.nonce_manager.release_nonce(self.address, tx.nonce)
                raise SubmissionError(
                    f"Node rejected {tx.tx_type.value} transaction: {e}",
                    step=tx.tx_type.value,
                    chain_id=tx.chain_id,
                ) from e
            except Exception:
                await self.nonce_manager.release_nonce(self.address, tx.nonce)
                raise
        except SubmissionError as e:
            result.status = TransactionStatus.FAILED
            result.error = str(e)
            self._journal.append(result)
            raise

        result.tx_hash = tx_hash
        result.status = TransactionStatus.SUBMITTED
        result.submitted_at = datetime.now(timezone.utc)
        result.submitted_seq = next(self._sequence)
        self._journal.append(result)

        logger.info(
            "Transaction submitted: %s %s nonce=%s (%s)",
            tx.tx_type.value,
            tx_hash,
            tx.nonce,
            tx.description,
        )
        return result

    async def wait_for_confirmation(self, result: TransactionResult) -> TransactionResult:
        """Poll for the receipt until confirmed, reverted or past the deadline."""
        loop = asyncio.get_running_loop()
        timeout = self.context.confirmation_timeout_seconds
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            try:
                receipt = await self.rpc.get_transaction_receipt(result.tx_hash)

                if receipt:
                    result.block_number = int(receipt["blockNumber"], 16)
                    result.block_hash = receipt.get("blockHash")
                    result.gas_used = int(receipt.get("gasUsed", "0x0"), 16)
                    result.effective_gas_price = int(receipt.get("effectiveGasPrice", "0x0"), 16)

                    # 0x1 = success, 0x0 = revert
                    if int(receipt.get("status", "0x1"), 16) == 0:
                        result.status = TransactionStatus.REVERTED
                        result.error = "Transaction reverted"
                        return result

                    confirmations = 1
                    if self.context.required_confirmations > 1:
                        current_block = await self.rpc.block_number()
                        confirmations = current_block - result.block_number + 1

                    if confirmations >= self.context.required_confirmations:
                        result.status = TransactionStatus.CONFIRMED
                        result.confirmed_at = datetime.now(timezone.utc)
                        result.confirmed_seq = next(self._sequence)
                        logger.info(
                            "Transaction confirmed: %s (block %s, %s confirmations)",
                            result.tx_hash,
                            result.block_number,
                            confirmations,
                        )
                        return result

                    result.status = TransactionStatus.CONFIRMING

            except (RpcError, httpx.HTTPError) as e:
                logger.warning("Error checking transaction status for %s: %s", result.tx_hash, e)

            if deadline is not None and loop.time() >= deadline:
                result.status = TransactionStatus.TIMEOUT
                result.error = f"Confirmation timeout after {timeout}s"
                return result

            await asyncio.sleep(self.context.poll_interval_seconds)

    async def submit_and_confirm(self, tx: PreparedTransaction) -> TransactionResult:
        """Submit ``tx`` and block until the chain confirms it.

        Raises:
            SubmissionError: the node refused the transaction
            TransactionReverted: included but failed
            ConfirmationTimeout: no receipt before the deadline
        """
        async with self._lock:
            result = await self.submit(tx)
            result = await self.wait_for_confirmation(result)

            if result.status == TransactionStatus.REVERTED:
                await self.nonce_manager.confirm_nonce(self.address, tx.nonce)
                raise TransactionReverted(
                    f"{tx.tx_type.value} transaction {result.tx_hash} reverted",
                    step=tx.tx_type.value,
                    tx_hash=result.tx_hash,
                    chain_id=tx.chain_id,
                )

            if result.status == TransactionStatus.TIMEOUT:
                # Nonce stays reserved: the transaction may still land
                raise ConfirmationTimeout(
                    f"{tx.tx_type.value} transaction {result.tx_hash} not confirmed "
                    f"after {self.context.confirmation_timeout_seconds}s",
                    step=tx.tx_type.value,
                    tx_hash=result.tx_hash,
                    chain_id=tx.chain_id,
                    timeout_seconds=self.context.confirmation_timeout_seconds,
                )

            await self.nonce_manager.confirm_nonce(self.address, tx.nonce)
            return result
