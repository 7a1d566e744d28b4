"""
Nonce tracking for the signer's transaction stream.

A workflow owns the signer for its duration, so the manager only has to keep
the local view consistent with the node's pending count and give back a
nonce that was reserved but never broadcast.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from ...providers.rpc import RpcClient


@dataclass
class NonceState:
    """Tracks nonce state for an address on a chain."""
    address: str
    chain_id: int
    confirmed_nonce: int                        # Next nonce after the last confirmed tx
    pending_nonce: int                          # Next available for use
    reserved_nonces: Set[int] = field(default_factory=set)
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NonceManager:
    """Hands out nonces for one chain, synced against ``eth_getTransactionCount``."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc
        self._states: Dict[str, NonceState] = {}
        self._lock = asyncio.Lock()

    def _key(self, address: str) -> str:
        return f"{self.rpc.chain_id}:{address.lower()}"

    async def get_next_nonce(self, address: str) -> int:
        """Reserve and return the next nonce, after syncing with the node."""
        key = self._key(address)

        async with self._lock:
            on_chain = await self.rpc.get_transaction_count(address, "pending")
            state = self._states.get(key)
            if state is None:
                state = NonceState(
                    address=address.lower(),
                    chain_id=self.rpc.chain_id,
                    confirmed_nonce=on_chain,
                    pending_nonce=on_chain,
                )
                self._states[key] = state
            else:
                # Never move backwards past nonces we already handed out
                state.confirmed_nonce = max(state.confirmed_nonce, on_chain)
                state.pending_nonce = max(state.pending_nonce, on_chain)
                state.reserved_nonces = {n for n in state.reserved_nonces if n >= on_chain}
                state.last_updated = datetime.now(timezone.utc)

            nonce = state.pending_nonce
            while nonce in state.reserved_nonces:
                nonce += 1

            state.reserved_nonces.add(nonce)
            state.pending_nonce = nonce + 1
            return nonce

    async def release_nonce(self, address: str, nonce: int) -> None:
        """Give back a nonce whose transaction never reached the mempool."""
        key = self._key(address)

        async with self._lock:
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            if nonce == state.pending_nonce - 1:
                while (
                    state.pending_nonce > state.confirmed_nonce
                    and state.pending_nonce - 1 not in state.reserved_nonces
                ):
                    state.pending_nonce -= 1

    async def confirm_nonce(self, address: str, nonce: int) -> None:
        """Mark a nonce as consumed (transaction included, success or revert)."""
        key = self._key(address)

        async with self._lock:
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            if nonce >= state.confirmed_nonce:
                state.confirmed_nonce = nonce + 1

    def get_state(self, address: str) -> Optional[NonceState]:
        return self._states.get(self._key(address))
