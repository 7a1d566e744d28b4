"""Async JSON-RPC client for a single EVM chain."""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional

import httpx


class RpcError(RuntimeError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: Dict[str, Any]):
        self.method = method
        self.code = error.get("code")
        self.data = error.get("data")
        self.rpc_message = error.get("message", "")
        super().__init__(f"RPC error from {method}: {self.rpc_message} (code={self.code})")


class RpcClient:
    """Thin wrapper around the ``eth_*`` methods the orchestrator needs."""

    def __init__(
        self,
        rpc_url: str,
        *,
        chain_id: int,
        timeout_s: float = 20,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._ids = itertools.count(1)

    async def call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        response = await self._client.post(self.rpc_url, json=payload)
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            raise RpcError(method, result["error"])

        return result.get("result")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return int(await self.call("eth_getBalance", [address, block]), 16)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(await self.call("eth_getTransactionCount", [address, block]), 16)

    async def estimate_gas(self, call_obj: Dict[str, Any]) -> int:
        return int(await self.call("eth_estimateGas", [call_obj]), 16)

    async def fee_history(self, blocks: int = 1, percentiles: Optional[List[int]] = None) -> Dict[str, Any]:
        return await self.call("eth_feeHistory", [blocks, "latest", percentiles or [50]])

    async def send_raw_transaction(self, raw_tx: str) -> str:
        return await self.call("eth_sendRawTransaction", [raw_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def block_number(self) -> int:
        return int(await self.call("eth_blockNumber", []), 16)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
