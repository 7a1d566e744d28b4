"""Async client for the LI.FI route-quoting API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx


class LifiProvider:
    """Thin wrapper around https://li.quest/v1 endpoints."""

    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: Optional[str] = None,
        integrator: Optional[str] = None,
        timeout_s: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.integrator = integrator
        if base_url:
            self.base_urls: List[str] = [base_url.rstrip("/")]
        else:
            self.base_urls = [
                "https://li.quest/v1",
                "https://api.li.fi/v1",
            ]
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": "vaultpilot/0.1",
        }
        if self.api_key:
            headers["x-lifi-api-key"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url,
                    timeout=self.timeout_s,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, path, headers=merged_headers, **kwargs)
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as exc:
                # 404 is also how LI.FI reports "no route"; only a 405 means the host lacks the path.
                if exc.response.status_code == 405 and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                continue

        if last_error is not None:
            raise last_error
        raise RuntimeError("All LI.FI hosts failed without providing an error response")

    async def quote(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Request a single executable quote.

        ``params`` follows https://docs.li.fi/ (fromChain, toChain, fromToken,
        toToken, fromAmount, fromAddress, toAddress, slippage, ...).
        """

        cleaned: Dict[str, Any] = {k: v for k, v in params.items() if v is not None}
        if self.integrator and "integrator" not in cleaned:
            cleaned["integrator"] = self.integrator
        resp = await self._request("GET", "/quote", params=cleaned)
        return resp.json()
