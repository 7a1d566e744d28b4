"""Quote resolution against the route-quoting aggregator."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ...providers.lifi import LifiProvider
from ...services.evm import checksum
from ..errors import AggregatorError, MalformedQuote, NoRouteFound
from ..models import Quote, RouteRequest

DEFAULT_SLIPPAGE_BPS = 50

# LI.FI answers 404 with one of these codes when nothing can route the transfer
NO_ROUTE_CODES = {1001, 1002}


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


class QuoteResolver:
    """Resolves a conversion intent into a single executable :class:`Quote`.

    The first candidate the aggregator returns is used as-is; there is no local
    re-ranking. Quotes are never cached.
    """

    def __init__(
        self,
        provider: LifiProvider,
        *,
        default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider
        self._default_slippage_bps = default_slippage_bps
        self._logger = logger or logging.getLogger(__name__)

    async def resolve_route(
        self,
        source_asset: str,
        dest_asset: str,
        source_amount: int,
        source_chain: int,
        dest_chain: int,
        source_address: str,
        dest_address: str,
        slippage_bps: Optional[int] = None,
        allow_bridges: Sequence[str] = (),
        prefer_exchanges: Sequence[str] = (),
    ) -> Quote:
        if source_amount <= 0:
            raise ValueError("source_amount must be positive")
        slippage = self._default_slippage_bps if slippage_bps is None else slippage_bps
        if not 0 <= slippage <= 10_000:
            raise ValueError("slippage_bps must be within [0, 10000]")

        request = RouteRequest(
            source_asset=source_asset,
            dest_asset=dest_asset,
            source_amount=source_amount,
            source_chain=source_chain,
            dest_chain=dest_chain,
            source_address=source_address,
            dest_address=dest_address,
            slippage_bps=slippage,
            allow_bridges=tuple(allow_bridges),
            prefer_exchanges=tuple(prefer_exchanges),
        )

        self._logger.info(
            "Requesting route %s -> %s amount=%s chains=%s->%s",
            source_asset,
            dest_asset,
            source_amount,
            source_chain,
            dest_chain,
        )
        response = await self._fetch(request)

        candidates = self._candidates(response)
        if not candidates:
            raise NoRouteFound(
                f"Aggregator returned no routes for {source_asset} -> {dest_asset}",
                request=request.to_params(),
            )

        quote = self._parse_quote(candidates[0], request)
        self._logger.info(
            "Route resolved: router=%s tool=%s min_out=%s",
            quote.router,
            quote.route_label,
            quote.min_amount_out,
        )
        return quote

    async def _fetch(self, request: RouteRequest) -> Dict[str, Any]:
        try:
            return await self._provider.quote(request.to_params())
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            body = exc.response.text
            if status == 404 or self._error_code(exc.response) in NO_ROUTE_CODES:
                raise NoRouteFound(
                    f"No route available: {self._error_message(exc.response) or body}",
                    request=request.to_params(),
                ) from exc
            raise AggregatorError(
                f"Aggregator quote failed: {status}",
                status_code=status,
                body=body,
            ) from exc
        except httpx.RequestError as exc:
            raise AggregatorError(f"Aggregator unreachable: {exc}") from exc

    @staticmethod
    def _error_code(response: httpx.Response) -> Optional[int]:
        try:
            data = response.json()
        except ValueError:
            return None
        return data.get("code") if isinstance(data, dict) else None

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return None
        return data.get("message") if isinstance(data, dict) else None

    @staticmethod
    def _candidates(response: Any) -> List[Dict[str, Any]]:
        if not isinstance(response, dict):
            return []
        if "routes" in response:
            return [route for route in (response.get("routes") or []) if isinstance(route, dict)]
        return [response] if response else []

    @staticmethod
    def _parse_quote(candidate: Dict[str, Any], request: RouteRequest) -> Quote:
        tx_request = candidate.get("transactionRequest") or {}
        estimate = candidate.get("estimate") or {}

        router = tx_request.get("to")
        payload = tx_request.get("data")
        min_out = estimate.get("toAmountMin")

        missing = [
            name
            for name, value in (
                ("transactionRequest.to", router),
                ("transactionRequest.data", payload),
                ("estimate.toAmountMin", min_out),
            )
            if value in (None, "")
        ]
        if missing:
            raise MalformedQuote(f"Quote is missing {', '.join(missing)}", missing=missing)

        try:
            router = checksum(router)
            min_amount_out = _parse_int(min_out)
            value = _parse_int(tx_request.get("value")) or 0
            amount_out_estimate = _parse_int(estimate.get("toAmount"))
        except (TypeError, ValueError) as exc:
            raise MalformedQuote(f"Quote has unparseable fields: {exc}") from exc

        return Quote(
            router=router,
            payload=payload,
            min_amount_out=min_amount_out,
            route_label=candidate.get("tool") or "",
            request=request,
            value=value,
            amount_out_estimate=amount_out_estimate,
            raw_response=candidate,
        )
