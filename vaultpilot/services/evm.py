"""Utilities for working with EVM-compatible chains."""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN
from typing import Dict, Optional

from eth_utils import is_address, to_checksum_address

# Sentinel the aggregator uses for a chain's native asset.
NATIVE_ASSET = "0x0000000000000000000000000000000000000000"

CHAIN_NAMES: Dict[int, str] = {
    1: "ethereum",
    10: "optimism",
    137: "polygon",
    1135: "lisk",
    8453: "base",
    42161: "arbitrum",
}


def is_native(address: Optional[str]) -> bool:
    """Return ``True`` for the native-asset sentinel (or an empty address)."""

    return not address or address.lower() == NATIVE_ASSET


def checksum(address: str) -> str:
    """Checksum an address, raising ``ValueError`` for anything malformed."""

    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid EVM address: {address!r}")
    return to_checksum_address(address)


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human amount into the token's smallest unit (rounding down)."""

    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    scaled = (Decimal(amount) * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"chain-{chain_id}")


__all__ = [
    "NATIVE_ASSET",
    "CHAIN_NAMES",
    "is_native",
    "checksum",
    "same_address",
    "to_base_units",
    "from_base_units",
    "chain_name",
]
