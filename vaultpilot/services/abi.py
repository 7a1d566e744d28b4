"""
Minimal Solidity ABI encoding for the calls the orchestrator makes.

Supports the argument types used by ERC-20, ERC-4626 and the router-gated
vault: ``address``, ``bool``, ``uintN`` and a dynamic ``bytes`` payload.
"""

from __future__ import annotations

from typing import Any, List, Sequence

from eth_utils import keccak, to_checksum_address

WORD_HEX = 64


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("Value must be non-negative")
    if value >= 2**256:
        raise ValueError("Value does not fit in uint256")
    return hex(value)[2:].rjust(WORD_HEX, "0")


def _encode_address(address: str) -> str:
    addr = _strip_0x(address).lower()
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.rjust(WORD_HEX, "0")


def _encode_bytes(data: str) -> str:
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return _encode_uint(data_len) + hex_data + padding


def selector(signature: str) -> str:
    """4-byte function selector (``0x`` prefixed) for a canonical signature."""
    return "0x" + keccak(text=signature)[:4].hex()


def argument_types(signature: str) -> List[str]:
    """Split ``name(t1,t2)`` into ``["t1", "t2"]``."""
    start = signature.find("(")
    if start < 0 or not signature.endswith(")"):
        raise ValueError(f"Malformed function signature: {signature}")
    inner = signature[start + 1:-1].strip()
    if not inner:
        return []
    return [part.strip() for part in inner.split(",")]


def _encode_static(abi_type: str, value: Any) -> str:
    if abi_type == "address":
        return _encode_address(value)
    if abi_type == "bool":
        return _encode_uint(1 if value else 0)
    if abi_type.startswith("uint"):
        return _encode_uint(int(value))
    raise ValueError(f"Unsupported ABI type: {abi_type}")


def encode_arguments(types: Sequence[str], args: Sequence[Any]) -> str:
    """Head/tail encode ``args`` (no selector, no ``0x``)."""
    if len(types) != len(args):
        raise ValueError(f"Expected {len(types)} arguments, got {len(args)}")

    head_size = 32 * len(types)
    head: List[str] = []
    tail: List[str] = []
    tail_len = 0

    for abi_type, value in zip(types, args):
        if abi_type == "bytes":
            head.append(_encode_uint(head_size + tail_len))
            encoded = _encode_bytes(value)
            tail.append(encoded)
            tail_len += len(encoded) // 2
        else:
            head.append(_encode_static(abi_type, value))

    return "".join(head) + "".join(tail)


def encode_call(signature: str, *args: Any) -> str:
    """Full calldata for ``signature`` applied to ``args``."""
    return selector(signature) + encode_arguments(argument_types(signature), args)


def _words(data: str) -> List[str]:
    body = _strip_0x(data)
    return [body[i:i + WORD_HEX] for i in range(0, len(body), WORD_HEX)]


def decode_uint(data: str) -> int:
    body = _strip_0x(data)
    if not body:
        raise ValueError("Empty return data")
    return int(body[:WORD_HEX], 16)


def decode_bool(data: str) -> bool:
    return decode_uint(data) != 0


def decode_address(data: str) -> str:
    body = _strip_0x(data)
    if len(body) < WORD_HEX:
        raise ValueError("Return data too short for an address")
    return to_checksum_address("0x" + body[WORD_HEX - 40:WORD_HEX])


def decode_string(data: str) -> str:
    """Decode a dynamic ``string`` return value.

    Some older tokens return ``bytes32`` for ``symbol()``; those are decoded by
    stripping the zero padding.
    """
    body = _strip_0x(data)
    if len(body) == WORD_HEX:
        return bytes.fromhex(body).rstrip(b"\x00").decode("utf-8", errors="replace")
    offset = int(body[:WORD_HEX], 16) * 2
    length = int(body[offset:offset + WORD_HEX], 16)
    start = offset + WORD_HEX
    return bytes.fromhex(body[start:start + length * 2]).decode("utf-8", errors="replace")


def decode_call(signature: str, calldata: str) -> List[Any]:
    """Decode calldata produced by :func:`encode_call` back into arguments."""
    expected = selector(signature)
    if not calldata.lower().startswith(expected):
        raise ValueError(f"Calldata does not target {signature}")

    body = calldata[len(expected):]
    words = _words(body)
    values: List[Any] = []
    for index, abi_type in enumerate(argument_types(signature)):
        word = words[index]
        if abi_type == "address":
            values.append(to_checksum_address("0x" + word[WORD_HEX - 40:]))
        elif abi_type == "bool":
            values.append(int(word, 16) != 0)
        elif abi_type.startswith("uint"):
            values.append(int(word, 16))
        elif abi_type == "bytes":
            offset = int(word, 16) * 2
            length = int(body[offset:offset + WORD_HEX], 16)
            start = offset + WORD_HEX
            values.append("0x" + body[start:start + length * 2])
        else:
            raise ValueError(f"Unsupported ABI type: {abi_type}")
    return values
