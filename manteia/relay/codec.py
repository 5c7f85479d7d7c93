"""
Wire codec for relayed orders.

A RelayMessage is the ABI encoding of the static tuple
``(uint256 marketId, uint256 price, uint256 amount, bool isBuy)``: four
32-byte big-endian words, 128 bytes in total.  Addresses travel through the
mailbox as 32-byte left-padded words.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import DecodeError, InvalidRequestError

WORD = 32
MESSAGE_SIZE = 4 * WORD
UINT256_MAX = 2**256 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_BYTES32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class RelayMessage:
    """Decoded relay payload (no user: identity comes from the relay context)."""
    market_id: int
    price: int
    amount: int
    is_buy: bool


def _check_uint(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise InvalidRequestError(f"{name} out of uint256 range: {value}")
    return value


def encode_order(market_id: int, price: int, amount: int, is_buy: bool) -> bytes:
    """ABI-encode an order tuple."""
    if not isinstance(is_buy, bool):
        raise InvalidRequestError("is_buy must be a bool")
    words = (
        _check_uint("market_id", market_id),
        _check_uint("price", price),
        _check_uint("amount", amount),
        int(is_buy),
    )
    return b"".join(w.to_bytes(WORD, "big") for w in words)


def encode_message(message: RelayMessage) -> bytes:
    return encode_order(message.market_id, message.price, message.amount, message.is_buy)


def decode_message(payload: bytes) -> RelayMessage:
    """
    Decode a 128-byte payload.

    Raises:
        DecodeError: wrong type, wrong length, or a bool word other than 0/1.
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise DecodeError(f"payload must be bytes, got {type(payload).__name__}")
    payload = bytes(payload)
    if len(payload) != MESSAGE_SIZE:
        raise DecodeError(f"payload must be {MESSAGE_SIZE} bytes, got {len(payload)}")

    market_id, price, amount, flag = (
        int.from_bytes(payload[i:i + WORD], "big") for i in range(0, MESSAGE_SIZE, WORD)
    )
    if flag not in (0, 1):
        raise DecodeError(f"isBuy word is not a bool: {flag}")
    return RelayMessage(market_id=market_id, price=price, amount=amount, is_buy=bool(flag))


# ── Addresses ────────────────────────────────────────────────────────

def normalize_address(value: str) -> str:
    """
    Return the lower-case 20-byte hex form of an address.

    Accepts a plain address or a 32-byte word whose top 12 bytes are zero
    (the mailbox's recipient/sender encoding).
    """
    if not isinstance(value, str):
        raise InvalidRequestError(f"address must be a hex string, got {type(value).__name__}")
    if _ADDRESS_RE.match(value):
        return value.lower()
    if _BYTES32_RE.match(value):
        body = value[2:].lower()
        if body[:24] != "0" * 24:
            raise InvalidRequestError(f"bytes32 value is not a padded address: {value}")
        return "0x" + body[24:]
    raise InvalidRequestError(f"not an address: {value!r}")


def address_to_bytes32(address: str) -> str:
    """Left-pad an address to a 32-byte hex word."""
    return "0x" + normalize_address(address)[2:].rjust(64, "0")
