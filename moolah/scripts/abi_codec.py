"""Hand-rolled ABI helpers for the fixed-width words Moolah calls use.

All values are unprefixed lower-case hex strings. A word is 64 hex chars (32 bytes).
"""

from __future__ import annotations

import re

from error_map import DecodingError, EncodingError

WORD_HEX_LEN = 64
WORD_BYTES = 32
ADDRESS_HEX_LEN = 40

HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


def strip_hex_prefix(value: str) -> str:
    text = str(value).strip()
    if text[:2] in ("0x", "0X"):
        return text[2:]
    return text


def _require_hex(value: str, *, field: str, error: type[Exception]) -> str:
    if not HEX_RE.fullmatch(value):
        raise error(f"{field} must be hex: {value!r}")
    return value.lower()


def pad_word(hex_value: str) -> str:
    """Left-pad a hex value with zeros to one word."""
    h = _require_hex(strip_hex_prefix(hex_value), field="word value", error=EncodingError)
    if len(h) > WORD_HEX_LEN:
        raise EncodingError(f"value exceeds abi word size: {len(h)} hex chars")
    return h.rjust(WORD_HEX_LEN, "0")


def encode_bytes32(value: str) -> str:
    h = _require_hex(strip_hex_prefix(value), field="bytes32", error=EncodingError)
    if len(h) > WORD_HEX_LEN:
        raise EncodingError(f"bytes32 too long: {value}")
    return h.rjust(WORD_HEX_LEN, "0")


def encode_address(addr: str) -> str:
    h = strip_hex_prefix(addr)
    if len(h) != ADDRESS_HEX_LEN or not HEX_RE.fullmatch(h):
        raise EncodingError(f"invalid address: {addr}")
    return h.lower().rjust(WORD_HEX_LEN, "0")


def encode_uint(value: int, bits: int = 256) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError("uint value must be an int")
    if value < 0:
        raise EncodingError("uint cannot be negative")
    if value >= (1 << bits):
        raise EncodingError(f"uint value exceeds uint{bits}")
    return f"{value:064x}"


def encode_bool(value: bool) -> str:
    return encode_uint(1 if value else 0)


def split_words(hex_blob: str) -> list[str]:
    if len(hex_blob) % WORD_HEX_LEN != 0:
        raise DecodingError(f"hex blob is not word aligned: {len(hex_blob)} hex chars")
    return [hex_blob[i : i + WORD_HEX_LEN] for i in range(0, len(hex_blob), WORD_HEX_LEN)]


def require_words(hex_blob: str, count: int, *, what: str) -> list[str]:
    """Split a call result and require at least ``count`` words."""
    if not hex_blob or len(hex_blob) < count * WORD_HEX_LEN:
        raise DecodingError(
            f"{what} response too short: expected {count} words, got {len(hex_blob or '') // 2} bytes"
        )
    return split_words(hex_blob)


def decode_uint(word: str) -> int:
    if not word or not HEX_RE.fullmatch(word):
        raise DecodingError(f"invalid uint word: {word!r}")
    if len(word) > WORD_HEX_LEN:
        raise DecodingError("uint word exceeds 32 bytes")
    return int(word, 16)


def decode_bool(word: str) -> bool:
    val = decode_uint(word)
    if val not in (0, 1):
        raise DecodingError("invalid bool abi encoding")
    return bool(val)


def decode_address(word: str) -> str:
    if len(word) != WORD_HEX_LEN or not HEX_RE.fullmatch(word):
        raise DecodingError(f"address word must be {WORD_HEX_LEN} hex chars")
    return f"0x{word[-ADDRESS_HEX_LEN:].lower()}"
