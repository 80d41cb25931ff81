"""Multicall3 aggregate3 batching with manual ABI encode/decode."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from abi_codec import (
    HEX_RE,
    WORD_BYTES,
    WORD_HEX_LEN,
    decode_bool,
    decode_uint,
    encode_address,
    encode_bool,
    encode_uint,
    pad_word,
    strip_hex_prefix,
)
from error_map import DecodingError, EncodingError

MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

# aggregate3((address,bool,bytes)[])
AGGREGATE3_SELECTOR = "82ad56cb"

# (address target, bool allowFailure, bytes callData): three head words before the bytes tail.
CALL3_HEAD_BYTES = 3 * WORD_BYTES

# The array encoding sits right after the single outer offset word.
OUTER_OFFSET = WORD_BYTES
RESULT_HEAD_BASE = 2 * WORD_BYTES

# (to, calldata) -> raw result hex, unprefixed
CallExecutor = Callable[[str, str], str]


@dataclass(frozen=True)
class Call:
    target: str
    call_data: str
    allow_failure: bool = True


@dataclass(frozen=True)
class CallResult:
    success: bool
    data: str


def _normalize_calldata(raw: str) -> str:
    cd = strip_hex_prefix(raw)
    if not HEX_RE.fullmatch(cd) or len(cd) % 2 != 0:
        raise EncodingError(f"callData must be even-length hex: {raw!r}")
    return cd.lower()


def _right_pad(hex_data: str) -> str:
    rem = len(hex_data) % WORD_HEX_LEN
    if rem == 0:
        return hex_data
    return hex_data + "0" * (WORD_HEX_LEN - rem)


def encode_call3(call: Call) -> str:
    cd = _normalize_calldata(call.call_data)
    return (
        encode_address(call.target)
        + encode_bool(call.allow_failure)
        + encode_uint(CALL3_HEAD_BYTES)
        + encode_uint(len(cd) // 2)
        + _right_pad(cd)
    )


def encode_aggregate3(calls: Sequence[Call]) -> str:
    """Build aggregate3 calldata (unprefixed hex) for ``calls`` in order.

    Layout after the selector::

        [0x20]                  offset to the array encoding
        [N]                     array length
        [off_0]..[off_{N-1}]    element offsets, relative to the word after [N]
        [elem_0]..[elem_{N-1}]  address | bool | 0x60 | len | callData padded
    """
    elements = [encode_call3(call) for call in calls]

    offsets: list[str] = []
    offset = len(elements) * WORD_BYTES
    for element in elements:
        offsets.append(encode_uint(offset))
        offset += len(element) // 2

    return (
        AGGREGATE3_SELECTOR
        + pad_word(f"{OUTER_OFFSET:x}")
        + encode_uint(len(elements))
        + "".join(offsets)
        + "".join(elements)
    )


def _word_at(blob: str, byte_offset: int) -> str:
    start = byte_offset * 2
    end = start + WORD_HEX_LEN
    if byte_offset < 0 or end > len(blob):
        raise DecodingError(f"read past end of response at byte {byte_offset} (response is {len(blob) // 2} bytes)")
    return blob[start:end]


def _read_offset(blob: str, byte_offset: int) -> int:
    return decode_uint(_word_at(blob, byte_offset))


def _read_return_data(blob: str, elem_start: int) -> str:
    bytes_start = elem_start + _read_offset(blob, elem_start + WORD_BYTES)
    length = _read_offset(blob, bytes_start)
    data_start = (bytes_start + WORD_BYTES) * 2
    data_end = data_start + length * 2
    if data_end > len(blob):
        raise DecodingError(f"returnData length {length} runs past end of response")
    return blob[data_start:data_end]


def decode_aggregate3_result(raw_hex: str) -> list[CallResult]:
    """Decode an aggregate3 ``(bool success, bytes returnData)[]`` response."""
    blob = strip_hex_prefix(raw_hex)
    if not HEX_RE.fullmatch(blob) or len(blob) % 2 != 0:
        raise DecodingError("aggregate3 response must be even-length hex")
    blob = blob.lower()

    outer = _read_offset(blob, 0)
    if outer != OUTER_OFFSET:
        raise DecodingError(f"unexpected aggregate3 outer offset {outer}, expected {OUTER_OFFSET}")

    count = _read_offset(blob, WORD_BYTES)
    if RESULT_HEAD_BASE + count * WORD_BYTES > len(blob) // 2:
        raise DecodingError(f"aggregate3 response declares {count} results but is only {len(blob) // 2} bytes")

    results: list[CallResult] = []
    for idx in range(count):
        elem_start = RESULT_HEAD_BASE + _read_offset(blob, RESULT_HEAD_BASE + idx * WORD_BYTES)
        success = decode_bool(_word_at(blob, elem_start))
        try:
            data = _read_return_data(blob, elem_start)
        except DecodingError:
            if success:
                raise
            # failed calls carry revert data nobody reads
            data = ""
        results.append(CallResult(success=success, data=data))
    return results


def run_aggregate3(
    calls: Sequence[Call],
    *,
    multicall_address: str,
    execute_call: CallExecutor,
) -> list[CallResult]:
    """Send ``calls`` as one aggregate3 eth_call and return per-call results in order."""
    if not calls:
        return []
    raw = execute_call(multicall_address, encode_aggregate3(calls))
    results = decode_aggregate3_result(raw)
    if len(results) != len(calls):
        raise DecodingError(f"aggregate3 returned {len(results)} results for {len(calls)} calls")
    return results
