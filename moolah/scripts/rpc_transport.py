"""HTTP JSON transport and the eth_call dispatcher."""

from __future__ import annotations

import itertools
import json
import threading
import urllib.error
import urllib.request
from socket import timeout as SocketTimeout
from typing import Any

from abi_codec import strip_hex_prefix
from error_map import (
    ERR_RPC_TIMEOUT,
    ERR_RPC_TRANSPORT,
    RpcError,
    RpcTimeoutError,
    RpcTransportError,
)

DEFAULT_TIMEOUT_SECONDS = 10.0
BLOCK_TAG_LATEST = "latest"

_request_ids = itertools.count(1)
_request_ids_lock = threading.Lock()


def next_request_id() -> int:
    with _request_ids_lock:
        return next(_request_ids)


def _is_timeout(err: BaseException) -> bool:
    if isinstance(err, SocketTimeout):
        return True
    return isinstance(err, urllib.error.URLError) and isinstance(err.reason, SocketTimeout)


def _send(req: urllib.request.Request, timeout_seconds: float) -> dict[str, Any]:
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
            text = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as err:
        text = err.read().decode("utf-8", errors="replace")
        # JSON-RPC and API errors may arrive with a non-2xx status
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return {"ok": True, "error_code": None, "error_message": None, "response": parsed}
        return {
            "ok": False,
            "error_code": ERR_RPC_TRANSPORT,
            "error_message": f"http error {err.code}",
            "response": {"status": err.code, "raw": text},
        }
    except (SocketTimeout, urllib.error.URLError) as err:
        if _is_timeout(err):
            return {
                "ok": False,
                "error_code": ERR_RPC_TIMEOUT,
                "error_message": f"request timed out after {timeout_seconds:g}s",
                "response": None,
            }
        return {
            "ok": False,
            "error_code": ERR_RPC_TRANSPORT,
            "error_message": str(err),
            "response": None,
        }

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {
            "ok": False,
            "error_code": ERR_RPC_TRANSPORT,
            "error_message": "endpoint returned non-json response",
            "response": {"raw": text},
        }
    return {"ok": True, "error_code": None, "error_message": None, "response": parsed}


def invoke_rpc(*, rpc_url: str, payload: dict[str, Any], timeout_seconds: float) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        rpc_url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )
    return _send(req, timeout_seconds)


def fetch_json(*, url: str, timeout_seconds: float) -> dict[str, Any]:
    req = urllib.request.Request(url, method="GET", headers={"Accept": "application/json"})
    return _send(req, timeout_seconds)


def raise_for_transport(transport: dict[str, Any]) -> Any:
    """Return the parsed response or raise the matching transport exception."""
    if transport["ok"]:
        return transport["response"]
    if transport["error_code"] == ERR_RPC_TIMEOUT:
        raise RpcTimeoutError(transport["error_message"])
    raise RpcTransportError(transport["error_message"])


def eth_call(
    to: str,
    calldata: str,
    *,
    rpc_url: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """Run a read-only call against ``latest`` and return the unprefixed result hex."""
    payload = {
        "jsonrpc": "2.0",
        "method": "eth_call",
        "params": [{"to": to, "data": f"0x{strip_hex_prefix(calldata)}"}, BLOCK_TAG_LATEST],
        "id": next_request_id(),
    }
    rpc_response = raise_for_transport(
        invoke_rpc(rpc_url=rpc_url, payload=payload, timeout_seconds=timeout_seconds)
    )
    if not isinstance(rpc_response, dict):
        raise RpcTransportError("rpc endpoint returned a non-object response")

    error = rpc_response.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise RpcError(f"RPC error: {message}", rpc_error=error if isinstance(error, dict) else None)

    if "result" not in rpc_response:
        raise RpcTransportError("rpc response has neither result nor error")
    result = rpc_response["result"] or ""
    if not isinstance(result, str):
        raise RpcTransportError("rpc result must be a hex string")
    return strip_hex_prefix(result).lower()
