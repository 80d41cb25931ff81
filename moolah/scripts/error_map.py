"""Stable error codes and the exception types that carry them."""

from __future__ import annotations

ERR_INVALID_REQUEST = "INVALID_REQUEST"
ERR_INTERNAL = "INTERNAL_ERROR"
ERR_ABI_ENCODE_FAILED = "ABI_ENCODE_FAILED"
ERR_ABI_DECODE_FAILED = "ABI_DECODE_FAILED"
ERR_RPC_REMOTE = "RPC_REMOTE_ERROR"
ERR_RPC_TIMEOUT = "RPC_TIMEOUT"
ERR_RPC_TRANSPORT = "RPC_TRANSPORT_ERROR"
ERR_API_REMOTE = "API_REMOTE_ERROR"

# Exit codes follow the wrapper convention: 1 for remote failures, 2 for bad input/data.
EXIT_REMOTE = 1
EXIT_INVALID = 2


class MoolahError(Exception):
    code = ERR_INTERNAL
    exit_code = EXIT_REMOTE
    status = "error"


class RequestError(MoolahError, ValueError):
    """Bad command-line arguments or configuration."""

    code = ERR_INVALID_REQUEST
    exit_code = EXIT_INVALID


class EncodingError(MoolahError, ValueError):
    """Malformed input to an ABI encode function."""

    code = ERR_ABI_ENCODE_FAILED
    exit_code = EXIT_INVALID


class DecodingError(MoolahError, ValueError):
    """Response data too short or inconsistent for the expected ABI shape."""

    code = ERR_ABI_DECODE_FAILED
    exit_code = EXIT_INVALID


class RpcError(MoolahError):
    """The JSON-RPC endpoint answered with an error object."""

    code = ERR_RPC_REMOTE

    def __init__(self, message: str, *, rpc_error: dict | None = None) -> None:
        super().__init__(message)
        self.rpc_error = rpc_error or {}


class RpcTransportError(MoolahError):
    code = ERR_RPC_TRANSPORT


class RpcTimeoutError(MoolahError, TimeoutError):
    code = ERR_RPC_TIMEOUT
    status = "timeout"


class ApiError(MoolahError):
    """The Lista REST API returned a non-success status code."""

    code = ERR_API_REMOTE

    def __init__(self, message: str, *, api_code: str | None = None) -> None:
        super().__init__(message)
        self.api_code = api_code
