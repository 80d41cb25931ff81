#!/usr/bin/env python3
"""Moolah lending protocol read tool (BSC + Ethereum mainnet), JSON output."""

from __future__ import annotations

import argparse
import json
import re
import sys
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

# Local imports for script execution (python3 scripts/moolah_rpc.py ...)
SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

from chain_config import CHAINS, DEFAULT_CHAIN, ENV_API_URL, ENV_RPC_URL, Runtime, build_runtime  # noqa: E402
from error_map import (  # noqa: E402
    ERR_INVALID_REQUEST,
    EXIT_INVALID,
    DecodingError,
    MoolahError,
    RpcTimeoutError,
    RpcTransportError,
)
from lista_api import collect_markets  # noqa: E402
from moolah_commands import (  # noqa: E402
    cmd_market,
    cmd_oracle_price,
    cmd_params,
    cmd_position,
    cmd_user_positions,
)

SELECT_TOKEN_RE = re.compile(r"\.([^.\[]+)|\[(\d+)\]")

CommandFn = Callable[[Runtime, argparse.Namespace], dict[str, Any]]


def _json_dump(payload: Any, pretty: bool = True) -> str:
    return json.dumps(payload, indent=2 if pretty else None, sort_keys=False)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _build_error_payload(
    *,
    method: str,
    status: str,
    code: str,
    message: str,
    hint: str | None = None,
    duration_ms: int | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "timestamp_utc": _timestamp(),
        "method": method,
        "status": status,
        "ok": False,
        "error_code": code,
        "error_message": message,
    }
    if hint:
        payload["hint"] = hint
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    return payload


def _error_hint(err: MoolahError, runtime: Runtime | None) -> str | None:
    chain_name = runtime.chain.name if runtime is not None else "the selected chain"
    if isinstance(err, DecodingError):
        return f"empty or short response: check the marketId exists on {chain_name}"
    if isinstance(err, RpcTimeoutError):
        return f"rpc endpoint did not answer in time. set {ENV_RPC_URL} or --rpc-url to another provider and retry."
    if isinstance(err, RpcTransportError):
        return f"rpc endpoint unreachable. set {ENV_RPC_URL} or --rpc-url to another provider and retry."
    return None


def _select_path(value: Any, path: str) -> Any:
    """jsonpath-lite: ``$``, ``.key`` and ``[index]`` segments."""
    if not path.startswith("$"):
        raise ValueError("path must start with '$'")
    rest = path[1:]
    pos = 0
    current = value
    while pos < len(rest):
        m = SELECT_TOKEN_RE.match(rest, pos)
        if not m:
            raise ValueError(f"invalid path syntax at position {pos + 1}")
        key, idx = m.group(1), m.group(2)
        if key is not None:
            if not isinstance(current, dict) or key not in current:
                raise ValueError(f"key '{key}' not found")
            current = current[key]
        else:
            index = int(idx, 10)
            if not isinstance(current, list) or index >= len(current):
                raise ValueError(f"index [{index}] out of range")
            current = current[index]
        pos = m.end()
    return current


def _print_value(value: Any, *, compact: bool) -> None:
    if isinstance(value, (dict, list)):
        print(_json_dump(value, pretty=not compact))
    elif value is None:
        print("null")
    elif isinstance(value, bool):
        print("true" if value else "false")
    else:
        print(str(value))


def _render_output(args: argparse.Namespace, payload: dict[str, Any]) -> int:
    compact = bool(args.compact)
    if args.select:
        try:
            selected = _select_path(payload, args.select)
        except ValueError as err:
            error_payload = _build_error_payload(
                method=str(payload.get("method", "")),
                status="error",
                code=ERR_INVALID_REQUEST,
                message=f"invalid --select path: {err}",
            )
            print(_json_dump(error_payload, pretty=not compact))
            return EXIT_INVALID
        _print_value(selected, compact=compact)
        return 0
    if args.result_only:
        _print_value(payload.get("result"), compact=compact)
        return 0
    print(_json_dump(payload, pretty=not compact))
    return 0


def _run_command(args: argparse.Namespace, method: str, command: CommandFn) -> int:
    start = time.perf_counter()
    runtime: Runtime | None = None
    try:
        runtime = build_runtime(
            chain_key=args.chain,
            rpc_url=args.rpc_url,
            api_url=args.api_url,
            timeout_seconds=args.timeout_seconds,
        )
        result = command(runtime, args)
    except MoolahError as err:
        payload = _build_error_payload(
            method=method,
            status=err.status,
            code=err.code,
            message=str(err),
            hint=_error_hint(err, runtime),
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        print(_json_dump(payload, pretty=not args.compact))
        return err.exit_code

    payload = {
        "timestamp_utc": _timestamp(),
        "method": method,
        "status": "ok",
        "ok": True,
        "error_code": None,
        "error_message": None,
        "chain": runtime.chain_summary(),
        "rpc_calls": len(runtime.rpc_calls),
        "duration_ms": int((time.perf_counter() - start) * 1000),
        "result": result,
    }
    return _render_output(args, payload)


def cmd_position_cli(args: argparse.Namespace) -> int:
    return _run_command(
        args,
        "position",
        lambda rt, a: cmd_position(rt.chain, rt.execute_call, a.market_id, a.user),
    )


def cmd_market_cli(args: argparse.Namespace) -> int:
    return _run_command(args, "market", lambda rt, a: cmd_market(rt.chain, rt.execute_call, a.market_id))


def cmd_params_cli(args: argparse.Namespace) -> int:
    return _run_command(args, "params", lambda rt, a: cmd_params(rt.chain, rt.execute_call, a.market_id))


def cmd_oracle_price_cli(args: argparse.Namespace) -> int:
    return _run_command(
        args,
        "oracle-price",
        lambda rt, a: cmd_oracle_price(rt.chain, rt.execute_call, a.market_id),
    )


def cmd_user_positions_cli(args: argparse.Namespace) -> int:
    def _command(rt: Runtime, a: argparse.Namespace) -> dict[str, Any]:
        return cmd_user_positions(
            rt.chain,
            rt.execute_call,
            lambda: collect_markets(rt.api_url, timeout_seconds=rt.timeout_seconds),
            a.user,
        )

    return _run_command(args, "user-positions", _command)


def _add_runtime_args(parser: argparse.ArgumentParser, *, top_level: bool = False) -> None:
    # subcommand flags must not clobber a --chain given before the subcommand
    parser.add_argument(
        "--chain",
        default=DEFAULT_CHAIN if top_level else argparse.SUPPRESS,
        help=f"chain key ({'|'.join(CHAINS)}), default {DEFAULT_CHAIN}",
    )
    if top_level:
        return
    parser.add_argument("--rpc-url", help=f"rpc endpoint override (env {ENV_RPC_URL})")
    parser.add_argument("--api-url", help=f"Lista API base override (env {ENV_API_URL})")
    parser.add_argument("--timeout-seconds", type=float, help="per-request timeout, default 10")


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--compact", action="store_true", help="compact JSON output")
    parser.add_argument("--result-only", action="store_true", help="print only result field")
    parser.add_argument("--select", help="jsonpath-lite selector (supports $, .key, [index])")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    _add_runtime_args(parser, top_level=True)
    sub = parser.add_subparsers(dest="command", required=True)

    position_parser = sub.add_parser("position", help="User position in one market")
    position_parser.add_argument("market_id", help="market id (bytes32)")
    position_parser.add_argument("user", help="user address")
    position_parser.set_defaults(func=cmd_position_cli)

    market_parser = sub.add_parser("market", help="Market supply/borrow state")
    market_parser.add_argument("market_id", help="market id (bytes32)")
    market_parser.set_defaults(func=cmd_market_cli)

    params_parser = sub.add_parser("params", help="Market params (tokens, oracle, irm, lltv)")
    params_parser.add_argument("market_id", help="market id (bytes32)")
    params_parser.set_defaults(func=cmd_params_cli)

    oracle_parser = sub.add_parser("oracle-price", help="Oracle price ratio (1e36 scale)")
    oracle_parser.add_argument("market_id", help="market id (bytes32)")
    oracle_parser.set_defaults(func=cmd_oracle_price_cli)

    user_positions_parser = sub.add_parser(
        "user-positions",
        help="All active positions across vault markets (market list from the Lista API)",
    )
    user_positions_parser.add_argument("user", help="user address")
    user_positions_parser.set_defaults(func=cmd_user_positions_cli)

    for command_parser in (position_parser, market_parser, params_parser, oracle_parser, user_positions_parser):
        _add_runtime_args(command_parser)
        _add_output_args(command_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
