"""Moolah read commands: encode the call, dispatch it, decode the result."""

from __future__ import annotations

from typing import Any, Callable

from abi_codec import decode_address, decode_uint, encode_address, encode_bytes32, require_words
from chain_config import ChainConfig
from error_map import DecodingError, RequestError
from multicall_engine import Call, CallExecutor, CallResult, run_aggregate3
from units import (
    current_debt,
    format_iso_timestamp,
    format_lltv_pct,
    format_utilization_pct,
    utilization_ratio,
)

# keccak256(signature)[:4]; check with `cast sig "<signature>"`
SEL_POSITION = "93c52062"  # position(bytes32,address)
SEL_MARKET = "5c60e39a"  # market(bytes32)
SEL_ID_TO_MARKET_PARAMS = "2c3c9157"  # idToMarketParams(bytes32)
SEL_ORACLE_PRICE = "a035b1fe"  # price()

POSITION_WORDS = 3
MARKET_WORDS = 6
MARKET_PARAMS_WORDS = 5

ORACLE_PRICE_NOTE = "collateral_in_loan_tokens = collateral_amount × price / 1e36"

MarketLoader = Callable[[], dict[str, dict[str, Any]]]


def _require_arg(value: str | None, usage: str) -> str:
    if value is None or not str(value).strip():
        raise RequestError(f"Usage: {usage}")
    return str(value).strip()


def position_calldata(market_id: str, user: str) -> str:
    return SEL_POSITION + encode_bytes32(market_id) + encode_address(user)


def market_calldata(market_id: str) -> str:
    return SEL_MARKET + encode_bytes32(market_id)


def market_params_calldata(market_id: str) -> str:
    return SEL_ID_TO_MARKET_PARAMS + encode_bytes32(market_id)


def decode_position(raw: str) -> dict[str, int]:
    words = require_words(raw, POSITION_WORDS, what="position")
    return {
        "supply_shares": decode_uint(words[0]),
        "borrow_shares": decode_uint(words[1]),
        "collateral": decode_uint(words[2]),
    }


def decode_market(raw: str) -> dict[str, int]:
    words = require_words(raw, MARKET_WORDS, what="market")
    return {
        "total_supply_assets": decode_uint(words[0]),
        "total_supply_shares": decode_uint(words[1]),
        "total_borrow_assets": decode_uint(words[2]),
        "total_borrow_shares": decode_uint(words[3]),
        "last_update": decode_uint(words[4]),
        "fee": decode_uint(words[5]),
    }


def decode_market_params(raw: str) -> dict[str, Any]:
    words = require_words(raw, MARKET_PARAMS_WORDS, what="idToMarketParams")
    return {
        "loan_token": decode_address(words[0]),
        "collateral_token": decode_address(words[1]),
        "oracle": decode_address(words[2]),
        "irm": decode_address(words[3]),
        "lltv": decode_uint(words[4]),
    }


def _is_active(pos: dict[str, int]) -> bool:
    return pos["borrow_shares"] > 0 or pos["collateral"] > 0


def cmd_position(chain: ChainConfig, execute_call: CallExecutor, market_id: str, user: str) -> dict[str, Any]:
    market_id = _require_arg(market_id, "position <marketId> <userAddr>")
    user = _require_arg(user, "position <marketId> <userAddr>")
    pos = decode_position(execute_call(chain.moolah, position_calldata(market_id, user)))
    return {
        "marketId": market_id,
        "user": user.lower(),
        "supplyShares": str(pos["supply_shares"]),
        "borrowShares": str(pos["borrow_shares"]),
        "collateral": str(pos["collateral"]),
        "hasSupply": pos["supply_shares"] > 0,
        "hasBorrow": pos["borrow_shares"] > 0,
        "hasCollateral": pos["collateral"] > 0,
        "hasPosition": _is_active(pos),
    }


def cmd_market(chain: ChainConfig, execute_call: CallExecutor, market_id: str) -> dict[str, Any]:
    market_id = _require_arg(market_id, "market <marketId>")
    m = decode_market(execute_call(chain.moolah, market_calldata(market_id)))
    utilization = utilization_ratio(m["total_supply_assets"], m["total_borrow_assets"])
    return {
        "marketId": market_id,
        "totalSupplyAssets": str(m["total_supply_assets"]),
        "totalSupplyShares": str(m["total_supply_shares"]),
        "totalBorrowAssets": str(m["total_borrow_assets"]),
        "totalBorrowShares": str(m["total_borrow_shares"]),
        "lastUpdate": m["last_update"],
        "lastUpdateIso": format_iso_timestamp(m["last_update"]),
        "fee": str(m["fee"]),
        "freeLiquidity": str(m["total_supply_assets"] - m["total_borrow_assets"]),
        "utilization": utilization,
        "utilizationPct": format_utilization_pct(utilization),
    }


def cmd_params(chain: ChainConfig, execute_call: CallExecutor, market_id: str) -> dict[str, Any]:
    market_id = _require_arg(market_id, "params <marketId>")
    p = decode_market_params(execute_call(chain.moolah, market_params_calldata(market_id)))
    return {
        "marketId": market_id,
        "loanToken": p["loan_token"],
        "collateralToken": p["collateral_token"],
        "oracle": p["oracle"],
        "irm": p["irm"],
        "lltv": str(p["lltv"]),
        "lltvPct": format_lltv_pct(p["lltv"]),
    }


def cmd_oracle_price(chain: ChainConfig, execute_call: CallExecutor, market_id: str) -> dict[str, Any]:
    market_id = _require_arg(market_id, "oracle-price <marketId>")
    params = cmd_params(chain, execute_call, market_id)
    oracle = params["oracle"]
    words = require_words(execute_call(oracle, SEL_ORACLE_PRICE), 1, what=f"price() on oracle {oracle}")
    return {
        "marketId": market_id,
        "oracle": oracle,
        "price": str(decode_uint(words[0])),
        "note": ORACLE_PRICE_NOTE,
        "lltv": params["lltv"],
        "lltvPct": params["lltvPct"],
    }


def _symbol(info: dict[str, Any], key: str) -> str:
    value = info.get(key)
    return "?" if value is None else str(value)


def _decoded_or_none(result: CallResult, decode: Callable[[str], dict[str, int]]) -> dict[str, int] | None:
    if not result.success:
        return None
    try:
        return decode(result.data)
    except ValueError:
        return None


def cmd_user_positions(
    chain: ChainConfig,
    execute_call: CallExecutor,
    load_markets: MarketLoader,
    user: str,
) -> dict[str, Any]:
    """Scan every vault-allocated market for a user's open positions in two batched calls."""
    user = _require_arg(user, "user-positions <userAddr>")
    user_word = encode_address(user)
    markets = load_markets()
    market_ids = list(markets)
    summary = {"user": user.lower(), "totalMarkets": len(market_ids), "activePositions": 0, "positions": []}
    if not market_ids:
        return summary

    position_calls = [
        Call(target=chain.moolah, call_data=SEL_POSITION + encode_bytes32(mid) + user_word, allow_failure=True)
        for mid in market_ids
    ]
    position_results = run_aggregate3(position_calls, multicall_address=chain.multicall3, execute_call=execute_call)

    active: list[tuple[str, dict[str, int]]] = []
    for market_id, result in zip(market_ids, position_results, strict=True):
        pos = _decoded_or_none(result, decode_position)
        if pos is not None and _is_active(pos):
            active.append((market_id, pos))
    if not active:
        return summary

    market_calls = [
        Call(target=chain.moolah, call_data=market_calldata(market_id), allow_failure=True)
        for market_id, _ in active
    ]
    market_results = run_aggregate3(market_calls, multicall_address=chain.multicall3, execute_call=execute_call)

    positions: list[dict[str, Any]] = []
    for (market_id, pos), result in zip(active, market_results, strict=True):
        info = markets[market_id]
        debt = 0
        last_update: int | None = None
        last_update_iso: str | None = None
        mkt = _decoded_or_none(result, decode_market)
        if mkt is not None:
            last_update = mkt["last_update"]
            try:
                last_update_iso = format_iso_timestamp(last_update)
            except DecodingError:
                last_update_iso = None
            debt = current_debt(pos["borrow_shares"], mkt["total_borrow_assets"], mkt["total_borrow_shares"])
        positions.append(
            {
                "marketId": market_id,
                "collateralSymbol": _symbol(info, "collateralSymbol"),
                "loanSymbol": _symbol(info, "loanSymbol"),
                "supplyShares": str(pos["supply_shares"]),
                "borrowShares": str(pos["borrow_shares"]),
                "collateral": str(pos["collateral"]),
                "currentDebt": str(debt),
                "lastUpdate": last_update,
                "lastUpdateIso": last_update_iso,
            }
        )

    summary["activePositions"] = len(positions)
    summary["positions"] = positions
    return summary
