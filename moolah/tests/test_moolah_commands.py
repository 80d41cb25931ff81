from __future__ import annotations

import pytest

from abi_codec import split_words, decode_uint
from chain_config import CHAINS
from error_map import DecodingError, EncodingError, RequestError
from moolah_commands import (
    SEL_ID_TO_MARKET_PARAMS,
    SEL_MARKET,
    SEL_ORACLE_PRICE,
    SEL_POSITION,
    cmd_market,
    cmd_oracle_price,
    cmd_params,
    cmd_position,
    cmd_user_positions,
)
from multicall_engine import AGGREGATE3_SELECTOR
from units import current_debt, format_iso_timestamp, format_lltv_pct, format_utilization_pct, utilization_ratio

from ._moolah_rpc_helpers import (
    MARKET_ID,
    MULTICALL3,
    ORACLE,
    USER,
    addr_word,
    encode_results,
    market_words,
    word,
)

BSC = CHAINS["bsc"]


class FakeExecutor:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, to, calldata):
        self.calls.append((to, calldata))
        return self.responses.pop(0)


def test_utilization_and_lltv_formatting():
    utilization = utilization_ratio(10**18, 5 * 10**17)
    assert utilization == 0.5
    assert format_utilization_pct(utilization) == "50.00%"
    assert utilization_ratio(0, 0) == 0.0
    assert utilization_ratio(3, 1) == 0.3333
    assert format_lltv_pct(8 * 10**17) == "80.0%"
    assert format_lltv_pct(965 * 10**15) == "96.5%"


def test_current_debt_multiplies_before_dividing():
    assert current_debt(3, 10, 4) == 7
    assert current_debt(10**30, 2**200, 10**30 + 1) == (10**30 * 2**200) // (10**30 + 1)
    assert current_debt(0, 100, 10) == 0
    assert current_debt(5, 100, 0) == 0


def test_iso_timestamp_matches_millisecond_utc_format():
    assert format_iso_timestamp(1_700_000_000) == "2023-11-14T22:13:20.000Z"
    assert format_iso_timestamp(0) == "1970-01-01T00:00:00.000Z"


def test_position_encodes_call_and_decodes_flags():
    execute = FakeExecutor([word(0) + word(42) + word(7)])
    mixed_case_user = "0x" + "AB" * 20
    result = cmd_position(BSC, execute, MARKET_ID, mixed_case_user)
    to, calldata = execute.calls[0]
    assert to == BSC.moolah
    assert calldata == SEL_POSITION + MARKET_ID[2:] + addr_word(mixed_case_user)
    assert result == {
        "marketId": MARKET_ID,
        "user": "0x" + "ab" * 20,
        "supplyShares": "0",
        "borrowShares": "42",
        "collateral": "7",
        "hasSupply": False,
        "hasBorrow": True,
        "hasCollateral": True,
        "hasPosition": True,
    }


def test_position_rejects_short_response_and_bad_address():
    with pytest.raises(DecodingError):
        cmd_position(BSC, FakeExecutor([word(1)]), MARKET_ID, USER)
    with pytest.raises(EncodingError):
        cmd_position(BSC, FakeExecutor([]), MARKET_ID, "0x1234")
    with pytest.raises(RequestError):
        cmd_position(BSC, FakeExecutor([]), MARKET_ID, "")


def test_market_known_values():
    execute = FakeExecutor([market_words()])
    result = cmd_market(BSC, execute, MARKET_ID)
    assert execute.calls[0][1] == SEL_MARKET + MARKET_ID[2:]
    assert result["totalSupplyAssets"] == "1000000000000000000"
    assert result["totalBorrowAssets"] == "500000000000000000"
    assert result["freeLiquidity"] == "500000000000000000"
    assert result["utilization"] == 0.5
    assert result["utilizationPct"] == "50.00%"
    assert result["lastUpdate"] == 1_700_000_000
    assert result["lastUpdateIso"] == "2023-11-14T22:13:20.000Z"


def test_market_handles_values_past_uint128():
    big = 2**255 + 123456
    execute = FakeExecutor([market_words(total_supply_assets=big, total_borrow_assets=big // 4)])
    result = cmd_market(BSC, execute, MARKET_ID)
    assert result["totalSupplyAssets"] == str(big)
    assert result["utilizationPct"] == "25.00%"


def test_market_empty_response():
    with pytest.raises(DecodingError):
        cmd_market(BSC, FakeExecutor([""]), MARKET_ID)


def _params_words(lltv: int) -> str:
    return (
        addr_word("0x" + "a1" * 20)
        + addr_word("0x" + "b2" * 20)
        + addr_word(ORACLE)
        + addr_word("0x" + "c3" * 20)
        + word(lltv)
    )


def test_params_decodes_addresses_and_lltv():
    execute = FakeExecutor([_params_words(8 * 10**17)])
    result = cmd_params(BSC, execute, MARKET_ID)
    assert execute.calls[0][1] == SEL_ID_TO_MARKET_PARAMS + MARKET_ID[2:]
    assert result["loanToken"] == "0x" + "a1" * 20
    assert result["collateralToken"] == "0x" + "b2" * 20
    assert result["oracle"] == ORACLE
    assert result["irm"] == "0x" + "c3" * 20
    assert result["lltv"] == "800000000000000000"
    assert result["lltvPct"] == "80.0%"


def test_oracle_price_reads_params_then_oracle():
    price = 12 * 10**36
    execute = FakeExecutor([_params_words(8 * 10**17), word(price)])
    result = cmd_oracle_price(BSC, execute, MARKET_ID)
    assert execute.calls[1] == (ORACLE, SEL_ORACLE_PRICE)
    assert result["price"] == str(price)
    assert result["oracle"] == ORACLE
    assert result["lltvPct"] == "80.0%"
    assert "1e36" in result["note"]


def _batch_calldata_ids(calldata: str) -> list[str]:
    assert calldata.startswith(AGGREGATE3_SELECTOR)
    words = split_words(calldata[8:])
    ids = []
    for i in range(decode_uint(words[1])):
        # element offsets count from the word after the length word
        elem = 2 + decode_uint(words[2 + i]) // 32
        # address, bool, bytes offset, bytes length, then selector + bytes32 id
        inner = "".join(words[elem + 4 : elem + 6])
        ids.append("0x" + inner[8:72])
    return ids


def test_user_positions_batches_and_computes_debt():
    id_active = "0x" + "01" * 32
    id_empty = "0x" + "02" * 32
    id_failed = "0x" + "03" * 32
    markets = {
        id_active: {"id": id_active, "collateralSymbol": "BTCB", "loanSymbol": "lisUSD"},
        id_empty: {"id": id_empty},
        id_failed: {"id": id_failed},
    }
    positions_blob = encode_results(
        [
            (True, word(0) + word(100) + word(5)),
            (True, word(0) + word(0) + word(0)),
            (False, ""),
        ]
    )
    market_blob = encode_results(
        [(True, market_words(total_borrow_assets=1000, total_borrow_shares=400, last_update=1_700_000_000))]
    )
    execute = FakeExecutor([positions_blob, market_blob])

    result = cmd_user_positions(BSC, execute, lambda: markets, USER)

    assert len(execute.calls) == 2
    assert all(to == MULTICALL3 for to, _ in execute.calls)
    assert _batch_calldata_ids(execute.calls[0][1]) == [id_active, id_empty, id_failed]
    assert _batch_calldata_ids(execute.calls[1][1]) == [id_active]
    assert result == {
        "user": USER,
        "totalMarkets": 3,
        "activePositions": 1,
        "positions": [
            {
                "marketId": id_active,
                "collateralSymbol": "BTCB",
                "loanSymbol": "lisUSD",
                "supplyShares": "0",
                "borrowShares": "100",
                "collateral": "5",
                "currentDebt": "250",
                "lastUpdate": 1_700_000_000,
                "lastUpdateIso": "2023-11-14T22:13:20.000Z",
            }
        ],
    }


def test_user_positions_failed_market_call_keeps_position():
    market_id = "0x" + "0a" * 32
    execute = FakeExecutor(
        [
            encode_results([(True, word(1) + word(0) + word(9))]),
            encode_results([(False, "")]),
        ]
    )
    result = cmd_user_positions(BSC, execute, lambda: {market_id: {}}, USER)
    position = result["positions"][0]
    assert position["collateralSymbol"] == "?"
    assert position["currentDebt"] == "0"
    assert position["lastUpdate"] is None
    assert position["lastUpdateIso"] is None


def test_user_positions_skips_batches_when_nothing_to_read():
    execute = FakeExecutor([])
    result = cmd_user_positions(BSC, execute, lambda: {}, USER)
    assert result == {"user": USER, "totalMarkets": 0, "activePositions": 0, "positions": []}
    assert execute.calls == []

    market_id = "0x" + "0b" * 32
    execute = FakeExecutor([encode_results([(True, word(3) + word(0) + word(0))])])
    result = cmd_user_positions(BSC, execute, lambda: {market_id: {}}, USER)
    assert result["totalMarkets"] == 1
    assert result["activePositions"] == 0
    assert len(execute.calls) == 1


def test_iso_timestamp_out_of_range_is_decode_error():
    with pytest.raises(DecodingError, match="timestamp out of range"):
        format_iso_timestamp(2**64)


def test_market_with_unrepresentable_last_update_is_decode_error():
    with pytest.raises(DecodingError):
        cmd_market(BSC, FakeExecutor([market_words(last_update=2**64)]), MARKET_ID)


def test_user_positions_tolerates_unrepresentable_last_update():
    market_id = "0x" + "0c" * 32
    execute = FakeExecutor(
        [
            encode_results([(True, word(0) + word(10) + word(1))]),
            encode_results(
                [(True, market_words(total_borrow_assets=30, total_borrow_shares=10, last_update=2**64))]
            ),
        ]
    )
    result = cmd_user_positions(BSC, execute, lambda: {market_id: {}}, USER)
    position = result["positions"][0]
    assert position["currentDebt"] == "30"
    assert position["lastUpdate"] == 2**64
    assert position["lastUpdateIso"] is None
