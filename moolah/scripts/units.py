"""Exact-integer formatting helpers for decoded Moolah values."""

from __future__ import annotations

from datetime import UTC, datetime

from error_map import DecodingError

UTILIZATION_SCALE = 10_000


def format_iso_timestamp(seconds: int) -> str:
    try:
        stamp = datetime.fromtimestamp(int(seconds), UTC)
    except (OverflowError, ValueError, OSError) as err:
        raise DecodingError(f"timestamp out of range: {seconds}") from err
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utilization_ratio(total_supply_assets: int, total_borrow_assets: int) -> float:
    """Borrow/supply ratio truncated to four decimals; 0 for an empty market."""
    if total_supply_assets <= 0:
        return 0.0
    return (total_borrow_assets * UTILIZATION_SCALE // total_supply_assets) / UTILIZATION_SCALE


def format_utilization_pct(utilization: float) -> str:
    return f"{utilization * 100:.2f}%"


def format_lltv_pct(lltv: int) -> str:
    # lltv is WAD-scaled, so 1e16 is one percent
    return f"{lltv / 10**16:.1f}%"


def current_debt(borrow_shares: int, total_borrow_assets: int, total_borrow_shares: int) -> int:
    if borrow_shares <= 0 or total_borrow_shares <= 0:
        return 0
    return borrow_shares * total_borrow_assets // total_borrow_shares
