"""Paginated client for the Lista vault REST API."""

from __future__ import annotations

import urllib.parse
from typing import Any, Iterator

from error_map import ApiError
from rpc_transport import DEFAULT_TIMEOUT_SECONDS, fetch_json, raise_for_transport

API_SUCCESS_CODE = "000000000"
DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 50


def api_get(
    api_url: str,
    path: str,
    params: dict[str, Any] | None = None,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """GET one endpoint and return its ``data`` field."""
    url = f"{api_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urllib.parse.urlencode(params)}"
    payload = raise_for_transport(fetch_json(url=url, timeout_seconds=timeout_seconds))
    if not isinstance(payload, dict):
        raise ApiError("API error: response is not an object")
    code = str(payload.get("code", ""))
    if code != API_SUCCESS_CODE:
        raise ApiError(f"API error: {payload.get('message') or 'unknown error'}", api_code=code)
    return payload.get("data")


def iter_pages(
    api_url: str,
    path: str,
    params: dict[str, Any] | None = None,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Iterator[dict[str, Any]]:
    seen = 0
    for page in range(1, max_pages + 1):
        query = dict(params or {})
        query.update({"page": page, "pageSize": page_size})
        data = api_get(api_url, path, query, timeout_seconds=timeout_seconds)
        if not isinstance(data, dict) or not isinstance(data.get("list"), list):
            raise ApiError(f"API error: {path} returned no list")

        records = data["list"]
        yield from records
        seen += len(records)

        total = data.get("total")
        if len(records) < page_size:
            return
        if isinstance(total, int) and seen >= total:
            return
    raise ApiError(f"API error: {path} still had records after {max_pages} pages of {page_size}")


def list_vaults(api_url: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> list[dict[str, Any]]:
    return list(iter_pages(api_url, "/vault/list", timeout_seconds=timeout_seconds))


def list_vault_allocations(
    api_url: str,
    vault_address: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[dict[str, Any]]:
    return list(
        iter_pages(
            api_url,
            "/vault/allocation",
            {"address": vault_address},
            timeout_seconds=timeout_seconds,
        )
    )


def collect_markets(api_url: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> dict[str, dict[str, Any]]:
    """Map market id to the first allocation record seen for it, across all vaults."""
    markets: dict[str, dict[str, Any]] = {}
    for vault in list_vaults(api_url, timeout_seconds=timeout_seconds):
        address = vault.get("address")
        if not isinstance(address, str) or not address:
            continue
        for record in list_vault_allocations(api_url, address, timeout_seconds=timeout_seconds):
            market_id = record.get("id")
            if isinstance(market_id, str) and market_id and market_id not in markets:
                markets[market_id] = record
    return markets
