"""Chain table and the runtime context passed to every call-issuing function."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from error_map import RequestError
from multicall_engine import MULTICALL3_ADDRESS
from rpc_transport import DEFAULT_TIMEOUT_SECONDS, eth_call

DEFAULT_CHAIN = "bsc"
DEFAULT_API_URL = "https://api.lista.org/api/moolah"

ENV_RPC_URL = "MOOLAH_RPC_URL"
ENV_API_URL = "LISTA_API_URL"


@dataclass(frozen=True)
class ChainConfig:
    key: str
    name: str
    chain_id: int
    moolah: str
    multicall3: str
    rpc_url: str


CHAINS: dict[str, ChainConfig] = {
    "bsc": ChainConfig(
        key="bsc",
        name="BSC Mainnet",
        chain_id=56,
        moolah="0x8F73b65B4caAf64FBA2aF91cC5D4a2A1318E5D8C",
        multicall3=MULTICALL3_ADDRESS,
        rpc_url="https://bsc-dataseed.bnbchain.org",
    ),
    "eth": ChainConfig(
        key="eth",
        name="Ethereum Mainnet",
        chain_id=1,
        moolah="0xf820fB4680712CD7263a0D3D024D5b5aEA82Fd70",
        multicall3=MULTICALL3_ADDRESS,
        rpc_url="https://eth.drpc.org",
    ),
}


@dataclass(frozen=True)
class Runtime:
    chain: ChainConfig
    rpc_url: str
    api_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    rpc_calls: list[dict[str, str]] = field(default_factory=list, compare=False)

    def execute_call(self, to: str, calldata: str) -> str:
        self.rpc_calls.append({"to": to, "selector": calldata[:8]})
        return eth_call(to, calldata, rpc_url=self.rpc_url, timeout_seconds=self.timeout_seconds)

    def chain_summary(self) -> dict[str, object]:
        return {"key": self.chain.key, "name": self.chain.name, "chain_id": self.chain.chain_id}


def resolve_chain(key: str | None) -> ChainConfig:
    normalized = (key or DEFAULT_CHAIN).strip().lower()
    chain = CHAINS.get(normalized)
    if chain is None:
        raise RequestError(f'unknown chain "{key}". valid options: {", ".join(CHAINS)}')
    return chain


def build_runtime(
    *,
    chain_key: str | None,
    rpc_url: str | None = None,
    api_url: str | None = None,
    timeout_seconds: float | None = None,
    env: Mapping[str, str] | None = None,
) -> Runtime:
    """Layer chain defaults, environment overrides and explicit flags."""
    environ = os.environ if env is None else env
    chain = resolve_chain(chain_key)
    timeout = DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else float(timeout_seconds)
    if timeout <= 0:
        raise RequestError("timeout_seconds must be a positive number")
    return Runtime(
        chain=chain,
        rpc_url=rpc_url or environ.get(ENV_RPC_URL, "").strip() or chain.rpc_url,
        api_url=(api_url or environ.get(ENV_API_URL, "").strip() or DEFAULT_API_URL).rstrip("/"),
        timeout_seconds=timeout,
    )
