from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Network(StrEnum):
    MAINNET = "MAINNET"
    REGTEST = "REGTEST"
    TESTNET = "TESTNET"
    SIGNET = "SIGNET"
    LOCAL = "LOCAL"


@dataclass(frozen=True)
class NetworkConfig:
    network: Network
    gateway_url: str
    bech32_hrp: str


NETWORK_CONFIGS: dict[Network, NetworkConfig] = {
    Network.MAINNET: NetworkConfig(
        Network.MAINNET, "https://api.amm.flashnet.xyz", "spark"
    ),
    Network.REGTEST: NetworkConfig(Network.REGTEST, "http://localhost:8090", "sparkrt"),
    Network.TESTNET: NetworkConfig(
        Network.TESTNET, "https://api.amm.makebitcoingreatagain.dev", "sparkt"
    ),
    Network.SIGNET: NetworkConfig(
        Network.SIGNET, "https://api.amm.makebitcoingreatagain.dev", "sparks"
    ),
    Network.LOCAL: NetworkConfig(Network.LOCAL, "http://localhost:8083", "sparkl"),
}


def network_config(network: str | Network) -> NetworkConfig:
    try:
        return NETWORK_CONFIGS[Network(str(network).upper())]
    except ValueError as exc:
        raise ValueError(f"Unknown network: {network}") from exc
