from flashnet_paths.core.clients.AmmClient import AmmClient
from flashnet_paths.core.clients.GatewayClient import GatewayClient
from flashnet_paths.core.clients.protocols import (
    LightningPayment,
    WalletBalance,
    WalletProtocol,
)

__all__ = [
    "AmmClient",
    "GatewayClient",
    "LightningPayment",
    "WalletBalance",
    "WalletProtocol",
]
