from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class WalletBalance:
    btc_sats: int
    token_balances: dict[str, int] = field(default_factory=dict)

    def balance_of(self, asset: str, *, btc_asset: str) -> int:
        if asset.lower() == btc_asset.lower():
            return self.btc_sats
        return self.token_balances.get(asset.lower(), 0)


@dataclass(frozen=True)
class LightningPayment:
    success: bool
    payment_id: str | None = None
    fee_paid_sats: int = 0
    error: str | None = None


@runtime_checkable
class WalletProtocol(Protocol):
    """Custodial wallet the orchestrators move funds through."""

    async def identity_public_key(self) -> str: ...

    async def sign(self, digest: bytes) -> bytes: ...

    async def transfer(self, amount_sats: int, destination: str) -> str: ...

    async def transfer_tokens(
        self, token_id: str, amount: int, destination: str
    ) -> str: ...

    async def get_balance(self) -> WalletBalance: ...

    async def pay_lightning_invoice(
        self, invoice: str, max_fee_sats: int
    ) -> LightningPayment: ...

    async def create_lightning_invoice(self, amount_sats: int, memo: str) -> str: ...


@runtime_checkable
class LightningFeeEstimator(Protocol):
    async def estimate_lightning_fee(self, invoice: str) -> int: ...


def require_wallet_capabilities(wallet: object) -> WalletProtocol:
    if not isinstance(wallet, WalletProtocol):
        missing = [
            name
            for name in (
                "identity_public_key",
                "sign",
                "transfer",
                "transfer_tokens",
                "get_balance",
                "pay_lightning_invoice",
                "create_lightning_invoice",
            )
            if not callable(getattr(wallet, name, None))
        ]
        raise TypeError(
            f"{type(wallet).__name__} is not a usable wallet; missing {', '.join(missing)}"
        )
    return wallet
