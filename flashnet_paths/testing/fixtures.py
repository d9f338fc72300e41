from unittest.mock import AsyncMock, MagicMock

import pytest

from flashnet_paths.adapters.amm_adapter.adapter import AmmAdapter
from flashnet_paths.core.clients.AmmClient import AmmClient
from flashnet_paths.core.utils.signer import LocalKeySigner
from flashnet_paths.testing.wallet import InMemoryWallet

TOKEN = "03" + "ab" * 32
POOL_ID = "02" + "cd" * 32

ALL_FEATURES = {
    "master_kill_switch": False,
    "allow_swaps": True,
    "allow_add_liquidity": True,
    "allow_withdraw_liquidity": True,
    "allow_withdraw_fees": True,
    "allow_pool_creation": True,
}


@pytest.fixture
def signer() -> LocalKeySigner:
    return LocalKeySigner.generate()


@pytest.fixture
def wallet(signer: LocalKeySigner) -> InMemoryWallet:
    return InMemoryWallet(
        signer=signer, btc_sats=100_000, tokens={TOKEN: 10_000_000}
    )


@pytest.fixture
def amm_client() -> MagicMock:
    """AmmClient double with an open gateway and no minimum amounts."""
    client = MagicMock(spec=AmmClient)
    client.ping = AsyncMock(return_value=True)
    client.get_feature_status = AsyncMock(return_value=dict(ALL_FEATURES))
    client.get_min_amounts = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


@pytest.fixture
def amm_adapter(wallet: InMemoryWallet, amm_client: MagicMock) -> AmmAdapter:
    return AmmAdapter(
        {"gateway_url": "https://gateway.test", "slippage_bps": 100},
        wallet=wallet,
        client=amm_client,
    )
