from __future__ import annotations

from typing import Any

from aiocache import Cache

from flashnet_paths.core.clients.GatewayClient import GatewayClient
from flashnet_paths.core.clients.models import (
    AddLiquidityResponse,
    AuthChallenge,
    AuthToken,
    ClawbackResponse,
    CollectFeesResponse,
    ConcentratedLiquidityResponse,
    ConcentratedPositionList,
    ConfirmDepositResponse,
    CreatePoolResponse,
    FeatureStatus,
    LpPosition,
    MinAmount,
    Pool,
    PoolList,
    RegisterHostResponse,
    RemoveLiquidityResponse,
    SimulateAddLiquidityResponse,
    SimulateRemoveLiquidityResponse,
    SimulateSwapResponse,
    SwapResponse,
    WithdrawFeesResponse,
)
from flashnet_paths.core.constants.base import (
    DEFAULT_PAGINATION_LIMIT,
    FEATURE_STATUS_CACHE_TTL_S,
    MIN_AMOUNTS_CACHE_TTL_S,
    PING_CACHE_TTL_S,
)

ENDPOINTS = {
    "auth_challenge": "/v1/auth/challenge",
    "auth_verify": "/v1/auth/verify",
    "ping": "/v1/ping",
    "feature_status": "/v1/config/feature-status",
    "min_amounts": "/v1/config/min-amounts",
    "pools": "/v1/pools",
    "pool": "/v1/pools/{pool_id}",
    "lp_position": "/v1/pools/{pool_id}/lp/{provider}",
    "swap": "/v1/swap",
    "swap_simulate": "/v1/swap/simulate",
    "liquidity_add": "/v1/liquidity/add",
    "liquidity_add_simulate": "/v1/liquidity/add/simulate",
    "liquidity_remove": "/v1/liquidity/remove",
    "liquidity_remove_simulate": "/v1/liquidity/remove/simulate",
    "pool_single_sided": "/v1/pools/single-sided",
    "pool_confirm_deposit": "/v1/pools/single-sided/confirm-initial-deposit",
    "pool_constant_product": "/v1/pools/constant-product",
    "pool_concentrated": "/v1/concentrated/pools",
    "concentrated_positions": "/v1/concentrated/positions",
    "liquidity_increase": "/v1/concentrated/liquidity/increase",
    "liquidity_decrease": "/v1/concentrated/liquidity/decrease",
    "fees_collect": "/v1/concentrated/fees/collect",
    "host_register": "/v1/hosts/register",
    "host_withdraw_fees": "/v1/hosts/withdraw-fees",
    "integrator_withdraw_fees": "/v1/integrators/withdraw-fees",
    "clawback": "/v1/clawback",
}


class AmmClient(GatewayClient):
    """Typed endpoints of the AMM gateway.

    Pool and quote reads are never cached; only the service status endpoints
    (ping, feature flags, min amounts) are held briefly.
    """

    def __init__(self, base_url: str | None = None, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self._cache = Cache(Cache.MEMORY)

    # Auth (unauthenticated)

    async def get_challenge(self, public_key: str) -> AuthChallenge:
        data = await self._request(
            "POST",
            ENDPOINTS["auth_challenge"],
            auth=False,
            json={"publicKey": public_key},
        )
        return AuthChallenge.model_validate(data)

    async def verify_challenge(self, public_key: str, signature_hex: str) -> AuthToken:
        data = await self._request(
            "POST",
            ENDPOINTS["auth_verify"],
            auth=False,
            json={"publicKey": public_key, "signature": signature_hex},
        )
        return AuthToken.model_validate(data)

    # Service status

    async def ping(self) -> bool:
        cache_key = f"flashnet:ping:{self.base_url}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self._request("GET", ENDPOINTS["ping"], auth=False, idempotent=True)
        ok = isinstance(data, dict) and str(data.get("status", "")).lower() == "ok"
        await self._cache.set(cache_key, ok, ttl=PING_CACHE_TTL_S)
        return ok

    async def get_feature_status(self) -> dict[str, bool]:
        cache_key = f"flashnet:features:{self.base_url}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self._request("GET", ENDPOINTS["feature_status"], idempotent=True)
        rows = data if isinstance(data, list) else data.get("features", [])
        features = {
            row.feature_name: row.enabled
            for row in (FeatureStatus.model_validate(r) for r in rows)
        }
        await self._cache.set(cache_key, features, ttl=FEATURE_STATUS_CACHE_TTL_S)
        return features

    async def get_min_amounts(self) -> dict[str, int]:
        """Enabled minimum amounts keyed by lower-cased asset identifier."""
        cache_key = f"flashnet:min_amounts:{self.base_url}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self._request("GET", ENDPOINTS["min_amounts"], idempotent=True)
        rows = data if isinstance(data, list) else data.get("minAmounts", [])
        minimums = {
            row.asset_identifier.lower(): row.min_amount
            for row in (MinAmount.model_validate(r) for r in rows)
            if row.enabled
        }
        await self._cache.set(cache_key, minimums, ttl=MIN_AMOUNTS_CACHE_TTL_S)
        return minimums

    # Pools

    async def list_pools(
        self,
        *,
        asset_a: str | None = None,
        asset_b: str | None = None,
        curve_types: list[str] | None = None,
        sort: str | None = None,
        limit: int = DEFAULT_PAGINATION_LIMIT,
        offset: int = 0,
    ) -> PoolList:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if asset_a:
            params["assetATokenPublicKey"] = asset_a
        if asset_b:
            params["assetBTokenPublicKey"] = asset_b
        if curve_types:
            params["curveTypes"] = ",".join(curve_types)
        if sort:
            params["sort"] = sort
        data = await self._request(
            "GET", ENDPOINTS["pools"], params=params, idempotent=True
        )
        return PoolList.model_validate(data)

    async def get_pool(self, pool_id: str) -> Pool:
        data = await self._request(
            "GET", ENDPOINTS["pool"].format(pool_id=pool_id), idempotent=True
        )
        return Pool.model_validate(data)

    async def get_lp_position(self, pool_id: str, provider: str) -> LpPosition:
        path = ENDPOINTS["lp_position"].format(pool_id=pool_id, provider=provider)
        data = await self._request("GET", path, idempotent=True)
        return LpPosition.model_validate(data)

    async def list_concentrated_positions(
        self, pool_id: str | None = None
    ) -> ConcentratedPositionList:
        params = {"poolId": pool_id} if pool_id else None
        data = await self._request(
            "GET", ENDPOINTS["concentrated_positions"], params=params, idempotent=True
        )
        return ConcentratedPositionList.model_validate(data)

    # Simulations (idempotent)

    async def simulate_swap(self, request: dict[str, Any]) -> SimulateSwapResponse:
        data = await self._request(
            "POST", ENDPOINTS["swap_simulate"], json=request, idempotent=True
        )
        return SimulateSwapResponse.model_validate(data)

    async def simulate_add_liquidity(
        self, request: dict[str, Any]
    ) -> SimulateAddLiquidityResponse:
        data = await self._request(
            "POST", ENDPOINTS["liquidity_add_simulate"], json=request, idempotent=True
        )
        return SimulateAddLiquidityResponse.model_validate(data)

    async def simulate_remove_liquidity(
        self, request: dict[str, Any]
    ) -> SimulateRemoveLiquidityResponse:
        data = await self._request(
            "POST", ENDPOINTS["liquidity_remove_simulate"], json=request, idempotent=True
        )
        return SimulateRemoveLiquidityResponse.model_validate(data)

    # Signed intent submissions (never retried)

    async def execute_swap(self, request: dict[str, Any]) -> SwapResponse:
        data = await self._request("POST", ENDPOINTS["swap"], json=request)
        return SwapResponse.model_validate(data)

    async def add_liquidity(self, request: dict[str, Any]) -> AddLiquidityResponse:
        data = await self._request("POST", ENDPOINTS["liquidity_add"], json=request)
        return AddLiquidityResponse.model_validate(data)

    async def remove_liquidity(self, request: dict[str, Any]) -> RemoveLiquidityResponse:
        data = await self._request("POST", ENDPOINTS["liquidity_remove"], json=request)
        return RemoveLiquidityResponse.model_validate(data)

    async def create_single_sided_pool(self, request: dict[str, Any]) -> CreatePoolResponse:
        data = await self._request("POST", ENDPOINTS["pool_single_sided"], json=request)
        return CreatePoolResponse.model_validate(data)

    async def confirm_initial_deposit(
        self, request: dict[str, Any]
    ) -> ConfirmDepositResponse:
        data = await self._request("POST", ENDPOINTS["pool_confirm_deposit"], json=request)
        return ConfirmDepositResponse.model_validate(data)

    async def create_constant_product_pool(
        self, request: dict[str, Any]
    ) -> CreatePoolResponse:
        data = await self._request("POST", ENDPOINTS["pool_constant_product"], json=request)
        return CreatePoolResponse.model_validate(data)

    async def create_concentrated_pool(
        self, request: dict[str, Any]
    ) -> CreatePoolResponse:
        data = await self._request("POST", ENDPOINTS["pool_concentrated"], json=request)
        return CreatePoolResponse.model_validate(data)

    async def increase_liquidity(
        self, request: dict[str, Any]
    ) -> ConcentratedLiquidityResponse:
        data = await self._request("POST", ENDPOINTS["liquidity_increase"], json=request)
        return ConcentratedLiquidityResponse.model_validate(data)

    async def decrease_liquidity(
        self, request: dict[str, Any]
    ) -> ConcentratedLiquidityResponse:
        data = await self._request("POST", ENDPOINTS["liquidity_decrease"], json=request)
        return ConcentratedLiquidityResponse.model_validate(data)

    async def collect_fees(self, request: dict[str, Any]) -> CollectFeesResponse:
        data = await self._request("POST", ENDPOINTS["fees_collect"], json=request)
        return CollectFeesResponse.model_validate(data)

    async def register_host(self, request: dict[str, Any]) -> RegisterHostResponse:
        data = await self._request("POST", ENDPOINTS["host_register"], json=request)
        return RegisterHostResponse.model_validate(data)

    async def withdraw_host_fees(self, request: dict[str, Any]) -> WithdrawFeesResponse:
        data = await self._request("POST", ENDPOINTS["host_withdraw_fees"], json=request)
        return WithdrawFeesResponse.model_validate(data)

    async def withdraw_integrator_fees(
        self, request: dict[str, Any]
    ) -> WithdrawFeesResponse:
        data = await self._request(
            "POST", ENDPOINTS["integrator_withdraw_fees"], json=request
        )
        return WithdrawFeesResponse.model_validate(data)

    async def clawback(self, request: dict[str, Any]) -> ClawbackResponse:
        data = await self._request("POST", ENDPOINTS["clawback"], json=request)
        return ClawbackResponse.model_validate(data)
