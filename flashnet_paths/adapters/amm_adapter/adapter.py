from __future__ import annotations

from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any, TypeVar

from flashnet_paths.adapters.amm_adapter.types import (
    FEATURE_ADD_LIQUIDITY,
    FEATURE_POOL_CREATION,
    FEATURE_SWAPS,
    FEATURE_WITHDRAW_FEES,
    FEATURE_WITHDRAW_LIQUIDITY,
    MASTER_KILL_SWITCH,
    AutoClawbackSummary,
    ClawbackAttempt,
    ConcentratedDepositPlan,
    SingleSidedPoolResult,
)
from flashnet_paths.core.adapters.BaseAdapter import BaseAdapter
from flashnet_paths.core.adapters.decorators import status_tuple
from flashnet_paths.core.clients.AmmClient import AmmClient
from flashnet_paths.core.clients.models import (
    AddLiquidityResponse,
    ClawbackResponse,
    CollectFeesResponse,
    ConcentratedLiquidityResponse,
    ConcentratedPositionList,
    ConfirmDepositResponse,
    CreatePoolResponse,
    LpPosition,
    Pool,
    PoolList,
    RegisterHostResponse,
    RemoveLiquidityResponse,
    SimulateAddLiquidityResponse,
    SimulateRemoveLiquidityResponse,
    SwapResponse,
    WithdrawFeesResponse,
)
from flashnet_paths.core.clients.protocols import (
    WalletProtocol,
    require_wallet_capabilities,
)
from flashnet_paths.core.config import get_default_slippage_bps, get_gateway_url
from flashnet_paths.core.constants.base import (
    ADAPTER_AMM,
    BTC_ASSET_PUBKEY,
    DEFAULT_HOST_NAMESPACE,
)
from flashnet_paths.core.errors import (
    FlashnetError,
    GatewayError,
    InsufficientBalance,
    InvalidRange,
    OperationNotAllowed,
    ValidationError,
    WalletError,
)
from flashnet_paths.core.quotes import Quote, QuoteSelector
from flashnet_paths.core.session import SessionManager
from flashnet_paths.core.utils.bonding_curve import (
    calculate_virtual_reserves,
    parse_positive_int,
)
from flashnet_paths.core.utils.cpmm import min_amount_out
from flashnet_paths.core.utils.intents import Intent, IntentKind, build_intent
from flashnet_paths.core.utils.signer import sign_intent
from flashnet_paths.core.utils.tick_math import (
    Position,
    amounts_for_liquidity,
    liquidity_for_amounts,
    sqrt_price_x96_from_tick,
)

R = TypeVar("R")


def is_btc(asset: str) -> bool:
    return asset.lower() == BTC_ASSET_PUBKEY


class AmmAdapter(BaseAdapter):
    """Signed AMM operations on behalf of one wallet.

    Mutating operations pass a preflight gate (service ping plus the
    operation's feature flag), move funds to the pool when the operation needs
    them, then submit a signed intent. A rejected intent comes back as a
    response with ``accepted=False``; failures raise ``FlashnetError``.
    """

    adapter_type = ADAPTER_AMM

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet: Any,
        client: AmmClient | None = None,
        session: SessionManager | None = None,
        quote_selector: QuoteSelector | None = None,
    ) -> None:
        super().__init__("amm_adapter", config)
        self.wallet: WalletProtocol = require_wallet_capabilities(wallet)

        gateway_url = self.config.get("gateway_url") or get_gateway_url(
            self.config.get("network")
        )
        self.client = client or AmmClient(gateway_url)
        self.session = session or SessionManager(self.client, self.wallet)
        self.client.attach_session(self.session)
        self.quotes = quote_selector or QuoteSelector(self.client)
        self.host_namespace: str = self.config.get(
            "host_namespace", DEFAULT_HOST_NAMESPACE
        )
        self.default_slippage_bps = int(
            self.config.get("slippage_bps", get_default_slippage_bps())
        )

    async def close(self) -> None:
        await self.client.close()

    # Preflight

    async def ensure_operation_allowed(self, feature: str) -> None:
        if not await self.client.ping():
            raise OperationNotAllowed(
                "AMM settlement service is unavailable", details={"feature": feature}
            )
        features = await self.client.get_feature_status()
        if features.get(MASTER_KILL_SWITCH):
            raise OperationNotAllowed(
                "AMM operations are disabled by the master kill switch",
                details={"feature": feature},
            )
        if not features.get(feature):
            raise OperationNotAllowed(
                f"Operation requires {feature}, which is disabled",
                details={"feature": feature},
            )

    async def check_swap_min_amounts(
        self, asset_in: str, asset_out: str, amount_in: int, min_out: int
    ) -> None:
        """The input minimum wins when both sides are configured."""
        minimums = await self.client.get_min_amounts()
        min_in = minimums.get(asset_in.lower())
        if min_in:
            if amount_in < min_in:
                raise ValidationError(
                    f"Minimum amount not met for input asset: {amount_in} < {min_in}",
                    details={"asset": asset_in, "minimum": min_in},
                )
            return
        min_required_out = minimums.get(asset_out.lower())
        if min_required_out and min_out < min_required_out:
            raise ValidationError(
                f"Minimum amount not met for output asset: {min_out} < {min_required_out}",
                details={"asset": asset_out, "minimum": min_required_out},
            )

    async def check_min_amounts(self, amounts: dict[str, int]) -> None:
        minimums = await self.client.get_min_amounts()
        for asset, amount in amounts.items():
            minimum = minimums.get(asset.lower())
            if minimum and 0 < amount < minimum:
                raise ValidationError(
                    f"Minimum amount not met for {asset[:8]}...: {amount} < {minimum}",
                    details={"asset": asset, "minimum": minimum},
                )

    async def check_balance(self, asset: str, amount: int) -> None:
        balance = await self.wallet.get_balance()
        available = balance.balance_of(asset, btc_asset=BTC_ASSET_PUBKEY)
        if available < amount:
            raise InsufficientBalance(
                f"Insufficient balance for {asset[:8]}...: have {available}, need {amount}",
                details={"asset": asset, "available": available, "required": amount},
            )

    # Funds and intents

    async def _transfer_to_pool(self, pool_id: str, asset: str, amount: int) -> str:
        try:
            if is_btc(asset):
                transfer_id = await self.wallet.transfer(amount, pool_id)
            else:
                transfer_id = await self.wallet.transfer_tokens(asset, amount, pool_id)
        except Exception as exc:
            raise WalletError(
                f"Transfer of {amount} {asset[:8]}... to {pool_id} failed: {exc}",
                details={"asset": asset, "amount": amount, "pool_id": pool_id},
            ) from exc
        self.logger.debug(f"Transferred {amount} of {asset[:8]}... to {pool_id}: {transfer_id}")
        return transfer_id

    async def _fund_pool(self, pool_id: str, legs: list[tuple[str, int]]) -> list[str]:
        """Transfer each leg in order; claw back earlier legs if a later one fails."""
        transfer_ids: list[str] = []
        for asset, amount in legs:
            if amount <= 0:
                transfer_ids.append("")
                continue
            try:
                transfer_ids.append(await self._transfer_to_pool(pool_id, asset, amount))
            except FlashnetError as exc:
                sent = [t for t in transfer_ids if t]
                if sent:
                    exc.clawback_summary = await self.clawback_multiple(sent, pool_id)
                raise
        return transfer_ids

    async def _signed_request(
        self, kind: IntentKind, fields: dict[str, Any]
    ) -> tuple[Intent, dict[str, str]]:
        intent = await sign_intent(build_intent(kind, fields), self.wallet)
        return intent, {"nonce": intent.nonce_hex, "signature": intent.signature_hex}

    async def _submit_with_recovery(
        self,
        pool_id: str,
        transfer_ids: list[str],
        submit: Callable[[], Awaitable[R]],
    ) -> R:
        try:
            return await submit()
        except Exception as exc:
            sent = [t for t in transfer_ids if t]
            if not sent:
                raise
            if isinstance(exc, GatewayError) and not exc.should_clawback:
                self.logger.warning(
                    f"Submission to {pool_id} failed with {exc.code}; pool refunds automatically"
                )
                raise
            error = FlashnetError.from_unknown(exc)
            self.logger.warning(
                f"Submission to {pool_id} failed ({error}); clawing back {len(sent)} transfer(s)"
            )
            error.clawback_summary = await self.clawback_multiple(sent, pool_id)
            if error is exc:
                raise
            raise error from exc

    def _log_outcome(self, operation: str, pool_id: str, response: Any) -> None:
        if response.accepted:
            self.logger.info(f"{operation} accepted by {pool_id} (request {response.request_id})")
        else:
            self.logger.warning(
                f"{operation} rejected by {pool_id}: {response.rejection} "
                f"[{response.error_code}] {response.error}"
            )

    # Swaps

    async def swap(
        self,
        pool_id: str,
        asset_in: str,
        asset_out: str,
        amount_in: int,
        *,
        min_amount_out: int,
        max_slippage_bps: int | None = None,
        integrator_fee_bps: int = 0,
        integrator_public_key: str = "",
        use_free_balance: bool = False,
    ) -> SwapResponse:
        slippage = self.default_slippage_bps if max_slippage_bps is None else max_slippage_bps
        await self.ensure_operation_allowed(FEATURE_SWAPS)
        await self.check_swap_min_amounts(asset_in, asset_out, amount_in, min_amount_out)
        user = await self.session.public_key()

        transfer_ids = [""]
        if not use_free_balance:
            await self.check_balance(asset_in, amount_in)
            transfer_ids = await self._fund_pool(pool_id, [(asset_in, amount_in)])
        transfer_id = transfer_ids[0]

        async def _submit() -> SwapResponse:
            _, signed = await self._signed_request(
                IntentKind.SWAP,
                {
                    "user_public_key": user,
                    "lp_identity_public_key": pool_id,
                    "asset_in_spark_transfer_id": transfer_id,
                    "asset_in_token_public_key": asset_in,
                    "asset_out_token_public_key": asset_out,
                    "amount_in": amount_in,
                    "min_amount_out": min_amount_out,
                    "max_slippage_bps": slippage,
                    "total_integrator_fee_rate_bps": integrator_fee_bps,
                },
            )
            request = {
                "userPublicKey": user,
                "poolId": pool_id,
                "assetInAddress": asset_in,
                "assetOutAddress": asset_out,
                "amountIn": str(amount_in),
                "maxSlippageBps": str(slippage),
                "minAmountOut": str(min_amount_out),
                "assetInSparkTransferId": transfer_id,
                "totalIntegratorFeeRateBps": str(integrator_fee_bps),
                "integratorPublicKey": integrator_public_key,
                **signed,
            }
            if use_free_balance:
                request["useFreeBalance"] = True
            return await self.client.execute_swap(request)

        response = await self._submit_with_recovery(pool_id, transfer_ids, _submit)
        response.inbound_transfer_id = transfer_id or None
        self._log_outcome("Swap", pool_id, response)
        return response

    async def swap_best(
        self,
        asset_in: str,
        asset_out: str,
        amount_in: int,
        *,
        max_slippage_bps: int | None = None,
        integrator_fee_bps: int = 0,
        integrator_public_key: str = "",
    ) -> SwapResponse:
        """Swap through whichever pool quotes the highest output."""
        slippage = self.default_slippage_bps if max_slippage_bps is None else max_slippage_bps
        quote = await self.quotes.best_quote(
            asset_in, asset_out, amount_in, integrator_fee_bps=integrator_fee_bps
        )
        return await self.swap(
            quote.pool_id,
            asset_in,
            asset_out,
            amount_in,
            min_amount_out=min_amount_out(quote.amount_out, slippage),
            max_slippage_bps=slippage,
            integrator_fee_bps=integrator_fee_bps,
            integrator_public_key=integrator_public_key,
        )

    # Constant-product liquidity

    async def add_liquidity(
        self,
        pool_id: str,
        amount_a: int,
        amount_b: int,
        *,
        min_amount_a: int = 0,
        min_amount_b: int = 0,
    ) -> AddLiquidityResponse:
        await self.ensure_operation_allowed(FEATURE_ADD_LIQUIDITY)
        pool = await self.client.get_pool(pool_id)
        await self.check_min_amounts({pool.asset_a: amount_a, pool.asset_b: amount_b})
        await self.check_balance(pool.asset_a, amount_a)
        await self.check_balance(pool.asset_b, amount_b)
        user = await self.session.public_key()

        transfer_ids = await self._fund_pool(
            pool_id, [(pool.asset_a, amount_a), (pool.asset_b, amount_b)]
        )

        async def _submit() -> AddLiquidityResponse:
            _, signed = await self._signed_request(
                IntentKind.ADD_LIQUIDITY,
                {
                    "user_public_key": user,
                    "lp_identity_public_key": pool_id,
                    "asset_a_spark_transfer_id": transfer_ids[0],
                    "asset_b_spark_transfer_id": transfer_ids[1],
                    "asset_a_amount": amount_a,
                    "asset_b_amount": amount_b,
                    "asset_a_min_amount_in": min_amount_a,
                    "asset_b_min_amount_in": min_amount_b,
                },
            )
            return await self.client.add_liquidity(
                {
                    "userPublicKey": user,
                    "poolId": pool_id,
                    "assetASparkTransferId": transfer_ids[0],
                    "assetBSparkTransferId": transfer_ids[1],
                    "assetAAmountToAdd": str(amount_a),
                    "assetBAmountToAdd": str(amount_b),
                    "assetAMinAmountIn": str(min_amount_a),
                    "assetBMinAmountIn": str(min_amount_b),
                    **signed,
                }
            )

        response = await self._submit_with_recovery(pool_id, transfer_ids, _submit)
        self._log_outcome("Add liquidity", pool_id, response)
        return response

    async def remove_liquidity(self, pool_id: str, lp_tokens: int) -> RemoveLiquidityResponse:
        if lp_tokens <= 0:
            raise ValidationError(f"lp_tokens must be positive, got {lp_tokens}")
        await self.ensure_operation_allowed(FEATURE_WITHDRAW_LIQUIDITY)
        user = await self.session.public_key()
        position = await self.client.get_lp_position(pool_id, user)
        if position.lp_tokens_owned < lp_tokens:
            raise InsufficientBalance(
                f"Insufficient LP tokens: have {position.lp_tokens_owned}, need {lp_tokens}",
                details={"pool_id": pool_id},
            )

        _, signed = await self._signed_request(
            IntentKind.REMOVE_LIQUIDITY,
            {
                "user_public_key": user,
                "lp_identity_public_key": pool_id,
                "lp_tokens_to_remove": lp_tokens,
            },
        )
        response = await self.client.remove_liquidity(
            {
                "userPublicKey": user,
                "poolId": pool_id,
                "lpTokensToRemove": str(lp_tokens),
                **signed,
            }
        )
        self._log_outcome("Remove liquidity", pool_id, response)
        return response

    # Concentrated liquidity

    async def _checked_position(
        self, pool_id: str, tick_lower: int, tick_upper: int
    ) -> tuple[Pool, Position]:
        pool = await self.client.get_pool(pool_id)
        position = Position(pool_id=pool_id, tick_lower=tick_lower, tick_upper=tick_upper)
        spacing = pool.tick_spacing or 1
        if tick_lower % spacing or tick_upper % spacing:
            raise InvalidRange(
                f"Ticks [{tick_lower}, {tick_upper}] are not multiples of spacing {spacing}",
                details={"pool_id": pool_id, "tick_spacing": spacing},
            )
        return pool, position

    async def plan_concentrated_deposit(
        self,
        pool_id: str,
        tick_lower: int,
        tick_upper: int,
        amount_a_desired: int,
        amount_b_desired: int,
        *,
        slippage_bps: int | None = None,
    ) -> ConcentratedDepositPlan:
        """Work out the liquidity and minimum amounts for a deposit at the pool's current tick."""
        pool, _ = await self._checked_position(pool_id, tick_lower, tick_upper)
        if pool.current_tick is None:
            raise ValidationError(f"Pool {pool_id} does not report a current tick")
        slippage = self.default_slippage_bps if slippage_bps is None else slippage_bps
        allocation = liquidity_for_amounts(
            sqrt_price_x96_from_tick(pool.current_tick),
            tick_lower,
            tick_upper,
            amount_a_desired,
            amount_b_desired,
        )
        return ConcentratedDepositPlan(
            pool_id=pool_id,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            allocation=allocation,
            amount_a_min=min_amount_out(allocation.amount_a, slippage),
            amount_b_min=min_amount_out(allocation.amount_b, slippage),
        )

    async def increase_liquidity(
        self,
        pool_id: str,
        tick_lower: int,
        tick_upper: int,
        amount_a_desired: int,
        amount_b_desired: int,
        *,
        amount_a_min: int = 0,
        amount_b_min: int = 0,
        use_free_balance: bool = False,
        retain_excess_in_balance: bool = False,
    ) -> ConcentratedLiquidityResponse:
        await self.ensure_operation_allowed(FEATURE_ADD_LIQUIDITY)
        pool, _ = await self._checked_position(pool_id, tick_lower, tick_upper)
        user = await self.session.public_key()

        transfer_ids = ["", ""]
        if not use_free_balance:
            await self.check_balance(pool.asset_a, amount_a_desired)
            await self.check_balance(pool.asset_b, amount_b_desired)
            transfer_ids = await self._fund_pool(
                pool_id,
                [(pool.asset_a, amount_a_desired), (pool.asset_b, amount_b_desired)],
            )

        async def _submit() -> ConcentratedLiquidityResponse:
            _, signed = await self._signed_request(
                IntentKind.INCREASE_LIQUIDITY,
                {
                    "user_public_key": user,
                    "lp_identity_public_key": pool_id,
                    "tick_lower": tick_lower,
                    "tick_upper": tick_upper,
                    "asset_a_spark_transfer_id": transfer_ids[0],
                    "asset_b_spark_transfer_id": transfer_ids[1],
                    "amount_a_desired": amount_a_desired,
                    "amount_b_desired": amount_b_desired,
                    "amount_a_min": amount_a_min,
                    "amount_b_min": amount_b_min,
                },
            )
            return await self.client.increase_liquidity(
                {
                    "userPublicKey": user,
                    "poolId": pool_id,
                    "tickLower": tick_lower,
                    "tickUpper": tick_upper,
                    "assetASparkTransferId": transfer_ids[0],
                    "assetBSparkTransferId": transfer_ids[1],
                    "amountADesired": str(amount_a_desired),
                    "amountBDesired": str(amount_b_desired),
                    "amountAMin": str(amount_a_min),
                    "amountBMin": str(amount_b_min),
                    "useFreeBalance": use_free_balance,
                    "retainExcessInBalance": retain_excess_in_balance,
                    **signed,
                }
            )

        response = await self._submit_with_recovery(pool_id, transfer_ids, _submit)
        self._log_outcome("Increase liquidity", pool_id, response)
        return response

    async def decrease_liquidity(
        self,
        pool_id: str,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        *,
        amount_a_min: int | None = None,
        amount_b_min: int | None = None,
        slippage_bps: int | None = None,
        retain_in_balance: bool = False,
    ) -> ConcentratedLiquidityResponse:
        """Withdraw ``liquidity`` from a position.

        Minimums left as ``None`` are derived from the pool's current tick less
        ``slippage_bps``, or zero when the pool does not report a tick.
        """
        if liquidity <= 0:
            raise ValidationError(f"liquidity must be positive, got {liquidity}")
        await self.ensure_operation_allowed(FEATURE_WITHDRAW_LIQUIDITY)
        pool, _ = await self._checked_position(pool_id, tick_lower, tick_upper)
        if amount_a_min is None or amount_b_min is None:
            expected_a = expected_b = 0
            if pool.current_tick is not None:
                expected_a, expected_b = amounts_for_liquidity(
                    sqrt_price_x96_from_tick(pool.current_tick),
                    tick_lower,
                    tick_upper,
                    liquidity,
                )
            slippage = self.default_slippage_bps if slippage_bps is None else slippage_bps
            if amount_a_min is None:
                amount_a_min = min_amount_out(expected_a, slippage)
            if amount_b_min is None:
                amount_b_min = min_amount_out(expected_b, slippage)
        user = await self.session.public_key()

        _, signed = await self._signed_request(
            IntentKind.DECREASE_LIQUIDITY,
            {
                "user_public_key": user,
                "lp_identity_public_key": pool_id,
                "tick_lower": tick_lower,
                "tick_upper": tick_upper,
                "liquidity_to_remove": liquidity,
                "amount_a_min": amount_a_min,
                "amount_b_min": amount_b_min,
            },
        )
        response = await self.client.decrease_liquidity(
            {
                "userPublicKey": user,
                "poolId": pool_id,
                "tickLower": tick_lower,
                "tickUpper": tick_upper,
                "liquidityToRemove": str(liquidity),
                "amountAMin": str(amount_a_min),
                "amountBMin": str(amount_b_min),
                "retainInBalance": retain_in_balance,
                **signed,
            }
        )
        self._log_outcome("Decrease liquidity", pool_id, response)
        return response

    async def collect_fees(
        self,
        pool_id: str,
        tick_lower: int,
        tick_upper: int,
        *,
        retain_in_balance: bool = False,
    ) -> CollectFeesResponse:
        await self.ensure_operation_allowed(FEATURE_WITHDRAW_FEES)
        await self._checked_position(pool_id, tick_lower, tick_upper)
        user = await self.session.public_key()

        _, signed = await self._signed_request(
            IntentKind.COLLECT_FEES,
            {
                "user_public_key": user,
                "lp_identity_public_key": pool_id,
                "tick_lower": tick_lower,
                "tick_upper": tick_upper,
            },
        )
        response = await self.client.collect_fees(
            {
                "userPublicKey": user,
                "poolId": pool_id,
                "tickLower": tick_lower,
                "tickUpper": tick_upper,
                "retainInBalance": retain_in_balance,
                **signed,
            }
        )
        self._log_outcome("Collect fees", pool_id, response)
        return response

    # Pool creation

    async def create_constant_product_pool(
        self,
        asset_a: str,
        asset_b: str,
        *,
        lp_fee_bps: int,
        host_fee_bps: int,
        host_namespace: str | None = None,
    ) -> CreatePoolResponse:
        await self.ensure_operation_allowed(FEATURE_POOL_CREATION)
        owner = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.CONSTANT_PRODUCT_POOL_INIT,
            {
                "pool_owner_public_key": owner,
                "asset_a_token_public_key": asset_a,
                "asset_b_token_public_key": asset_b,
                "total_host_fee_rate_bps": host_fee_bps,
                "lp_fee_rate_bps": lp_fee_bps,
            },
        )
        created = await self.client.create_constant_product_pool(
            {
                "poolOwnerPublicKey": owner,
                "assetATokenPublicKey": asset_a,
                "assetBTokenPublicKey": asset_b,
                "totalHostFeeRateBps": str(host_fee_bps),
                "lpFeeRateBps": str(lp_fee_bps),
                "hostNamespace": host_namespace or self.host_namespace,
                **signed,
            }
        )
        self.logger.info(f"Created constant-product pool {created.pool_id}")
        return created

    async def create_single_sided_pool(
        self,
        asset_a: str,
        asset_b: str,
        *,
        initial_reserve: int | str,
        graduation_threshold_pct: int,
        target_raise: int | str,
        lp_fee_bps: int,
        host_fee_bps: int,
        host_namespace: str | None = None,
        deposit: bool = True,
    ) -> SingleSidedPoolResult:
        """Create a bonding-curve pool and, by default, deposit and confirm the initial reserve."""
        reserves = calculate_virtual_reserves(
            initial_reserve, graduation_threshold_pct, target_raise
        )
        initial = parse_positive_int(initial_reserve, "Initial reserve")
        await self.ensure_operation_allowed(FEATURE_POOL_CREATION)
        owner = await self.session.public_key()
        if deposit:
            await self.check_balance(asset_a, initial)

        _, signed = await self._signed_request(
            IntentKind.SINGLE_SIDED_POOL_INIT,
            {
                "pool_owner_public_key": owner,
                "asset_a_token_public_key": asset_a,
                "asset_b_token_public_key": asset_b,
                "asset_a_initial_reserve": initial,
                "virtual_reserve_a": reserves.virtual_reserve_a,
                "virtual_reserve_b": reserves.virtual_reserve_b,
                "threshold": reserves.threshold,
                "total_host_fee_rate_bps": host_fee_bps,
                "lp_fee_rate_bps": lp_fee_bps,
            },
        )
        created = await self.client.create_single_sided_pool(
            {
                "poolOwnerPublicKey": owner,
                "assetATokenPublicKey": asset_a,
                "assetBTokenPublicKey": asset_b,
                "assetAInitialReserve": str(initial),
                "virtualReserveA": str(reserves.virtual_reserve_a),
                "virtualReserveB": str(reserves.virtual_reserve_b),
                "threshold": str(reserves.threshold),
                "totalHostFeeRateBps": str(host_fee_bps),
                "lpFeeRateBps": str(lp_fee_bps),
                "hostNamespace": host_namespace or self.host_namespace,
                **signed,
            }
        )
        self.logger.info(f"Created single-sided pool {created.pool_id}")
        if not deposit:
            return SingleSidedPoolResult(pool=created, reserves=reserves)

        (transfer_id,) = await self._fund_pool(created.pool_id, [(asset_a, initial)])
        confirmation = await self._submit_with_recovery(
            created.pool_id,
            [transfer_id],
            lambda: self.confirm_initial_deposit(created.pool_id, transfer_id),
        )
        return SingleSidedPoolResult(
            pool=created,
            reserves=reserves,
            deposit_transfer_id=transfer_id,
            confirmation=confirmation,
        )

    async def confirm_initial_deposit(
        self, pool_id: str, transfer_id: str
    ) -> ConfirmDepositResponse:
        owner = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.CONFIRM_INITIAL_DEPOSIT,
            {
                "pool_owner_public_key": owner,
                "lp_identity_public_key": pool_id,
                "asset_a_spark_transfer_id": transfer_id,
            },
        )
        return await self.client.confirm_initial_deposit(
            {
                "poolId": pool_id,
                "poolOwnerPublicKey": owner,
                "assetASparkTransferId": transfer_id,
                **signed,
            }
        )

    async def create_concentrated_pool(
        self,
        asset_a: str,
        asset_b: str,
        *,
        tick_spacing: int,
        initial_price: Decimal | int | str,
        lp_fee_bps: int,
        host_fee_bps: int,
        host_namespace: str | None = None,
    ) -> CreatePoolResponse:
        if tick_spacing <= 0:
            raise InvalidRange(f"tick_spacing must be positive, got {tick_spacing}")
        price = Decimal(str(initial_price))
        if price <= 0:
            raise ValidationError(f"initial_price must be positive, got {initial_price}")
        await self.ensure_operation_allowed(FEATURE_POOL_CREATION)
        owner = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.CONCENTRATED_POOL_INIT,
            {
                "pool_owner_public_key": owner,
                "asset_a_token_public_key": asset_a,
                "asset_b_token_public_key": asset_b,
                "tick_spacing": tick_spacing,
                "initial_price": price,
                "lp_fee_rate_bps": lp_fee_bps,
                "host_fee_rate_bps": host_fee_bps,
            },
        )
        created = await self.client.create_concentrated_pool(
            {
                "poolOwnerPublicKey": owner,
                "assetATokenPublicKey": asset_a,
                "assetBTokenPublicKey": asset_b,
                "tickSpacing": tick_spacing,
                "initialPrice": format(price, "f"),
                "lpFeeRateBps": str(lp_fee_bps),
                "hostFeeRateBps": str(host_fee_bps),
                "hostNamespace": host_namespace or self.host_namespace,
                **signed,
            }
        )
        self.logger.info(f"Created concentrated pool {created.pool_id}")
        return created

    # Hosts and integrators

    async def register_host(
        self,
        namespace: str,
        min_fee_bps: int,
        fee_recipient_public_key: str | None = None,
    ) -> RegisterHostResponse:
        recipient = fee_recipient_public_key or await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.REGISTER_HOST,
            {
                "namespace": namespace,
                "min_fee_bps": min_fee_bps,
                "fee_recipient_public_key": recipient,
            },
        )
        return await self.client.register_host(
            {
                "namespace": namespace,
                "minFeeBps": min_fee_bps,
                "feeRecipientPublicKey": recipient,
                **signed,
            }
        )

    async def withdraw_host_fees(
        self,
        pool_id: str,
        *,
        namespace: str | None = None,
        asset_b_amount: int | None = None,
    ) -> WithdrawFeesResponse:
        await self.ensure_operation_allowed(FEATURE_WITHDRAW_FEES)
        host = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.WITHDRAW_HOST_FEES,
            {
                "host_public_key": host,
                "lp_identity_public_key": pool_id,
                "asset_b_amount": asset_b_amount,
            },
        )
        request: dict[str, Any] = {
            "namespace": namespace or self.host_namespace,
            "lpIdentityPublicKey": pool_id,
            **signed,
        }
        if asset_b_amount is not None:
            request["assetBAmount"] = str(asset_b_amount)
        response = await self.client.withdraw_host_fees(request)
        self._log_outcome("Withdraw host fees", pool_id, response)
        return response

    async def withdraw_integrator_fees(
        self, pool_id: str, *, asset_b_amount: int | None = None
    ) -> WithdrawFeesResponse:
        await self.ensure_operation_allowed(FEATURE_WITHDRAW_FEES)
        integrator = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.WITHDRAW_INTEGRATOR_FEES,
            {
                "integrator_public_key": integrator,
                "lp_identity_public_key": pool_id,
                "asset_b_amount": asset_b_amount,
            },
        )
        request: dict[str, Any] = {
            "integratorPublicKey": integrator,
            "lpIdentityPublicKey": pool_id,
            **signed,
        }
        if asset_b_amount is not None:
            request["assetBAmount"] = str(asset_b_amount)
        response = await self.client.withdraw_integrator_fees(request)
        self._log_outcome("Withdraw integrator fees", pool_id, response)
        return response

    # Clawback

    async def clawback(self, transfer_id: str, pool_id: str) -> ClawbackResponse:
        """Reclaim a transfer the pool received but never settled."""
        if not await self.client.ping():
            raise OperationNotAllowed("AMM settlement service is unavailable")
        sender = await self.session.public_key()
        _, signed = await self._signed_request(
            IntentKind.CLAWBACK,
            {
                "sender_public_key": sender,
                "spark_transfer_id": transfer_id,
                "lp_identity_public_key": pool_id,
            },
        )
        response = await self.client.clawback(
            {
                "senderPublicKey": sender,
                "sparkTransferId": transfer_id,
                "lpIdentityPublicKey": pool_id,
                **signed,
            }
        )
        self._log_outcome("Clawback", pool_id, response)
        return response

    async def clawback_multiple(
        self, transfer_ids: list[str], pool_id: str
    ) -> AutoClawbackSummary:
        summary = AutoClawbackSummary(pool_id=pool_id)
        for transfer_id in transfer_ids:
            try:
                response = await self.clawback(transfer_id, pool_id)
            except FlashnetError as exc:
                summary.attempts.append(
                    ClawbackAttempt(transfer_id=transfer_id, success=False, error=str(exc))
                )
                continue
            summary.attempts.append(
                ClawbackAttempt(
                    transfer_id=transfer_id,
                    success=response.accepted,
                    response=response,
                    error=response.error,
                )
            )
        if summary.failure_count:
            self.logger.error(
                f"Clawback incomplete for {pool_id}: unrecovered {summary.unrecovered_transfer_ids}"
            )
        return summary

    # Reads

    @status_tuple
    async def get_pool(self, pool_id: str) -> Pool:
        return await self.client.get_pool(pool_id)

    @status_tuple
    async def list_pools(
        self,
        *,
        asset_a: str | None = None,
        asset_b: str | None = None,
        curve_types: list[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> PoolList:
        kwargs: dict[str, Any] = {"offset": offset}
        if limit is not None:
            kwargs["limit"] = limit
        return await self.client.list_pools(
            asset_a=asset_a, asset_b=asset_b, curve_types=curve_types, **kwargs
        )

    @status_tuple
    async def get_lp_position(
        self, pool_id: str, provider: str | None = None
    ) -> LpPosition:
        provider = provider or await self.session.public_key()
        return await self.client.get_lp_position(pool_id, provider)

    @status_tuple
    async def list_concentrated_positions(
        self, pool_id: str | None = None
    ) -> ConcentratedPositionList:
        return await self.client.list_concentrated_positions(pool_id)

    @status_tuple
    async def get_quote(
        self,
        asset_in: str,
        asset_out: str,
        amount_in: int,
        *,
        integrator_fee_bps: int = 0,
    ) -> Quote:
        return await self.quotes.best_quote(
            asset_in, asset_out, amount_in, integrator_fee_bps=integrator_fee_bps
        )

    @status_tuple
    async def simulate_add_liquidity(
        self, pool_id: str, amount_a: int, amount_b: int
    ) -> SimulateAddLiquidityResponse:
        return await self.client.simulate_add_liquidity(
            {
                "poolId": pool_id,
                "assetAAmount": str(amount_a),
                "assetBAmount": str(amount_b),
            }
        )

    @status_tuple
    async def simulate_remove_liquidity(
        self, pool_id: str, lp_tokens: int
    ) -> SimulateRemoveLiquidityResponse:
        provider = await self.session.public_key()
        return await self.client.simulate_remove_liquidity(
            {
                "poolId": pool_id,
                "providerPublicKey": provider,
                "lpTokensToRemove": str(lp_tokens),
            }
        )
