from unittest.mock import AsyncMock

import pytest

from flashnet_paths.core.clients.models import (
    AddLiquidityResponse,
    ClawbackResponse,
    ConcentratedLiquidityResponse,
    ConfirmDepositResponse,
    CreatePoolResponse,
    LpPosition,
    Pool,
    RejectionReason,
    SwapResponse,
)
from flashnet_paths.core.constants.base import BTC_ASSET_PUBKEY
from flashnet_paths.core.errors import (
    FlashnetError,
    GatewayError,
    InsufficientBalance,
    InvalidRange,
    NetworkError,
    OperationNotAllowed,
    SigningFailed,
    ValidationError,
    WalletError,
)
from flashnet_paths.core.utils.bonding_curve import calculate_virtual_reserves
from flashnet_paths.core.utils.cpmm import min_amount_out
from flashnet_paths.core.utils.tick_math import amounts_for_liquidity, sqrt_price_x96_from_tick
from flashnet_paths.testing.fixtures import POOL_ID, TOKEN


def _pool(**overrides) -> Pool:
    data = {
        "lpPublicKey": POOL_ID,
        "assetATokenPublicKey": TOKEN,
        "assetBTokenPublicKey": BTC_ASSET_PUBKEY,
        "assetAReserve": "5000000",
        "assetBReserve": "500000",
        "lpFeeBps": 30,
    }
    data.update(overrides)
    return Pool.model_validate(data)


async def _swap(adapter, amount_in=1_000, min_out=90):
    return await adapter.swap(
        POOL_ID, TOKEN, BTC_ASSET_PUBKEY, amount_in, min_amount_out=min_out
    )


class TestPreflight:
    @pytest.mark.asyncio
    async def test_unavailable_service_blocks_before_transfer(self, amm_adapter, amm_client, wallet):
        amm_client.ping.return_value = False

        with pytest.raises(OperationNotAllowed):
            await _swap(amm_adapter)

        assert wallet.transfers == []
        amm_client.execute_swap.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_master_kill_switch(self, amm_adapter, amm_client, wallet):
        amm_client.get_feature_status.return_value = {
            "master_kill_switch": True,
            "allow_swaps": True,
        }

        with pytest.raises(OperationNotAllowed, match="kill switch"):
            await _swap(amm_adapter)

        assert wallet.transfers == []

    @pytest.mark.asyncio
    async def test_disabled_or_missing_feature(self, amm_adapter, amm_client):
        amm_client.get_feature_status.return_value = {"allow_swaps": False}
        with pytest.raises(OperationNotAllowed) as exc_info:
            await _swap(amm_adapter)
        assert exc_info.value.details["feature"] == "allow_swaps"

        amm_client.get_feature_status.return_value = {}
        with pytest.raises(OperationNotAllowed):
            await amm_adapter.add_liquidity(POOL_ID, 1_000, 1_000)

    @pytest.mark.asyncio
    async def test_input_minimum_rejects_small_swap(self, amm_adapter, amm_client, wallet):
        amm_client.get_min_amounts.return_value = {TOKEN: 5_000}

        with pytest.raises(ValidationError, match="input asset"):
            await _swap(amm_adapter, amount_in=1_000)

        assert wallet.transfers == []

    @pytest.mark.asyncio
    async def test_input_minimum_takes_precedence_over_output(self, amm_adapter, amm_client):
        amm_client.get_min_amounts.return_value = {TOKEN: 500, BTC_ASSET_PUBKEY: 10_000}

        await amm_adapter.check_swap_min_amounts(TOKEN, BTC_ASSET_PUBKEY, 1_000, 10)

    @pytest.mark.asyncio
    async def test_output_minimum_applies_without_input_minimum(self, amm_adapter, amm_client):
        amm_client.get_min_amounts.return_value = {BTC_ASSET_PUBKEY: 10_000}

        with pytest.raises(ValidationError, match="output asset"):
            await amm_adapter.check_swap_min_amounts(TOKEN, BTC_ASSET_PUBKEY, 1_000, 10)

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, amm_adapter, amm_client, wallet):
        with pytest.raises(InsufficientBalance):
            await amm_adapter.swap(
                POOL_ID, BTC_ASSET_PUBKEY, TOKEN, 200_000, min_amount_out=1
            )

        assert wallet.transfers == []
        amm_client.execute_swap.assert_not_awaited()


class TestSwap:
    @pytest.mark.asyncio
    async def test_swap_transfers_then_submits_signed_intent(self, amm_adapter, amm_client, wallet):
        amm_client.execute_swap.return_value = SwapResponse(
            accepted=True, request_id="req-1", amount_out=905
        )

        response = await _swap(amm_adapter)

        assert response.accepted
        assert response.inbound_transfer_id == "token-transfer-1"
        assert wallet.transfers == [
            {"id": "token-transfer-1", "asset": TOKEN, "amount": 1_000, "to": POOL_ID}
        ]
        assert wallet.tokens[TOKEN] == 10_000_000 - 1_000

        request = amm_client.execute_swap.await_args.args[0]
        assert request["poolId"] == POOL_ID
        assert request["amountIn"] == "1000"
        assert request["minAmountOut"] == "90"
        assert request["maxSlippageBps"] == "100"
        assert request["assetInSparkTransferId"] == "token-transfer-1"
        assert request["userPublicKey"] == await wallet.identity_public_key()
        assert len(request["nonce"]) == 32
        assert request["signature"]

    @pytest.mark.asyncio
    async def test_nonces_differ_between_swaps(self, amm_adapter, amm_client):
        amm_client.execute_swap.return_value = SwapResponse(accepted=True)

        await _swap(amm_adapter)
        await _swap(amm_adapter)

        first, second = (c.args[0]["nonce"] for c in amm_client.execute_swap.await_args_list)
        assert first != second

    @pytest.mark.asyncio
    async def test_free_balance_swap_skips_transfer(self, amm_adapter, amm_client, wallet):
        amm_client.execute_swap.return_value = SwapResponse(accepted=True)

        response = await amm_adapter.swap(
            POOL_ID, TOKEN, BTC_ASSET_PUBKEY, 1_000, min_amount_out=1, use_free_balance=True
        )

        assert wallet.transfers == []
        assert response.inbound_transfer_id is None
        assert amm_client.execute_swap.await_args.args[0]["useFreeBalance"] is True

    @pytest.mark.asyncio
    async def test_rejected_swap_reports_reason(self, amm_adapter, amm_client):
        amm_client.execute_swap.return_value = SwapResponse(
            accepted=False,
            error="Slippage tolerance exceeded",
            error_code="FSAG-4202",
            refunded_amount=1_000,
        )

        response = await _swap(amm_adapter)

        assert not response.accepted
        assert response.rejection is RejectionReason.SLIPPAGE_EXCEEDED
        amm_client.clawback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_validation_failure_claws_back_transfer(self, amm_adapter, amm_client):
        amm_client.execute_swap.side_effect = GatewayError(
            "invalid nonce", code="FSAG-1002", status_code=400
        )
        amm_client.clawback.return_value = ClawbackResponse(accepted=True)

        with pytest.raises(GatewayError) as exc_info:
            await _swap(amm_adapter)

        summary = exc_info.value.clawback_summary
        assert summary.pool_id == POOL_ID
        assert summary.fully_recovered
        assert summary.recovered_transfer_ids == ["token-transfer-1"]
        request = amm_client.clawback.await_args.args[0]
        assert request["sparkTransferId"] == "token-transfer-1"
        assert request["lpIdentityPublicKey"] == POOL_ID

    @pytest.mark.asyncio
    async def test_network_failure_claws_back_transfer(self, amm_adapter, amm_client):
        amm_client.execute_swap.side_effect = NetworkError("connection reset")
        amm_client.clawback.return_value = ClawbackResponse(
            accepted=False, error="already settled"
        )

        with pytest.raises(NetworkError) as exc_info:
            await _swap(amm_adapter)

        summary = exc_info.value.clawback_summary
        assert summary.failure_count == 1
        assert summary.unrecovered_transfer_ids == ["token-transfer-1"]
        assert not summary.fully_recovered

    @pytest.mark.asyncio
    async def test_business_failure_leaves_refund_to_pool(self, amm_adapter, amm_client):
        amm_client.execute_swap.side_effect = GatewayError(
            "no liquidity", code="FSAG-4201", status_code=422
        )

        with pytest.raises(GatewayError) as exc_info:
            await _swap(amm_adapter)

        assert exc_info.value.clawback_summary is None
        amm_client.clawback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_infrastructure_failure_claws_back_transfer(self, amm_adapter, amm_client):
        amm_client.execute_swap.side_effect = GatewayError(
            "settlement backend unavailable", code="FSAG-3001", status_code=503
        )
        amm_client.clawback.return_value = ClawbackResponse(accepted=True)

        with pytest.raises(GatewayError) as exc_info:
            await _swap(amm_adapter)

        assert exc_info.value.clawback_summary.recovered_transfer_ids == ["token-transfer-1"]

    @pytest.mark.asyncio
    async def test_signing_failure_after_transfer_claws_back(
        self, amm_adapter, amm_client, wallet
    ):
        wallet.sign_failures = 1
        amm_client.clawback.return_value = ClawbackResponse(accepted=True)

        with pytest.raises(SigningFailed, match="signing device unavailable") as exc_info:
            await _swap(amm_adapter)

        assert exc_info.value.clawback_summary.recovered_transfer_ids == ["token-transfer-1"]
        assert amm_client.clawback.await_args.args[0]["sparkTransferId"] == "token-transfer-1"
        amm_client.execute_swap.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_submit_error_is_wrapped_with_clawback(
        self, amm_adapter, amm_client
    ):
        amm_client.execute_swap.side_effect = KeyError("amountOut")
        amm_client.clawback.return_value = ClawbackResponse(accepted=True)

        with pytest.raises(FlashnetError) as exc_info:
            await _swap(amm_adapter)

        assert exc_info.value.code == "UNKNOWN_ERROR"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.clawback_summary.fully_recovered


class TestLiquidity:
    @pytest.mark.asyncio
    async def test_add_liquidity_funds_both_legs(self, amm_adapter, amm_client, wallet):
        amm_client.get_pool.return_value = _pool()
        amm_client.add_liquidity.return_value = AddLiquidityResponse(
            accepted=True, lp_tokens_minted=700
        )

        response = await amm_adapter.add_liquidity(POOL_ID, 10_000, 1_000)

        assert response.lp_tokens_minted == 700
        assert [t["id"] for t in wallet.transfers] == ["token-transfer-1", "btc-transfer-2"]
        request = amm_client.add_liquidity.await_args.args[0]
        assert request["assetASparkTransferId"] == "token-transfer-1"
        assert request["assetBSparkTransferId"] == "btc-transfer-2"
        assert request["assetAAmountToAdd"] == "10000"

    @pytest.mark.asyncio
    async def test_failed_second_leg_claws_back_first(self, amm_adapter, amm_client, wallet):
        amm_client.get_pool.return_value = _pool()
        amm_client.clawback.return_value = ClawbackResponse(accepted=True)
        wallet.transfer = AsyncMock(side_effect=RuntimeError("transfer service down"))

        with pytest.raises(WalletError, match="transfer service down") as exc_info:
            await amm_adapter.add_liquidity(POOL_ID, 10_000, 1_000)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.clawback_summary.recovered_transfer_ids == ["token-transfer-1"]
        amm_client.clawback.assert_awaited_once()
        assert amm_client.clawback.await_args.args[0]["sparkTransferId"] == "token-transfer-1"
        amm_client.add_liquidity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_liquidity_checks_position(self, amm_adapter, amm_client):
        amm_client.get_lp_position.return_value = LpPosition(lp_tokens_owned=50)

        with pytest.raises(InsufficientBalance):
            await amm_adapter.remove_liquidity(POOL_ID, 100)

        amm_client.remove_liquidity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ticks_must_match_spacing(self, amm_adapter, amm_client, wallet):
        amm_client.get_pool.return_value = _pool(tickSpacing=60, currentTick=0)

        with pytest.raises(InvalidRange):
            await amm_adapter.increase_liquidity(POOL_ID, -100, 120, 1_000, 1_000)

        assert wallet.transfers == []

    @pytest.mark.asyncio
    async def test_plan_concentrated_deposit_in_range(self, amm_adapter, amm_client):
        amm_client.get_pool.return_value = _pool(tickSpacing=60, currentTick=0)

        plan = await amm_adapter.plan_concentrated_deposit(
            POOL_ID, -600, 600, 100_000, 100_000, slippage_bps=100
        )

        assert plan.allocation.liquidity > 0
        assert 0 < plan.amount_a_min <= plan.allocation.amount_a <= 100_000
        assert 0 < plan.amount_b_min <= plan.allocation.amount_b <= 100_000

    @pytest.mark.asyncio
    async def test_decrease_liquidity_derives_minimums(self, amm_adapter, amm_client):
        amm_client.get_pool.return_value = _pool(tickSpacing=60, currentTick=0)
        amm_client.decrease_liquidity.return_value = ConcentratedLiquidityResponse(
            accepted=True, amount_a=100, amount_b=100
        )

        await amm_adapter.decrease_liquidity(POOL_ID, -600, 600, 1_000_000)

        expected_a, expected_b = amounts_for_liquidity(
            sqrt_price_x96_from_tick(0), -600, 600, 1_000_000
        )
        request = amm_client.decrease_liquidity.await_args.args[0]
        assert request["liquidityToRemove"] == "1000000"
        assert request["amountAMin"] == str(min_amount_out(expected_a, 100))
        assert request["amountBMin"] == str(min_amount_out(expected_b, 100))


class TestPoolCreation:
    @pytest.mark.asyncio
    async def test_single_sided_pool_deposits_and_confirms(self, amm_adapter, amm_client, wallet):
        amm_client.create_single_sided_pool.return_value = CreatePoolResponse(pool_id="pool-new")
        amm_client.confirm_initial_deposit.return_value = ConfirmDepositResponse(
            pool_id="pool-new", confirmed=True
        )

        result = await amm_adapter.create_single_sided_pool(
            TOKEN,
            BTC_ASSET_PUBKEY,
            initial_reserve=8_000_000,
            graduation_threshold_pct=75,
            target_raise=250_000,
            lp_fee_bps=30,
            host_fee_bps=10,
        )

        expected = calculate_virtual_reserves(8_000_000, 75, 250_000)
        assert result.reserves == expected
        request = amm_client.create_single_sided_pool.await_args.args[0]
        assert request["virtualReserveA"] == str(expected.virtual_reserve_a)
        assert request["virtualReserveB"] == str(expected.virtual_reserve_b)
        assert request["threshold"] == str(expected.threshold)
        assert request["hostNamespace"] == "flashnet_pools"
        assert wallet.transfers[0]["to"] == "pool-new"
        assert result.deposit_transfer_id == "token-transfer-1"
        assert result.confirmation.confirmed

    @pytest.mark.asyncio
    async def test_single_sided_pool_rejects_bad_threshold(self, amm_adapter, amm_client):
        with pytest.raises(ValidationError):
            await amm_adapter.create_single_sided_pool(
                TOKEN,
                BTC_ASSET_PUBKEY,
                initial_reserve=8_000_000,
                graduation_threshold_pct=50,
                target_raise=250_000,
                lp_fee_bps=30,
                host_fee_bps=10,
            )

        amm_client.create_single_sided_pool.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concentrated_pool_requires_positive_spacing(self, amm_adapter):
        with pytest.raises(InvalidRange):
            await amm_adapter.create_concentrated_pool(
                TOKEN, BTC_ASSET_PUBKEY, tick_spacing=0, initial_price="1.5",
                lp_fee_bps=30, host_fee_bps=0,
            )


class TestReads:
    @pytest.mark.asyncio
    async def test_get_pool_success(self, amm_adapter, amm_client):
        amm_client.get_pool.return_value = _pool()

        ok, pool = await amm_adapter.get_pool(POOL_ID)

        assert ok is True
        assert pool.reserve_a == 5_000_000

    @pytest.mark.asyncio
    async def test_get_pool_failure(self, amm_adapter, amm_client):
        amm_client.get_pool.side_effect = GatewayError(
            "pool not found", code="FSAG-4001", status_code=404
        )

        ok, message = await amm_adapter.get_pool(POOL_ID)

        assert ok is False
        assert "FSAG-4001" in message
