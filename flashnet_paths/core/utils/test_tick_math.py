from __future__ import annotations

from decimal import Decimal

import pytest

from flashnet_paths.core.constants.base import MAX_TICK, MIN_TICK
from flashnet_paths.core.errors import InvalidDecimals, InvalidRange, RoundingCollapse
from flashnet_paths.core.utils.tick_math import (
    Q96,
    Position,
    Rounding,
    amounts_for_liquidity,
    human_price_to_pool_price,
    liquidity_for_amounts,
    pool_price_to_human_price,
    price_to_tick,
    round_tick,
    sqrt_price_x96_from_tick,
    tick_range_from_prices,
    tick_to_human_price_display,
    tick_to_price,
)

SAMPLE_TICKS = [MIN_TICK, -200_000, -60, -1, 0, 1, 60, 12_345, 200_000, MAX_TICK]


class TestTickPrice:
    def test_tick_zero_is_unit_price(self):
        assert tick_to_price(0) == 1

    @pytest.mark.parametrize("tick", SAMPLE_TICKS)
    def test_round_trip(self, tick):
        assert price_to_tick(tick_to_price(tick)) == tick

    @pytest.mark.parametrize("tick", [-887_220, -600, 0, 60, 120_000, 887_220])
    def test_round_trip_on_spacing_grid(self, tick):
        assert price_to_tick(tick_to_price(tick), 60) == tick

    def test_price_is_strictly_increasing(self):
        ticks = sorted(SAMPLE_TICKS)
        prices = [tick_to_price(t) for t in ticks]
        assert all(a < b for a, b in zip(prices, prices[1:]))

    def test_between_ticks_floors_then_rounds_to_grid(self):
        price = tick_to_price(15) * Decimal("1.00001")
        assert price_to_tick(price) == 15
        assert price_to_tick(price, 10, Rounding.DOWN) == 10
        assert price_to_tick(price, 10, Rounding.UP) == 20
        assert price_to_tick(price, 10, Rounding.NEAREST) == 20

    def test_round_tick_negative(self):
        assert round_tick(-15, 10, Rounding.DOWN) == -20
        assert round_tick(-15, 10, Rounding.UP) == -10
        assert round_tick(-14, 10, Rounding.NEAREST) == -10

    @pytest.mark.parametrize("price", [0, -1, "0"])
    def test_non_positive_price(self, price):
        with pytest.raises(InvalidRange):
            price_to_tick(price)

    def test_out_of_range_tick(self):
        with pytest.raises(InvalidRange):
            tick_to_price(MAX_TICK + 1)

    def test_bad_spacing(self):
        with pytest.raises(InvalidRange):
            price_to_tick(1, 0)


class TestHumanPrices:
    def test_asset_a_base_scales_by_decimals(self):
        assert human_price_to_pool_price(2, 8, 6, base_is_asset_a=True) == Decimal("0.02")

    def test_inverted_orientation(self):
        assert human_price_to_pool_price(4, 6, 6) == Decimal("0.25")

    def test_round_trip_conversion(self):
        pool = human_price_to_pool_price("3.5", 8, 6)
        back = pool_price_to_human_price(pool, 8, 6)
        assert abs(back - Decimal("3.5")) < Decimal("1e-60")

    @pytest.mark.parametrize("decimals", [-1, 39])
    def test_rejects_bad_decimals(self, decimals):
        with pytest.raises(InvalidDecimals):
            human_price_to_pool_price(1, decimals, 6)

    def test_display_helper_returns_float(self):
        assert tick_to_human_price_display(0, 6, 6, base_is_asset_a=True) == 1.0


class TestTickRange:
    def test_range_contains_requested_prices(self):
        result = tick_range_from_prices("0.9", "1.1", 8, 8, 60, base_is_asset_a=True)
        assert result.tick_lower % 60 == 0
        assert result.tick_upper % 60 == 0
        assert result.tick_lower < result.tick_upper
        assert result.actual_price_lower <= Decimal("0.9")
        assert result.actual_price_upper >= Decimal("1.1")

    def test_inverted_orientation_still_ordered(self):
        result = tick_range_from_prices("0.9", "1.1", 8, 8, 60)
        assert result.tick_lower < result.tick_upper
        assert result.actual_price_lower <= Decimal("0.9")
        assert result.actual_price_upper >= Decimal("1.1")

    def test_inverted_bounds_are_rejected(self):
        with pytest.raises(InvalidRange):
            tick_range_from_prices("1.1", "0.9", 8, 8, 60, base_is_asset_a=True)

    def test_narrow_range_collapses(self):
        with pytest.raises(RoundingCollapse):
            tick_range_from_prices(
                "1.00001", "1.00002", 8, 8, 200, base_is_asset_a=True
            )


class TestLiquidity:
    def test_sqrt_price_at_tick_zero(self):
        assert sqrt_price_x96_from_tick(0) == Q96

    def test_sqrt_price_monotonic(self):
        ticks = [-1000, -1, 0, 1, 1000]
        values = [sqrt_price_x96_from_tick(t) for t in ticks]
        assert values == sorted(values)

    def test_allocation_never_exceeds_desired(self):
        allocation = liquidity_for_amounts(Q96, -60, 60, 1_000_000, 750_000)
        assert allocation.liquidity > 0
        assert 0 < allocation.amount_a <= 1_000_000
        assert 0 < allocation.amount_b <= 750_000
        assert allocation.amount_a + allocation.refund_a == 1_000_000
        assert allocation.amount_b + allocation.refund_b == 750_000

    def test_withdrawal_amounts_round_down(self):
        allocation = liquidity_for_amounts(Q96, -60, 60, 1_000_000, 1_000_000)
        out_a, out_b = amounts_for_liquidity(Q96, -60, 60, allocation.liquidity)
        assert out_a <= allocation.amount_a
        assert out_b <= allocation.amount_b

    def test_price_below_range_uses_only_asset_a(self):
        allocation = liquidity_for_amounts(
            sqrt_price_x96_from_tick(-120), -60, 60, 1_000_000, 1_000_000
        )
        assert allocation.amount_b == 0
        assert allocation.refund_b == 1_000_000

    def test_position_requires_ordered_ticks(self):
        with pytest.raises(InvalidRange):
            Position(pool_id="pool", tick_lower=60, tick_upper=60)
