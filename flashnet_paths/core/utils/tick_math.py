"""Tick and price math for concentrated-liquidity pools.

Pool price is asset B per unit of asset A in smallest units, and
``price(tick) = 1.0001 ** tick``. Settlement quantities (ticks, sqrt prices,
liquidity, amounts) are integers; prices are ``Decimal`` evaluated in a local
high-precision context. Only the ``*_display`` helpers return floats.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Context, Decimal, localcontext
from enum import StrEnum
from functools import lru_cache

from flashnet_paths.core.constants.base import MAX_TICK, MIN_TICK, TICK_BASE
from flashnet_paths.core.errors import InvalidDecimals, InvalidRange, RoundingCollapse

Q96 = 1 << 96
Q32 = 1 << 32
MAX_DECIMALS = 38

_CTX = Context(prec=80)
_BASE = Decimal(TICK_BASE)


class Rounding(StrEnum):
    DOWN = "down"
    UP = "up"
    NEAREST = "nearest"


@dataclass(frozen=True)
class TickRange:
    tick_lower: int
    tick_upper: int
    actual_price_lower: Decimal
    actual_price_upper: Decimal


@dataclass(frozen=True)
class Position:
    pool_id: str
    tick_lower: int
    tick_upper: int
    liquidity: int = 0

    def __post_init__(self) -> None:
        if self.tick_lower >= self.tick_upper:
            raise InvalidRange(
                f"tick_lower ({self.tick_lower}) must be below tick_upper ({self.tick_upper})"
            )
        if self.liquidity < 0:
            raise InvalidRange(f"liquidity must be non-negative, got {self.liquidity}")


@dataclass(frozen=True)
class LiquidityAllocation:
    liquidity: int
    amount_a: int
    amount_b: int
    refund_a: int
    refund_b: int


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _check_tick(tick: int) -> None:
    if not isinstance(tick, int) or isinstance(tick, bool):
        raise InvalidRange(f"tick must be an integer, got {tick!r}")
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidRange(f"tick {tick} out of range [{MIN_TICK}, {MAX_TICK}]")


def _check_spacing(tick_spacing: int) -> None:
    if not isinstance(tick_spacing, int) or tick_spacing <= 0:
        raise InvalidRange(f"tick_spacing must be a positive integer, got {tick_spacing!r}")


def _check_decimals(decimals: int, label: str) -> None:
    if not isinstance(decimals, int) or isinstance(decimals, bool):
        raise InvalidDecimals(f"{label} must be an integer, got {decimals!r}")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise InvalidDecimals(f"{label} must be within [0, {MAX_DECIMALS}], got {decimals}")


@lru_cache(maxsize=4096)
def _tick_power(tick: int) -> Decimal:
    with localcontext(_CTX):
        return _BASE**tick


def tick_to_price(tick: int) -> Decimal:
    _check_tick(tick)
    return _tick_power(tick)


def _floor_tick(price: Decimal) -> int:
    """Largest tick whose price does not exceed ``price``."""
    with localcontext(_CTX):
        estimate = int((price.ln() / _BASE.ln()).to_integral_value(rounding=ROUND_FLOOR))
    estimate = max(MIN_TICK, min(MAX_TICK, estimate))
    while estimate > MIN_TICK and _tick_power(estimate) > price:
        estimate -= 1
    while estimate < MAX_TICK and _tick_power(estimate + 1) <= price:
        estimate += 1
    return estimate


def round_tick(tick: int, tick_spacing: int, rounding: Rounding = Rounding.DOWN) -> int:
    _check_spacing(tick_spacing)
    rounding = Rounding(rounding)
    if rounding is Rounding.DOWN:
        return (tick // tick_spacing) * tick_spacing
    if rounding is Rounding.UP:
        return -((-tick) // tick_spacing) * tick_spacing
    down = (tick // tick_spacing) * tick_spacing
    up = down if down == tick else down + tick_spacing
    return down if tick - down < up - tick else up


def price_to_tick(
    price: Decimal | int | float | str,
    tick_spacing: int = 1,
    rounding: Rounding = Rounding.DOWN,
) -> int:
    """Map a pool price to a tick on the ``tick_spacing`` grid.

    The raw tick is the largest tick whose price is <= ``price``; it is then
    floored (``DOWN``), ceiled (``UP``) or rounded (``NEAREST``) to the grid.
    """
    _check_spacing(tick_spacing)
    value = _to_decimal(price)
    if not value.is_finite() or value <= 0:
        raise InvalidRange(f"price must be positive, got {price!r}")
    if value < _tick_power(MIN_TICK) or value > _tick_power(MAX_TICK):
        raise InvalidRange(f"price {price} is outside the representable tick range")

    tick = round_tick(_floor_tick(value), tick_spacing, rounding)
    if tick < MIN_TICK:
        tick += tick_spacing
    elif tick > MAX_TICK:
        tick -= tick_spacing
    return tick


def human_price_to_pool_price(
    human_price: Decimal | int | float | str,
    base_decimals: int,
    quote_decimals: int,
    base_is_asset_a: bool = False,
) -> Decimal:
    """Convert "quote per base" in whole units to the pool's B-per-A price."""
    _check_decimals(base_decimals, "base_decimals")
    _check_decimals(quote_decimals, "quote_decimals")
    value = _to_decimal(human_price)
    if not value.is_finite() or value <= 0:
        raise InvalidRange(f"price must be positive, got {human_price!r}")

    with localcontext(_CTX):
        if base_is_asset_a:
            return value * Decimal(10) ** (quote_decimals - base_decimals)
        return Decimal(10) ** (base_decimals - quote_decimals) / value


def pool_price_to_human_price(
    pool_price: Decimal | int | str,
    base_decimals: int,
    quote_decimals: int,
    base_is_asset_a: bool = False,
) -> Decimal:
    _check_decimals(base_decimals, "base_decimals")
    _check_decimals(quote_decimals, "quote_decimals")
    value = _to_decimal(pool_price)
    if value <= 0:
        raise InvalidRange(f"price must be positive, got {pool_price!r}")
    with localcontext(_CTX):
        if base_is_asset_a:
            return value / Decimal(10) ** (quote_decimals - base_decimals)
        return Decimal(10) ** (base_decimals - quote_decimals) / value


def tick_range_from_prices(
    price_lower: Decimal | int | float | str,
    price_upper: Decimal | int | float | str,
    base_decimals: int,
    quote_decimals: int,
    tick_spacing: int,
    base_is_asset_a: bool = False,
) -> TickRange:
    """Ticks bounding a human price range on the pool's tick grid.

    The lower bound is floored and the upper bound ceiled onto the grid. If
    both still land on the same tick the range has collapsed and
    ``RoundingCollapse`` is raised.
    """
    lower = _to_decimal(price_lower)
    upper = _to_decimal(price_upper)
    if lower <= 0 or upper <= 0:
        raise InvalidRange("prices must be positive")
    if lower >= upper:
        raise InvalidRange(f"price_lower ({lower}) must be below price_upper ({upper})")

    pool_a = human_price_to_pool_price(lower, base_decimals, quote_decimals, base_is_asset_a)
    pool_b = human_price_to_pool_price(upper, base_decimals, quote_decimals, base_is_asset_a)
    pool_low, pool_high = (pool_a, pool_b) if pool_a < pool_b else (pool_b, pool_a)

    tick_lower = price_to_tick(pool_low, tick_spacing, Rounding.DOWN)
    tick_upper = price_to_tick(pool_high, tick_spacing, Rounding.UP)
    if tick_lower >= tick_upper:
        raise RoundingCollapse(
            f"Price range [{lower}, {upper}] collapses to tick {tick_lower} "
            f"at spacing {tick_spacing}",
            details={"tick": tick_lower, "tick_spacing": tick_spacing},
        )

    human_at_lower = pool_price_to_human_price(
        tick_to_price(tick_lower), base_decimals, quote_decimals, base_is_asset_a
    )
    human_at_upper = pool_price_to_human_price(
        tick_to_price(tick_upper), base_decimals, quote_decimals, base_is_asset_a
    )
    return TickRange(
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        actual_price_lower=min(human_at_lower, human_at_upper),
        actual_price_upper=max(human_at_lower, human_at_upper),
    )


def tick_to_human_price_display(
    tick: int, base_decimals: int, quote_decimals: int, base_is_asset_a: bool = False
) -> float:
    return float(
        pool_price_to_human_price(
            tick_to_price(tick), base_decimals, quote_decimals, base_is_asset_a
        )
    )


def pool_price_to_human_price_display(
    pool_price: Decimal | int | str,
    base_decimals: int,
    quote_decimals: int,
    base_is_asset_a: bool = False,
) -> float:
    return float(
        pool_price_to_human_price(pool_price, base_decimals, quote_decimals, base_is_asset_a)
    )


def sqrt_price_x96_from_tick(tick: int) -> int:
    _check_tick(tick)

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = (1 << 256) // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def _ceil_div(num: int, den: int) -> int:
    return -((-num) // den)


def _liquidity_for_amount_a(sqrt_lo: int, sqrt_hi: int, amount_a: int) -> int:
    return (amount_a * sqrt_lo * sqrt_hi) // (Q96 * (sqrt_hi - sqrt_lo))


def _liquidity_for_amount_b(sqrt_lo: int, sqrt_hi: int, amount_b: int) -> int:
    return (amount_b * Q96) // (sqrt_hi - sqrt_lo)


def _amount_a_for_liquidity(sqrt_lo: int, sqrt_hi: int, liquidity: int, *, round_up: bool) -> int:
    num = liquidity * Q96 * (sqrt_hi - sqrt_lo)
    den = sqrt_hi * sqrt_lo
    return _ceil_div(num, den) if round_up else num // den


def _amount_b_for_liquidity(sqrt_lo: int, sqrt_hi: int, liquidity: int, *, round_up: bool) -> int:
    num = liquidity * (sqrt_hi - sqrt_lo)
    return _ceil_div(num, Q96) if round_up else num // Q96


def _position_bounds(tick_lower: int, tick_upper: int) -> tuple[int, int]:
    _check_tick(tick_lower)
    _check_tick(tick_upper)
    if tick_lower >= tick_upper:
        raise InvalidRange(f"tick_lower ({tick_lower}) must be below tick_upper ({tick_upper})")
    return sqrt_price_x96_from_tick(tick_lower), sqrt_price_x96_from_tick(tick_upper)


def liquidity_for_amounts(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    amount_a_desired: int,
    amount_b_desired: int,
) -> LiquidityAllocation:
    """Largest liquidity the desired amounts support, plus what is left over.

    Amounts actually used are rounded up from the liquidity, which is itself
    rounded down, so they never exceed the desired amounts.
    """
    if amount_a_desired < 0 or amount_b_desired < 0:
        raise InvalidRange("desired amounts must be non-negative")
    if sqrt_price_x96 <= 0:
        raise InvalidRange("sqrt_price_x96 must be positive")
    sqrt_lo, sqrt_hi = _position_bounds(tick_lower, tick_upper)

    if sqrt_price_x96 <= sqrt_lo:
        liquidity = _liquidity_for_amount_a(sqrt_lo, sqrt_hi, amount_a_desired)
    elif sqrt_price_x96 >= sqrt_hi:
        liquidity = _liquidity_for_amount_b(sqrt_lo, sqrt_hi, amount_b_desired)
    else:
        liquidity = min(
            _liquidity_for_amount_a(sqrt_price_x96, sqrt_hi, amount_a_desired),
            _liquidity_for_amount_b(sqrt_lo, sqrt_price_x96, amount_b_desired),
        )

    amount_a, amount_b = amounts_for_liquidity(
        sqrt_price_x96, tick_lower, tick_upper, liquidity, round_up=True
    )
    return LiquidityAllocation(
        liquidity=liquidity,
        amount_a=amount_a,
        amount_b=amount_b,
        refund_a=amount_a_desired - amount_a,
        refund_b=amount_b_desired - amount_b,
    )


def amounts_for_liquidity(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    liquidity: int,
    *,
    round_up: bool = False,
) -> tuple[int, int]:
    if liquidity < 0:
        raise InvalidRange(f"liquidity must be non-negative, got {liquidity}")
    sqrt_lo, sqrt_hi = _position_bounds(tick_lower, tick_upper)

    if sqrt_price_x96 <= sqrt_lo:
        return _amount_a_for_liquidity(sqrt_lo, sqrt_hi, liquidity, round_up=round_up), 0
    if sqrt_price_x96 >= sqrt_hi:
        return 0, _amount_b_for_liquidity(sqrt_lo, sqrt_hi, liquidity, round_up=round_up)
    return (
        _amount_a_for_liquidity(sqrt_price_x96, sqrt_hi, liquidity, round_up=round_up),
        _amount_b_for_liquidity(sqrt_lo, sqrt_price_x96, liquidity, round_up=round_up),
    )
