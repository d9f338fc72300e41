"""Constant-product swap math in integer units.

Fee rates are basis points charged on the input amount. Every rounding step
favours the pool: outputs round down and required inputs round up.
"""

from __future__ import annotations

from flashnet_paths.core.constants.base import BTC_VARIABLE_FEE_BITS, MAX_BPS
from flashnet_paths.core.errors import NoLiquidity, ValidationError


def _ceil_div(num: int, den: int) -> int:
    return -((-num) // den)


def _check_bps(bps: int, label: str) -> None:
    if isinstance(bps, bool) or not isinstance(bps, int) or not 0 <= bps <= MAX_BPS:
        raise ValidationError(f"{label} must be an integer within [0, {MAX_BPS}], got {bps!r}")


def _check_amount(amount: int, label: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError(f"{label} must be a non-negative integer, got {amount!r}")


def amount_out_for_input(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 0
) -> int:
    _check_amount(amount_in, "amount_in")
    _check_bps(fee_bps, "fee_bps")
    if reserve_in <= 0 or reserve_out <= 0:
        raise NoLiquidity("Pool has no reserves")
    effective_in = amount_in * (MAX_BPS - fee_bps) // MAX_BPS
    return (effective_in * reserve_out) // (reserve_in + effective_in)


def amount_in_for_output(
    amount_out: int,
    reserve_in: int,
    reserve_out: int,
    *,
    lp_fee_bps: int = 0,
    host_fee_bps: int = 0,
    integrator_fee_bps: int = 0,
    input_is_asset_a: bool = True,
) -> tuple[int, int]:
    """Input needed to receive ``amount_out``; returns ``(amount_in, fee)``.

    Selling asset A pays the LP fee on the input and the integrator fee on the
    output, so both are grossed up in turn. Selling asset B pays every fee on
    the input.
    """
    _check_amount(amount_out, "amount_out")
    for bps, label in (
        (lp_fee_bps, "lp_fee_bps"),
        (host_fee_bps, "host_fee_bps"),
        (integrator_fee_bps, "integrator_fee_bps"),
    ):
        _check_bps(bps, label)
    if reserve_in <= 0 or reserve_out <= 0:
        raise NoLiquidity("Pool has no reserves")
    if amount_out >= reserve_out:
        raise NoLiquidity(
            f"Requested output {amount_out} exceeds pool reserve {reserve_out}",
            details={"amount_out": amount_out, "reserve_out": reserve_out},
        )

    effective_in = (reserve_in * amount_out) // (reserve_out - amount_out) + 1

    if input_is_asset_a:
        amount_in = _ceil_div(effective_in * (MAX_BPS + lp_fee_bps), MAX_BPS)
        if integrator_fee_bps:
            amount_in = _ceil_div(amount_in * (MAX_BPS + integrator_fee_bps), MAX_BPS)
    else:
        total_bps = lp_fee_bps + host_fee_bps + integrator_fee_bps
        amount_in = _ceil_div(effective_in * (MAX_BPS + total_bps), MAX_BPS)
    return amount_in, amount_in - effective_in


def min_amount_out(expected: int, slippage_bps: int) -> int:
    """Slippage floor for ``expected``, rounded down."""
    _check_amount(expected, "expected")
    _check_bps(slippage_bps, "slippage_bps")
    return expected * (MAX_BPS - slippage_bps) // MAX_BPS


def round_up_to_btc_fee_granularity(amount_sats: int) -> int:
    """Round up to the next multiple the AMM can pay out in BTC."""
    _check_amount(amount_sats, "amount_sats")
    mask = (1 << BTC_VARIABLE_FEE_BITS) - 1
    return (amount_sats + mask) & ~mask


def price_impact_bps(amount_in: int, reserve_in: int) -> int:
    if reserve_in <= 0:
        raise NoLiquidity("Pool has no reserves")
    return (amount_in * MAX_BPS) // (reserve_in + amount_in)
