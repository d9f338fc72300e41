"""Single-sided (bonding-curve) pool parameters.

A single-sided pool starts with only asset A deposited and prices it against
virtual reserves so that selling ``threshold`` units of A raises
``target_raise`` units of B, at which point the pool graduates.
"""

from __future__ import annotations

from dataclasses import dataclass

from flashnet_paths.core.errors import ValidationError

MIN_GRADUATION_PCT = 20
MAX_GRADUATION_PCT = 95


@dataclass(frozen=True)
class VirtualReserves:
    virtual_reserve_a: int
    virtual_reserve_b: int
    threshold: int


def parse_positive_int(value: int | str, label: str) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{label} must be an integer, got {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise ValidationError(f"{label} must be an integer, got {value!r}") from exc
    if not isinstance(value, int):
        raise ValidationError(f"{label} must be an integer, got {value!r}")
    if value <= 0:
        raise ValidationError(f"{label} must be positive, got {value}")
    return value


def calculate_virtual_reserves(
    initial_supply: int | str,
    graduation_threshold_pct: int,
    target_raise: int | str,
) -> VirtualReserves:
    if isinstance(graduation_threshold_pct, bool) or not isinstance(
        graduation_threshold_pct, int
    ):
        raise ValidationError(
            "Graduation threshold percentage must be an integer number of percent"
        )
    supply = parse_positive_int(initial_supply, "Initial token supply")
    target = parse_positive_int(target_raise, "Target raise")
    pct = graduation_threshold_pct

    if pct < MIN_GRADUATION_PCT or pct > MAX_GRADUATION_PCT:
        raise ValidationError(
            f"Graduation threshold percentage must be between "
            f"{MIN_GRADUATION_PCT} and {MAX_GRADUATION_PCT}, got {pct}"
        )

    # 100 * (f - (1 - f)) with f = pct / 100
    denom = 2 * pct - 100
    if denom <= 0:
        raise ValidationError(
            f"Graduation threshold must be greater than 50%, got {pct}%"
        )

    return VirtualReserves(
        virtual_reserve_a=(supply * pct * pct) // (100 * denom),
        virtual_reserve_b=(target * (100 - pct)) // denom,
        threshold=(supply * pct) // 100,
    )


def has_graduated(asset_a_sold: int, threshold: int) -> bool:
    return asset_a_sold >= threshold


def bonding_curve_buy(
    reserves: VirtualReserves, asset_a_sold: int, amount_b_in: int
) -> int:
    """Asset A received for ``amount_b_in`` given ``asset_a_sold`` so far.

    Fees are not applied here. Output is capped at what remains before the
    graduation threshold.
    """
    if amount_b_in < 0 or asset_a_sold < 0:
        raise ValidationError("amounts must be non-negative")
    remaining = reserves.threshold - asset_a_sold
    if remaining <= 0:
        return 0
    reserve_a = reserves.virtual_reserve_a - asset_a_sold
    if reserve_a <= 0:
        return 0
    k = reserves.virtual_reserve_a * reserves.virtual_reserve_b
    reserve_b = -(-k // reserve_a)
    out = reserve_a - -(-k // (reserve_b + amount_b_in))
    return max(0, min(out, remaining))
