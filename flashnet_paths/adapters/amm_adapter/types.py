from __future__ import annotations

from dataclasses import dataclass, field

from flashnet_paths.core.clients.models import (
    ClawbackResponse,
    ConfirmDepositResponse,
    CreatePoolResponse,
)
from flashnet_paths.core.utils.bonding_curve import VirtualReserves
from flashnet_paths.core.utils.tick_math import LiquidityAllocation

# gateway feature flags gating each operation
FEATURE_SWAPS = "allow_swaps"
FEATURE_ADD_LIQUIDITY = "allow_add_liquidity"
FEATURE_WITHDRAW_LIQUIDITY = "allow_withdraw_liquidity"
FEATURE_WITHDRAW_FEES = "allow_withdraw_fees"
FEATURE_POOL_CREATION = "allow_pool_creation"
MASTER_KILL_SWITCH = "master_kill_switch"


@dataclass(frozen=True)
class ClawbackAttempt:
    transfer_id: str
    success: bool
    response: ClawbackResponse | None = None
    error: str | None = None


@dataclass
class AutoClawbackSummary:
    """Outcome of reclaiming transfers left at a pool after a failed submission."""

    pool_id: str
    attempts: list[ClawbackAttempt] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.attempts)

    @property
    def success_count(self) -> int:
        return sum(1 for a in self.attempts if a.success)

    @property
    def failure_count(self) -> int:
        return self.total - self.success_count

    @property
    def recovered_transfer_ids(self) -> list[str]:
        return [a.transfer_id for a in self.attempts if a.success]

    @property
    def unrecovered_transfer_ids(self) -> list[str]:
        return [a.transfer_id for a in self.attempts if not a.success]

    @property
    def fully_recovered(self) -> bool:
        return self.failure_count == 0


@dataclass(frozen=True)
class SingleSidedPoolResult:
    pool: CreatePoolResponse
    reserves: VirtualReserves
    deposit_transfer_id: str | None = None
    confirmation: ConfirmDepositResponse | None = None


@dataclass(frozen=True)
class ConcentratedDepositPlan:
    """Amounts a concentrated deposit will actually use at the current price."""

    pool_id: str
    tick_lower: int
    tick_upper: int
    allocation: LiquidityAllocation
    amount_a_min: int
    amount_b_min: int
