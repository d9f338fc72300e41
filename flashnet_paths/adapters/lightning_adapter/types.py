from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from flashnet_paths.core.clients.models import SwapResponse
from flashnet_paths.core.clients.protocols import LightningPayment
from flashnet_paths.core.quotes import Quote


class FlowStage(StrEnum):
    NOT_STARTED = "NotStarted"
    SWAP_SUBMITTED = "SwapSubmitted"
    SWAP_CONFIRMED = "SwapConfirmed"
    SECONDARY_ACTION_ATTEMPTED = "SecondaryActionAttempted"
    COMPLETED = "Completed"
    ROLLED_BACK = "RolledBack"
    FAILED = "Failed"


TERMINAL_STAGES = frozenset({FlowStage.COMPLETED, FlowStage.ROLLED_BACK, FlowStage.FAILED})

# Stages each stage may move to.
_TRANSITIONS: dict[FlowStage, frozenset[FlowStage]] = {
    FlowStage.NOT_STARTED: frozenset({FlowStage.SWAP_SUBMITTED, FlowStage.FAILED}),
    FlowStage.SWAP_SUBMITTED: frozenset({FlowStage.SWAP_CONFIRMED, FlowStage.FAILED}),
    FlowStage.SWAP_CONFIRMED: frozenset(
        {FlowStage.SECONDARY_ACTION_ATTEMPTED, FlowStage.ROLLED_BACK, FlowStage.FAILED}
    ),
    FlowStage.SECONDARY_ACTION_ATTEMPTED: frozenset(
        {FlowStage.COMPLETED, FlowStage.ROLLED_BACK, FlowStage.FAILED}
    ),
}


class RecoveryPolicy(StrEnum):
    RETAIN_BTC = "retain_btc"
    REVERSE_SWAP = "reverse_swap"


class RecoveryAction(StrEnum):
    RETAINED_AS_BTC = "retained_as_btc"
    REVERSE_SWAPPED = "reverse_swapped"


class FundLocation(StrEnum):
    TOKEN_BALANCE = "token_balance"
    BTC_BALANCE = "btc_balance"
    POOL_PENDING_CLAWBACK = "pool_pending_clawback"
    BTC_INBOUND_PENDING = "btc_inbound_pending"
    LIGHTNING_PAID = "lightning_paid"


@dataclass(frozen=True)
class FundReport:
    """Where the flow's value sits once it stops."""

    location: FundLocation
    asset: str
    amount: int
    transfer_id: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class LightningQuote:
    invoice_amount_sats: int
    estimated_fee_sats: int
    btc_needed_sats: int
    swap_target_sats: int
    token_asset: str
    pool_id: str
    token_amount_in: int
    expected_btc_out: int
    min_btc_out: int
    price_impact_pct: Decimal
    quote: Quote


@dataclass
class CompositeFlowState:
    """Progress and outcome of one pay-with-token flow."""

    invoice: str
    token_asset: str
    stage: FlowStage = FlowStage.NOT_STARTED
    history: list[FlowStage] = field(default_factory=lambda: [FlowStage.NOT_STARTED])
    quote: LightningQuote | None = None
    swap: SwapResponse | None = None
    btc_received: int = 0
    payment: LightningPayment | None = None
    reverse_swap: SwapResponse | None = None
    recovery_action: RecoveryAction | None = None
    funds: FundReport | None = None
    error: str | None = None
    btc_balance_before: int | None = None
    btc_balance_after: int | None = None
    # BTC the wallet should hold relative to the start, given ``funds``
    expected_btc_delta: int = 0

    def advance(self, stage: FlowStage) -> None:
        allowed = _TRANSITIONS.get(self.stage, frozenset())
        if stage not in allowed:
            raise ValueError(f"Illegal flow transition {self.stage} -> {stage}")
        self.stage = stage
        self.history.append(stage)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def succeeded(self) -> bool:
        return self.stage is FlowStage.COMPLETED

    @property
    def observed_btc_delta(self) -> int | None:
        if self.btc_balance_before is None or self.btc_balance_after is None:
            return None
        return self.btc_balance_after - self.btc_balance_before
