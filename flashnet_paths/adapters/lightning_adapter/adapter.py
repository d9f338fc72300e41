from __future__ import annotations

import asyncio
import math
from typing import Any

from flashnet_paths.adapters.amm_adapter.adapter import AmmAdapter, is_btc
from flashnet_paths.adapters.lightning_adapter.types import (
    CompositeFlowState,
    FlowStage,
    FundLocation,
    FundReport,
    LightningQuote,
    RecoveryAction,
    RecoveryPolicy,
)
from flashnet_paths.core.adapters.BaseAdapter import BaseAdapter
from flashnet_paths.core.adapters.decorators import status_tuple
from flashnet_paths.core.clients.models import SwapResponse
from flashnet_paths.core.clients.protocols import (
    LightningFeeEstimator,
    LightningPayment,
    WalletBalance,
)
from flashnet_paths.core.config import get_poll_interval, get_transfer_timeout
from flashnet_paths.core.constants.base import (
    ADAPTER_LIGHTNING,
    BTC_ASSET_PUBKEY,
    LIGHTNING_FEE_FALLBACK_BPS,
    LIGHTNING_FEE_FLOOR_SATS,
    MAX_BPS,
)
from flashnet_paths.core.errors import (
    FlashnetError,
    PartialFailure,
    PollTimeout,
    ValidationError,
    WalletError,
)
from flashnet_paths.core.utils.cpmm import (
    min_amount_out,
    round_up_to_btc_fee_granularity,
)
from flashnet_paths.core.utils.invoices import decode_invoice_amount_sats
from flashnet_paths.core.utils.retry import poll_until


def fallback_lightning_fee(amount_sats: int) -> int:
    return max(
        LIGHTNING_FEE_FLOOR_SATS,
        math.ceil(amount_sats * LIGHTNING_FEE_FALLBACK_BPS / MAX_BPS),
    )


def compute_min_btc_out(quoted_out: int, slippage_bps: int, btc_needed: int) -> int:
    """Slippage floor on the quoted output, never below what the invoice needs."""
    return max(min_amount_out(quoted_out, slippage_bps), btc_needed)


def _balance_location(asset: str) -> FundLocation:
    return FundLocation.BTC_BALANCE if is_btc(asset) else FundLocation.TOKEN_BALANCE


class LightningAdapter(BaseAdapter):
    """Pays Lightning invoices from token balances by swapping into BTC first.

    The swap and the payment are not atomic. Once the swap is submitted the
    flow always runs to a terminal stage, recovering the BTC according to the
    chosen ``RecoveryPolicy`` when the payment cannot be made.
    """

    adapter_type = ADAPTER_LIGHTNING

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet: Any,
        amm: AmmAdapter | None = None,
    ) -> None:
        super().__init__("lightning_adapter", config)
        self.amm = amm or AmmAdapter(self.config, wallet=wallet)
        self.wallet = self.amm.wallet
        self.fee_estimator = (
            wallet if isinstance(wallet, LightningFeeEstimator) else None
        )
        self.transfer_timeout_s = float(
            self.config.get("transfer_timeout_s", get_transfer_timeout())
        )
        self.poll_interval_s = float(
            self.config.get("poll_interval_s", get_poll_interval())
        )

    async def close(self) -> None:
        await self.amm.close()

    async def estimate_lightning_fee(self, invoice: str, amount_sats: int) -> int:
        if self.fee_estimator is not None:
            try:
                return int(await self.fee_estimator.estimate_lightning_fee(invoice))
            except Exception as exc:
                self.logger.warning(f"Wallet fee estimate failed, using fallback: {exc}")
        return fallback_lightning_fee(amount_sats)

    async def get_pay_lightning_with_token_quote(
        self,
        invoice: str,
        token_asset: str,
        *,
        max_slippage_bps: int | None = None,
        integrator_fee_bps: int = 0,
    ) -> LightningQuote:
        """Price paying ``invoice`` with ``token_asset`` without moving any funds."""
        if is_btc(token_asset):
            raise ValidationError("Pay the invoice from BTC directly; token_asset is BTC")
        slippage = (
            self.amm.default_slippage_bps if max_slippage_bps is None else max_slippage_bps
        )
        invoice_sats = decode_invoice_amount_sats(invoice)
        if invoice_sats <= 0:
            raise ValidationError("Zero-amount invoices are not supported")

        fee = await self.estimate_lightning_fee(invoice, invoice_sats)
        btc_needed = invoice_sats + fee
        swap_target = round_up_to_btc_fee_granularity(btc_needed)

        quote = await self.amm.quotes.best_quote_for_output(
            token_asset,
            BTC_ASSET_PUBKEY,
            swap_target,
            integrator_fee_bps=integrator_fee_bps,
        )
        min_btc_out = compute_min_btc_out(quote.amount_out, slippage, btc_needed)
        await self.amm.check_swap_min_amounts(
            token_asset, BTC_ASSET_PUBKEY, quote.amount_in, min_btc_out
        )
        return LightningQuote(
            invoice_amount_sats=invoice_sats,
            estimated_fee_sats=fee,
            btc_needed_sats=btc_needed,
            swap_target_sats=swap_target,
            token_asset=token_asset,
            pool_id=quote.pool_id,
            token_amount_in=quote.amount_in,
            expected_btc_out=quote.amount_out,
            min_btc_out=min_btc_out,
            price_impact_pct=quote.price_impact_pct,
            quote=quote,
        )

    async def pay_lightning_with_token(
        self,
        invoice: str,
        token_asset: str,
        *,
        max_slippage_bps: int | None = None,
        recovery: RecoveryPolicy = RecoveryPolicy.RETAIN_BTC,
        integrator_fee_bps: int = 0,
        integrator_public_key: str = "",
        raise_on_failure: bool = False,
    ) -> CompositeFlowState:
        slippage = (
            self.amm.default_slippage_bps if max_slippage_bps is None else max_slippage_bps
        )
        state = CompositeFlowState(invoice=invoice, token_asset=token_asset)
        state.quote = await self.get_pay_lightning_with_token_quote(
            invoice,
            token_asset,
            max_slippage_bps=slippage,
            integrator_fee_bps=integrator_fee_bps,
        )
        await self.amm.check_balance(token_asset, state.quote.token_amount_in)
        state.btc_balance_before = (await self.wallet.get_balance()).btc_sats
        self.logger.info(
            f"Paying {state.quote.invoice_amount_sats} sats with "
            f"{state.quote.token_amount_in} of {token_asset[:8]}... via {state.quote.pool_id}"
        )

        # Funds move from here on; the flow finishes even if the caller cancels.
        flow = asyncio.ensure_future(
            self._run(
                state,
                recovery=recovery,
                slippage_bps=slippage,
                integrator_fee_bps=integrator_fee_bps,
                integrator_public_key=integrator_public_key,
            )
        )
        cancelled = False
        while not flow.done():
            try:
                await asyncio.shield(flow)
            except asyncio.CancelledError:
                cancelled = True
                if flow.done():
                    break
                self.logger.warning(
                    f"Cancellation requested at {state.stage}; finishing flow first"
                )
        if cancelled:
            raise asyncio.CancelledError()
        flow.result()

        if raise_on_failure and not state.succeeded:
            raise PartialFailure(
                f"Lightning payment ended in {state.stage}: {state.error}", state=state
            )
        return state

    async def _run(
        self,
        state: CompositeFlowState,
        *,
        recovery: RecoveryPolicy,
        slippage_bps: int,
        integrator_fee_bps: int,
        integrator_public_key: str,
    ) -> CompositeFlowState:
        quote = state.quote
        assert quote is not None

        state.advance(FlowStage.SWAP_SUBMITTED)
        try:
            swap = await self.amm.swap(
                quote.pool_id,
                quote.token_asset,
                BTC_ASSET_PUBKEY,
                quote.token_amount_in,
                min_amount_out=quote.min_btc_out,
                max_slippage_bps=slippage_bps,
                integrator_fee_bps=integrator_fee_bps,
                integrator_public_key=integrator_public_key,
            )
        except Exception as exc:
            error = FlashnetError.from_unknown(exc)
            report = self._locate_after_error(
                error, quote.token_asset, quote.token_amount_in
            )
            return await self._finish(state, FlowStage.FAILED, report, error=str(error))

        state.swap = swap
        if not swap.accepted:
            report = await self._locate_after_rejection(
                swap, quote.pool_id, quote.token_asset, quote.token_amount_in
            )
            return await self._finish(
                state,
                FlowStage.FAILED,
                report,
                error=f"Swap rejected ({swap.rejection}): {swap.error}",
            )

        state.btc_received = swap.amount_out or 0
        state.advance(FlowStage.SWAP_CONFIRMED)

        if state.btc_received > 0:
            try:
                await self._wait_for_btc(state.btc_balance_before or 0, state.btc_received)
            except Exception as exc:
                error = FlashnetError.from_unknown(exc)
                report = FundReport(
                    location=FundLocation.BTC_INBOUND_PENDING,
                    asset=BTC_ASSET_PUBKEY,
                    amount=state.btc_received,
                    transfer_id=swap.outbound_transfer_id,
                    note=(
                        "swap output not yet credited to the wallet"
                        if isinstance(error, PollTimeout)
                        else "wallet balance unavailable while waiting for the swap output"
                    ),
                )
                return await self._finish(state, FlowStage.FAILED, report, error=str(error))

        if state.btc_received < quote.btc_needed_sats:
            return await self._recover(
                state,
                recovery,
                slippage_bps,
                reason=(
                    f"Swap returned {state.btc_received} sats, "
                    f"invoice needs {quote.btc_needed_sats}"
                ),
            )

        state.advance(FlowStage.SECONDARY_ACTION_ATTEMPTED)
        try:
            payment = await self.wallet.pay_lightning_invoice(
                state.invoice, quote.estimated_fee_sats
            )
        except Exception as exc:
            self.logger.error(f"Lightning payment raised: {exc}")
            payment = LightningPayment(success=False, error=str(exc))
        state.payment = payment

        if payment.success:
            report = FundReport(
                location=FundLocation.LIGHTNING_PAID,
                asset=BTC_ASSET_PUBKEY,
                amount=quote.invoice_amount_sats,
                transfer_id=payment.payment_id,
            )
            return await self._finish(state, FlowStage.COMPLETED, report)

        return await self._recover(
            state,
            recovery,
            slippage_bps,
            reason=f"Lightning payment failed: {payment.error}",
        )

    async def _wait_for_btc(self, balance_before: int, amount: int) -> WalletBalance:
        target = balance_before + amount

        async def _credited() -> WalletBalance | None:
            try:
                balance = await self.wallet.get_balance()
            except Exception as exc:
                raise WalletError(f"Balance check failed: {exc}") from exc
            return balance if balance.btc_sats >= target else None

        return await poll_until(
            _credited,
            timeout_s=self.transfer_timeout_s,
            interval_s=self.poll_interval_s,
            description=f"{amount} sats from the swap",
        )

    async def _recover(
        self,
        state: CompositeFlowState,
        policy: RecoveryPolicy,
        slippage_bps: int,
        *,
        reason: str,
    ) -> CompositeFlowState:
        quote = state.quote
        assert quote is not None
        amount = state.btc_received
        self.logger.warning(f"Recovering {amount} sats with {policy}: {reason}")

        if policy is RecoveryPolicy.RETAIN_BTC:
            state.recovery_action = RecoveryAction.RETAINED_AS_BTC
            report = FundReport(
                location=FundLocation.BTC_BALANCE,
                asset=BTC_ASSET_PUBKEY,
                amount=amount,
                transfer_id=state.swap.outbound_transfer_id if state.swap else None,
                note="kept as spendable BTC",
            )
            return await self._finish(state, FlowStage.ROLLED_BACK, report, error=reason)

        if amount <= 0:
            report = FundReport(
                location=FundLocation.BTC_BALANCE, asset=BTC_ASSET_PUBKEY, amount=0
            )
            return await self._finish(state, FlowStage.FAILED, report, error=reason)

        try:
            sim = await self.amm.quotes.simulate(
                quote.pool_id, BTC_ASSET_PUBKEY, quote.token_asset, amount
            )
            reverse = await self.amm.swap(
                quote.pool_id,
                BTC_ASSET_PUBKEY,
                quote.token_asset,
                amount,
                min_amount_out=min_amount_out(sim.amount_out, slippage_bps),
                max_slippage_bps=slippage_bps,
            )
        except Exception as exc:
            error = FlashnetError.from_unknown(exc)
            report = self._locate_after_error(error, BTC_ASSET_PUBKEY, amount)
            return await self._finish(
                state, FlowStage.FAILED, report, error=f"{reason}; reverse swap failed: {error}"
            )

        state.reverse_swap = reverse
        if reverse.accepted:
            state.recovery_action = RecoveryAction.REVERSE_SWAPPED
            report = FundReport(
                location=FundLocation.TOKEN_BALANCE,
                asset=quote.token_asset,
                amount=reverse.amount_out or 0,
                transfer_id=reverse.outbound_transfer_id,
                note="swapped back to the token",
            )
            return await self._finish(state, FlowStage.ROLLED_BACK, report, error=reason)

        report = await self._locate_after_rejection(
            reverse, quote.pool_id, BTC_ASSET_PUBKEY, amount
        )
        return await self._finish(
            state,
            FlowStage.FAILED,
            report,
            error=f"{reason}; reverse swap rejected: {reverse.error}",
        )

    def _locate_after_error(
        self, exc: FlashnetError, asset: str, amount: int
    ) -> FundReport:
        summary = exc.clawback_summary
        if summary is not None and summary.unrecovered_transfer_ids:
            return FundReport(
                location=FundLocation.POOL_PENDING_CLAWBACK,
                asset=asset,
                amount=amount,
                transfer_id=summary.unrecovered_transfer_ids[0],
            )
        note = "clawed back" if summary is not None else None
        return FundReport(
            location=_balance_location(asset), asset=asset, amount=amount, note=note
        )

    async def _locate_after_rejection(
        self, swap: SwapResponse, pool_id: str, asset: str, amount: int
    ) -> FundReport:
        if swap.refunded_amount:
            return FundReport(
                location=_balance_location(asset),
                asset=asset,
                amount=swap.refunded_amount,
                transfer_id=swap.refund_transfer_id,
                note="refunded by the pool",
            )
        if not swap.inbound_transfer_id:
            return FundReport(location=_balance_location(asset), asset=asset, amount=amount)

        summary = await self.amm.clawback_multiple([swap.inbound_transfer_id], pool_id)
        if summary.fully_recovered:
            return FundReport(
                location=_balance_location(asset),
                asset=asset,
                amount=amount,
                transfer_id=swap.inbound_transfer_id,
                note="clawed back",
            )
        return FundReport(
            location=FundLocation.POOL_PENDING_CLAWBACK,
            asset=asset,
            amount=amount,
            transfer_id=swap.inbound_transfer_id,
        )

    async def _finish(
        self,
        state: CompositeFlowState,
        stage: FlowStage,
        report: FundReport,
        *,
        error: str | None = None,
    ) -> CompositeFlowState:
        state.funds = report
        state.error = error
        if report.location is FundLocation.LIGHTNING_PAID:
            fee_paid = state.payment.fee_paid_sats if state.payment else 0
            state.expected_btc_delta = state.btc_received - report.amount - fee_paid
        elif report.location is FundLocation.BTC_BALANCE:
            state.expected_btc_delta = report.amount
        else:
            state.expected_btc_delta = 0
        state.advance(stage)

        try:
            state.btc_balance_after = (await self.wallet.get_balance()).btc_sats
        except Exception as exc:
            self.logger.warning(f"Could not read final balance: {exc}")

        log = self.logger.info if stage is FlowStage.COMPLETED else self.logger.error
        log(
            f"Lightning flow {stage}: {report.amount} of {report.asset[:8]}... "
            f"at {report.location}" + (f" ({error})" if error else "")
        )
        return state

    @status_tuple
    async def get_quote(
        self,
        invoice: str,
        token_asset: str,
        *,
        max_slippage_bps: int | None = None,
    ) -> LightningQuote:
        return await self.get_pay_lightning_with_token_quote(
            invoice, token_asset, max_slippage_bps=max_slippage_bps
        )

    @status_tuple
    async def create_invoice(self, amount_sats: int, memo: str = "") -> str:
        if amount_sats <= 0:
            raise ValidationError(f"amount_sats must be positive, got {amount_sats}")
        return await self.wallet.create_lightning_invoice(amount_sats, memo)
