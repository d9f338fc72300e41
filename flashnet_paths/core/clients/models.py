"""Pydantic models for AMM gateway payloads.

Amount fields arrive as JSON numbers or decimal strings; both are parsed into
``int`` so settlement math never touches floats.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from flashnet_paths.core.errors import (
    CODE_INSUFFICIENT_LIQUIDITY,
    CODE_PHASE_NOT_ALLOWED,
    CODE_POOL_NOT_FOUND,
    CODE_SLIPPAGE_EXCEEDED,
)


def _to_int(value: Any) -> Any:
    if value is None or isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"expected an integral amount, got {value}")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dec = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"not an amount: {value!r}") from exc
        if dec != dec.to_integral_value():
            raise ValueError(f"expected an integral amount, got {value!r}")
        return int(dec)
    return value


def _to_decimal(value: Any) -> Any:
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        text = str(value).strip()
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"not a decimal: {value!r}") from exc
    return value


Amount = Annotated[int, BeforeValidator(_to_int)]
DecimalValue = Annotated[Decimal, BeforeValidator(_to_decimal)]


class GatewayModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RejectionReason(StrEnum):
    NO_LIQUIDITY = "no_liquidity"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    POOL_INACTIVE = "pool_inactive"
    OTHER = "other"


def rejection_reason(code: str | None, message: str | None) -> RejectionReason:
    text = (message or "").lower()
    if code == CODE_INSUFFICIENT_LIQUIDITY or "liquidity" in text:
        return RejectionReason.NO_LIQUIDITY
    if code == CODE_SLIPPAGE_EXCEEDED or "slippage" in text:
        return RejectionReason.SLIPPAGE_EXCEEDED
    if code in (CODE_PHASE_NOT_ALLOWED, CODE_POOL_NOT_FOUND) or "inactive" in text:
        return RejectionReason.POOL_INACTIVE
    return RejectionReason.OTHER


class CurveType(StrEnum):
    CONSTANT_PRODUCT = "CONSTANT_PRODUCT"
    CONCENTRATED = "CONCENTRATED"
    SINGLE_SIDED = "SINGLE_SIDED"
    UNKNOWN = "UNKNOWN"


class PoolStatus(StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    GRADUATED = "GRADUATED"
    INACTIVE = "INACTIVE"
    UNKNOWN = "UNKNOWN"


def _curve_type(value: Any) -> CurveType:
    text = str(value or "").strip().upper().replace("-", "_")
    aliases = {"V3": "CONCENTRATED", "CONCENTRATED_LIQUIDITY": "CONCENTRATED"}
    text = aliases.get(text, text)
    try:
        return CurveType(text)
    except ValueError:
        return CurveType.UNKNOWN


def _pool_status(value: Any) -> PoolStatus:
    try:
        return PoolStatus(str(value or "ACTIVE").strip().upper())
    except ValueError:
        return PoolStatus.UNKNOWN


class Pool(GatewayModel):
    pool_id: str = Field(validation_alias=AliasChoices("lpPubkey", "lpPublicKey", "poolId"))
    asset_a: str = Field(
        validation_alias=AliasChoices(
            "assetATokenPublicKey", "assetAPubkey", "assetAAddress"
        )
    )
    asset_b: str = Field(
        validation_alias=AliasChoices(
            "assetBTokenPublicKey", "assetBPubkey", "assetBAddress"
        )
    )
    curve_type: Annotated[CurveType, BeforeValidator(_curve_type)] = Field(
        default=CurveType.CONSTANT_PRODUCT, alias="curveType"
    )
    status: Annotated[PoolStatus, BeforeValidator(_pool_status)] = PoolStatus.ACTIVE
    lp_fee_bps: int = Field(default=0, alias="lpFeeBps")
    host_fee_bps: int = Field(default=0, alias="hostFeeBps")
    reserve_a: Amount = Field(
        default=0, validation_alias=AliasChoices("actualAssetAReserve", "assetAReserve")
    )
    reserve_b: Amount = Field(
        default=0, validation_alias=AliasChoices("actualAssetBReserve", "assetBReserve")
    )
    threshold: Amount | None = None
    virtual_reserve_b: Amount | None = Field(default=None, alias="assetBVirtualReserve")
    current_price_a_in_b: DecimalValue | None = Field(default=None, alias="currentPriceAInB")
    tick_spacing: int | None = Field(default=None, alias="tickSpacing")
    current_tick: int | None = Field(default=None, alias="currentTick")
    host_name: str | None = Field(default=None, alias="hostName")

    @property
    def is_tradable(self) -> bool:
        return self.status in (PoolStatus.ACTIVE, PoolStatus.GRADUATED)

    def other_asset(self, asset: str) -> str:
        if asset.lower() == self.asset_a.lower():
            return self.asset_b
        if asset.lower() == self.asset_b.lower():
            return self.asset_a
        raise ValueError(f"Asset {asset} is not in pool {self.pool_id}")

    def reserves_for(self, asset_in: str) -> tuple[int, int]:
        """Return ``(reserve_in, reserve_out)`` for a swap paying ``asset_in``."""
        if asset_in.lower() == self.asset_a.lower():
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a


class PoolList(GatewayModel):
    pools: list[Pool] = Field(default_factory=list)
    total_count: int = Field(default=0, alias="totalCount")


class LpPosition(GatewayModel):
    provider_public_key: str | None = Field(default=None, alias="providerPublicKey")
    lp_tokens_owned: Amount = Field(default=0, alias="lpTokensOwned")
    share_of_pool: DecimalValue | None = Field(default=None, alias="shareOfPool")
    value_asset_a: Amount | None = Field(default=None, alias="valueAssetA")
    value_asset_b: Amount | None = Field(default=None, alias="valueAssetB")


class ConcentratedPosition(GatewayModel):
    pool_id: str = Field(validation_alias=AliasChoices("poolId", "lpPubkey"))
    tick_lower: int = Field(alias="tickLower")
    tick_upper: int = Field(alias="tickUpper")
    liquidity: Amount = 0
    tokens_owed_a: Amount = Field(default=0, alias="tokensOwedA")
    tokens_owed_b: Amount = Field(default=0, alias="tokensOwedB")


class ConcentratedPositionList(GatewayModel):
    positions: list[ConcentratedPosition] = Field(default_factory=list)


class AuthChallenge(GatewayModel):
    challenge: str
    request_id: str | None = Field(default=None, alias="requestId")


class AuthToken(GatewayModel):
    access_token: str = Field(alias="accessToken")
    expires_at: Any = Field(default=None, alias="expiresAt")
    expires_in: float | None = Field(default=None, alias="expiresIn")


class FeatureStatus(GatewayModel):
    feature_name: str
    enabled: bool = False


class MinAmount(GatewayModel):
    asset_identifier: str
    min_amount: Amount = 0
    enabled: bool = False


class SimulateSwapResponse(GatewayModel):
    amount_out: Amount = Field(default=0, alias="amountOut")
    execution_price: DecimalValue | None = Field(default=None, alias="executionPrice")
    fee_paid_asset_in: Amount = Field(default=0, alias="feePaidAssetIn")
    price_impact_pct: DecimalValue = Field(default=Decimal(0), alias="priceImpactPct")
    warning_message: str | None = Field(default=None, alias="warningMessage")


class IntentResponse(GatewayModel):
    """Fields every signed-intent submission returns."""

    request_id: str | None = Field(default=None, alias="requestId")
    accepted: bool = False
    error: str | None = None
    error_code: str | None = Field(default=None, alias="errorCode")

    @property
    def rejection(self) -> RejectionReason | None:
        if self.accepted:
            return None
        return rejection_reason(self.error_code, self.error)


class SwapResponse(IntentResponse):
    # set client-side: the transfer that funded the swap
    inbound_transfer_id: str | None = None
    amount_out: Amount | None = Field(default=None, alias="amountOut")
    fee_amount: Amount | None = Field(default=None, alias="feeAmount")
    execution_price: DecimalValue | None = Field(default=None, alias="executionPrice")
    asset_in: str | None = Field(default=None, alias="assetInPublicKey")
    asset_out: str | None = Field(default=None, alias="assetOutPublicKey")
    outbound_transfer_id: str | None = Field(default=None, alias="outboundTransferId")
    refunded_asset: str | None = Field(default=None, alias="refundedAssetPublicKey")
    refunded_amount: Amount | None = Field(default=None, alias="refundedAmount")
    refund_transfer_id: str | None = Field(default=None, alias="refundTransferId")


class RefundDetails(GatewayModel):
    asset_a_amount: Amount | None = Field(default=None, alias="assetAAmount")
    asset_b_amount: Amount | None = Field(default=None, alias="assetBAmount")
    asset_a_transfer_id: str | None = Field(default=None, alias="assetATransferId")
    asset_b_transfer_id: str | None = Field(default=None, alias="assetBTransferId")


class AddLiquidityResponse(IntentResponse):
    lp_tokens_minted: Amount | None = Field(default=None, alias="lpTokensMinted")
    asset_a_amount_used: Amount | None = Field(default=None, alias="assetAAmountUsed")
    asset_b_amount_used: Amount | None = Field(default=None, alias="assetBAmountUsed")
    refund: RefundDetails | None = None


class SimulateAddLiquidityResponse(GatewayModel):
    lp_tokens_to_mint: Amount = Field(default=0, alias="lpTokensToMint")
    asset_a_amount_to_add: Amount = Field(default=0, alias="assetAAmountToAdd")
    asset_b_amount_to_add: Amount = Field(default=0, alias="assetBAmountToAdd")
    asset_a_refund_amount: Amount = Field(default=0, alias="assetARefundAmount")
    asset_b_refund_amount: Amount = Field(default=0, alias="assetBRefundAmount")
    pool_share_percentage: DecimalValue | None = Field(
        default=None, alias="poolSharePercentage"
    )
    warning_message: str | None = Field(default=None, alias="warningMessage")


class RemoveLiquidityResponse(IntentResponse):
    asset_a_withdrawn: Amount | None = Field(default=None, alias="assetAWithdrawn")
    asset_b_withdrawn: Amount | None = Field(default=None, alias="assetBWithdrawn")
    asset_a_transfer_id: str | None = Field(default=None, alias="assetATransferId")
    asset_b_transfer_id: str | None = Field(default=None, alias="assetBTransferId")


class SimulateRemoveLiquidityResponse(GatewayModel):
    asset_a_amount: Amount = Field(default=0, alias="assetAAmount")
    asset_b_amount: Amount = Field(default=0, alias="assetBAmount")
    warning_message: str | None = Field(default=None, alias="warningMessage")


class ConcentratedLiquidityResponse(IntentResponse):
    liquidity: Amount | None = None
    amount_a: Amount | None = Field(default=None, alias="amountA")
    amount_b: Amount | None = Field(default=None, alias="amountB")
    amount_a_refund: Amount | None = Field(default=None, alias="amountARefund")
    amount_b_refund: Amount | None = Field(default=None, alias="amountBRefund")


class CollectFeesResponse(IntentResponse):
    fees_collected_a: Amount | None = Field(default=None, alias="feesCollectedA")
    fees_collected_b: Amount | None = Field(default=None, alias="feesCollectedB")


class CreatePoolResponse(GatewayModel):
    pool_id: str = Field(validation_alias=AliasChoices("poolId", "lpPubkey"))
    message: str | None = None


class ConfirmDepositResponse(GatewayModel):
    pool_id: str = Field(alias="poolId")
    confirmed: bool = False
    message: str | None = None


class RegisterHostResponse(GatewayModel):
    namespace: str
    message: str | None = None


class WithdrawFeesResponse(IntentResponse):
    asset_a_withdrawn: Amount | None = Field(default=None, alias="assetAWithdrawn")
    asset_b_withdrawn: Amount | None = Field(default=None, alias="assetBWithdrawn")
    transfer_ids: dict[str, Any] | None = Field(default=None, alias="transferIds")


class ClawbackResponse(IntentResponse):
    spark_transfer_id: str | None = Field(default=None, alias="sparkTransferId")
    internal_request_id: str | None = Field(default=None, alias="internalRequestId")
