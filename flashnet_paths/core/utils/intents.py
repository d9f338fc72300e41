"""Deterministic encoding of signed AMM intents.

Each intent kind has a fixed wire schema: the key order of the encoded JSON is
the schema order, never the caller's insertion order, so two encodings of the
same logical intent are byte-identical.
"""

from __future__ import annotations

import json
import re
import secrets
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping

from flashnet_paths.core.constants.base import MAX_BPS, NONCE_BYTES
from flashnet_paths.core.errors import EncodingError

_DIGITS = re.compile(r"0|[1-9][0-9]*")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class IntentKind(StrEnum):
    SWAP = "swap"
    ADD_LIQUIDITY = "add_liquidity"
    REMOVE_LIQUIDITY = "remove_liquidity"
    SINGLE_SIDED_POOL_INIT = "single_sided_pool_init"
    CONSTANT_PRODUCT_POOL_INIT = "constant_product_pool_init"
    CONFIRM_INITIAL_DEPOSIT = "confirm_initial_deposit"
    CONCENTRATED_POOL_INIT = "concentrated_pool_init"
    INCREASE_LIQUIDITY = "increase_liquidity"
    DECREASE_LIQUIDITY = "decrease_liquidity"
    COLLECT_FEES = "collect_fees"
    REGISTER_HOST = "register_host"
    WITHDRAW_HOST_FEES = "withdraw_host_fees"
    WITHDRAW_INTEGRATOR_FEES = "withdraw_integrator_fees"
    CLAWBACK = "clawback"


class FieldKind(StrEnum):
    TEXT = "text"
    AMOUNT = "amount"
    BPS = "bps"
    BPS_NUMBER = "bps_number"
    INTEGER = "integer"
    DECIMAL = "decimal"
    CONSTANT = "constant"


@dataclass(frozen=True)
class FieldSpec:
    wire: str
    kind: FieldKind = FieldKind.TEXT
    optional: bool = False
    constant: str | None = None

    @property
    def name(self) -> str:
        return _CAMEL_BOUNDARY.sub("_", self.wire).lower()


def _text(*wires: str) -> tuple[FieldSpec, ...]:
    return tuple(FieldSpec(w) for w in wires)


def _amounts(*wires: str) -> tuple[FieldSpec, ...]:
    return tuple(FieldSpec(w, FieldKind.AMOUNT) for w in wires)


_NONCE = FieldSpec("nonce")
_TICKS = (
    FieldSpec("tickLower", FieldKind.INTEGER),
    FieldSpec("tickUpper", FieldKind.INTEGER),
)

INTENT_SCHEMAS: dict[IntentKind, tuple[FieldSpec, ...]] = {
    IntentKind.SWAP: (
        *_text(
            "userPublicKey",
            "lpIdentityPublicKey",
            "assetInSparkTransferId",
            "assetInTokenPublicKey",
            "assetOutTokenPublicKey",
        ),
        *_amounts("amountIn", "minAmountOut"),
        FieldSpec("maxSlippageBps", FieldKind.BPS),
        _NONCE,
        FieldSpec("totalIntegratorFeeRateBps", FieldKind.BPS),
    ),
    IntentKind.ADD_LIQUIDITY: (
        *_text(
            "userPublicKey",
            "lpIdentityPublicKey",
            "assetASparkTransferId",
            "assetBSparkTransferId",
        ),
        *_amounts("assetAAmount", "assetBAmount", "assetAMinAmountIn", "assetBMinAmountIn"),
        _NONCE,
    ),
    IntentKind.REMOVE_LIQUIDITY: (
        *_text("userPublicKey", "lpIdentityPublicKey"),
        FieldSpec("lpTokensToRemove", FieldKind.AMOUNT),
        _NONCE,
    ),
    IntentKind.SINGLE_SIDED_POOL_INIT: (
        *_text("poolOwnerPublicKey", "assetATokenPublicKey", "assetBTokenPublicKey"),
        *_amounts("assetAInitialReserve", "virtualReserveA", "virtualReserveB", "threshold"),
        FieldSpec("totalHostFeeRateBps", FieldKind.BPS),
        FieldSpec("lpFeeRateBps", FieldKind.BPS),
        _NONCE,
    ),
    IntentKind.CONSTANT_PRODUCT_POOL_INIT: (
        *_text("poolOwnerPublicKey", "assetATokenPublicKey", "assetBTokenPublicKey"),
        FieldSpec("totalHostFeeRateBps", FieldKind.BPS),
        FieldSpec("lpFeeRateBps", FieldKind.BPS),
        _NONCE,
    ),
    IntentKind.CONFIRM_INITIAL_DEPOSIT: (
        *_text("poolOwnerPublicKey", "lpIdentityPublicKey", "assetASparkTransferId"),
        _NONCE,
    ),
    IntentKind.CONCENTRATED_POOL_INIT: (
        *_text("poolOwnerPublicKey", "assetATokenPublicKey", "assetBTokenPublicKey"),
        FieldSpec("tickSpacing", FieldKind.INTEGER),
        FieldSpec("initialPrice", FieldKind.DECIMAL),
        FieldSpec("lpFeeRateBps", FieldKind.BPS),
        FieldSpec("hostFeeRateBps", FieldKind.BPS),
        _NONCE,
    ),
    IntentKind.INCREASE_LIQUIDITY: (
        *_text("userPublicKey", "lpIdentityPublicKey"),
        *_TICKS,
        *_text("assetASparkTransferId", "assetBSparkTransferId"),
        *_amounts("amountADesired", "amountBDesired", "amountAMin", "amountBMin"),
        _NONCE,
    ),
    IntentKind.DECREASE_LIQUIDITY: (
        *_text("userPublicKey", "lpIdentityPublicKey"),
        *_TICKS,
        *_amounts("liquidityToRemove", "amountAMin", "amountBMin"),
        _NONCE,
    ),
    IntentKind.COLLECT_FEES: (
        *_text("userPublicKey", "lpIdentityPublicKey"),
        *_TICKS,
        _NONCE,
    ),
    IntentKind.REGISTER_HOST: (
        FieldSpec("namespace"),
        FieldSpec("minFeeBps", FieldKind.BPS_NUMBER),
        FieldSpec("feeRecipientPublicKey"),
        _NONCE,
        FieldSpec("signature", FieldKind.CONSTANT, constant=""),
    ),
    IntentKind.WITHDRAW_HOST_FEES: (
        *_text("hostPublicKey", "lpIdentityPublicKey"),
        FieldSpec("assetBAmount", FieldKind.AMOUNT, optional=True),
        _NONCE,
    ),
    IntentKind.WITHDRAW_INTEGRATOR_FEES: (
        *_text("integratorPublicKey", "lpIdentityPublicKey"),
        FieldSpec("assetBAmount", FieldKind.AMOUNT, optional=True),
        _NONCE,
    ),
    IntentKind.CLAWBACK: (
        *_text("senderPublicKey", "sparkTransferId", "lpIdentityPublicKey"),
        _NONCE,
    ),
}


def _encode_value(kind: IntentKind, spec: FieldSpec, value: Any) -> Any:
    where = f"{kind}.{spec.name}"
    if isinstance(value, (bool, float)):
        raise EncodingError(
            f"{where} must not be {type(value).__name__}", details={"field": spec.name}
        )

    if spec.kind is FieldKind.TEXT:
        if not isinstance(value, str):
            raise EncodingError(f"{where} must be a string", details={"field": spec.name})
        return value

    if spec.kind is FieldKind.DECIMAL:
        text = format(value, "f") if isinstance(value, Decimal) else str(value)
        if not re.fullmatch(r"(0|[1-9][0-9]*)(\.[0-9]+)?", text):
            raise EncodingError(
                f"{where} must be a non-negative decimal, got {text!r}",
                details={"field": spec.name},
            )
        return text

    if isinstance(value, str):
        if spec.kind is FieldKind.INTEGER:
            raise EncodingError(f"{where} must be an integer", details={"field": spec.name})
        if not _DIGITS.fullmatch(value):
            raise EncodingError(
                f"{where} must be a canonical non-negative integer, got {value!r}",
                details={"field": spec.name},
            )
        value = int(value)
    if not isinstance(value, int):
        raise EncodingError(f"{where} must be an integer", details={"field": spec.name})

    if spec.kind is FieldKind.INTEGER:
        return value
    if value < 0:
        raise EncodingError(f"{where} must be non-negative, got {value}", details={"field": spec.name})
    if spec.kind in (FieldKind.BPS, FieldKind.BPS_NUMBER) and value > MAX_BPS:
        raise EncodingError(
            f"{where} must be <= {MAX_BPS} bps, got {value}", details={"field": spec.name}
        )
    return value if spec.kind is FieldKind.BPS_NUMBER else str(value)


def encode(kind: IntentKind, fields: Mapping[str, Any]) -> bytes:
    """Encode ``fields`` (snake_case keys) as the canonical intent message."""
    schema = INTENT_SCHEMAS[IntentKind(kind)]
    known = {spec.name for spec in schema if spec.kind is not FieldKind.CONSTANT}
    unknown = sorted(set(fields) - known)
    if unknown:
        raise EncodingError(
            f"Unknown field(s) for {kind} intent: {', '.join(unknown)}",
            details={"fields": unknown},
        )

    payload: dict[str, Any] = {}
    for spec in schema:
        if spec.kind is FieldKind.CONSTANT:
            payload[spec.wire] = spec.constant
            continue
        value = fields.get(spec.name)
        if value is None:
            if spec.optional:
                continue
            raise EncodingError(
                f"Missing required field {spec.name!r} for {kind} intent",
                details={"field": spec.name},
            )
        payload[spec.wire] = _encode_value(kind, spec, value)

    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )
    except UnicodeEncodeError as exc:
        raise EncodingError(f"{kind} intent contains non-encodable text") from exc


def generate_nonce() -> bytes:
    return secrets.token_bytes(NONCE_BYTES)


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    fields: Mapping[str, Any]
    nonce: bytes
    message: bytes
    signature: bytes | None = field(default=None, repr=False)

    @property
    def nonce_hex(self) -> str:
        return self.nonce.hex()

    @property
    def signature_hex(self) -> str:
        if self.signature is None:
            raise ValueError(f"{self.kind} intent is not signed")
        return self.signature.hex()

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def with_signature(self, signature: bytes) -> Intent:
        if self.signature is not None:
            raise ValueError(f"{self.kind} intent is already signed")
        return replace(self, signature=bytes(signature))


def build_intent(
    kind: IntentKind, fields: Mapping[str, Any], *, nonce: bytes | None = None
) -> Intent:
    """Attach a fresh nonce to ``fields`` and encode the unsigned intent."""
    nonce = generate_nonce() if nonce is None else nonce
    if len(nonce) != NONCE_BYTES:
        raise EncodingError(f"nonce must be {NONCE_BYTES} bytes, got {len(nonce)}")
    full = {**fields, "nonce": nonce.hex()}
    message = encode(kind, full)
    return Intent(
        kind=IntentKind(kind),
        fields=MappingProxyType(full),
        nonce=nonce,
        message=message,
    )
