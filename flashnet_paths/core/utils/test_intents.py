from __future__ import annotations

import json
from decimal import Decimal

import pytest

from flashnet_paths.core.errors import EncodingError
from flashnet_paths.core.utils.intents import (
    INTENT_SCHEMAS,
    IntentKind,
    build_intent,
    encode,
    generate_nonce,
)

NONCE_HEX = "00" * 16

SWAP_FIELDS = {
    "user_public_key": "pk",
    "lp_identity_public_key": "pool",
    "asset_in_spark_transfer_id": "t1",
    "asset_in_token_public_key": "a",
    "asset_out_token_public_key": "b",
    "amount_in": 1000,
    "min_amount_out": 900,
    "max_slippage_bps": 50,
    "nonce": NONCE_HEX,
    "total_integrator_fee_rate_bps": 0,
}


class TestEncode:
    def test_swap_encoding_is_byte_exact(self):
        expected = (
            '{"userPublicKey":"pk","lpIdentityPublicKey":"pool",'
            '"assetInSparkTransferId":"t1","assetInTokenPublicKey":"a",'
            '"assetOutTokenPublicKey":"b","amountIn":"1000","minAmountOut":"900",'
            f'"maxSlippageBps":"50","nonce":"{NONCE_HEX}",'
            '"totalIntegratorFeeRateBps":"0"}'
        )
        assert encode(IntentKind.SWAP, SWAP_FIELDS) == expected.encode("utf-8")

    def test_key_order_ignores_caller_order(self):
        reordered = dict(reversed(list(SWAP_FIELDS.items())))
        assert encode(IntentKind.SWAP, reordered) == encode(IntentKind.SWAP, SWAP_FIELDS)

    def test_canonical_amount_strings_match_ints(self):
        as_strings = {**SWAP_FIELDS, "amount_in": "1000", "min_amount_out": "900"}
        assert encode(IntentKind.SWAP, as_strings) == encode(IntentKind.SWAP, SWAP_FIELDS)

    def test_large_amounts_keep_full_precision(self):
        fields = {**SWAP_FIELDS, "amount_in": 10**30 + 7}
        payload = json.loads(encode(IntentKind.SWAP, fields))
        assert payload["amountIn"] == "1000000000000000000000000000007"

    def test_register_host_uses_numeric_fee_and_empty_signature(self):
        message = encode(
            IntentKind.REGISTER_HOST,
            {
                "namespace": "myhost",
                "min_fee_bps": 25,
                "fee_recipient_public_key": "pk",
                "nonce": NONCE_HEX,
            },
        )
        assert message == (
            '{"namespace":"myhost","minFeeBps":25,"feeRecipientPublicKey":"pk",'
            f'"nonce":"{NONCE_HEX}","signature":""}}'
        ).encode("utf-8")

    def test_optional_field_is_omitted_when_absent(self):
        fields = {
            "host_public_key": "host",
            "lp_identity_public_key": "pool",
            "nonce": NONCE_HEX,
        }
        payload = json.loads(encode(IntentKind.WITHDRAW_HOST_FEES, fields))
        assert list(payload) == ["hostPublicKey", "lpIdentityPublicKey", "nonce"]

        payload = json.loads(
            encode(IntentKind.WITHDRAW_HOST_FEES, {**fields, "asset_b_amount": 5})
        )
        assert list(payload) == [
            "hostPublicKey",
            "lpIdentityPublicKey",
            "assetBAmount",
            "nonce",
        ]

    def test_ticks_stay_signed_integers(self):
        payload = json.loads(
            encode(
                IntentKind.COLLECT_FEES,
                {
                    "user_public_key": "pk",
                    "lp_identity_public_key": "pool",
                    "tick_lower": -120,
                    "tick_upper": 60,
                    "nonce": NONCE_HEX,
                },
            )
        )
        assert payload["tickLower"] == -120
        assert payload["tickUpper"] == 60

    def test_decimal_price_is_plain_string(self):
        payload = json.loads(
            encode(
                IntentKind.CONCENTRATED_POOL_INIT,
                {
                    "pool_owner_public_key": "pk",
                    "asset_a_token_public_key": "a",
                    "asset_b_token_public_key": "b",
                    "tick_spacing": 60,
                    "initial_price": Decimal("1E+2"),
                    "lp_fee_rate_bps": 30,
                    "host_fee_rate_bps": 10,
                    "nonce": NONCE_HEX,
                },
            )
        )
        assert payload["initialPrice"] == "100"

    def test_non_ascii_text_is_utf8(self):
        fields = {**SWAP_FIELDS, "user_public_key": "clé"}
        assert "clé".encode("utf-8") in encode(IntentKind.SWAP, fields)

    @pytest.mark.parametrize(
        "override",
        [
            {"amount_in": 1.5},
            {"amount_in": True},
            {"amount_in": -1},
            {"amount_in": "01"},
            {"amount_in": "1e3"},
            {"amount_in": "5\n"},
            {"max_slippage_bps": 10_001},
            {"user_public_key": 7},
        ],
    )
    def test_rejects_bad_values(self, override):
        with pytest.raises(EncodingError):
            encode(IntentKind.SWAP, {**SWAP_FIELDS, **override})

    def test_rejects_missing_field(self):
        fields = dict(SWAP_FIELDS)
        del fields["min_amount_out"]
        with pytest.raises(EncodingError, match="min_amount_out"):
            encode(IntentKind.SWAP, fields)

    def test_rejects_unknown_field(self):
        with pytest.raises(EncodingError, match="extra"):
            encode(IntentKind.SWAP, {**SWAP_FIELDS, "extra": "x"})

    def test_every_kind_has_a_nonce(self):
        for kind, schema in INTENT_SCHEMAS.items():
            assert "nonce" in [spec.wire for spec in schema], kind


class TestNonces:
    def test_nonce_is_sixteen_bytes(self):
        assert len(generate_nonce()) == 16

    def test_ten_thousand_nonces_are_unique(self):
        nonces = {generate_nonce() for _ in range(10_000)}
        assert len(nonces) == 10_000


class TestBuildIntent:
    def test_build_attaches_nonce(self):
        fields = {k: v for k, v in SWAP_FIELDS.items() if k != "nonce"}
        intent = build_intent(IntentKind.SWAP, fields, nonce=bytes(range(16)))
        assert intent.nonce_hex == bytes(range(16)).hex()
        assert json.loads(intent.message)["nonce"] == intent.nonce_hex
        assert not intent.is_signed

    def test_fresh_nonce_per_build(self):
        fields = {k: v for k, v in SWAP_FIELDS.items() if k != "nonce"}
        first = build_intent(IntentKind.SWAP, fields)
        second = build_intent(IntentKind.SWAP, fields)
        assert first.nonce != second.nonce
        assert first.message != second.message

    def test_rejects_wrong_nonce_length(self):
        fields = {k: v for k, v in SWAP_FIELDS.items() if k != "nonce"}
        with pytest.raises(EncodingError):
            build_intent(IntentKind.SWAP, fields, nonce=b"short")

    def test_signature_is_set_once(self):
        fields = {k: v for k, v in SWAP_FIELDS.items() if k != "nonce"}
        intent = build_intent(IntentKind.SWAP, fields)
        with pytest.raises(ValueError):
            _ = intent.signature_hex
        signed = intent.with_signature(b"\x01" * 65)
        assert signed.signature_hex == "01" * 65
        with pytest.raises(ValueError):
            signed.with_signature(b"\x02" * 65)
