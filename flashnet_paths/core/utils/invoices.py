"""BOLT11 amount extraction.

Only the human-readable part is inspected; signature and tagged fields are the
wallet's concern.
"""

from __future__ import annotations

import re
from decimal import ROUND_CEILING, Decimal

from flashnet_paths.core.errors import ValidationError

_HRP = re.compile(r"ln(bcrt|tbs|bc|tb)(\d+)?([munp])?1[02-9ac-hj-np-z]+")

# satoshi value of one unit of each multiplier (1 BTC = 1e8 sats)
_MULTIPLIER_SATS = {
    None: Decimal(100_000_000),
    "m": Decimal(100_000),
    "u": Decimal(100),
    "n": Decimal("0.1"),
    "p": Decimal("0.0001"),
}


def decode_invoice_amount_sats(invoice: str) -> int:
    """Amount requested by ``invoice`` in sats, or 0 for a zero-amount invoice."""
    text = invoice.strip().lower().removeprefix("lightning:")
    match = _HRP.fullmatch(text)
    if not match:
        raise ValidationError("Not a BOLT11 invoice", details={"invoice": invoice[:32]})

    digits, multiplier = match.group(2), match.group(3)
    if digits is None:
        return 0
    sats = Decimal(digits) * _MULTIPLIER_SATS[multiplier]
    if sats != sats.to_integral_value():
        # sub-satoshi invoices round up so the payee is never short
        return int(sats.to_integral_value(rounding=ROUND_CEILING))
    return int(sats)
