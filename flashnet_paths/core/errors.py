"""Error taxonomy shared by the codec, session, client and orchestrators.

Gateway failures carry an ``FSAG-XXXX`` code whose thousands digit names the
category. Rejected intents (``accepted=False``) are returned as values and never
raised; everything here is a real failure.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    VALIDATION = "Validation"
    SECURITY = "Security"
    INFRASTRUCTURE = "Infrastructure"
    BUSINESS = "Business"
    SYSTEM = "System"


class RecoveryStrategy(StrEnum):
    CLAWBACK_REQUIRED = "clawback_required"
    CLAWBACK_RECOMMENDED = "clawback_recommended"
    AUTO_REFUND = "auto_refund"
    NONE = "none"


_CATEGORY_BY_DIGIT = {
    "1": ErrorCategory.VALIDATION,
    "2": ErrorCategory.SECURITY,
    "3": ErrorCategory.INFRASTRUCTURE,
    "4": ErrorCategory.BUSINESS,
    "5": ErrorCategory.SYSTEM,
}

# Known codes the orchestrators branch on.
CODE_AUTH_TOKEN_MISSING = "FSAG-2003"
CODE_AUTH_TOKEN_INVALID = "FSAG-2004"
CODE_POOL_NOT_FOUND = "FSAG-4001"
CODE_INSUFFICIENT_LIQUIDITY = "FSAG-4201"
CODE_SLIPPAGE_EXCEEDED = "FSAG-4202"
CODE_PHASE_NOT_ALLOWED = "FSAG-4203"


def category_for_code(code: str | None) -> ErrorCategory:
    if not code:
        return ErrorCategory.SYSTEM
    digits = code.removeprefix("FSAG-")
    return _CATEGORY_BY_DIGIT.get(digits[:1], ErrorCategory.SYSTEM)


def recovery_for_category(category: ErrorCategory) -> RecoveryStrategy:
    if category in (
        ErrorCategory.VALIDATION,
        ErrorCategory.SECURITY,
        ErrorCategory.SYSTEM,
    ):
        return RecoveryStrategy.CLAWBACK_REQUIRED
    if category is ErrorCategory.INFRASTRUCTURE:
        return RecoveryStrategy.CLAWBACK_RECOMMENDED
    return RecoveryStrategy.AUTO_REFUND


class FlashnetError(Exception):
    code: str = "FLASHNET_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        self.clawback_summary: Any = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @classmethod
    def from_unknown(cls, exc: Exception) -> FlashnetError:
        """Return ``exc`` if it is already a FlashnetError, otherwise wrap it."""
        if isinstance(exc, FlashnetError):
            return exc
        error = cls(
            str(exc) or type(exc).__name__,
            code="UNKNOWN_ERROR",
            details={"type": type(exc).__name__},
        )
        error.__cause__ = exc
        return error


class ValidationError(FlashnetError):
    code = "VALIDATION_ERROR"


class EncodingError(ValidationError):
    code = "ENCODING_ERROR"


class InvalidRange(ValidationError):
    code = "INVALID_RANGE"


class InvalidDecimals(ValidationError):
    code = "INVALID_DECIMALS"


class RoundingCollapse(InvalidRange):
    code = "ROUNDING_COLLAPSE"


class InsufficientBalance(ValidationError):
    code = "INSUFFICIENT_BALANCE"


class AuthenticationFailed(FlashnetError):
    code = "AUTHENTICATION_FAILED"


class SigningFailed(FlashnetError):
    code = "SIGNING_FAILED"


class WalletError(FlashnetError):
    """A wallet collaborator call failed; wraps the underlying error."""

    code = "WALLET_ERROR"


class NetworkError(FlashnetError):
    """Transport failure or 5xx; safe to retry for idempotent reads only."""

    code = "NETWORK_ERROR"


class GatewayError(FlashnetError):
    """Non-2xx gateway response carrying an ``FSAG-XXXX`` code."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code or "FSAG-5000", details=details)
        self.status_code = status_code
        self.request_id = request_id
        self.category = category_for_code(self.code)
        self.recovery = recovery_for_category(self.category)

    @property
    def requires_clawback(self) -> bool:
        return self.recovery is RecoveryStrategy.CLAWBACK_REQUIRED

    @property
    def should_clawback(self) -> bool:
        return self.recovery in (
            RecoveryStrategy.CLAWBACK_REQUIRED,
            RecoveryStrategy.CLAWBACK_RECOMMENDED,
        )


class OperationNotAllowed(FlashnetError):
    code = "OPERATION_NOT_ALLOWED"


class NoLiquidity(FlashnetError):
    code = "NO_LIQUIDITY"


class PollTimeout(FlashnetError):
    code = "POLL_TIMEOUT"


class PartialFailure(FlashnetError):
    """A composite flow moved funds and then stopped short of completion."""

    code = "PARTIAL_FAILURE"

    def __init__(self, message: str, *, state: Any) -> None:
        super().__init__(message)
        self.state = state
