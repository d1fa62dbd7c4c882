"""
Error Taxonomy Module

Specific exception kinds raised by the pricing and KYC layers so callers
(trading screens, admin back-office, reports) can present distinct messages.
"""

from typing import Optional


class GoldPlatformError(Exception):
    """Base class for all domain errors"""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCurrency(GoldPlatformError, ValueError):
    """Currency code outside the supported set"""

    kind = "invalid_currency"

    def __init__(self, code):
        super().__init__(f"Currency not supported: {code}")
        self.code = code


class InvalidAmount(GoldPlatformError, ValueError):
    """Non-positive or out-of-range amount"""

    kind = "invalid_amount"


class InvalidDeliveryType(GoldPlatformError, ValueError):
    """Unknown delivery service level"""

    kind = "invalid_delivery_type"


class InvalidDocument(GoldPlatformError, ValueError):
    """Uploaded KYC document rejected by validation"""

    kind = "invalid_document"


class RateUnavailable(GoldPlatformError):
    """Upstream exchange-rate or spot-price feed failed"""

    kind = "rate_unavailable"


class NotFound(GoldPlatformError):
    """No KYC case for the requested user"""

    kind = "not_found"


class ConcurrencyConflict(GoldPlatformError):
    """A concurrent write already changed the KYC case"""

    kind = "concurrency_conflict"

    def __init__(self, message: str, expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class Unauthorized(GoldPlatformError):
    """Caller role lacks the permission for the operation"""

    kind = "unauthorized"


class InvalidTransition(GoldPlatformError):
    """KYC status change not allowed from the current status"""

    kind = "invalid_transition"


class CaseAlreadyExists(GoldPlatformError):
    """The user already owns a KYC case"""

    kind = "case_already_exists"
