"""
Error taxonomy for estimation, gating and ledger operations.

Each error carries the HTTP status the endpoint handlers report for it.
"""

from typing import Optional


class MediaLedgerError(Exception):
    """Base class for all media ledger errors."""
    status_code = 500


class EstimationUnavailable(MediaLedgerError):
    """Raised when the input needed for an estimate (duration or text) is missing.

    Never crosses the estimator boundary: callers see an unknown estimate.
    """
    status_code = 422


class InsufficientFunds(MediaLedgerError):
    """Raised when the tokens required exceed the tokens available."""
    status_code = 402

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        super().__init__(
            message or f"Not enough media tokens (need {required}, have {available})"
        )
        self.required = required
        self.available = available


class LedgerInvariantViolation(MediaLedgerError):
    """Describes reserved drifting outside 0..balance.

    Repaired by the ledger's self-heal step and logged; never raised to end users.
    """

    def __init__(self, user_id: str, balance: int, reserved: object):
        super().__init__(
            f"reserved={reserved!r} outside 0..{balance} for account {user_id}"
        )
        self.user_id = user_id
        self.balance = balance
        self.reserved = reserved


class TransactionFailure(MediaLedgerError):
    """Raised when a ledger transaction fails and has been rolled back."""
    status_code = 500


class AuthFailure(MediaLedgerError):
    """Raised when the request carries no valid identity."""
    status_code = 401
