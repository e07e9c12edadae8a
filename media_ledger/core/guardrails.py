"""
Affordability gate for processing actions.

Decides, before dispatch, whether an action can be paid for out of the
tokens available right now. This is a client-side guard; the ledger
re-validates on the server before anything is consumed.

Decision order:
1. Unknown estimate - allow with a warning, the server prices it later
2. Zero-cost action - allow
3. Required exceeds available - block
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .errors import InsufficientFunds


class EnforcementAction(Enum):
    """Gate outcomes in order of severity."""
    ALLOW = auto()
    WARN = auto()      # Estimate unknown; action may proceed
    BLOCK = auto()     # Not enough tokens


@dataclass(frozen=True)
class GateResult:
    """Outcome of an affordability check."""
    action: EnforcementAction
    required: Optional[int]
    available: int
    message: str = ""

    @property
    def allowed(self) -> bool:
        return self.action != EnforcementAction.BLOCK


def check_affordability(required: Optional[int], available: int) -> GateResult:
    """Evaluate an action's estimated cost against available tokens.

    Args:
        required: Estimated media tokens, or None when the estimate is unknown
        available: Tokens available right now (after optimistic reservations)

    Returns:
        GateResult describing the decision
    """
    available = max(0, int(available or 0))

    if required is None:
        return GateResult(
            action=EnforcementAction.WARN,
            required=None,
            available=available,
            message="No estimate yet; cost will be confirmed by the server",
        )

    required = max(0, int(required))
    if required == 0:
        return GateResult(action=EnforcementAction.ALLOW, required=0, available=available)

    if required > available:
        return GateResult(
            action=EnforcementAction.BLOCK,
            required=required,
            available=available,
            message=f"Not enough media tokens (need ~{required}, have {available} unused)",
        )

    return GateResult(action=EnforcementAction.ALLOW, required=required, available=available)


def enforce_affordability(required: Optional[int], available: int) -> GateResult:
    """Like check_affordability, but raise when the action must be blocked.

    Raises:
        InsufficientFunds: If required exceeds available
    """
    result = check_affordability(required, available)
    if result.action == EnforcementAction.BLOCK:
        raise InsufficientFunds(result.required, result.available, result.message)
    return result
