"""
Tests for the affordability gate.
"""
import pytest

from media_ledger.core.errors import InsufficientFunds
from media_ledger.core.guardrails import (
    EnforcementAction,
    check_affordability,
    enforce_affordability,
)


class TestAffordabilityGate:
    """Test gate decisions in order."""

    def test_unknown_estimate_warns_but_allows(self):
        result = check_affordability(None, 10)
        assert result.action == EnforcementAction.WARN
        assert result.allowed
        assert result.required is None

    def test_zero_cost_allowed_with_no_balance(self):
        result = check_affordability(0, 0)
        assert result.action == EnforcementAction.ALLOW

    def test_exact_balance_allowed(self):
        assert check_affordability(10, 10).action == EnforcementAction.ALLOW

    def test_over_balance_blocked(self):
        result = check_affordability(11, 10)
        assert result.action == EnforcementAction.BLOCK
        assert not result.allowed
        assert result.message == "Not enough media tokens (need ~11, have 10 unused)"

    def test_negative_available_treated_as_zero(self):
        result = check_affordability(1, -5)
        assert result.action == EnforcementAction.BLOCK
        assert result.available == 0


class TestEnforceAffordability:

    def test_raises_when_blocked(self):
        with pytest.raises(InsufficientFunds) as exc_info:
            enforce_affordability(11, 10)
        assert exc_info.value.required == 11
        assert exc_info.value.available == 10
        assert exc_info.value.status_code == 402

    def test_passes_through_allowed(self):
        assert enforce_affordability(5, 10).allowed
        assert enforce_affordability(None, 0).action == EnforcementAction.WARN
