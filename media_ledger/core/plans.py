"""
Subscription plan catalog.

Only the monthly media token floor is used here: each paid period tops the
balance up to the plan's floor once.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Plan:
    """A subscription tier."""
    key: str
    label: str
    price_usd_monthly: int
    monthly_floor_media_tokens: int
    stripe_price_id: str = ""


FREE_PLAN_KEY = "free"

PLANS: Tuple[Plan, ...] = (
    Plan(key="free", label="Free", price_usd_monthly=0, monthly_floor_media_tokens=100),
    Plan(key="hobby", label="Hobby", price_usd_monthly=5, monthly_floor_media_tokens=1000,
         stripe_price_id="price_1T24gZQ4bzRqryvEUcJhjgyT"),
    Plan(key="business", label="Business", price_usd_monthly=50, monthly_floor_media_tokens=10000,
         stripe_price_id="price_1T29b6Q4bzRqryvEDLOJezW5"),
    Plan(key="agency", label="Agency", price_usd_monthly=500, monthly_floor_media_tokens=500000,
         stripe_price_id="price_1T29bxQ4bzRqryvENIiPoFNA"),
)


def get_plan_by_key(key: Optional[str]) -> Optional[Plan]:
    wanted = str(key or "").strip()
    for plan in PLANS:
        if plan.key == wanted:
            return plan
    return None


def find_plan_key_by_price_id(price_id: Optional[str]) -> str:
    """Plan key whose recurring price matches, "" when none does."""
    wanted = str(price_id or "").strip()
    if not wanted:
        return ""
    for plan in PLANS:
        if plan.stripe_price_id and plan.stripe_price_id == wanted:
            return plan.key
    return ""
