"""
Endpoint handlers for the ledger read/bootstrap and billing sync contracts.

Handlers are framework-agnostic: they take an already-authenticated
identity and return the JSON body as a dict. Authentication and the payment
provider lookup stay with the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..core.errors import AuthFailure, MediaLedgerError
from ..core.ledger import Ledger, normalize_provider
from ..core.plans import FREE_PLAN_KEY, Plan, find_plan_key_by_price_id, get_plan_by_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as resolved by the session layer."""
    user_id: str
    provider: Optional[str] = None
    media_tokens_min: Optional[int] = None


@dataclass(frozen=True)
class SubscriptionInfo:
    """Subscription facts looked up from the payment provider."""
    subscription_id: str
    status: str
    plan_key: Optional[str] = None
    price_id: Optional[str] = None
    period_start: int = 0
    period_end: int = 0


def require_identity(identity: Optional[Identity]) -> str:
    """Authenticated user id.

    Raises:
        AuthFailure: If there is no identity or it has no user id
    """
    user_id = str(getattr(identity, "user_id", "") or "").strip()
    if not user_id:
        raise AuthFailure("Unauthorized")
    return user_id


def server_time() -> str:
    return datetime.now(timezone.utc).isoformat()


def handle_tokens_request(ledger: Ledger, identity: Optional[Identity]) -> Dict[str, Any]:
    """Read the caller's ledger, bootstrapping the guaranteed minimum first.

    Idempotent: repeated calls grant at most once per minimum increase.

    Raises:
        AuthFailure: If the caller is not authenticated
        TransactionFailure: If the ledger transaction fails
    """
    user_id = require_identity(identity)
    provider = normalize_provider(identity.provider)
    desired_min = ledger.bootstrap_policy.desired_min(provider, identity.media_tokens_min)

    snapshot = ledger.bootstrap(user_id, desired_min=desired_min, provider=provider)

    body = {
        "ok": True,
        "tokensHydrated": True,
        "userId": user_id,
        "provider": provider or None,
        "desiredMin": desired_min,
    }
    body.update(snapshot.to_payload())
    body["bootstrapMin"] = max(snapshot.bootstrap_min, desired_min)
    body["serverTime"] = server_time()
    return body


def _resolve_plan_key(subscription: SubscriptionInfo) -> str:
    key = str(subscription.plan_key or "").strip()
    if key:
        return key
    return find_plan_key_by_price_id(subscription.price_id)


def _plan_info(plan: Optional[Plan], fallback_key: str, pricing_version: str) -> Dict[str, Any]:
    return {
        "planKey": plan.key if plan else fallback_key,
        "planName": plan.label if plan else fallback_key,
        "monthlyFloor": max(0, plan.monthly_floor_media_tokens) if plan else 0,
        "pricingVersion": pricing_version,
    }


def handle_billing_sync(
    ledger: Ledger,
    identity: Optional[Identity],
    subscription: Optional[SubscriptionInfo]
) -> Dict[str, Any]:
    """Reconcile the caller's plan with the ledger.

    With an active subscription the balance is topped up to the plan's
    monthly floor once per period and the ledger fields are included. With
    none, only plan fields are returned so clients keep their last ledger
    snapshot.

    Raises:
        AuthFailure: If the caller is not authenticated
        TransactionFailure: If the ledger transaction fails
    """
    user_id = require_identity(identity)
    plan_key = _resolve_plan_key(subscription) if subscription else ""

    if not subscription or not plan_key:
        body = {
            "ok": True,
            "userId": user_id,
            "hasSubscription": False,
            "subscriptionId": None,
            "subscriptionStatus": None,
            "appliedTopup": 0,
            "periodStart": None,
            "periodEnd": None,
        }
        body.update(_plan_info(get_plan_by_key(FREE_PLAN_KEY), FREE_PLAN_KEY, ledger.pricing_version))
        body["serverTime"] = server_time()
        return body

    plan = get_plan_by_key(plan_key)
    if plan is None:
        logger.warning("Subscription %s references unknown plan %r", subscription.subscription_id, plan_key)
        plan = Plan(key=plan_key, label=plan_key, price_usd_monthly=0, monthly_floor_media_tokens=0)

    result = ledger.apply_period_topup(
        user_id,
        plan,
        subscription.subscription_id,
        subscription.period_start,
        subscription.period_end,
    )

    body = {
        "ok": True,
        "tokensHydrated": True,
        "userId": user_id,
        "hasSubscription": True,
        "subscriptionId": subscription.subscription_id,
        "subscriptionStatus": subscription.status,
        "periodStart": subscription.period_start or None,
        "periodEnd": subscription.period_end or None,
        "appliedTopup": result.applied_topup,
    }
    body.update(_plan_info(plan, plan_key, ledger.pricing_version))
    snapshot = result.snapshot.to_payload()
    snapshot.pop("pricingVersion")
    body.update(snapshot)
    body["serverTime"] = server_time()
    return body


def error_response(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """HTTP status and body for an error raised by a handler."""
    if isinstance(exc, MediaLedgerError):
        status = exc.status_code
        message = str(exc) or exc.__class__.__name__
    elif isinstance(exc, ValueError):
        status = 400
        message = str(exc)
    else:
        logger.exception("Unhandled error in ledger endpoint", exc_info=exc)
        status = 500
        message = "Server error"

    body: Dict[str, Any] = {"ok": False, "message": message}
    required = getattr(exc, "required", None)
    if required is not None:
        body["required"] = required
        body["available"] = getattr(exc, "available", 0)
    return status, body
