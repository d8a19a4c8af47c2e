"""
Stripe billing webhooks.

The webhook keeps each team's subscription row in step with Stripe:
checkout creates the paid plan, updates move the billing period (and reset
the monthly usage when a new period starts), deletion drops the team back
to the free plan. Plan changes go through Stripe first; downgrades wait for
the next billing period.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import stripe

from ..db.session import get_session
from ..models.subscription import Subscription
from ..utils.clock import utcnow
from ..utils.dto import to_subscription_dto
from .logging import log_event
from .errors import ProviderError
from .plans import DEFAULT_PLAN, PLAN_HIERARCHY, is_downgrade, video_limit_for
from .quota_service import QuotaService

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

# checkout for a price we do not know still grants the pro plan
FALLBACK_PAID_PLAN = "pro"


def safe_timestamp(value: Any) -> Optional[datetime]:
    """Unix seconds from Stripe to a naive UTC datetime; ``None`` when unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _field(obj: Any, key: str, default: Any = None) -> Any:
    # subscript first: on StripeObject ``.items`` is the mapping method
    if obj is None:
        return default
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, key, default)


def _first_item(subscription: Any) -> Any:
    items = _field(_field(subscription, "items"), "data") or []
    return items[0] if items else None


def _period(subscription: Any, key: str) -> Optional[datetime]:
    # newer API versions moved the billing period onto the subscription item
    value = _field(subscription, key)
    if value is None:
        value = _field(_first_item(subscription), key)
    return safe_timestamp(value)


class WebhookError(ValueError):
    """The webhook body or its signature was rejected."""


class SubscriptionService:
    def __init__(
        self,
        quota: QuotaService,
        settings_json_path: Optional[str] = None,
        session_factory=get_session,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self._quota = quota
        self._session_factory = session_factory
        self.api_key: Optional[str] = None
        self.webhook_secret: Optional[str] = None
        self.price_plans: Dict[str, str] = {}
        self._load_settings(settings_json_path)

    def _load_settings(self, settings_json_path: Optional[str] = None) -> None:
        settings: Dict[str, Any] = {}
        if settings_json_path and Path(settings_json_path).exists():
            try:
                settings = json.loads(Path(settings_json_path).read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                self.logger.warning("Error loading settings from %s: %s", settings_json_path, e)

        self.api_key = settings.get("STRIPE_SECRET_KEY") or os.getenv("STRIPE_SECRET_KEY")
        self.webhook_secret = settings.get("STRIPE_WEBHOOK_SECRET") or os.getenv("STRIPE_WEBHOOK_SECRET")
        self.price_plans = {}
        for plan in PLAN_HIERARCHY:
            key = f"STRIPE_PRICE_{plan.upper()}"
            price_id = settings.get(key) or os.getenv(key)
            if price_id:
                self.price_plans[price_id] = plan

    def plan_for_price(self, price_id: Optional[str]) -> str:
        return self.price_plans.get(price_id or "", FALLBACK_PAID_PLAN)

    def get_subscription(self, team_id: str) -> Dict:
        self._quota.ensure_subscription(team_id)
        with self._session_factory() as session:
            row = session.query(Subscription).filter(Subscription.team_id == team_id).one()
            return to_subscription_dto(row)

    def price_for_plan(self, plan: str) -> Optional[str]:
        for price_id, price_plan in self.price_plans.items():
            if price_plan == plan:
                return price_id
        return None

    def change_plan(self, team_id: str, new_plan: str) -> Dict:
        """Move a paying team to another plan.

        Upgrades are prorated and applied at once. Downgrades are not
        prorated; the row records ``pending_plan_change`` and keeps the
        current allowance until the next period starts.
        """
        new_price = self.price_for_plan(new_plan) if new_plan in PLAN_HIERARCHY else None
        if not new_price:
            raise ValueError(f"Invalid plan type: {new_plan}")

        self._quota.ensure_subscription(team_id)
        with self._session_factory() as session:
            row = session.query(Subscription).filter(Subscription.team_id == team_id).one()
            subscription_id = row.stripe_subscription_id
            stored_plan = row.plan_type
        if not subscription_id:
            raise ValueError("No active subscription found. Please subscribe first.")

        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
            item = _first_item(subscription)
            current_price = _field(_field(item, "price"), "id")
            current_plan = self.price_plans.get(current_price or "", stored_plan)
            downgrade = is_downgrade(current_plan, new_plan)
            stripe.Subscription.modify(
                subscription_id,
                items=[{"id": _field(item, "id"), "price": new_price}],
                proration_behavior="none" if downgrade else "create_prorations",
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            log_event("error", "stripe.plan_change_failed", team_id=team_id, error=str(exc))
            raise ProviderError("Subscription update failed", details=str(exc)) from exc

        now = utcnow()
        period_end = _period(subscription, "current_period_end")
        with self._session_factory() as session:
            row = session.query(Subscription).filter(Subscription.team_id == team_id).one()
            if downgrade:
                row.pending_plan_change = new_plan
            else:
                row.plan_type = new_plan
                row.video_limit = video_limit_for(new_plan)
                row.stripe_price_id = new_price
                row.pending_plan_change = None
            row.updated_at = now
        effective = period_end if downgrade and period_end is not None else now
        log_event(
            "info",
            "stripe.plan_changed",
            team_id=team_id,
            from_plan=current_plan,
            to_plan=new_plan,
            downgrade=downgrade,
        )
        return {
            "success": True,
            "isDowngrade": downgrade,
            "newPlan": new_plan,
            "effectiveDate": effective.replace(tzinfo=timezone.utc).isoformat(),
        }

    # ------------------------------------------------------------------
    # Webhook

    def construct_event(self, body: bytes, signature: Optional[str]) -> Any:
        if not signature:
            raise WebhookError("No signature")
        if not self.webhook_secret:
            try:
                return json.loads(body)
            except ValueError as exc:
                raise WebhookError("Invalid webhook body") from exc
        try:
            return stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookError("Invalid signature") from exc
        except ValueError as exc:
            raise WebhookError("Invalid webhook body") from exc

    def handle_webhook(self, body: bytes, signature: Optional[str]) -> Dict:
        event = self.construct_event(body, signature)
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        log_event("info", "stripe.webhook", event_type=event_type)

        if event_type == CHECKOUT_COMPLETED:
            self._on_checkout_completed(obj)
        elif event_type == SUBSCRIPTION_UPDATED:
            self._on_subscription_updated(obj)
        elif event_type == SUBSCRIPTION_DELETED:
            self._on_subscription_deleted(obj)
        return {"received": True}

    def _on_checkout_completed(self, session_obj: Any) -> None:
        team_id = _field(_field(session_obj, "metadata"), "team_id")
        subscription_id = _field(session_obj, "subscription")
        if not team_id:
            log_event("error", "stripe.checkout_no_team")
            return None
        if not subscription_id:
            log_event("error", "stripe.checkout_no_subscription", team_id=team_id)
            return None

        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        price_id = _field(_field(_first_item(subscription), "price"), "id")
        if not price_id:
            log_event("error", "stripe.checkout_no_price", team_id=team_id, subscription_id=subscription_id)
            return None

        plan = self.plan_for_price(price_id)
        self._quota.ensure_subscription(team_id)
        with self._session_factory() as session:
            row = session.query(Subscription).filter(Subscription.team_id == team_id).one()
            row.plan_type = plan
            row.video_limit = video_limit_for(plan)
            row.stripe_customer_id = _field(session_obj, "customer")
            row.stripe_subscription_id = subscription_id
            row.stripe_price_id = price_id
            row.current_period_start = _period(subscription, "current_period_start")
            row.current_period_end = _period(subscription, "current_period_end")
            row.cancel_at_period_end = bool(_field(subscription, "cancel_at_period_end", False))
            row.pending_plan_change = None
            row.updated_at = utcnow()
        log_event("info", "stripe.plan_activated", team_id=team_id, plan_type=plan)
        return None

    def _on_subscription_updated(self, subscription: Any) -> None:
        subscription_id = _field(subscription, "id")
        start = _period(subscription, "current_period_start")
        with self._session_factory() as session:
            row = (
                session.query(Subscription)
                .filter(Subscription.stripe_subscription_id == subscription_id)
                .first()
            )
            if row is None:
                log_event("warning", "stripe.unknown_subscription", subscription_id=subscription_id)
                return None
            new_period = start is not None and (row.current_period_start is None or start > row.current_period_start)
            if new_period:
                row.videos_generated_this_month = 0
            price_id = _field(_field(_first_item(subscription), "price"), "id")
            # a scheduled downgrade only lands once the next period has begun
            deferred = (
                not new_period
                and row.pending_plan_change is not None
                and self.price_plans.get(price_id or "") == row.pending_plan_change
            )
            if price_id and price_id != row.stripe_price_id and price_id in self.price_plans and not deferred:
                row.plan_type = self.price_plans[price_id]
                row.video_limit = video_limit_for(row.plan_type)
                row.stripe_price_id = price_id
                row.pending_plan_change = None
            row.current_period_start = start
            row.current_period_end = _period(subscription, "current_period_end")
            row.cancel_at_period_end = bool(_field(subscription, "cancel_at_period_end", False))
            row.updated_at = utcnow()
            team_id = row.team_id
        log_event("info", "stripe.subscription_updated", team_id=team_id, usage_reset=new_period)
        return None

    def _on_subscription_deleted(self, subscription: Any) -> None:
        subscription_id = _field(subscription, "id")
        with self._session_factory() as session:
            row = (
                session.query(Subscription)
                .filter(Subscription.stripe_subscription_id == subscription_id)
                .first()
            )
            if row is None:
                log_event("warning", "stripe.unknown_subscription", subscription_id=subscription_id)
                return None
            row.plan_type = DEFAULT_PLAN
            row.video_limit = video_limit_for(DEFAULT_PLAN)
            row.stripe_subscription_id = None
            row.stripe_price_id = None
            row.current_period_start = None
            row.current_period_end = None
            row.cancel_at_period_end = False
            row.pending_plan_change = None
            row.updated_at = utcnow()
            team_id = row.team_id
        log_event("info", "stripe.subscription_deleted", team_id=team_id)
        return None
