"""Stripe subscriptions: embedded checkout, customer portal and webhook events."""

from __future__ import annotations

import logging
from typing import Any

import stripe

import config
import supabase_client
from errors import BadRequest, ServerMisconfigured, UpstreamFailure
from identity import Identity

logger = logging.getLogger("resumeai.billing")

PAID_PLANS = ("pro", "max")
ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def normalize_plan(plan: str | None) -> str:
    value = safe_text(plan).lower()
    return value if value in PAID_PLANS else "pro"


def _configure_stripe() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise ServerMisconfigured("Payments are not configured on the server.")
    stripe.api_key = config.STRIPE_SECRET_KEY


def create_checkout_session(plan: str | None, identity: Identity | None = None) -> str:
    _configure_stripe()
    plan = normalize_plan(plan)
    price_id = config.STRIPE_PRICE_IDS.get(plan)
    if not price_id:
        raise ServerMisconfigured(f"No Stripe price is configured for the {plan} plan.")

    metadata = {"plan": plan}
    params: dict[str, Any] = {
        "ui_mode": "embedded",
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "return_url": f"{config.SITE_URL}/app?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
    }
    if identity is not None:
        metadata["user_id"] = identity.user_id
        params["client_reference_id"] = identity.user_id
        if identity.email:
            params["customer_email"] = identity.email
    params["metadata"] = metadata
    params["subscription_data"] = {"metadata": dict(metadata)}

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        logger.exception("Stripe checkout session creation failed for plan %s", plan)
        raise UpstreamFailure("Unable to start checkout right now.") from exc

    client_secret = safe_text(session.get("client_secret"))
    if not client_secret:
        raise UpstreamFailure("Unable to start checkout right now.")
    return client_secret


def billing_customer_id(user_id: str) -> str | None:
    try:
        rows = supabase_client.select_rows("profiles", {"id": f"eq.{user_id}"}, columns="stripe_customer_id", limit=1)
    except supabase_client.SupabaseError as exc:
        logger.exception("Billing account lookup failed for user %s", user_id)
        raise UpstreamFailure("Unable to load your billing account right now.") from exc
    if not rows:
        return None
    return safe_text(rows[0].get("stripe_customer_id")) or None


def create_portal_session(identity: Identity) -> str:
    _configure_stripe()
    customer_id = billing_customer_id(identity.user_id)
    if not customer_id:
        raise BadRequest("No billing account found. Subscribe to a plan first.")
    try:
        session = stripe.billing_portal.Session.create(customer=customer_id, return_url=f"{config.SITE_URL}/app")
    except stripe.StripeError as exc:
        logger.exception("Stripe portal session creation failed for user %s", identity.user_id)
        raise UpstreamFailure("Unable to open the billing portal right now.") from exc
    return safe_text(session.get("url"))


def tier_changes(tier: str) -> dict[str, Any]:
    return {"tier": tier, "is_pro": tier in PAID_PLANS}


def _apply_checkout_completed(session: dict[str, Any]) -> None:
    metadata = session.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    user_id = safe_text(metadata.get("user_id")) or safe_text(session.get("client_reference_id"))
    if not user_id:
        logger.warning("checkout.session.completed %s has no user reference.", safe_text(session.get("id")))
        return
    tier = normalize_plan(metadata.get("plan"))
    changes = tier_changes(tier)
    customer_id = safe_text(session.get("customer"))
    if customer_id:
        changes["stripe_customer_id"] = customer_id
    supabase_client.update_rows("profiles", {"id": f"eq.{user_id}"}, changes)
    logger.info("User %s upgraded to %s.", user_id, tier)


def _apply_subscription_state(subscription: dict[str, Any], deleted: bool) -> None:
    customer_id = safe_text(subscription.get("customer"))
    if not customer_id:
        return
    status = safe_text(subscription.get("status")).lower()
    if deleted or status not in ACTIVE_SUBSCRIPTION_STATUSES:
        tier = "free"
    else:
        metadata = subscription.get("metadata")
        tier = normalize_plan(metadata.get("plan") if isinstance(metadata, dict) else None)
    supabase_client.update_rows("profiles", {"stripe_customer_id": f"eq.{customer_id}"}, tier_changes(tier))
    logger.info("Customer %s subscription is now %s (status=%s).", customer_id, tier, status or "deleted")


def handle_event(event: dict[str, Any]) -> None:
    event_type = safe_text(event.get("type"))
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        return
    if event_type == "checkout.session.completed":
        _apply_checkout_completed(obj)
    elif event_type == "customer.subscription.deleted":
        _apply_subscription_state(obj, deleted=True)
    elif event_type == "customer.subscription.updated":
        _apply_subscription_state(obj, deleted=False)
    else:
        logger.debug("Ignoring Stripe event %s", event_type)
