"""Stripe webhook handler and event processing."""

import json
import logging
from typing import Any, Optional

import stripe
from aiohttp import web

from depo.db.models import SubscriptionStatus
from depo.payments.dispatch import BillingContext
from depo.payments.records import ProductCache, first_item, project_subscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


async def handle_webhook(payload: bytes, sig_header: str, ctx: BillingContext) -> web.Response:
    """
    Verify, record and process a Stripe webhook delivery.

    Every delivery is written to webhook_logs, including ones whose signature
    fails verification (as long as the payload is JSON).

    Args:
        payload: Raw webhook payload bytes
        sig_header: Stripe-Signature header value
        ctx: Shared billing collaborators

    Returns:
        aiohttp.web.Response (200 handled or ignored, 400 rejected, 500 retry)
    """
    try:
        event = ctx.stripe_client.construct_event(payload, sig_header)
    except ValueError:
        logger.error("Invalid webhook payload")
        return web.Response(status=400, text="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        await _log_unverified(payload, ctx)
        return web.Response(status=400, text="Invalid signature")

    event_type = event["type"]
    logger.info(f"Received webhook: {event_type} ({event.get('id')})")

    try:
        await ctx.store.log_webhook(
            event_id=event.get("id"),
            event_type=event_type,
            payload=json.loads(payload),
            signature_verified=True,
        )

        if event_type == "checkout.session.completed":
            await _handle_checkout_completed(event["data"]["object"], ctx)
        elif event_type in SUBSCRIPTION_EVENTS:
            await _handle_subscription_changed(event_type, event["data"]["object"], ctx)
        else:
            logger.info(f"Unhandled event type: {event_type}")

        return web.Response(status=200, text="OK")

    except Exception as e:
        logger.exception(f"Error processing webhook {event_type}: {e}")
        # 500 makes Stripe retry the delivery
        return web.Response(status=500, text="Internal error")


async def _log_unverified(payload: bytes, ctx: BillingContext) -> None:
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        return
    if not isinstance(data, dict):
        return

    try:
        await ctx.store.log_webhook(
            event_id=data.get("id"),
            event_type=data.get("type") or "unknown",
            payload=data,
            signature_verified=False,
        )
    except Exception as e:
        # The 400 response matters more than the audit row
        logger.error(f"Failed to record unverified webhook: {e}")


def _plan_name(subscription: Any, ctx: BillingContext) -> Optional[str]:
    price = first_item(subscription).get("price") or {}
    products = ProductCache(fetch=ctx.stripe_client.retrieve_product)
    return products.name_for(price.get("product"))


async def _handle_checkout_completed(session: Any, ctx: BillingContext) -> None:
    """Handle checkout.session.completed event.

    Creates the subscription row for the user named in the session metadata.
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id") or session.get("client_reference_id")
    subscription_id = session.get("subscription")

    if not user_id:
        logger.warning("checkout.session.completed missing user_id - skipping")
        return
    if not subscription_id:
        logger.warning("checkout.session.completed has no subscription - skipping")
        return

    subscription = ctx.stripe_client.retrieve_subscription(
        subscription_id, expand=["items.data.price.product"]
    )
    record = project_subscription(subscription, plan_name=_plan_name(subscription, ctx))
    await ctx.store.upsert_subscription(user_id, record)


async def _handle_subscription_changed(
    event_type: str, subscription: Any, ctx: BillingContext
) -> None:
    """Handle customer.subscription.* events.

    The owning user comes from subscription metadata or, failing that, an
    existing row for the same Stripe customer.
    """
    metadata = subscription.get("metadata") or {}
    user_id = metadata.get("user_id")
    customer_id = subscription.get("customer")

    if not user_id and customer_id:
        user_id = await ctx.store.find_user_id(customer_id)

    if not user_id:
        logger.warning(
            f"{event_type}: no user linked to customer {customer_id} - skipping"
        )
        return

    record = project_subscription(subscription, plan_name=_plan_name(subscription, ctx))
    if event_type == "customer.subscription.deleted":
        record.status = SubscriptionStatus.CANCELED.value

    await ctx.store.upsert_subscription(user_id, record)
