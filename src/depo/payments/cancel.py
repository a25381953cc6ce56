"""Subscription cancellation and read-only subscription lookups."""

import logging
from typing import Any, Optional

from depo.payments.auth import SupabaseAuth
from depo.payments.checkout import require_fields, require_own_customer
from depo.payments.errors import AuthorizationError
from depo.payments.store import SubscriptionStore
from depo.payments.stripe_client import StripeClient

logger = logging.getLogger(__name__)


async def cancel_subscription(body: dict[str, Any], stripe_client: StripeClient) -> dict[str, Any]:
    """Schedule a subscription to cancel at the end of its current period.

    Access stays active until then, so the returned status is unchanged.
    Nothing is written locally; the row catches up through the
    customer.subscription.updated webhook or the next sync.
    """
    (subscription_id,) = require_fields(body, "subscriptionId")

    subscription = stripe_client.cancel_at_period_end(subscription_id)
    logger.info(
        f"Subscription {subscription_id} set to cancel at period end "
        f"(status={subscription.get('status')})"
    )
    return {"success": True, "subscription": subscription}


async def get_subscription_details(
    body: dict[str, Any],
    token: Optional[str],
    stripe_client: StripeClient,
    store: SubscriptionStore,
    auth: SupabaseAuth,
) -> dict[str, Any]:
    """Retrieve one of the caller's subscriptions with its payment method."""
    caller = await auth.get_user(token)
    (subscription_id,) = require_fields(body, "subscriptionId")

    if await store.find_subscription_owner(subscription_id) != caller.id:
        logger.warning(f"User {caller.id} attempted to read subscription {subscription_id}")
        raise AuthorizationError("You can only access your own subscriptions")

    subscription = stripe_client.retrieve_subscription(
        subscription_id, expand=["default_payment_method"]
    )
    return {"subscription": subscription}


async def get_invoices(
    body: dict[str, Any],
    token: Optional[str],
    stripe_client: StripeClient,
    store: SubscriptionStore,
    auth: SupabaseAuth,
    limit: int,
) -> dict[str, Any]:
    caller = await auth.get_user(token)
    (customer_id,) = require_fields(body, "customerId")
    await require_own_customer(caller, customer_id, store)
    return {"invoices": stripe_client.list_invoices(customer_id, limit)}
