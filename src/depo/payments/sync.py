"""Import of Stripe subscriptions that never reached the local table."""

import logging
from typing import Any, Optional

from depo.payments.auth import SupabaseAuth
from depo.payments.errors import AuthorizationError, InvalidRequestError
from depo.payments.records import (
    ProductCache,
    SubscriptionRecord,
    first_item,
    iso_now,
    project_subscription,
)
from depo.payments.stripe_client import StripeClient

logger = logging.getLogger(__name__)


def _same_email(a: str, b: Optional[str]) -> bool:
    return b is not None and a.strip().lower() == b.strip().lower()


def collect_subscriptions(
    stripe_client: StripeClient,
    email: str,
    updated_at: Optional[str] = None,
) -> list[SubscriptionRecord]:
    """
    Project every Stripe subscription belonging to customers with this email.

    Customers are walked one after another. Product names are fetched at
    most once per product id for the duration of this call.

    Args:
        stripe_client: Stripe client
        email: Customer email to search by
        updated_at: updated_at stamp for all records (defaults to now)

    Returns:
        Projected records, in customer then subscription order

    Raises:
        stripe.StripeError: On any Stripe API error; nothing is returned
    """
    stamp = updated_at or iso_now()
    products = ProductCache(fetch=stripe_client.retrieve_product)
    records = []

    customers = stripe_client.search_customers(email)
    logger.info(f"Found {len(customers)} Stripe customer(s) for {email}")

    for customer in customers:
        for subscription in stripe_client.list_subscriptions(customer["id"]):
            price = first_item(subscription).get("price") or {}
            plan_name = products.name_for(price.get("product"))
            records.append(
                project_subscription(subscription, plan_name=plan_name, updated_at=stamp)
            )

    return records


async def sync_subscriptions(
    body: dict[str, Any],
    token: Optional[str],
    stripe_client: StripeClient,
    auth: SupabaseAuth,
) -> dict[str, Any]:
    """Handle the sync-subscriptions action.

    A caller may only sync their own billing identity: ``userEmail`` defaults
    to the caller's email and must match it case-insensitively. The records
    are returned, not stored; the client upserts them keyed on
    stripe_subscription_id.

    Returns:
        ``{"success": True, "synced": n, "subscriptions": [...]}``

    Raises:
        AuthenticationError: Caller could not be resolved
        AuthorizationError: userEmail is not the caller's email
        stripe.StripeError: On Stripe API errors
    """
    caller = await auth.get_user(token)

    email = body.get("userEmail") or caller.email
    if not email:
        raise InvalidRequestError("No email available to sync by")
    if not isinstance(email, str):
        raise InvalidRequestError("userEmail must be a string")
    if not _same_email(email, caller.email):
        logger.warning(f"User {caller.id} attempted to sync billing for another email")
        raise AuthorizationError("You can only sync subscriptions for your own email")

    records = collect_subscriptions(stripe_client, email.strip())
    logger.info(f"Synced {len(records)} subscription(s) for user {caller.id}")

    return {
        "success": True,
        "synced": len(records),
        "subscriptions": [record.to_dict() for record in records],
    }
