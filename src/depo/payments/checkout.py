"""Stripe Checkout and billing-portal session creation."""

import logging
from typing import Any, Optional

from depo.payments.auth import Caller, SupabaseAuth
from depo.payments.errors import AuthorizationError, InvalidRequestError
from depo.payments.store import SubscriptionStore
from depo.payments.stripe_client import StripeClient

logger = logging.getLogger(__name__)


def require_fields(body: dict[str, Any], *names: str) -> list[Any]:
    """Values of the named body fields, rejecting the request if any is empty."""
    missing = [name for name in names if not body.get(name)]
    if missing:
        raise InvalidRequestError(f"Missing required field(s): {', '.join(missing)}")
    return [body[name] for name in names]


async def require_own_customer(caller: Caller, customer_id: str, store: SubscriptionStore) -> None:
    """Reject access to a Stripe customer not mapped to the caller."""
    if not await store.owns_customer(caller.id, customer_id):
        logger.warning(f"User {caller.id} attempted to access customer {customer_id}")
        raise AuthorizationError("You can only access your own billing account")


async def create_checkout_session(
    body: dict[str, Any],
    token: Optional[str],
    stripe_client: StripeClient,
    store: SubscriptionStore,
    auth: SupabaseAuth,
) -> dict[str, str]:
    """Create a Stripe Checkout Session for a subscription signup.

    The caller's existing Stripe customer is reused when the subscriptions
    table already maps one to them; otherwise a new customer is created and
    tagged with the user id.

    Args:
        body: Request body with priceId, successUrl and cancelUrl
        token: Bearer token from the Authorization header
        stripe_client: Stripe client
        store: Subscription store
        auth: Token verifier

    Returns:
        ``{"url": <checkout url>}``

    Raises:
        AuthenticationError: Caller could not be resolved
        InvalidRequestError: A required field is missing
        stripe.StripeError: On Stripe API errors
    """
    caller = await auth.get_user(token)
    price_id, success_url, cancel_url = require_fields(
        body, "priceId", "successUrl", "cancelUrl"
    )

    customer_id = await store.find_customer_id(caller.id)
    if not customer_id:
        # Not written back to the store; the mapping appears once the
        # checkout.session.completed webhook lands.
        customer = stripe_client.create_customer(email=caller.email, user_id=caller.id)
        customer_id = customer["id"]

    session = stripe_client.create_checkout_session(
        customer_id=customer_id,
        price_id=price_id,
        success_url=success_url,
        cancel_url=cancel_url,
        user_id=caller.id,
    )

    logger.info(
        f"Created checkout session {session['id']} for user {caller.id} "
        f"(customer={customer_id}, price={price_id})"
    )
    return {"url": session["url"]}


async def create_portal_session(
    body: dict[str, Any],
    token: Optional[str],
    stripe_client: StripeClient,
    store: SubscriptionStore,
    auth: SupabaseAuth,
    default_return_url: str,
) -> dict[str, str]:
    """Open a Stripe billing portal session for the caller's own customer.

    Raises:
        AuthenticationError: Caller could not be resolved
        AuthorizationError: customerId is not mapped to the caller
    """
    caller = await auth.get_user(token)
    (customer_id,) = require_fields(body, "customerId")
    await require_own_customer(caller, customer_id, store)

    return_url = body.get("returnUrl") or default_return_url

    session = stripe_client.create_portal_session(customer_id, return_url)
    logger.info(f"Created billing portal session for customer {customer_id}")
    return {"url": session["url"]}
