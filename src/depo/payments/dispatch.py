"""Action routing and the error envelope for the billing endpoint."""

import json
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Optional

import stripe
from aiohttp import web

from depo.payments.auth import SupabaseAuth, bearer_token
from depo.payments.cancel import cancel_subscription, get_invoices, get_subscription_details
from depo.payments.checkout import create_checkout_session, create_portal_session
from depo.payments.errors import InvalidActionError, InvalidRequestError
from depo.payments.store import SubscriptionStore
from depo.payments.stripe_client import StripeClient
from depo.payments.sync import sync_subscriptions

logger = logging.getLogger(__name__)

# Every failure, whatever its cause, is reported with this status
ERROR_STATUS = 400


@dataclass
class BillingContext:
    """Collaborators shared by every billing action."""

    stripe_client: StripeClient
    store: SubscriptionStore
    auth: SupabaseAuth
    portal_return_url: str
    invoice_list_limit: int = 12


BILLING_KEY = web.AppKey("billing", BillingContext)


def _to_plain(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


json_dumps = partial(json.dumps, default=_to_plain)


def error_message(exc: Exception) -> str:
    if isinstance(exc, stripe.StripeError):
        return exc.user_message or str(exc)
    return str(exc) or exc.__class__.__name__


async def dispatch(body: Any, token: Optional[str], ctx: BillingContext) -> dict[str, Any]:
    """
    Route a billing request to its action handler.

    Args:
        body: Parsed JSON request body
        token: Bearer token, if the request carried one
        ctx: Shared collaborators

    Returns:
        JSON-serializable response payload

    Raises:
        InvalidRequestError: Body is not a JSON object
        InvalidActionError: Unknown action
        PaymentsError, stripe.StripeError, asyncpg.PostgresError: From handlers
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    action = body.get("action")

    if action == "create-checkout-session":
        return await create_checkout_session(body, token, ctx.stripe_client, ctx.store, ctx.auth)
    elif action == "sync-subscriptions":
        return await sync_subscriptions(body, token, ctx.stripe_client, ctx.auth)
    elif action == "cancel-subscription":
        return await cancel_subscription(body, ctx.stripe_client)
    elif action == "get-subscription-details":
        return await get_subscription_details(body, token, ctx.stripe_client, ctx.store, ctx.auth)
    elif action == "get-invoices":
        return await get_invoices(
            body, token, ctx.stripe_client, ctx.store, ctx.auth, ctx.invoice_list_limit
        )
    elif action == "create-portal-session":
        return await create_portal_session(
            body, token, ctx.stripe_client, ctx.store, ctx.auth, ctx.portal_return_url
        )

    raise InvalidActionError(action)


async def billing_endpoint(request: web.Request) -> web.Response:
    """Handle POST /stripe-payments.

    Args:
        request: aiohttp request

    Returns:
        200 with the action's payload, or 400 with ``{"error": message}``
    """
    ctx = request.app[BILLING_KEY]
    action = None

    try:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequestError("Request body must be valid JSON") from e

        if isinstance(body, dict):
            action = body.get("action")

        payload = await dispatch(body, bearer_token(request.headers), ctx)
        return web.json_response(payload, dumps=json_dumps)

    except Exception as e:
        logger.error(f"Billing action {action!r} failed: {e}")
        return web.json_response(
            {"error": error_message(e)},
            status=ERROR_STATUS,
        )
