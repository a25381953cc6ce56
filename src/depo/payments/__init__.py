"""Stripe subscription billing.

Handles checkout session creation, subscription cancellation, import of
Stripe subscriptions into the local table, and webhook processing.
"""

from depo.payments.cancel import cancel_subscription
from depo.payments.checkout import create_checkout_session
from depo.payments.dispatch import BillingContext, dispatch
from depo.payments.sync import sync_subscriptions
from depo.payments.webhooks import handle_webhook

__all__ = [
    "BillingContext",
    "cancel_subscription",
    "create_checkout_session",
    "dispatch",
    "handle_webhook",
    "sync_subscriptions",
]
