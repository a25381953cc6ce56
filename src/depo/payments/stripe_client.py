"""Thin wrapper over the Stripe SDK.

Every call passes the API key and pinned API version explicitly instead of
mutating ``stripe.api_key``, so several clients (or a fake in tests) can
coexist in one process.
"""

import logging
from typing import Any, Optional

import stripe

from depo.config.settings import AppConfig

logger = logging.getLogger(__name__)


def escape_search_value(value: str) -> str:
    """Escape a value for use inside a quoted Stripe search clause."""
    return value.replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')


class StripeClient:
    """Customer, checkout, subscription, product and invoice operations."""

    def __init__(self, api_key: str, api_version: str, webhook_secret: str = ""):
        if not api_key:
            raise ValueError("stripe_secret not configured")
        self._api_key = api_key
        self._api_version = api_version
        self._webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config: AppConfig) -> "StripeClient":
        return cls(
            api_key=config.stripe_secret.get_secret_value(),
            api_version=config.stripe_api_version,
            webhook_secret=config.stripe_webhook_secret.get_secret_value(),
        )

    @property
    def _request_opts(self) -> dict[str, str]:
        return {"api_key": self._api_key, "stripe_version": self._api_version}

    def create_customer(self, email: Optional[str], user_id: str) -> Any:
        customer = stripe.Customer.create(
            email=email,
            metadata={"user_id": user_id},
            **self._request_opts,
        )
        logger.info(f"Created Stripe customer {customer['id']} for user {user_id}")
        return customer

    def search_customers(self, email: str) -> list[Any]:
        """All customers whose email matches exactly."""
        result = stripe.Customer.search(
            query=f"email:'{escape_search_value(email)}'",
            **self._request_opts,
        )
        return list(result.auto_paging_iter())

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> Any:
        return stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"user_id": user_id},
            **self._request_opts,
        )

    def list_subscriptions(self, customer_id: str) -> list[Any]:
        """Every subscription of a customer regardless of status, prices expanded."""
        result = stripe.Subscription.list(
            customer=customer_id,
            status="all",
            expand=["data.items.data.price"],
            **self._request_opts,
        )
        return list(result.auto_paging_iter())

    def retrieve_subscription(
        self, subscription_id: str, expand: Optional[list[str]] = None
    ) -> Any:
        return stripe.Subscription.retrieve(
            subscription_id,
            expand=expand or [],
            **self._request_opts,
        )

    def cancel_at_period_end(self, subscription_id: str) -> Any:
        return stripe.Subscription.modify(
            subscription_id,
            cancel_at_period_end=True,
            **self._request_opts,
        )

    def retrieve_product(self, product_id: str) -> Any:
        return stripe.Product.retrieve(product_id, **self._request_opts)

    def list_invoices(self, customer_id: str, limit: int) -> list[Any]:
        result = stripe.Invoice.list(customer=customer_id, limit=limit, **self._request_opts)
        return list(result["data"])

    def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        return stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=return_url,
            **self._request_opts,
        )

    def construct_event(self, payload: bytes, sig_header: str) -> Any:
        """
        Verify a webhook delivery and parse it into an Event.

        Raises:
            ValueError: Payload is not valid JSON
            stripe.SignatureVerificationError: Signature does not match
        """
        return stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
