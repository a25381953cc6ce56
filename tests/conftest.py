"""Pytest fixtures: in-memory stand-ins for Stripe, the store and Supabase Auth."""

from typing import Any, Optional

import pytest

from depo.payments.auth import Caller
from depo.payments.dispatch import BillingContext
from depo.payments.errors import AuthenticationError

VALID_TOKEN = "valid-token"
CALLER = Caller(id="3f1c7a52-8d0e-4b7e-9a61-2c5d4e8f9a10", email="Jane.Doe@example.com")


class FakeStripeClient:
    """Records every call; serves customers, subscriptions and products from dicts."""

    def __init__(self):
        self.customers: list[dict] = []
        self.subscriptions: dict[str, list[dict]] = {}
        self.products: dict[str, dict] = {}
        self.invoices: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []

    def create_customer(self, email, user_id):
        self.calls.append(("create_customer", email, user_id))
        return {"id": "cus_new", "email": email, "metadata": {"user_id": user_id}}

    def search_customers(self, email):
        self.calls.append(("search_customers", email))
        return [c for c in self.customers if c["email"].lower() == email.lower()]

    def create_checkout_session(self, **kwargs):
        self.calls.append(("create_checkout_session", kwargs))
        return {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}

    def list_subscriptions(self, customer_id):
        self.calls.append(("list_subscriptions", customer_id))
        return list(self.subscriptions.get(customer_id, []))

    def retrieve_subscription(self, subscription_id, expand=None):
        self.calls.append(("retrieve_subscription", subscription_id, expand))
        return self._find_subscription(subscription_id)

    def cancel_at_period_end(self, subscription_id):
        self.calls.append(("cancel_at_period_end", subscription_id))
        return {**self._find_subscription(subscription_id), "cancel_at_period_end": True}

    def retrieve_product(self, product_id):
        self.calls.append(("retrieve_product", product_id))
        return self.products[product_id]

    def list_invoices(self, customer_id, limit):
        self.calls.append(("list_invoices", customer_id, limit))
        return self.invoices.get(customer_id, [])[:limit]

    def create_portal_session(self, customer_id, return_url):
        self.calls.append(("create_portal_session", customer_id, return_url))
        return {"id": "bps_123", "url": f"https://billing.stripe.com/p/session/{customer_id}"}

    def construct_event(self, payload, sig_header):
        raise NotImplementedError("patch construct_event in webhook tests")

    def _find_subscription(self, subscription_id):
        for subs in self.subscriptions.values():
            for sub in subs:
                if sub["id"] == subscription_id:
                    return sub
        raise KeyError(subscription_id)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeStore:
    """Subscription rows keyed on stripe_subscription_id, like the real table."""

    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}
        self.webhook_logs: list[dict[str, Any]] = []

    async def find_customer_id(self, user_id: str) -> Optional[str]:
        for row in self.rows.values():
            if row["user_id"] == user_id:
                return row["stripe_customer_id"]
        return None

    async def find_user_id(self, customer_id: str) -> Optional[str]:
        for row in self.rows.values():
            if row["stripe_customer_id"] == customer_id:
                return row["user_id"]
        return None

    async def owns_customer(self, user_id: str, customer_id: str) -> bool:
        return any(
            row["user_id"] == user_id and row["stripe_customer_id"] == customer_id
            for row in self.rows.values()
        )

    async def find_subscription_owner(self, subscription_id: str) -> Optional[str]:
        row = self.rows.get(subscription_id)
        return row["user_id"] if row else None

    async def upsert_subscription(self, user_id, record):
        self.rows[record.stripe_subscription_id] = {**record.to_dict(), "user_id": user_id}

    async def log_webhook(self, event_id, event_type, payload, signature_verified):
        self.webhook_logs.append(
            {
                "event_id": event_id,
                "event_type": event_type,
                "payload": payload,
                "signature_verified": signature_verified,
            }
        )


class FakeAuth:
    """Accepts VALID_TOKEN only."""

    def __init__(self, caller: Caller = CALLER):
        self.caller = caller
        self.tokens: list[Optional[str]] = []

    async def get_user(self, token):
        self.tokens.append(token)
        if token != VALID_TOKEN:
            raise AuthenticationError("User not authenticated")
        return self.caller


def make_subscription(
    sub_id: str = "sub_123",
    customer: str = "cus_123",
    status: str = "active",
    product: Any = "prod_monthly",
    price_id: str = "price_monthly",
    amount: int = 399,
    interval: str = "month",
    **extra: Any,
) -> dict:
    """Stripe subscription payload as returned with data.items.data.price expanded."""
    subscription = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "created": 1699990000,
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "trial_start": None,
        "trial_end": None,
        "cancel_at_period_end": False,
        "metadata": {},
        "items": {
            "object": "list",
            "data": [
                {
                    "id": f"si_{sub_id}",
                    "price": {
                        "id": price_id,
                        "product": product,
                        "unit_amount": amount,
                        "currency": "usd",
                        "nickname": None,
                        "recurring": {"interval": interval},
                    },
                }
            ],
        },
    }
    subscription.update(extra)
    return subscription


@pytest.fixture
def stripe_client() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def ctx(stripe_client, store, auth) -> BillingContext:
    return BillingContext(
        stripe_client=stripe_client,
        store=store,
        auth=auth,
        portal_return_url="https://app.depo.test/billing",
        invoice_list_limit=12,
    )


@pytest.fixture
def make_sub():
    return make_subscription


@pytest.fixture
def caller() -> Caller:
    return CALLER


@pytest.fixture
def token() -> str:
    return VALID_TOKEN
