"""Subscription record shape and projection from Stripe objects."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional


def epoch_to_iso(ts: Optional[int]) -> Optional[str]:
    """
    Convert Stripe epoch seconds to an ISO-8601 UTC string.

    Millisecond precision with a ``Z`` suffix, e.g. ``1700000000`` becomes
    ``2023-11-14T22:13:20.000Z``. ``None`` passes through.
    """
    if ts is None:
        return None
    dt = datetime.fromtimestamp(int(ts), tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class SubscriptionRecord:
    """One Stripe subscription as stored in the ``subscriptions`` table.

    Field names are the table's column names, which are also the JSON keys
    the frontend upserts.
    """

    stripe_customer_id: str
    stripe_subscription_id: str
    status: str
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    plan_amount: Optional[int] = None
    plan_currency: Optional[str] = None
    plan_interval: Optional[str] = None
    current_period_start: Optional[str] = None
    current_period_end: Optional[str] = None
    trial_start: Optional[str] = None
    trial_end: Optional[str] = None
    cancel_at_period_end: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Opaque values from subscription metadata
    tier: Any = None
    features: Any = None
    limits: Any = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProductCache:
    """Product names fetched during a single sync call.

    Lives only as long as the call that created it.
    """

    fetch: Callable[[str], Any]
    names: dict[str, Optional[str]] = field(default_factory=dict)

    def name_for(self, product: Any) -> Optional[str]:
        """Display name for an embedded product object or a bare product id."""
        if product is None:
            return None
        if isinstance(product, str):
            if product not in self.names:
                self.names[product] = self.fetch(product).get("name")
            return self.names[product]
        return product.get("name")


def first_item(subscription: Any) -> dict:
    items = subscription.get("items") or {}
    data = items.get("data") or []
    return data[0] if data else {}


def project_subscription(
    subscription: Any,
    plan_name: Optional[str] = None,
    updated_at: Optional[str] = None,
) -> SubscriptionRecord:
    """
    Project a Stripe subscription into a SubscriptionRecord.

    The first subscription item's price determines the plan fields. Period
    bounds are read from the subscription and fall back to the item, where
    newer API versions keep them.

    Args:
        subscription: Stripe Subscription object (or plain dict)
        plan_name: Resolved product display name
        updated_at: ISO timestamp for updated_at (defaults to now)

    Returns:
        SubscriptionRecord with absent optional fields set to None
    """
    item = first_item(subscription)
    price = item.get("price") or {}
    recurring = price.get("recurring") or {}
    metadata = subscription.get("metadata") or {}

    customer = subscription.get("customer")
    if customer is not None and not isinstance(customer, str):
        customer = customer.get("id")

    period_start = subscription.get("current_period_start") or item.get("current_period_start")
    period_end = subscription.get("current_period_end") or item.get("current_period_end")

    return SubscriptionRecord(
        stripe_customer_id=customer,
        stripe_subscription_id=subscription.get("id"),
        status=subscription.get("status"),
        plan_id=price.get("id"),
        plan_name=plan_name if plan_name is not None else price.get("nickname"),
        plan_amount=price.get("unit_amount"),
        plan_currency=price.get("currency"),
        plan_interval=recurring.get("interval"),
        current_period_start=epoch_to_iso(period_start),
        current_period_end=epoch_to_iso(period_end),
        trial_start=epoch_to_iso(subscription.get("trial_start")),
        trial_end=epoch_to_iso(subscription.get("trial_end")),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        created_at=epoch_to_iso(subscription.get("created")),
        updated_at=updated_at or iso_now(),
        tier=metadata.get("tier"),
        features=metadata.get("features"),
        limits=metadata.get("limits"),
    )
