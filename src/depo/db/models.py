"""Table-name constants and column-value enums."""

from enum import Enum


class Table:
    """Database table names."""

    SUBSCRIPTIONS = "subscriptions"
    WEBHOOK_LOGS = "webhook_logs"
    SCHEMA_MIGRATIONS = "schema_migrations"


class SubscriptionStatus(str, Enum):
    """Stripe subscription status, stored verbatim."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    PAUSED = "paused"
