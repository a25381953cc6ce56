"""Subscription and webhook-log persistence."""

import json
import logging
from datetime import datetime
from typing import Any, Optional

import asyncpg

from depo.db.models import Table
from depo.payments.records import SubscriptionRecord

logger = logging.getLogger(__name__)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _jsonb(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value)


class SubscriptionStore:
    """Reads and writes the ``subscriptions`` and ``webhook_logs`` tables."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def find_customer_id(self, user_id: str) -> Optional[str]:
        """Stripe customer id already mapped to a user, if any."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT stripe_customer_id
                FROM {Table.SUBSCRIPTIONS}
                WHERE user_id = $1
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                user_id,
            )
        return row["stripe_customer_id"] if row else None

    async def find_user_id(self, customer_id: str) -> Optional[str]:
        """Local user owning a Stripe customer, if any row links them."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT user_id
                FROM {Table.SUBSCRIPTIONS}
                WHERE stripe_customer_id = $1
                LIMIT 1
                """,
                customer_id,
            )
        return str(row["user_id"]) if row else None

    async def owns_customer(self, user_id: str, customer_id: str) -> bool:
        """Whether any of the user's rows carries this Stripe customer."""
        async with self._pool.acquire() as conn:
            return await conn.fetchval(
                f"""
                SELECT EXISTS (
                    SELECT 1 FROM {Table.SUBSCRIPTIONS}
                    WHERE user_id = $1 AND stripe_customer_id = $2
                )
                """,
                user_id,
                customer_id,
            )

    async def find_subscription_owner(self, subscription_id: str) -> Optional[str]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT user_id
                FROM {Table.SUBSCRIPTIONS}
                WHERE stripe_subscription_id = $1
                """,
                subscription_id,
            )
        return str(row["user_id"]) if row else None

    async def upsert_subscription(self, user_id: str, record: SubscriptionRecord) -> None:
        """
        Insert or update one subscription row keyed on stripe_subscription_id.

        Last write wins; created_at is only set on insert.

        Raises:
            asyncpg.PostgresError: On database errors
        """
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {Table.SUBSCRIPTIONS} (
                    user_id, stripe_customer_id, stripe_subscription_id, status,
                    plan_id, plan_name, plan_amount, plan_currency, plan_interval,
                    current_period_start, current_period_end, trial_start, trial_end,
                    cancel_at_period_end, tier, features, limits,
                    created_at, updated_at
                )
                VALUES (
                    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                    $14, $15, $16::jsonb, $17::jsonb, COALESCE($18, now()), COALESCE($19, now())
                )
                ON CONFLICT (stripe_subscription_id) DO UPDATE SET
                    user_id = EXCLUDED.user_id,
                    stripe_customer_id = EXCLUDED.stripe_customer_id,
                    status = EXCLUDED.status,
                    plan_id = EXCLUDED.plan_id,
                    plan_name = EXCLUDED.plan_name,
                    plan_amount = EXCLUDED.plan_amount,
                    plan_currency = EXCLUDED.plan_currency,
                    plan_interval = EXCLUDED.plan_interval,
                    current_period_start = EXCLUDED.current_period_start,
                    current_period_end = EXCLUDED.current_period_end,
                    trial_start = EXCLUDED.trial_start,
                    trial_end = EXCLUDED.trial_end,
                    cancel_at_period_end = EXCLUDED.cancel_at_period_end,
                    tier = EXCLUDED.tier,
                    features = EXCLUDED.features,
                    limits = EXCLUDED.limits,
                    updated_at = EXCLUDED.updated_at
                """,
                user_id,
                record.stripe_customer_id,
                record.stripe_subscription_id,
                record.status,
                record.plan_id,
                record.plan_name,
                record.plan_amount,
                record.plan_currency,
                record.plan_interval,
                _parse_ts(record.current_period_start),
                _parse_ts(record.current_period_end),
                _parse_ts(record.trial_start),
                _parse_ts(record.trial_end),
                record.cancel_at_period_end,
                record.tier,
                _jsonb(record.features),
                _jsonb(record.limits),
                _parse_ts(record.created_at),
                _parse_ts(record.updated_at),
            )

        logger.info(
            f"Upserted subscription {record.stripe_subscription_id} for user {user_id}: "
            f"status={record.status}, customer={record.stripe_customer_id}"
        )

    async def log_webhook(
        self,
        event_id: Optional[str],
        event_type: str,
        payload: Any,
        signature_verified: bool,
    ) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"""
                INSERT INTO {Table.WEBHOOK_LOGS}
                    (event_id, event_type, payload, signature_verified)
                VALUES ($1, $2, $3::jsonb, $4)
                """,
                event_id,
                event_type,
                json.dumps(payload),
                signature_verified,
            )
