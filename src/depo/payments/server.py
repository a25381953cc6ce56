"""HTTP server exposing the billing and Stripe webhook endpoints."""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from depo.config.settings import AppConfig, get_config
from depo.db.pool import close_pool, get_pool
from depo.payments.auth import SupabaseAuth
from depo.payments.dispatch import BILLING_KEY, BillingContext, billing_endpoint
from depo.payments.store import SubscriptionStore
from depo.payments.stripe_client import StripeClient
from depo.payments.webhooks import handle_webhook

logger = logging.getLogger(__name__)


async def webhook_endpoint(request: web.Request) -> web.Response:
    """Handle POST /stripe-webhooks."""
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header")
        return web.Response(status=400, text="Missing signature")

    payload = await request.read()
    return await handle_webhook(payload, sig_header, request.app[BILLING_KEY])


async def health_endpoint(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(ctx: BillingContext) -> web.Application:
    """Create the aiohttp application around a set of billing collaborators."""
    app = web.Application()
    app[BILLING_KEY] = ctx
    app.router.add_post("/stripe-payments", billing_endpoint)
    app.router.add_post("/stripe-webhooks", webhook_endpoint)
    app.router.add_get("/health", health_endpoint)
    return app


async def build_context(config: AppConfig) -> BillingContext:
    """Construct the production collaborators from configuration."""
    pool = await get_pool(config)
    return BillingContext(
        stripe_client=StripeClient.from_config(config),
        store=SubscriptionStore(pool),
        auth=SupabaseAuth.from_config(config),
        portal_return_url=config.portal_return_url,
        invoice_list_limit=config.invoice_list_limit,
    )


async def run_server(shutdown_event: Optional[asyncio.Event] = None) -> None:
    """Run the billing server until shutdown signal.

    Args:
        shutdown_event: Optional event to signal shutdown
    """
    config = get_config()
    ctx = await build_context(config)
    app = create_app(ctx)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.server_host, config.server_port)
    await site.start()

    logger.info(f"Billing server listening on {config.server_host}:{config.server_port}")

    try:
        if shutdown_event:
            await shutdown_event.wait()
        else:
            await asyncio.Event().wait()
    finally:
        logger.info("Shutting down billing server...")
        await runner.cleanup()
        await close_pool()
