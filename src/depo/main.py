"""Application entry point."""

import asyncio
import logging
import signal
import sys

from depo.config import get_config
from depo.payments.server import run_server

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the billing server as a standalone process.

    Blocks until SIGTERM/SIGINT received.
    """
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info(f"Configuration loaded: env={config.env}")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        loop.run_until_complete(run_server(shutdown_event=shutdown_event))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Billing server failed: {e}")
        sys.exit(1)
    finally:
        loop.close()
        logger.info("Billing server stopped")


if __name__ == "__main__":
    main()
