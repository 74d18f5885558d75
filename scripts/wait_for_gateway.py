#!/usr/bin/env python3
"""Wait for the data gateway to answer before starting the application."""

import asyncio
import os
import sys
import time

import structlog

from debtdesk.core.config import settings
from debtdesk.core.logging import configure_logging
from debtdesk.db import create_gateway
from debtdesk.services.error_handling import GatewayError

configure_logging()

logger = structlog.get_logger()


async def check_gateway() -> bool:
    """Connect once and ping.

    Returns:
        True if the gateway answered
    """
    try:
        gateway = await create_gateway()
    except GatewayError as e:
        logger.warning(f"Gateway connection failed: {e.message}", backend=settings.gateway_backend)
        return False
    try:
        return await gateway.ping()
    finally:
        await gateway.close()


async def wait_for_gateway(max_wait: int = 60, check_interval: int = 5) -> bool:
    """Poll the gateway until it answers or ``max_wait`` seconds pass.

    Args:
        max_wait: Maximum time to wait in seconds
        check_interval: Time between checks in seconds

    Returns:
        True if the gateway became available
    """
    start_time = time.time()

    while time.time() - start_time < max_wait:
        if await check_gateway():
            logger.info("Gateway is available", backend=settings.gateway_backend)
            return True
        logger.info("Gateway not available yet, waiting...")
        await asyncio.sleep(check_interval)

    return await check_gateway()


def main():
    """Main entry point."""
    logger.info("Starting gateway availability check...", backend=settings.gateway_backend)

    if os.environ.get("SKIP_GATEWAY_WAIT", "").lower() == "true":
        logger.info("Skipping gateway wait (SKIP_GATEWAY_WAIT=true)")
        return 0

    if asyncio.run(wait_for_gateway()):
        logger.info("System ready to start")
        return 0
    logger.error("Gateway did not become available within timeout")
    return 1


if __name__ == "__main__":
    sys.exit(main())
