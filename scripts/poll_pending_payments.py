#!/usr/bin/env python3
"""
Pending Payment Poll Script

Run this script from cron when the in-process status poller is disabled
(STATUS_POLLER_ENABLED=false). One run checks every stale pending payment once.
"""
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import logging

import config
from app.services.change_feed import get_change_feed
from app.services.midtrans_service import MidtransGateway
from core.logging import configure_logging
from workers.status_poller import run_status_poll

logger = logging.getLogger("poll_pending_payments")


def main():
    """Run one status poll pass."""
    configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
    logger.info("Starting pending payment poll...")

    try:
        summary = asyncio.run(run_status_poll(gateway=MidtransGateway(), feed=get_change_feed()))
    except Exception as e:
        logger.error(f"Error during pending payment poll: {str(e)}", exc_info=True)
        sys.exit(1)

    if summary["errors"]:
        logger.warning(f"Poll finished with {summary['errors']} errors: {summary}")
    else:
        logger.info(f"Poll finished: {summary}")


if __name__ == "__main__":
    main()
