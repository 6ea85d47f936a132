"""Page-stability wait used after navigations."""

from __future__ import annotations

import time

import structlog

from replaylens.driver.base import BrowserDriver

logger = structlog.get_logger(__name__)


async def wait_for_page_stability(
    driver: BrowserDriver,
    *,
    timeout: float = 10.0,
    quiet: float = 0.5,
) -> bool:
    """
    Wait for network idle, then for a window with no DOM mutations.

    Never raises on timeout; returns False when the page did not settle.
    """
    start = time.monotonic()
    network_idle = await driver.wait_for_network_idle(timeout)
    remaining = max(timeout - (time.monotonic() - start), quiet)
    dom_quiet = await driver.wait_for_dom_quiet(quiet, remaining)
    stable = network_idle and dom_quiet
    if not stable:
        logger.info(
            "page did not fully settle",
            url=driver.url,
            network_idle=network_idle,
            dom_quiet=dom_quiet,
            waited_s=round(time.monotonic() - start, 2),
        )
    return stable
