"""Browser driver interface and the Playwright backend."""

from replaylens.driver.base import BrowserDriver
from replaylens.driver.playwright_driver import PlaywrightDriver
from replaylens.driver.stability import wait_for_page_stability

__all__ = [
    "BrowserDriver",
    "PlaywrightDriver",
    "wait_for_page_stability",
]
