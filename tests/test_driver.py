"""Unit tests for PlaywrightDriver and the page-stability wait (AsyncMock page)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from replaylens.core.types import BoundingBox, ElementRef, Point
from replaylens.driver import scripts
from replaylens.driver.base import BrowserDriver
from replaylens.driver.playwright_driver import PlaywrightDriver
from replaylens.driver.stability import wait_for_page_stability


def make_page() -> MagicMock:
    page = MagicMock()
    page.url = "https://example.com"
    page.viewport_size = {"width": 1280, "height": 720}
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"png")
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.expose_binding = AsyncMock()
    page.add_init_script = AsyncMock()
    page.mouse = MagicMock()
    page.mouse.move = AsyncMock()
    page.mouse.click = AsyncMock()
    page.mouse.wheel = AsyncMock()
    page.keyboard = MagicMock()
    page.keyboard.press = AsyncMock()
    page.keyboard.type = AsyncMock()
    locator = MagicMock()
    locator.count = AsyncMock(return_value=1)
    locator.hover = AsyncMock()
    locator.click = AsyncMock()
    locator.fill = AsyncMock()
    locator.press_sequentially = AsyncMock()
    locator.nth = MagicMock(return_value=locator)
    page.locator = MagicMock(return_value=locator)
    return page


def make_ref(selector='[data-rl-scan="3"]') -> ElementRef:
    return ElementRef(
        point=Point(100, 50),
        selector=selector,
        relative=Point(7.81, 6.94),
        bounding_box=BoundingBox(80, 40, 40, 20),
        text="Go",
        tag="button",
    )


class TestPlaywrightDriver:
    def setup_method(self):
        self.page = make_page()
        self.driver = PlaywrightDriver(self.page, jitter_px=0)

    async def test_scan_refs_use_scan_attribute(self):
        self.page.evaluate.return_value = [
            {
                "index": 3,
                "tag": "button",
                "text": "Go",
                "x": 100,
                "y": 50,
                "rx": 7.81,
                "ry": 6.94,
                "rect": {"x": 80, "y": 40, "width": 40, "height": 20},
                "attributes": {"interactive": True},
            }
        ]
        refs = await self.driver.scan()
        assert refs[0].selector == '[data-rl-scan="3"]'
        assert refs[0].index == 0
        assert refs[0].relative == Point(7.81, 6.94)
        assert self.page.evaluate.await_args.args[0] == scripts.SCAN_ELEMENTS

    async def test_click_prefers_locator(self):
        with patch("replaylens.driver.playwright_driver.asyncio.sleep", AsyncMock()):
            await self.driver.click(make_ref())
        self.page.locator.return_value.click.assert_awaited_once()
        self.page.mouse.click.assert_not_awaited()

    async def test_click_falls_back_to_point(self):
        with patch("replaylens.driver.playwright_driver.asyncio.sleep", AsyncMock()):
            await self.driver.click(make_ref(selector=None))
        self.page.mouse.click.assert_awaited_once_with(100, 50)

    async def test_type_into_clears_then_types(self):
        await self.driver.type_into(make_ref(), "hello")
        locator = self.page.locator.return_value
        locator.fill.assert_awaited_once()
        assert locator.press_sequentially.await_args.args[0] == "hello"
        assert locator.press_sequentially.await_args.kwargs["delay"] == 50

    async def test_scroll_direction(self):
        await self.driver.scroll("up", 200)
        self.page.mouse.wheel.assert_awaited_once_with(0, -200)

    async def test_expose_channel_only_once(self):
        first, second = MagicMock(), MagicMock()
        await self.driver.expose_channel("emit", first)
        await self.driver.expose_channel("emit", second)
        assert self.page.expose_binding.await_count == 1
        callback = self.page.expose_binding.await_args.args[1]
        callback(None, {"kind": "click"})
        second.assert_called_once_with({"kind": "click"})
        first.assert_not_called()

    async def test_network_idle_timeout_returns_false(self):
        self.page.wait_for_load_state.side_effect = PlaywrightTimeoutError("timeout")
        assert await self.driver.wait_for_network_idle(1.0) is False

    def test_main_frame_filter(self):
        seen = []
        self.driver.on_main_frame_navigated(seen.append)
        listener = self.page.on.call_args.args[1]
        child = MagicMock(url="https://ads.example.com")
        main = self.page.main_frame
        main.url = "https://example.com/next"
        listener(child)
        listener(main)
        assert seen == ["https://example.com/next"]

        self.driver.remove_navigation_listener(seen.append)
        self.page.remove_listener.assert_called_once_with("framenavigated", listener)

    async def test_element_screenshot_clipped_to_viewport(self):
        ref = make_ref()
        ref.bounding_box = BoundingBox(1260, 700, 40, 40)
        await self.driver.element_screenshot(ref)
        clip = self.page.screenshot.await_args.kwargs["clip"]
        assert clip == {"x": 1260, "y": 700, "width": 20, "height": 20}


class TestPageStability:
    async def test_settled_page(self):
        driver = MagicMock(spec=BrowserDriver)
        driver.wait_for_network_idle.return_value = True
        driver.wait_for_dom_quiet.return_value = True
        assert await wait_for_page_stability(driver, timeout=1.0, quiet=0.1) is True

    async def test_timeout_is_not_raised(self):
        driver = MagicMock(spec=BrowserDriver)
        driver.url = "https://example.com"
        driver.wait_for_network_idle.return_value = False
        driver.wait_for_dom_quiet.return_value = True
        assert await wait_for_page_stability(driver, timeout=1.0, quiet=0.1) is False
