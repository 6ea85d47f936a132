"""BrowserDriver backed by a Playwright async Page."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from replaylens.core.types import BoundingBox, ElementRef, Point
from replaylens.driver import scripts
from replaylens.driver.base import BrowserDriver, ChannelHandler, NavigationHandler

logger = structlog.get_logger(__name__)

_SCAN_LIMIT = 2000


def _ref_from_js(raw: dict, selector: str | None) -> ElementRef:
    rect = raw.get("rect") or {}
    return ElementRef(
        point=Point(raw["x"], raw["y"]),
        selector=selector,
        index=raw.get("index", 0),
        relative=Point(raw.get("rx", 0.0), raw.get("ry", 0.0)),
        bounding_box=BoundingBox.from_dict(rect) if rect else None,
        text=raw.get("text") or "",
        tag=raw.get("tag") or "",
        attributes=raw.get("attributes") or {},
    )


class PlaywrightDriver(BrowserDriver):
    """
    Adapts ``playwright.async_api.Page`` to the BrowserDriver interface.

    Pointer clicks get a small random offset and a short hover first so
    replays look like a person driving the page.
    """

    def __init__(
        self,
        page: Page,
        *,
        action_timeout: float = 10.0,
        typing_delay_ms: int = 50,
        jitter_px: float = 2.0,
    ) -> None:
        self._page = page
        self._timeout_ms = action_timeout * 1000
        self._typing_delay_ms = typing_delay_ms
        self._jitter = jitter_px
        self._channels: dict[str, ChannelHandler] = {}
        self._init_scripts: set[str] = set()
        self._nav_listeners: dict[Any, Any] = {}

    @property
    def page(self) -> Page:
        return self._page

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _locator(self, ref: ElementRef):
        """Locator for ``ref`` if its selector still matches, else None."""
        if not ref.selector:
            return None
        try:
            locator = self._page.locator(ref.selector).nth(ref.index)
            if await locator.count() == 0:
                return None
        except PlaywrightError:
            return None
        return locator

    @staticmethod
    def _target(ref: ElementRef) -> list:
        return [ref.selector, ref.index, ref.point.x, ref.point.y]

    async def _hover_pause(self) -> None:
        await asyncio.sleep(random.uniform(0.1, 0.3))

    # ------------------------------------------------------------------
    # Page
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._page.url

    def is_closed(self) -> bool:
        return self._page.is_closed()

    async def goto(self, url: str, *, wait_until: str = "load", timeout: float | None = None) -> None:
        await self._page.goto(
            url,
            wait_until=wait_until,
            timeout=(timeout * 1000) if timeout is not None else self._timeout_ms * 3,
        )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def viewport(self) -> dict:
        size = self._page.viewport_size
        if size:
            return {"width": size["width"], "height": size["height"]}
        return await self._page.evaluate(
            "() => ({width: window.innerWidth, height: window.innerHeight})"
        )

    async def screenshot(
        self,
        *,
        path: str | None = None,
        clip: BoundingBox | None = None,
        full_page: bool = False,
    ) -> bytes:
        kwargs: dict[str, Any] = {"full_page": full_page, "type": "png"}
        if path:
            kwargs["path"] = path
        if clip is not None:
            kwargs["clip"] = clip.to_dict()
        return await self._page.screenshot(**kwargs)

    async def wait_for_network_idle(self, timeout: float) -> bool:
        try:
            await self._page.wait_for_load_state("networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            return False
        return True

    async def wait_for_dom_quiet(self, quiet: float, timeout: float) -> bool:
        try:
            return bool(
                await self._page.evaluate(scripts.DOM_QUIET, [quiet * 1000, timeout * 1000])
            )
        except PlaywrightError as exc:
            # Document replaced while waiting
            logger.debug("dom quiet wait interrupted", error=str(exc))
            return False

    async def page_state(self) -> dict:
        return await self._page.evaluate(scripts.PAGE_STATE)

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    async def query(self, selector: str) -> list[ElementRef]:
        raw = await self._page.evaluate(scripts.QUERY_SELECTOR, selector)
        return [_ref_from_js(item, selector) for item in raw]

    async def query_count(self, selector: str) -> int:
        return await self._page.locator(selector).count()

    async def scan(self) -> list[ElementRef]:
        raw = await self._page.evaluate(scripts.SCAN_ELEMENTS, _SCAN_LIMIT)
        return [
            _ref_from_js({**item, "index": 0}, f'[data-rl-scan="{item["index"]}"]')
            for item in raw
        ]

    async def get_bounding_rect(self, selector: str) -> BoundingBox | None:
        box = await self._page.locator(selector).first.bounding_box()
        return BoundingBox.from_dict(box) if box else None

    async def describe_element(self, selector: str) -> dict | None:
        return await self._page.evaluate(scripts.DESCRIBE_BY_SELECTOR, selector)

    async def element_screenshot(self, ref: ElementRef) -> bytes | None:
        box = ref.bounding_box
        if box is None or box.width <= 0 or box.height <= 0:
            return None
        vp = await self.viewport()
        x = max(box.x, 0)
        y = max(box.y, 0)
        width = min(box.x + box.width, vp["width"]) - x
        height = min(box.y + box.height, vp["height"]) - y
        if width <= 0 or height <= 0:
            return None
        try:
            return await self.screenshot(clip=BoundingBox(x, y, width, height))
        except PlaywrightError as exc:
            logger.debug("element screenshot failed", error=str(exc))
            return None

    async def read_value(self, ref: ElementRef) -> str | None:
        return await self._page.evaluate(scripts.READ_VALUE, self._target(ref))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    async def click_at(self, x: float, y: float) -> None:
        jx = x + random.uniform(-self._jitter, self._jitter)
        jy = y + random.uniform(-self._jitter, self._jitter)
        await self._page.mouse.move(jx, jy)
        await self._hover_pause()
        await self._page.mouse.click(jx, jy)

    async def click(self, ref: ElementRef) -> None:
        locator = await self._locator(ref)
        if locator is None:
            await self.click_at(ref.point.x, ref.point.y)
            return
        await locator.hover(timeout=self._timeout_ms)
        await self._hover_pause()
        await locator.click(timeout=self._timeout_ms)

    async def type_into(self, ref: ElementRef, text: str) -> None:
        locator = await self._locator(ref)
        if locator is None:
            await self.click_at(ref.point.x, ref.point.y)
            await self._page.keyboard.press("ControlOrMeta+A")
            await self._page.keyboard.press("Backspace")
            await self._page.keyboard.type(text, delay=self._typing_delay_ms)
            return
        await locator.click(timeout=self._timeout_ms)
        await locator.fill("", timeout=self._timeout_ms)
        await locator.press_sequentially(text, delay=self._typing_delay_ms, timeout=self._timeout_ms)

    async def set_input_files(self, ref: ElementRef, path: str) -> None:
        locator = await self._locator(ref)
        if locator is not None and ref.tag == "input" and ref.attributes.get("type") == "file":
            await locator.set_input_files(path, timeout=self._timeout_ms)
            return
        async with self._page.expect_file_chooser(timeout=self._timeout_ms) as chooser_info:
            await self.click(ref)
        chooser = await chooser_info.value
        await chooser.set_files(path)

    async def scroll(self, direction: str, amount: int) -> None:
        dx, dy = {
            "down": (0, amount),
            "up": (0, -amount),
            "right": (amount, 0),
            "left": (-amount, 0),
        }.get(direction, (0, amount))
        await self._page.mouse.wheel(dx, dy)

    async def highlight(self, ref: ElementRef, duration: float = 2.0) -> None:
        await self._page.evaluate(scripts.HIGHLIGHT, [self._target(ref), int(duration * 1000)])

    # ------------------------------------------------------------------
    # Capture hooks
    # ------------------------------------------------------------------

    async def add_init_script(self, script: str) -> None:
        # Registered scripts run on every new document, so each one is added once
        if script in self._init_scripts:
            return
        await self._page.add_init_script(script=script)
        self._init_scripts.add(script)

    async def expose_channel(self, name: str, handler: ChannelHandler) -> None:
        # A binding can only be exposed once per page; later sessions swap the handler
        already_exposed = name in self._channels
        self._channels[name] = handler
        if already_exposed:
            return
        await self._page.expose_binding(
            name, lambda _source, payload: self._channels[name](payload)
        )

    def on_main_frame_navigated(self, callback: NavigationHandler) -> None:
        def listener(frame) -> None:
            if frame == self._page.main_frame:
                callback(frame.url)

        self._nav_listeners[callback] = listener
        self._page.on("framenavigated", listener)

    def remove_navigation_listener(self, callback: NavigationHandler) -> None:
        listener = self._nav_listeners.pop(callback, None)
        if listener is not None:
            self._page.remove_listener("framenavigated", listener)
