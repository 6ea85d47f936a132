"""Visual descriptor capture for a recorded interaction target."""

from __future__ import annotations

import time

import structlog

from replaylens.core.errors import CaptureFailure
from replaylens.core.imaging import to_data_url
from replaylens.core.types import BoundingBox, Point, Position, VisualDescriptor
from replaylens.driver.base import BrowserDriver

logger = structlog.get_logger(__name__)

_MAX_SURROUNDING = 5


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def relative_position(point: Point, viewport: dict) -> Point:
    """Express ``point`` as a percentage of the viewport, two decimals."""
    width = viewport.get("width") or 0
    height = viewport.get("height") or 0
    if width <= 0 or height <= 0:
        raise CaptureFailure(f"Invalid viewport {viewport!r}")
    return Point(round(point.x / width * 100, 2), round(point.y / height * 100, 2))


def _clamp(box: BoundingBox, viewport: dict) -> BoundingBox | None:
    x = max(box.x, 0)
    y = max(box.y, 0)
    right = min(box.x + box.width, viewport.get("width", 0))
    bottom = min(box.y + box.height, viewport.get("height", 0))
    if right - x <= 0 or bottom - y <= 0:
        return None
    return BoundingBox(x, y, right - x, bottom - y)


class DescriptorCapture:
    """
    Builds a VisualDescriptor from an element snapshot.

    Snapshots come from the in-page ``describeElement`` helper. Geometry is
    mandatory and its absence raises CaptureFailure; screenshots are
    advisory and silently left out when the browser cannot take them.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        capture_screenshots: bool = True,
        context_padding: int = 100,
    ) -> None:
        self._driver = driver
        self._capture_screenshots = capture_screenshots
        self._context_padding = context_padding
        self._last_timestamp = 0

    def next_timestamp(self) -> int:
        """Wall-clock milliseconds, forced strictly increasing within this session."""
        now = int(time.time() * 1000)
        self._last_timestamp = max(now, self._last_timestamp + 1)
        return self._last_timestamp

    async def capture(self, element: dict, pointer: dict | None = None) -> VisualDescriptor:
        rect = element.get("rect") or {}
        viewport = element.get("viewport") or {}
        if not all(_is_number(rect.get(k)) for k in ("x", "y", "width", "height")):
            raise CaptureFailure(f"Element <{element.get('tag', '?')}> has no bounding box")

        bbox = BoundingBox.from_dict(rect)
        if pointer and _is_number(pointer.get("x")) and _is_number(pointer.get("y")):
            absolute = Point(pointer["x"], pointer["y"])
        else:
            absolute = bbox.center
        relative = relative_position(absolute, viewport)

        screenshot = context = None
        if self._capture_screenshots:
            screenshot, context = await self._screenshots(bbox, viewport)

        return VisualDescriptor(
            text=element.get("text") or "",
            placeholder=element.get("placeholder"),
            input_type=element.get("type"),
            position=Position(absolute=absolute, relative=relative),
            bounding_box=bbox,
            surrounding_text=list(element.get("surroundingText") or [])[:_MAX_SURROUNDING],
            screenshot=screenshot,
            context_screenshot=context,
            timestamp=self.next_timestamp(),
        )

    async def capture_selector(self, selector: str) -> VisualDescriptor:
        """Capture the first element matching ``selector`` on the live page."""
        element = await self._driver.describe_element(selector)
        if not element:
            raise CaptureFailure(f"No element matches {selector!r}")
        return await self.capture(element)

    async def _screenshots(self, bbox: BoundingBox, viewport: dict) -> tuple[str | None, str | None]:
        pad = self._context_padding
        shots: list[str | None] = []
        for box in (
            bbox,
            BoundingBox(bbox.x - pad, bbox.y - pad, bbox.width + 2 * pad, bbox.height + 2 * pad),
        ):
            clip = _clamp(box, viewport)
            if clip is None:
                shots.append(None)
                continue
            try:
                shots.append(to_data_url(await self._driver.screenshot(clip=clip)))
            except Exception as exc:
                logger.debug("descriptor screenshot skipped", error=str(exc))
                shots.append(None)
        return shots[0], shots[1]
