"""Unit tests for visual descriptor capture."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from replaylens.core.errors import CaptureFailure
from replaylens.core.types import Point, validate_visual
from replaylens.driver.base import BrowserDriver
from replaylens.recorder.descriptor import DescriptorCapture, relative_position


def make_driver() -> MagicMock:
    driver = MagicMock(spec=BrowserDriver)
    driver.url = "https://example.com/login"
    driver.screenshot.return_value = b"\x89PNG fake"
    driver.describe_element.return_value = None
    return driver


def make_snapshot(**overrides) -> dict:
    snapshot = {
        "tag": "button",
        "text": "Log in",
        "placeholder": None,
        "type": "submit",
        "rect": {"x": 600, "y": 340, "width": 80, "height": 40},
        "viewport": {"width": 1280, "height": 720},
        "surroundingText": ["a", "b", "c", "d", "e", "f"],
    }
    snapshot.update(overrides)
    return snapshot


class TestRelativePosition:
    def test_percentages_rounded_to_two_decimals(self):
        assert relative_position(Point(640, 240), {"width": 1280, "height": 720}) == Point(50.0, 33.33)

    def test_zero_viewport_raises(self):
        with pytest.raises(CaptureFailure):
            relative_position(Point(1, 1), {"width": 0, "height": 720})


class TestDescriptorCapture:
    def setup_method(self):
        self.driver = make_driver()
        self.capture = DescriptorCapture(self.driver)

    async def test_capture_uses_pointer_as_absolute_position(self):
        visual = await self.capture.capture(make_snapshot(), pointer={"x": 610, "y": 350})
        assert visual.position.absolute == Point(610, 350)
        assert visual.bounding_box.width == 80
        assert visual.text == "Log in"
        assert validate_visual(visual)

    async def test_capture_defaults_to_box_center(self):
        visual = await self.capture.capture(make_snapshot())
        assert visual.position.absolute == Point(640, 360)
        assert visual.position.relative == Point(50.0, 50.0)

    async def test_surrounding_text_capped_at_five(self):
        visual = await self.capture.capture(make_snapshot())
        assert len(visual.surrounding_text) == 5

    async def test_screenshots_are_data_urls(self):
        visual = await self.capture.capture(make_snapshot())
        assert visual.screenshot.startswith("data:image/png;base64,")
        assert visual.context_screenshot.startswith("data:image/png;base64,")

    async def test_screenshot_failure_is_not_fatal(self):
        self.driver.screenshot.side_effect = RuntimeError("target closed")
        visual = await self.capture.capture(make_snapshot())
        assert visual.screenshot is None
        assert validate_visual(visual)

    async def test_missing_rect_raises(self):
        with pytest.raises(CaptureFailure):
            await self.capture.capture(make_snapshot(rect={"x": None}))

    async def test_timestamps_strictly_increase(self):
        first = await self.capture.capture(make_snapshot())
        second = await self.capture.capture(make_snapshot())
        assert second.timestamp > first.timestamp

    async def test_capture_selector_without_match_raises(self):
        with pytest.raises(CaptureFailure):
            await self.capture.capture_selector("#gone")
