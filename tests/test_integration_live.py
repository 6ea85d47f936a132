"""
Live browser integration tests for ReplayLens.

Run with:
    pytest tests/test_integration_live.py -m integration -v -s

These are excluded from the default `pytest tests/` run because they need a
Playwright-controlled Chromium. The pages are served from inline HTML, so
no network access is required.

Scenarios:
  1. Record a login form (type + click) and replay it on the same page.
  2. Replay the recording after the layout changed (button ids renamed and
     shifted by a few pixels): the visual strategies must still find it.
  3. Record from a loaded URL and replay navigate + type + click from a blank page.
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator
from urllib.parse import quote

import pytest
import pytest_asyncio
from playwright.async_api import Browser, Page, async_playwright

from replaylens import ReplayLens
from replaylens.core.config import ExecuteOptions, ReplaySettings
from replaylens.core.types import ActionType

pytestmark = pytest.mark.integration

LOGIN_PAGE = """
<html><body style="font-family: sans-serif">
  <h1>Welcome back</h1>
  <form onsubmit="event.preventDefault(); document.getElementById('status').innerText = 'Hi ' + document.getElementById('{user_id}').value;">
    <input id="{user_id}" name="city" placeholder="City" style="position:absolute; left:{left}px; top:120px; width:200px">
    <button id="{button_id}" type="submit" style="position:absolute; left:{left}px; top:170px; width:100px">Log in</button>
  </form>
  <p id="status" style="position:absolute; top:240px"></p>
</body></html>
"""


def login_page(user_id="city", button_id="login", left=100) -> str:
    return LOGIN_PAGE.format(user_id=user_id, button_id=button_id, left=left)


@pytest_asyncio.fixture(scope="module")
async def browser() -> AsyncGenerator[Browser, None]:
    async with async_playwright() as pw:
        b = await pw.chromium.launch(headless=True)
        yield b
        await b.close()


@pytest_asyncio.fixture
async def page(browser: Browser) -> AsyncGenerator[Page, None]:
    context = await browser.new_context(viewport={"width": 1280, "height": 720})
    p = await context.new_page()
    yield p
    await context.close()


def make_lens(tmp_path) -> ReplayLens:
    settings = ReplaySettings(
        workflow_dir=str(tmp_path / "workflows"),
        typing_debounce=0.1,
        stability_timeout=2.0,
    )
    return ReplayLens(settings=settings, configure_logs=False)


async def record_login(lens: ReplayLens, page: Page, url: str | None = None):
    if url:
        await page.goto(url)
    else:
        await page.set_content(login_page())
    await lens.start_recording(page)
    await page.click("#city")
    await page.keyboard.type("Paris", delay=20)
    await asyncio.sleep(0.3)
    await page.click("#login")
    await asyncio.sleep(0.3)
    return await lens.stop_recording()


async def test_record_login_form(page: Page, tmp_path):
    lens = make_lens(tmp_path)
    actions = await record_login(lens, page)

    types = [a.type for a in actions]
    assert ActionType.TYPE in types
    assert ActionType.CLICK in types
    typed = next(a for a in actions if a.type == ActionType.TYPE)
    assert typed.value == "Paris"
    assert typed.backup_selector == "#city"
    assert typed.visual is not None and typed.visual.bounding_box.width == pytest.approx(200, abs=2)


async def test_replay_survives_layout_change(page: Page, tmp_path):
    lens = make_lens(tmp_path)
    actions = await record_login(lens, page)
    element_actions = [a for a in actions if a.type in (ActionType.TYPE, ActionType.CLICK)]
    workflow = lens.build_workflow(element_actions, name="login")

    await page.set_content(login_page(user_id="town", button_id="submit-btn", left=110))
    report = await lens.execute(page, workflow, options=ExecuteOptions(max_retries=1, retry_delay=0.1, error_dir=None))

    assert report.overall_stats.success_rate == 100.0, report.to_dict()
    assert await page.inner_text("#status") == "Hi Paris"


async def test_replay_with_navigation_on_same_page(page: Page, tmp_path):
    lens = make_lens(tmp_path)
    actions = await record_login(lens, page, url="data:text/html," + quote(login_page()))
    steps = [a for a in actions if a.type in (ActionType.NAVIGATE, ActionType.TYPE, ActionType.CLICK)]
    assert [a.type for a in steps] == [ActionType.NAVIGATE, ActionType.TYPE, ActionType.CLICK]
    workflow = lens.build_workflow(steps, name="login")

    await page.goto("about:blank")
    report = await lens.execute(page, workflow, options=ExecuteOptions(max_retries=1, retry_delay=0.1, error_dir=None))

    stats = report.overall_stats
    assert stats.total == 3
    assert stats.success_rate == 100.0, report.to_dict()
    assert await page.inner_text("#status") == "Hi Paris"
