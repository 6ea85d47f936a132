"""Unit tests for ReplayController (fake driver, real resolution engine)."""

from __future__ import annotations

import json
import random
from unittest.mock import AsyncMock, MagicMock, patch

from replaylens.core.config import ExecuteOptions
from replaylens.core.types import (
    Action,
    ActionType,
    BoundingBox,
    ElementRef,
    Point,
    Position,
    ResolutionMode,
    VisualDescriptor,
    Workflow,
)
from replaylens.driver.base import BrowserDriver
from replaylens.replay.executor import ReplayController


def make_visual(text="", rx=50.0, ry=50.0, **extra) -> VisualDescriptor:
    x, y = rx * 12.8, ry * 7.2
    return VisualDescriptor(
        text=text,
        position=Position(absolute=Point(x, y), relative=Point(rx, ry)),
        bounding_box=BoundingBox(x - 40, y - 20, 80, 40),
        timestamp=1,
        **extra,
    )


def make_element(text="", rx=50.0, ry=50.0, tag="button", **attrs) -> ElementRef:
    x, y = rx * 12.8, ry * 7.2
    return ElementRef(
        point=Point(x, y),
        selector=f'[data-rl-scan="{tag}"]',
        relative=Point(rx, ry),
        bounding_box=BoundingBox(x - 40, y - 20, 80, 40),
        text=text,
        tag=tag,
        attributes={"interactive": True, **attrs},
    )


def make_page_elements() -> list[ElementRef]:
    return [
        make_element("", rx=50, ry=50, tag="input", type="email", placeholder="Email"),
        make_element("Log in", rx=50, ry=70),
    ]


def make_driver(elements=None) -> MagicMock:
    driver = MagicMock(spec=BrowserDriver)
    driver.url = "https://example.com/login"
    driver.scan.return_value = make_page_elements() if elements is None else elements
    driver.query.return_value = []
    driver.element_screenshot.return_value = None
    driver.read_value.return_value = "bob@example.com"
    driver.screenshot.return_value = b"\x89PNG fake"
    driver.page_state.return_value = {
        "url": "https://example.com/login",
        "title": "Login",
        "viewport": {"width": 1280, "height": 720},
        "elementCount": 42,
        "visibleText": "Welcome back",
    }
    driver.wait_for_network_idle.return_value = True
    driver.wait_for_dom_quiet.return_value = True
    return driver


def make_login_workflow() -> Workflow:
    return Workflow(
        id="wf-login",
        name="login",
        actions=[
            Action(
                type=ActionType.NAVIGATE,
                name="Navigate to login",
                params={"url": "https://example.com/login", "wait_until": "networkidle"},
            ),
            Action(
                type=ActionType.TYPE,
                name='Type into "Email"',
                visual=make_visual(placeholder="Email", input_type="email"),
                backup_selector="#email",
                value="{{email}}",
            ),
            Action(
                type=ActionType.CLICK,
                name='Click "Log in"',
                visual=make_visual("Log in", ry=70),
                backup_selector="#login",
            ),
        ],
    )


def missing_click(name="Submit order") -> Action:
    return Action(
        type=ActionType.CLICK,
        name=f'Click "{name}"',
        visual=make_visual(name, rx=9999, ry=9999),
        backup_selector="#missing",
        resolution_mode=ResolutionMode.SELECTOR_FIRST,
    )


def make_options(tmp_path, **overrides) -> ExecuteOptions:
    values = dict(
        max_retries=2,
        retry_delay=0,
        error_dir=str(tmp_path / "errors"),
        debug_dir=str(tmp_path / "debug"),
    )
    values.update(overrides)
    return ExecuteOptions(**values)


class TestReplayController:
    def setup_method(self):
        self.driver = make_driver()
        self.controller = ReplayController(self.driver, rng=random.Random(3))

    async def test_successful_workflow(self, tmp_path):
        report = await self.controller.execute(
            make_login_workflow(), {"email": "bob@example.com"}, make_options(tmp_path)
        )

        stats = report.overall_stats
        assert stats.total == 3
        assert stats.successful == 3
        assert stats.success_rate == 100.0
        assert report.errors == []
        assert report.aborted is False
        assert report.end_time is not None

        nav, typed, click = report.actions
        assert nav.method == "navigation"
        assert typed.method == "visual"
        assert typed.retries == 0
        assert click.confidence >= 0.95
        self.driver.goto.assert_awaited_once()
        self.driver.type_into.assert_awaited_once()
        assert self.driver.type_into.await_args.args[1] == "bob@example.com"
        self.driver.click.assert_awaited_once()

    async def test_workflow_not_mutated(self, tmp_path):
        workflow = make_login_workflow()
        await self.controller.execute(workflow, {"email": "bob@example.com"}, make_options(tmp_path))
        assert workflow.actions[1].value == "{{email}}"

    async def test_unresolvable_action_fails_after_retries(self, tmp_path):
        workflow = Workflow(id="wf-missing", name="missing", actions=[missing_click(), missing_click("Next")])
        report = await self.controller.execute(workflow, {}, make_options(tmp_path))

        assert len(report.actions) == 1
        result = report.actions[0]
        assert result.success is False
        assert result.retries == 2
        assert result.error_type == "element_not_found"
        assert report.aborted is True
        assert self.driver.query.await_count == 3

        error = report.errors[0]
        assert error.search_criteria["selector"] == "#missing"
        assert error.search_criteria["thresholds"]["positionTolerance"] == 30.0
        assert error.page_state["title"] == "Login"
        assert error.error_screenshot is not None

        record = json.loads((tmp_path / "errors" / f"{error.error_id}.json").read_text())
        assert record["errorType"] == "element_not_found"
        assert record["actionIndex"] == 0
        assert record["retries"] == 2

    async def test_continue_on_error(self, tmp_path):
        workflow = Workflow(id="wf", name="n", actions=[missing_click(), missing_click("Next")])
        report = await self.controller.execute(
            workflow, {}, make_options(tmp_path, max_retries=0, stop_on_error=False)
        )
        assert len(report.actions) == 2
        assert report.overall_stats.failed == 2
        assert report.method_stats["failed"].count == 2

    async def test_missing_variable_aborts_without_retries(self, tmp_path):
        report = await self.controller.execute(
            make_login_workflow(), {}, make_options(tmp_path, stop_on_error=False)
        )
        assert [r.success for r in report.actions] == [True, False]
        failed = report.actions[1]
        assert failed.error_type == "configuration"
        assert failed.retries == 0
        assert "email" in failed.error
        assert report.aborted is True
        self.driver.type_into.assert_not_awaited()

    async def test_typed_value_mismatch_is_retried_then_fails(self, tmp_path):
        self.driver.read_value.return_value = ""
        report = await self.controller.execute(
            make_login_workflow(), {"email": "bob@example.com"}, make_options(tmp_path, max_retries=1)
        )
        failed = report.actions[1]
        assert failed.success is False
        assert failed.retries == 1
        assert self.driver.type_into.await_count == 2

    async def test_click_exception_is_wrapped(self, tmp_path):
        self.driver.click.side_effect = RuntimeError("element detached")
        workflow = Workflow(id="wf", name="n", actions=[make_login_workflow().actions[2]])
        report = await self.controller.execute(workflow, {}, make_options(tmp_path, max_retries=0))
        assert report.actions[0].success is False
        assert "element detached" in report.actions[0].error

    async def test_wait_and_scroll(self, tmp_path):
        workflow = Workflow(
            id="wf",
            name="n",
            actions=[
                Action(type=ActionType.WAIT, params={"duration": 1000, "randomize": True}),
                Action(type=ActionType.SCROLL, params={"direction": "down", "amount": 300}),
            ],
        )
        sleep = AsyncMock()
        with patch("replaylens.replay.executor.asyncio.sleep", sleep):
            report = await self.controller.execute(workflow, {}, make_options(tmp_path))

        assert [r.method for r in report.actions] == ["wait", "scroll"]
        waited = sleep.await_args_list[0].args[0]
        assert 0.8 <= waited <= 1.2
        self.driver.scroll.assert_awaited_once_with("down", 300)

    async def test_upload_missing_file_is_configuration_error(self, tmp_path):
        upload = Action(
            type=ActionType.UPLOAD,
            name="Upload",
            visual=make_visual(rx=50, ry=50),
            value="{{imagePath}}",
            params={"file_path": "{{imagePath}}"},
        )
        elements = [make_element("", rx=50, ry=50, tag="input", type="file")]
        controller = ReplayController(make_driver(elements))
        report = await controller.execute(
            Workflow(id="wf", name="n", actions=[upload]),
            {"imagePath": str(tmp_path / "nope.png")},
            make_options(tmp_path),
        )
        assert report.actions[0].error_type == "configuration"

    async def test_upload_local_file(self, tmp_path):
        image = tmp_path / "cat.png"
        image.write_bytes(b"png")
        upload = Action(
            type=ActionType.UPLOAD,
            name="Upload",
            visual=make_visual(rx=50, ry=50),
            params={"file_path": "{{imagePath}}"},
        )
        driver = make_driver([make_element("", rx=50, ry=50, tag="input", type="file")])
        report = await ReplayController(driver).execute(
            Workflow(id="wf", name="n", actions=[upload]), {"imagePath": str(image)}, make_options(tmp_path)
        )
        assert report.actions[0].success is True
        assert driver.set_input_files.await_args.args[1] == str(image)

    async def test_stop_halts_between_actions(self, tmp_path):
        self.driver.goto.side_effect = lambda *a, **kw: self.controller.stop()
        report = await self.controller.execute(
            make_login_workflow(), {"email": "bob@example.com"}, make_options(tmp_path)
        )
        assert len(report.actions) == 1
        assert report.aborted is True

    async def test_debug_mode_writes_html_report(self, tmp_path):
        report = await self.controller.execute(
            make_login_workflow(), {"email": "bob@example.com"}, make_options(tmp_path, debug=True)
        )
        assert report.debug_report_path is not None
        html = open(report.debug_report_path, encoding="utf-8").read()
        assert "Replay report: wf-login" in html
        assert "action_001_before.png" in html
        self.driver.highlight.assert_awaited()

    async def test_downloaded_upload_is_removed_after_run(self, tmp_path):
        downloaded = tmp_path / "remote.png"
        downloaded.write_bytes(b"png")
        upload = Action(
            type=ActionType.UPLOAD,
            name="Upload",
            visual=make_visual(rx=50, ry=50),
            params={"file_path": "https://cdn.example.com/cat.png"},
        )
        driver = make_driver([make_element("", rx=50, ry=50, tag="input", type="file")])
        fetch = AsyncMock(return_value=str(downloaded))
        with patch("replaylens.replay.executor._download", fetch):
            report = await ReplayController(driver).execute(
                Workflow(id="wf", name="n", actions=[upload]), {}, make_options(tmp_path)
            )

        assert report.actions[0].success is True
        fetch.assert_awaited_once_with("https://cdn.example.com/cat.png")
        assert driver.set_input_files.await_args.args[1] == str(downloaded)
        assert not downloaded.exists()

    async def test_negative_retries_still_attempts_once(self, tmp_path):
        options = make_options(tmp_path)
        options.max_retries = -1
        report = await self.controller.execute(
            Workflow(id="wf", name="n", actions=[missing_click()]), {}, options
        )
        result = report.actions[0]
        assert result.success is False
        assert result.retries == 0
        assert result.error
        assert self.driver.query.await_count == 1
