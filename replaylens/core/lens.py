"""ReplayLens: main orchestrator class."""

from __future__ import annotations

import uuid

import structlog
from playwright.async_api import Page

from replaylens.core.config import ExecuteOptions, ReplaySettings
from replaylens.core.logging import configure_logging
from replaylens.core.types import Action, ExecutionReport, SessionInfo, Workflow, utc_now
from replaylens.driver.base import BrowserDriver
from replaylens.driver.playwright_driver import PlaywrightDriver
from replaylens.recorder.recorder import InteractionRecorder
from replaylens.replay.executor import ReplayController
from replaylens.store.workflow_store import WorkflowStore

logger = structlog.get_logger(__name__)


class ReplayLens:
    """
    Records what a person does in a browser and replays it later.

    Usage:
        lens = ReplayLens()
        await lens.start_recording(page, "https://example.com/login")
        # ... the person interacts with the page ...
        actions = await lens.stop_recording()
        workflow = lens.build_workflow(actions, name="login")
        report = await lens.execute(page, workflow, {"username": "bob"})
    """

    def __init__(
        self,
        *,
        settings: ReplaySettings | None = None,
        store_dir: str | None = None,
        configure_logs: bool = True,
    ) -> None:
        self.settings = settings or ReplaySettings()
        if configure_logs:
            configure_logging(self.settings.log_level, json_format=self.settings.json_logs)
        self._store = WorkflowStore(store_dir or self.settings.workflow_dir)
        self._recorder: InteractionRecorder | None = None
        self._controllers: set[ReplayController] = set()
        self._drivers: dict[Page, PlaywrightDriver] = {}

    @property
    def store(self) -> WorkflowStore:
        return self._store

    def _driver(self, page_or_driver: Page | BrowserDriver) -> BrowserDriver:
        if isinstance(page_or_driver, BrowserDriver):
            return page_or_driver
        # One driver per page: page bindings and init scripts outlive a session
        for page in [p for p in self._drivers if p.is_closed()]:
            del self._drivers[page]
        driver = self._drivers.get(page_or_driver)
        if driver is None:
            driver = PlaywrightDriver(page_or_driver)
            self._drivers[page_or_driver] = driver
        return driver

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def start_recording(
        self,
        page_or_driver: Page | BrowserDriver,
        url: str | None = None,
        platform_hint: str | None = None,
    ) -> SessionInfo:
        """Begin capturing interactions on the page, optionally navigating to ``url`` first."""
        if self._recorder is not None:
            raise RuntimeError("A recording session is already active")
        recorder = InteractionRecorder(self._driver(page_or_driver), settings=self.settings)
        session = await recorder.start(url, platform_hint)
        self._recorder = recorder
        return session

    async def stop_recording(self, *, enrich: bool = False) -> list[Action]:
        """Stop capturing and return the compiled action list."""
        if self._recorder is None:
            raise RuntimeError("No active recording session")
        recorder, self._recorder = self._recorder, None
        actions = await recorder.stop()
        if enrich:
            actions = await recorder.enrich(actions)
        return actions

    def build_workflow(
        self,
        actions: list[Action],
        name: str,
        *,
        platform: str = "default",
        type: str = "custom",
        workflow_id: str | None = None,
    ) -> Workflow:
        return Workflow(
            id=workflow_id or uuid.uuid4().hex,
            name=name,
            actions=list(actions),
            platform=platform,
            type=type,
            created_at=utc_now(),
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def save_workflow(self, workflow: Workflow) -> str:
        return self._store.save(workflow)

    def load_workflow(self, workflow_id: str) -> Workflow | None:
        return self._store.load(workflow_id)

    def save_report(self, report: ExecutionReport, path: str | None = None) -> str:
        return self._store.save_report(report, path)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def execute(
        self,
        page_or_driver: Page | BrowserDriver,
        workflow: Workflow | str,
        variables: dict | None = None,
        options: ExecuteOptions | dict | None = None,
    ) -> ExecutionReport:
        """
        Replay a workflow (or a stored workflow ID) on the page.

        ``options`` may be an ExecuteOptions or a dict of overrides on the
        settings defaults; camelCase keys such as ``maxRetries`` are accepted.
        """
        if isinstance(workflow, str):
            loaded = self._store.load(workflow)
            if loaded is None:
                raise FileNotFoundError(f"Workflow {workflow!r} not found in store")
            workflow = loaded

        if options is None or isinstance(options, dict):
            options = ExecuteOptions.from_settings(self.settings, **(options or {}))

        controller = ReplayController(self._driver(page_or_driver), settings=self.settings)
        self._controllers.add(controller)
        try:
            return await controller.execute(workflow, variables, options)
        finally:
            self._controllers.discard(controller)

    def stop_replay(self) -> None:
        """Ask every running replay to stop after its current action."""
        for controller in list(self._controllers):
            controller.stop()
