"""Interaction recorder: captures a person's clicks, typing and navigation on a live page."""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from dataclasses import dataclass, replace
from enum import Enum

import structlog

from replaylens.core.config import ReplaySettings, get_platform_config
from replaylens.core.errors import CaptureFailure, InjectionFailure
from replaylens.core.types import (
    Action,
    ActionType,
    RawEvent,
    SessionInfo,
    VisualDescriptor,
    utc_now,
)
from replaylens.driver.base import BrowserDriver
from replaylens.driver.stability import wait_for_page_stability
from replaylens.recorder.channel import (
    BackupSync,
    CaptureChannel,
    EventLog,
    build_capture_script,
)
from replaylens.recorder.compiler import ActionCompiler
from replaylens.recorder.descriptor import DescriptorCapture
from replaylens.recorder.navigation import NavigationDecision, classify_navigation
from replaylens.recorder.selectors import SelectorSynthesizer
from replaylens.recorder.sensitive import UPLOAD_PLACEHOLDER, mask_value

logger = structlog.get_logger(__name__)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass
class _PendingInput:
    element: dict
    visual: VisualDescriptor
    selector: str
    value: str
    url: str
    flush_task: asyncio.Task | None = None


def _field_key(element: dict) -> str:
    return element.get("id") or element.get("structuralPath") or element.get("name") or ""


class InteractionRecorder:
    """
    Records interactions on one page into an ordered list of actions.

    State machine: ``idle -> recording -> stopped``. Page events arrive
    over a message channel and are processed one at a time by a worker
    task, so the event log keeps page order. Keystrokes are debounced per
    field and the field's descriptor is captured once, on the first key.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        settings: ReplaySettings | None = None,
        synthesizer: SelectorSynthesizer | None = None,
        capture: DescriptorCapture | None = None,
        compiler: ActionCompiler | None = None,
    ) -> None:
        self._driver = driver
        self._settings = settings or ReplaySettings()
        self._synthesizer = synthesizer or SelectorSynthesizer()
        self._capture = capture or DescriptorCapture(driver)
        self._compiler = compiler or ActionCompiler()

        self._state = RecorderState.IDLE
        self._session: SessionInfo | None = None
        self._platform = get_platform_config(None)
        self._log = EventLog()
        self._backup: BackupSync | None = None
        self._channel: CaptureChannel | None = None
        self._queue: asyncio.Queue | None = None
        self._worker: asyncio.Task | None = None
        self._pending: dict[str, _PendingInput] = {}
        self._last_url: str | None = None
        self._degraded = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def degraded(self) -> bool:
        """True when the capture script could not be re-armed after a navigation."""
        return self._degraded

    @property
    def events(self) -> tuple[RawEvent, ...]:
        return self._log.snapshot()

    async def start(self, url: str | None = None, platform_hint: str | None = None) -> SessionInfo:
        """
        Attach capture to the page and begin recording.

        Navigates to ``url`` first when given. Raises RuntimeError if a
        recording is already running.
        """
        if self._state == RecorderState.RECORDING:
            raise RuntimeError("InteractionRecorder is already recording")

        settings = self._settings
        self._platform = get_platform_config(platform_hint)
        self._log = EventLog()
        self._pending = {}
        self._degraded = False
        self._backup = BackupSync(
            self._log, interval=settings.sync_interval, path=settings.backup_path
        )
        self._queue = asyncio.Queue()
        self._channel = CaptureChannel(
            self._queue.put_nowait,
            build_capture_script(
                scroll_debounce=settings.scroll_debounce,
                min_scroll_distance=settings.min_scroll_distance,
            ),
        )

        await self._channel.attach(self._driver)
        self._driver.on_main_frame_navigated(self._on_main_frame_navigated)

        if url:
            await self._driver.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._platform.protocol_timeout / 1000,
            )
            await wait_for_page_stability(
                self._driver,
                timeout=settings.stability_timeout,
                quiet=settings.dom_quiet_period,
            )
        await self._arm()

        # Redirects of the initial load are not interactions
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        self._last_url = self._driver.url
        self._log.append(
            RawEvent(
                type=ActionType.NAVIGATE.value,
                timestamp=self._capture.next_timestamp(),
                url=self._last_url,
                params={"url": self._last_url},
            )
        )

        self._worker = asyncio.create_task(self._run_worker(self._queue))
        self._backup.start()
        self._state = RecorderState.RECORDING
        self._session = SessionInfo(
            session_id=uuid.uuid4().hex[:12],
            url=self._last_url,
            platform=self._platform.name,
            started_at=utc_now(),
            viewport=await self._driver.viewport(),
        )
        logger.info(
            "recording started",
            session_id=self._session.session_id,
            url=self._last_url,
            platform=self._platform.name,
        )
        return self._session

    async def stop(self) -> list[Action]:
        """
        Stop recording and compile the captured events into actions.

        Events already sent by the page are processed before stopping.
        Raises RuntimeError if not recording.
        """
        if self._state != RecorderState.RECORDING or self._queue is None or self._backup is None:
            raise RuntimeError("InteractionRecorder.start() must be called before stop()")

        self._driver.remove_navigation_listener(self._on_main_frame_navigated)
        if self._channel is not None:
            self._channel.close()

        await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        self._flush_all_typing()
        await self._backup.stop()

        events = self._select_events()
        self._state = RecorderState.STOPPED
        actions = self._compiler.compile(events)
        logger.info(
            "recording stopped",
            session_id=self._session.session_id if self._session else None,
            events=len(events),
            actions=len(actions),
            degraded=self._degraded,
        )
        return actions

    async def enrich(self, actions: list[Action]) -> list[Action]:
        """
        Fill in missing element screenshots by capturing through backup selectors.

        Must run while the recorded page is still open. Actions whose target
        can no longer be found are returned unchanged.
        """
        enriched = []
        for action in actions:
            visual = action.visual
            if visual is None or visual.screenshot or not action.backup_selector:
                enriched.append(action)
                continue
            try:
                fresh = await self._capture.capture_selector(action.backup_selector)
            except CaptureFailure as exc:
                logger.debug("enrichment skipped", selector=action.backup_selector, error=str(exc))
                enriched.append(action)
                continue
            action.visual = replace(
                visual,
                screenshot=fresh.screenshot,
                context_screenshot=visual.context_screenshot or fresh.context_screenshot,
            )
            enriched.append(action)
        return enriched

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _select_events(self) -> tuple[RawEvent, ...]:
        # The backup is a snapshot of the live log, so it never holds more
        live = self._log.snapshot()
        if live:
            return live
        backup = self._backup.backup if self._backup else ()
        if backup:
            logger.warning("live event log empty, using backup", backup=len(backup))
        return backup

    async def _arm(self) -> None:
        if self._channel is None:
            raise RuntimeError("capture channel is not attached")
        try:
            await self._channel.arm(self._driver, attempts=self._settings.injection_attempts)
            self._degraded = False
        except InjectionFailure as exc:
            self._degraded = True
            logger.warning("capture could not be armed, continuing on backup", error=str(exc))

    def _on_main_frame_navigated(self, url: str) -> None:
        if self._queue is not None:
            self._queue.put_nowait({"kind": "navigate", "url": url, "source": "frame"})

    async def _run_worker(self, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            try:
                await self._handle(payload)
            except CaptureFailure as exc:
                logger.warning("interaction skipped", kind=payload.get("kind"), error=str(exc))
            except Exception:
                logger.exception("failed to process captured event", kind=payload.get("kind"))
            finally:
                queue.task_done()

    async def _handle(self, payload: dict) -> None:
        kind = payload.get("kind")
        if kind == "click":
            await self._handle_element_event(ActionType.CLICK, payload)
        elif kind == "input":
            await self._handle_keystroke(payload)
        elif kind == "upload":
            await self._handle_element_event(ActionType.UPLOAD, payload)
        elif kind == "scroll":
            self._flush_all_typing()
            self._log.append(
                RawEvent(
                    type=ActionType.SCROLL.value,
                    timestamp=self._capture.next_timestamp(),
                    url=self._driver.url,
                    params={
                        "direction": payload.get("direction", "down"),
                        "amount": int(payload.get("amount", 0)),
                    },
                )
            )
        elif kind == "navigate":
            await self._handle_navigation(payload.get("url") or "")
        else:
            logger.debug("unknown capture payload", kind=kind)

    async def _describe(self, element: dict, pointer: dict | None) -> tuple[VisualDescriptor, str]:
        visual = await self._capture.capture(element, pointer=pointer)
        selector = await self._synthesizer.synthesize(element, self._driver.query_count)
        return visual, selector

    async def _handle_element_event(self, action_type: ActionType, payload: dict) -> None:
        self._flush_all_typing()
        element = payload.get("element") or {}
        pointer = element.get("pointer") if action_type == ActionType.CLICK else None
        visual, selector = await self._describe(element, pointer)
        params: dict = {}
        value = None
        if action_type == ActionType.UPLOAD:
            value = UPLOAD_PLACEHOLDER
            params = {"file_names": list(payload.get("files") or [])}
        self._log.append(
            RawEvent(
                type=action_type.value,
                timestamp=visual.timestamp or self._capture.next_timestamp(),
                url=element.get("url") or self._driver.url,
                visual=visual,
                backup_selector=selector,
                value=value,
                params=params,
            )
        )
        logger.debug("captured interaction", type=action_type.value, selector=selector)

    async def _handle_keystroke(self, payload: dict) -> None:
        element = payload.get("element") or {}
        key = _field_key(element)
        pending = self._pending.get(key)
        if pending is None:
            # Switching fields closes out the others first
            self._flush_all_typing()
            visual, selector = await self._describe(element, None)
            pending = _PendingInput(
                element=element,
                visual=visual,
                selector=selector,
                value="",
                url=element.get("url") or self._driver.url,
            )
            self._pending[key] = pending
        pending.element = element
        pending.value = payload.get("value") or ""
        if pending.flush_task is not None:
            pending.flush_task.cancel()
        pending.flush_task = asyncio.create_task(self._flush_later(key))

    async def _flush_later(self, key: str) -> None:
        await asyncio.sleep(self._settings.typing_debounce)
        pending = self._pending.get(key)
        if pending is not None:
            pending.flush_task = None
            self._flush_typing(key)

    def _flush_typing(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        if pending.flush_task is not None:
            pending.flush_task.cancel()
        self._log.append(
            RawEvent(
                type=ActionType.TYPE.value,
                timestamp=self._capture.next_timestamp(),
                url=pending.url,
                visual=pending.visual,
                backup_selector=pending.selector,
                value=mask_value(pending.element, pending.value),
            )
        )

    def _flush_all_typing(self) -> None:
        for key in list(self._pending):
            self._flush_typing(key)

    async def _handle_navigation(self, url: str) -> None:
        decision = classify_navigation(self._last_url, url, login_path=self._platform.login_path)
        if decision == NavigationDecision.IGNORE:
            return

        self._flush_all_typing()
        self._log.append(
            RawEvent(
                type=ActionType.NAVIGATE.value,
                timestamp=self._capture.next_timestamp(),
                url=url,
                params={"url": url},
            )
        )
        if self._backup is not None:
            self._backup.sync()
        previous, self._last_url = self._last_url, url
        logger.info("navigation captured", url=url, previous=previous, decision=decision.value)

        if decision == NavigationDecision.REARM:
            await asyncio.sleep(self._platform.navigation_stability_wait / 1000)
            await wait_for_page_stability(
                self._driver,
                timeout=self._settings.stability_timeout,
                quiet=self._settings.dom_quiet_period,
            )
            await self._arm()
