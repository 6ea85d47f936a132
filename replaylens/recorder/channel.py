"""Page-to-recorder message channel, the event log and its backup sync."""

from __future__ import annotations

import asyncio
import contextlib
import json
from pathlib import Path
from typing import Callable

import structlog

from replaylens.core.errors import InjectionFailure
from replaylens.core.files import write_json_atomic
from replaylens.core.types import RawEvent
from replaylens.driver.base import BrowserDriver
from replaylens.driver.scripts import DESCRIBE_ELEMENT_FN

logger = structlog.get_logger(__name__)

BINDING_NAME = "__replaylensEmit"

_CAPTURE_SCRIPT = r"""
(() => {
    if (window.__replaylensArmed) return;
    const CONFIG = __CONFIG__;
__DESCRIBE__
    const isFileInput = (el) => el.tagName === 'INPUT' && (el.type || '').toLowerCase() === 'file';
    const emit = (payload) => {
        payload.ts = Date.now();
        const send = window[CONFIG.binding];
        if (typeof send === 'function') {
            try { send(payload); } catch (e) { /* page is going away */ }
        }
    };

    document.addEventListener('click', (e) => {
        const el = e.target instanceof Element ? e.target : null;
        if (!el || isFileInput(el)) return;
        emit({kind: 'click', element: describeElement(el, {x: e.clientX, y: e.clientY})});
    }, true);

    document.addEventListener('input', (e) => {
        const el = e.target instanceof Element ? e.target : null;
        if (!el || isFileInput(el)) return;
        const value = (typeof el.value === 'string') ? el.value : (el.isContentEditable ? el.innerText : '');
        emit({kind: 'input', value: value, element: describeElement(el, null)});
    }, true);

    document.addEventListener('change', (e) => {
        const el = e.target instanceof Element ? e.target : null;
        if (!el || !isFileInput(el)) return;
        const files = Array.from(el.files || []).map((f) => f.name);
        emit({kind: 'upload', files: files, element: describeElement(el, null)});
    }, true);

    let scrollTimer = null;
    let lastX = window.scrollX, lastY = window.scrollY;
    window.addEventListener('scroll', () => {
        clearTimeout(scrollTimer);
        scrollTimer = setTimeout(() => {
            const dx = window.scrollX - lastX, dy = window.scrollY - lastY;
            const vertical = Math.abs(dy) >= Math.abs(dx);
            const delta = vertical ? dy : dx;
            if (Math.abs(delta) <= CONFIG.minScroll) return;
            lastX = window.scrollX;
            lastY = window.scrollY;
            const direction = vertical ? (delta > 0 ? 'down' : 'up') : (delta > 0 ? 'right' : 'left');
            emit({kind: 'scroll', direction: direction, amount: Math.round(Math.abs(delta))});
        }, CONFIG.scrollDebounceMs);
    }, true);

    const notify = () => emit({kind: 'navigate', url: location.href, source: 'history'});
    for (const method of ['pushState', 'replaceState']) {
        const original = history[method];
        history[method] = function () {
            const result = original.apply(this, arguments);
            notify();
            return result;
        };
    }
    window.addEventListener('popstate', notify);

    window.__replaylensArmed = true;
})();
"""

_IS_ARMED = "() => window.__replaylensArmed === true"


def build_capture_script(*, scroll_debounce: float = 0.3, min_scroll_distance: int = 50) -> str:
    config = {
        "binding": BINDING_NAME,
        "scrollDebounceMs": int(scroll_debounce * 1000),
        "minScroll": min_scroll_distance,
    }
    return _CAPTURE_SCRIPT.replace("__CONFIG__", json.dumps(config)).replace(
        "__DESCRIBE__", DESCRIBE_ELEMENT_FN
    )


class CaptureChannel:
    """
    Carries interaction payloads from the page to a Python handler.

    The capture script is registered as an init script so every new
    document gets it; ``arm`` verifies (and if needed re-runs) it on the
    current document.
    """

    def __init__(self, handler: Callable[[dict], None], script: str) -> None:
        self._handler: Callable[[dict], None] | None = handler
        self._script = script

    def receive(self, payload) -> None:
        if self._handler is None:
            return
        if not isinstance(payload, dict) or "kind" not in payload:
            logger.debug("ignoring malformed capture payload", payload_type=type(payload).__name__)
            return
        self._handler(payload)

    def close(self) -> None:
        self._handler = None

    async def attach(self, driver: BrowserDriver) -> None:
        await driver.expose_channel(BINDING_NAME, self.receive)
        await driver.add_init_script(self._script)

    async def arm(self, driver: BrowserDriver, *, attempts: int = 3, delay: float = 1.0) -> None:
        """Make sure capture runs on the current document, retrying ``attempts`` times."""
        last_error: str = "capture flag not set"
        for attempt in range(1, attempts + 1):
            try:
                if await driver.evaluate(_IS_ARMED):
                    return
                await driver.evaluate(self._script)
                if await driver.evaluate(_IS_ARMED):
                    logger.debug("capture armed", attempt=attempt)
                    return
            except Exception as exc:
                last_error = str(exc)
                logger.debug("capture arm attempt failed", attempt=attempt, error=last_error)
            if attempt < attempts:
                await asyncio.sleep(delay)
        raise InjectionFailure(f"Capture script not active after {attempts} attempts: {last_error}")


class EventLog:
    """Append-only log of debounced interactions. Only the capture path appends."""

    def __init__(self) -> None:
        self._events: list[RawEvent] = []

    def append(self, event: RawEvent) -> None:
        self._events.append(event)

    def snapshot(self) -> tuple[RawEvent, ...]:
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)


class BackupSync:
    """Periodically mirrors the event log, in memory and optionally to a JSON file."""

    def __init__(self, log: EventLog, *, interval: float = 5.0, path: str | None = None) -> None:
        self._log = log
        self._interval = interval
        self._path = Path(path) if path else None
        self._backup: tuple[RawEvent, ...] = ()
        self._task: asyncio.Task | None = None

    @property
    def backup(self) -> tuple[RawEvent, ...]:
        return self._backup

    def sync(self) -> None:
        self._backup = self._log.snapshot()
        if self._path is not None:
            write_json_atomic(self._path, [e.to_dict() for e in self._backup])

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sync()
            except OSError as exc:
                logger.warning("backup sync failed", path=str(self._path), error=str(exc))

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    @staticmethod
    def load(path: str) -> list[RawEvent]:
        """Read events back from a backup file written by ``sync``."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return [RawEvent.from_dict(item) for item in data]

