"""Replay controller: runs a workflow's actions against a live page."""

from __future__ import annotations

import asyncio
import contextlib
import os
import random
import tempfile
import time
import uuid
from pathlib import Path
from urllib.parse import urlparse

import httpx
import structlog

from replaylens.core.config import ExecuteOptions, ReplaySettings
from replaylens.core.errors import (
    ActionExecutionFailure,
    ConfigurationError,
    ResolutionFailure,
    categorize_error,
)
from replaylens.core.files import write_bytes_atomic, write_json_atomic
from replaylens.core.templates import resolve_action
from replaylens.core.types import (
    Action,
    ActionResult,
    ActionType,
    Candidate,
    ErrorRecord,
    ExecutionReport,
    Workflow,
    utc_now,
)
from replaylens.driver.base import BrowserDriver
from replaylens.driver.stability import wait_for_page_stability
from replaylens.replay.debug import DebugRecorder
from replaylens.replay.resolver import ResolutionEngine, search_criteria
from replaylens.replay.thresholds import RelaxationPolicy

logger = structlog.get_logger(__name__)

_WAIT_JITTER = 0.2
_DELAY_JITTER = 0.3
_DEFAULT_WAIT_MS = 1000


def _jitter(value: float, fraction: float, rng: random.Random) -> float:
    return value * rng.uniform(1 - fraction, 1 + fraction)


class ReplayController:
    """
    Executes a workflow one action at a time: resolve, act, verify.

    Failed attempts are retried up to ``max_retries`` times with relaxed
    thresholds. ``execute`` never raises for a failing page or action; the
    returned ExecutionReport carries every outcome.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        settings: ReplaySettings | None = None,
        engine: ResolutionEngine | None = None,
        policy: RelaxationPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._driver = driver
        self._settings = settings or ReplaySettings()
        self._engine = engine or ResolutionEngine(image_threshold=self._settings.image_match_threshold)
        self._policy = policy or RelaxationPolicy.from_settings(self._settings)
        self._rng = rng or random.Random()
        self._stop_requested = asyncio.Event()
        self._downloads: dict[str, str] = {}

    def stop(self) -> None:
        """Ask the running replay to halt after the current action."""
        self._stop_requested.set()

    async def execute(
        self,
        workflow: Workflow,
        variables: dict | None = None,
        options: ExecuteOptions | None = None,
    ) -> ExecutionReport:
        """
        Replay ``workflow``.

        Parameters
        ----------
        workflow:
            The workflow to run. It is copied first and never modified.
        variables:
            Values for ``{{name}}`` placeholders in action values and params.
        options:
            Retry, abort and debug behaviour; defaults come from settings.

        Returns
        -------
        ExecutionReport with one ActionResult per attempted action.
        """
        options = options or ExecuteOptions.from_settings(self._settings)
        variables = dict(variables or {})
        run = workflow.copy()
        self._stop_requested.clear()
        self._downloads = {}

        report = ExecutionReport(workflow_id=run.id, start_time=utc_now())
        debug = DebugRecorder(self._driver, options.debug_dir) if options.debug else None
        deadline = time.monotonic() + options.timeout if options.timeout else None
        log = logger.bind(workflow_id=run.id)
        log.info("replay started", actions=len(run.actions), max_retries=options.max_retries)

        try:
            for index, action in enumerate(run.actions):
                if self._stop_requested.is_set():
                    report.aborted = True
                    log.info("replay stopped on request", next_action=index)
                    break
                if deadline is not None and time.monotonic() > deadline:
                    report.aborted = True
                    log.warning("replay timed out", next_action=index, timeout=options.timeout)
                    break

                result, error = await self._run_action(index, action, variables, options, debug)
                report.add_result(result)
                if error is not None:
                    report.errors.append(error)

                if not result.success and (options.stop_on_error or result.error_type == "configuration"):
                    report.aborted = index < len(run.actions) - 1
                    log.warning("replay aborted", failed_action=index, error=result.error)
                    break

                if options.delay_between_actions and index < len(run.actions) - 1:
                    await asyncio.sleep(_jitter(options.delay_between_actions, _DELAY_JITTER, self._rng))
        except Exception as exc:
            # Driver failure outside any single action
            log.exception("replay crashed")
            report.aborted = True
            report.errors.append(
                ErrorRecord(
                    error_id=f"error_{uuid.uuid4().hex[:8]}",
                    timestamp=utc_now(),
                    action_index=len(report.actions),
                    action_name="",
                    action_type="",
                    error=str(exc),
                    error_type=categorize_error(exc),
                )
            )
        finally:
            report.end_time = utc_now()
            self._remove_downloads()
            if debug is not None:
                try:
                    report.debug_report_path = debug.write_report(report)
                except OSError as exc:
                    log.warning("debug report not written", error=str(exc))

        stats = report.overall_stats
        log.info(
            "replay finished",
            total=stats.total,
            successful=stats.successful,
            success_rate=stats.success_rate,
            aborted=report.aborted,
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_action(
        self,
        index: int,
        action: Action,
        variables: dict,
        options: ExecuteOptions,
        debug: DebugRecorder | None,
    ) -> tuple[ActionResult, ErrorRecord | None]:
        start = time.monotonic()
        log = logger.bind(action_index=index, action=action.name, type=action.type.value)

        try:
            resolved = resolve_action(action, variables)
        except ConfigurationError as exc:
            return await self._failure(index, action, exc, 0, start, options)

        max_retries = max(options.max_retries, 0)
        last_error: Exception = ActionExecutionFailure(f"{action.type.value} was never attempted")
        for attempt in range(max_retries + 1):
            if attempt:
                log.info("retrying action", attempt=attempt, error=str(last_error))
                await asyncio.sleep(options.retry_delay)
            thresholds = self._policy.for_attempt(attempt, max_retries)
            try:
                method, confidence = await self._perform(index, resolved, thresholds, debug)
            except ConfigurationError as exc:
                return await self._failure(index, action, exc, attempt, start, options)
            except (ResolutionFailure, ActionExecutionFailure) as exc:
                last_error = exc
                continue
            except Exception as exc:
                last_error = ActionExecutionFailure(f"{action.type.value} failed: {exc}", cause=exc)
                continue

            duration = (time.monotonic() - start) * 1000
            log.info("action succeeded", method=method, confidence=confidence, retries=attempt)
            return (
                ActionResult(
                    index=index,
                    name=action.name,
                    type=action.type.value,
                    success=True,
                    method=method,
                    confidence=confidence,
                    retries=attempt,
                    duration_ms=duration,
                ),
                None,
            )

        return await self._failure(index, action, last_error, max_retries, start, options)

    async def _perform(self, index, action: Action, thresholds, debug) -> tuple[str, float | None]:
        if action.type == ActionType.NAVIGATE:
            url = action.params.get("url") or action.value
            if not url:
                raise ConfigurationError(f"Navigate action {action.name!r} has no url")
            await self._driver.goto(url, wait_until=action.params.get("wait_until", "load"))
            await wait_for_page_stability(
                self._driver,
                timeout=self._settings.stability_timeout,
                quiet=self._settings.dom_quiet_period,
            )
            return "navigation", None

        if action.type == ActionType.WAIT:
            duration = float(action.params.get("duration", _DEFAULT_WAIT_MS))
            if action.params.get("randomize"):
                duration = _jitter(duration, _WAIT_JITTER, self._rng)
            await asyncio.sleep(duration / 1000)
            return "wait", None

        if action.type == ActionType.SCROLL:
            await self._driver.scroll(
                action.params.get("direction", "down"), int(action.params.get("amount", 0))
            )
            return "scroll", None

        if debug is not None:
            await debug.before(index, action)
        candidate = await self._engine.resolve(self._driver, action, thresholds)
        if debug is not None:
            await debug.highlight(candidate)
        await self._act(action, candidate)
        if debug is not None:
            await debug.after(index, action)
        return candidate.strategy.value, candidate.confidence

    async def _act(self, action: Action, candidate: Candidate) -> None:
        element = candidate.element
        try:
            if action.type == ActionType.CLICK:
                await self._driver.click(element)
            elif action.type == ActionType.TYPE:
                text = action.value or ""
                await self._driver.type_into(element, text)
                current = await self._driver.read_value(element)
                if current is not None and text not in current:
                    raise ActionExecutionFailure(
                        f"Typed value not reflected in field (got {len(current)} chars)"
                    )
            elif action.type == ActionType.UPLOAD:
                path = await self._upload_path(action)
                await self._driver.set_input_files(element, path)
            else:
                raise ConfigurationError(f"Unsupported action type {action.type.value!r}")
        except (ActionExecutionFailure, ConfigurationError):
            raise
        except Exception as exc:
            raise ActionExecutionFailure(f"{action.type.value} failed: {exc}", cause=exc) from exc

    async def _upload_path(self, action: Action) -> str:
        source = action.params.get("file_path") or action.value
        if not source:
            raise ConfigurationError(f"Upload action {action.name!r} has no file path")
        if urlparse(source).scheme not in ("http", "https"):
            if not Path(source).exists():
                raise ConfigurationError(f"Upload file not found: {source}")
            return source
        if source not in self._downloads:
            self._downloads[source] = await _download(source)
        return self._downloads[source]

    def _remove_downloads(self) -> None:
        for path in self._downloads.values():
            with contextlib.suppress(FileNotFoundError):
                os.unlink(path)
        self._downloads = {}

    async def _failure(
        self,
        index: int,
        action: Action,
        exc: Exception,
        retries: int,
        start: float,
        options: ExecuteOptions,
    ) -> tuple[ActionResult, ErrorRecord]:
        duration = (time.monotonic() - start) * 1000
        category = categorize_error(exc)
        result = ActionResult(
            index=index,
            name=action.name,
            type=action.type.value,
            success=False,
            method=None,
            confidence=None,
            retries=retries,
            duration_ms=duration,
            error=str(exc),
            error_type=category,
        )

        error_id = f"error_{int(time.time() * 1000)}_{index}"
        criteria = (
            exc.search_criteria
            if isinstance(exc, ResolutionFailure) and exc.search_criteria
            else search_criteria(action)
        )
        record = ErrorRecord(
            error_id=error_id,
            timestamp=utc_now(),
            action_index=index,
            action_name=action.name,
            action_type=action.type.value,
            error=str(exc),
            error_type=category,
            method=action.resolution_mode.value if action.needs_element else action.type.value,
            retries=retries,
            search_criteria=criteria,
            page_state=await self._page_state(),
        )

        if options.error_dir:
            if options.capture_error_screenshots:
                record.error_screenshot = await self._error_screenshot(options.error_dir, error_id)
            try:
                write_json_atomic(Path(options.error_dir) / f"{error_id}.json", record.to_dict())
            except OSError as exc_io:
                logger.warning("error record not written", error_id=error_id, error=str(exc_io))

        logger.error(
            "action failed",
            action_index=index,
            action=action.name,
            error=str(exc),
            error_type=category,
            retries=retries,
            url=record.page_state.get("url"),
            screenshot=record.error_screenshot,
        )
        return result, record

    async def _page_state(self) -> dict:
        try:
            return await self._driver.page_state()
        except Exception as exc:
            logger.debug("page state unavailable", error=str(exc))
            try:
                return {"url": self._driver.url}
            except Exception:
                return {}

    async def _error_screenshot(self, error_dir: str, error_id: str) -> str | None:
        try:
            data = await self._driver.screenshot(full_page=False)
        except Exception as exc:
            logger.debug("error screenshot skipped", error=str(exc))
            return None
        try:
            return write_bytes_atomic(Path(error_dir) / f"{error_id}.png", data)
        except OSError as exc:
            logger.warning("error screenshot not written", error=str(exc))
            return None


async def _download(url: str) -> str:
    """Fetch ``url`` into a temp file and return its path."""
    suffix = Path(urlparse(url).path).suffix or ".bin"
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise ActionExecutionFailure(f"Download failed for {url}: {exc}", cause=exc) from exc
    fd, path = tempfile.mkstemp(prefix="replaylens_upload_", suffix=suffix)
    with open(fd, "wb") as f:
        f.write(response.content)
    logger.debug("upload source downloaded", url=url, path=path, bytes=len(response.content))
    return path
