"""Debug capture: before/after screenshots, element highlight and an HTML report."""

from __future__ import annotations

import datetime
import html
from dataclasses import dataclass
from pathlib import Path

import structlog

from replaylens.core.files import write_bytes_atomic
from replaylens.core.types import Action, Candidate, ExecutionReport
from replaylens.driver.base import BrowserDriver

logger = structlog.get_logger(__name__)

_HIGHLIGHT_SECONDS = 2.0


@dataclass
class DebugEntry:
    index: int
    name: str
    type: str
    before: str | None = None
    after: str | None = None


class DebugRecorder:
    """Collects per-action evidence for one replay run under ``{debug_dir}/run_<stamp>/``."""

    def __init__(self, driver: BrowserDriver, debug_dir: str) -> None:
        self._driver = driver
        stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        self.run_dir = Path(debug_dir) / f"run_{stamp}"
        self.entries: dict[int, DebugEntry] = {}

    def _entry(self, index: int, action: Action) -> DebugEntry:
        if index not in self.entries:
            self.entries[index] = DebugEntry(index=index, name=action.name, type=action.type.value)
        return self.entries[index]

    async def _shot(self, filename: str) -> str | None:
        try:
            data = await self._driver.screenshot()
        except Exception as exc:
            logger.debug("debug screenshot skipped", file=filename, error=str(exc))
            return None
        return write_bytes_atomic(self.run_dir / filename, data)

    async def before(self, index: int, action: Action) -> None:
        self._entry(index, action).before = await self._shot(f"action_{index:03d}_before.png")

    async def after(self, index: int, action: Action) -> None:
        self._entry(index, action).after = await self._shot(f"action_{index:03d}_after.png")

    async def highlight(self, candidate: Candidate) -> None:
        try:
            await self._driver.highlight(candidate.element, _HIGHLIGHT_SECONDS)
        except Exception as exc:
            logger.debug("highlight skipped", error=str(exc))

    def write_report(self, report: ExecutionReport) -> str:
        path = self.run_dir / "debug-report.html"
        content = render_debug_report(report, list(self.entries.values()))
        return write_bytes_atomic(path, content.encode("utf-8"))


def _img(path: str | None, label: str) -> str:
    if not path:
        return f'<div class="missing">no {label} screenshot</div>'
    src = html.escape(Path(path).name)
    return f'<figure><img src="{src}" alt="{label}"><figcaption>{label}</figcaption></figure>'


def render_debug_report(report: ExecutionReport, entries: list[DebugEntry]) -> str:
    """Self-contained HTML summary of a replay run; screenshots are linked relatively."""
    stats = report.overall_stats
    by_index = {e.index: e for e in entries}

    rows = []
    for result in report.actions:
        entry = by_index.get(result.index)
        badge = "success" if result.success else "failure"
        confidence = f"{result.confidence:.2f}" if result.confidence is not None else "-"
        error = f'<div class="error">{html.escape(result.error)}</div>' if result.error else ""
        shots = ""
        if entry is not None:
            shots = f'<div class="shots">{_img(entry.before, "before")}{_img(entry.after, "after")}</div>'
        rows.append(
            f'<section class="action {badge}">'
            f'<h3><span class="badge {badge}">{"OK" if result.success else "FAILED"}</span> '
            f"#{result.index + 1} {html.escape(result.name or result.type)}</h3>"
            f"<p>type: {html.escape(result.type)} | method: {html.escape(result.method or '-')} | "
            f"confidence: {confidence} | retries: {result.retries} | "
            f"time: {result.duration_ms:.0f} ms</p>{error}{shots}</section>"
        )

    method_rows = "".join(
        f"<tr><td>{html.escape(name)}</td><td>{stat.count}</td><td>{stat.total_time:.0f} ms</td></tr>"
        for name, stat in sorted(report.method_stats.items())
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Replay report {html.escape(report.workflow_id)}</title>
<style>
body {{ font-family: sans-serif; margin: 2em; color: #222; }}
.badge {{ padding: 2px 8px; border-radius: 4px; color: #fff; font-size: 0.8em; }}
.badge.success {{ background: #2e7d32; }}
.badge.failure {{ background: #c62828; }}
.action {{ border-left: 4px solid #ccc; padding: 0.5em 1em; margin: 1em 0; }}
.action.success {{ border-color: #2e7d32; }}
.action.failure {{ border-color: #c62828; }}
.error {{ color: #c62828; font-family: monospace; }}
.shots {{ display: flex; gap: 1em; }}
.shots img {{ max-width: 480px; border: 1px solid #ddd; }}
table {{ border-collapse: collapse; }}
td, th {{ border: 1px solid #ddd; padding: 4px 10px; }}
</style>
</head>
<body>
<h1>Replay report: {html.escape(report.workflow_id)}</h1>
<p>{html.escape(report.start_time)} to {html.escape(report.end_time or "-")}{" (aborted)" if report.aborted else ""}</p>
<h2>Summary</h2>
<table>
<tr><th>Total</th><th>Successful</th><th>Failed</th><th>Success rate</th><th>Average time</th><th>Average confidence</th></tr>
<tr><td>{stats.total}</td><td>{stats.successful}</td><td>{stats.failed}</td><td>{stats.success_rate:.1f}%</td>
<td>{stats.average_time:.0f} ms</td><td>{stats.average_confidence:.2f}</td></tr>
</table>
<h2>Methods</h2>
<table>
<tr><th>Method</th><th>Count</th><th>Total time</th></tr>
{method_rows}
</table>
<h2>Actions</h2>
{"".join(rows)}
</body>
</html>
"""
