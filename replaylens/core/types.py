"""Core data model: actions, descriptors, workflows and execution reports.

Field names produced by the ``to_dict`` helpers are the persisted record
contract shared with storage and front-end collaborators, so they are kept
stable: action keys are snake_case (``backup_selector``, ``execution_method``)
while descriptor and report keys are camelCase (``boundingBox``, ``methodStats``).
"""

from __future__ import annotations

import copy
import datetime
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ActionType(str, Enum):
    CLICK = "click"
    TYPE = "type"
    NAVIGATE = "navigate"
    UPLOAD = "upload"
    SCROLL = "scroll"
    WAIT = "wait"


# Actions that need a target element on the page
ELEMENT_ACTIONS = frozenset({ActionType.CLICK, ActionType.TYPE, ActionType.UPLOAD})


class ResolutionMode(str, Enum):
    SELECTOR_FIRST = "selector_first"
    VISUAL_FIRST = "visual_first"
    VISUAL_ONLY = "visual_only"

    @classmethod
    def parse(cls, value: str | None) -> "ResolutionMode":
        """Accept both ``selector_first`` and ``selectorFirst`` spellings."""
        if not value:
            return cls.VISUAL_FIRST
        if isinstance(value, cls):
            return value
        normalized = "".join("_" + c.lower() if c.isupper() else c for c in value)
        return cls(normalized.lstrip("_"))


class Strategy(str, Enum):
    SELECTOR = "selector"
    TEXT = "text"
    POSITION = "position"
    VISUAL = "visual"


def utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass
class Point:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, d: dict) -> "Point":
        return cls(x=d["x"], y=d["y"])


@dataclass
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: dict) -> "BoundingBox":
        return cls(
            x=d["x"],
            y=d["y"],
            width=d.get("width", d.get("w", 0)),
            height=d.get("height", d.get("h", 0)),
        )


@dataclass
class Position:
    absolute: Point
    relative: Point  # percent of viewport, 0-100

    def to_dict(self) -> dict:
        return {"absolute": self.absolute.to_dict(), "relative": self.relative.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> "Position":
        absolute = Point.from_dict(d["absolute"])
        relative = d.get("relative") or {"x": 0, "y": 0}
        return cls(absolute=absolute, relative=Point.from_dict(relative))


# ---------------------------------------------------------------------------
# Visual descriptor
# ---------------------------------------------------------------------------


@dataclass
class VisualDescriptor:
    text: str = ""
    placeholder: str | None = None
    input_type: str | None = None
    position: Position | None = None
    bounding_box: BoundingBox | None = None
    surrounding_text: list[str] = field(default_factory=list)
    screenshot: str | None = None  # base64 data URL
    context_screenshot: str | None = None
    timestamp: int | None = None  # ms since epoch, monotonic per session

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "placeholder": self.placeholder,
            "inputType": self.input_type,
            "position": self.position.to_dict() if self.position else None,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "surroundingText": list(self.surrounding_text),
            "screenshot": self.screenshot,
            "contextScreenshot": self.context_screenshot,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "VisualDescriptor":
        position = d.get("position")
        bbox = d.get("boundingBox")
        try:
            parsed_position = Position.from_dict(position) if position else None
        except (KeyError, TypeError):
            parsed_position = None
        try:
            parsed_bbox = BoundingBox.from_dict(bbox) if bbox else None
        except (KeyError, TypeError):
            parsed_bbox = None
        return cls(
            text=d.get("text") or "",
            placeholder=d.get("placeholder"),
            input_type=d.get("inputType"),
            position=parsed_position,
            bounding_box=parsed_bbox,
            surrounding_text=list(d.get("surroundingText") or [])[:5],
            screenshot=d.get("screenshot"),
            context_screenshot=d.get("contextScreenshot"),
            timestamp=d.get("timestamp"),
        )


def validate_visual(visual: VisualDescriptor | dict | None) -> bool:
    """
    True iff the descriptor carries a numeric absolute position, a numeric
    bounding box and a numeric timestamp. Screenshots are optional.
    """
    if visual is None:
        return False
    data = visual.to_dict() if isinstance(visual, VisualDescriptor) else visual
    if not isinstance(data, dict):
        return False

    position = data.get("position")
    if not isinstance(position, dict):
        return False
    absolute = position.get("absolute")
    if not isinstance(absolute, dict):
        return False
    if not (_is_number(absolute.get("x")) and _is_number(absolute.get("y"))):
        return False

    bbox = data.get("boundingBox")
    if not isinstance(bbox, dict):
        return False
    if not all(_is_number(bbox.get(k)) for k in ("x", "y", "width", "height")):
        return False

    return _is_number(data.get("timestamp"))


# ---------------------------------------------------------------------------
# Actions and workflows
# ---------------------------------------------------------------------------


@dataclass
class Action:
    type: ActionType
    name: str = ""
    visual: VisualDescriptor | None = None
    backup_selector: str | None = None
    value: str | None = None
    params: dict = field(default_factory=dict)
    resolution_mode: ResolutionMode = ResolutionMode.VISUAL_FIRST

    @property
    def needs_element(self) -> bool:
        return self.type in ELEMENT_ACTIONS

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "name": self.name,
            "visual": self.visual.to_dict() if self.visual else None,
            "backup_selector": self.backup_selector,
            "value": self.value,
            "params": copy.deepcopy(self.params),
            "execution_method": self.resolution_mode.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Action":
        params = dict(d.get("params") or {})
        # Older records kept descriptor and selector inside params
        visual = d.get("visual") or params.pop("visual", None)
        backup_selector = d.get("backup_selector") or params.pop("backup_selector", None)
        value = d.get("value")
        if value is None:
            value = d.get("text")
        mode = d.get("execution_method") or d.get("resolutionMode") or d.get("resolution_mode")
        return cls(
            type=ActionType(d["type"]),
            name=d.get("name") or "",
            visual=VisualDescriptor.from_dict(visual) if visual else None,
            backup_selector=backup_selector,
            value=value,
            params=params,
            resolution_mode=ResolutionMode.parse(mode),
        )


@dataclass
class Workflow:
    id: str
    name: str
    actions: list[Action] = field(default_factory=list)
    platform: str = "default"
    type: str = "custom"
    created_at: str = ""

    def copy(self) -> "Workflow":
        """Replay consumes a copy; the persisted workflow is never mutated."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "platform": self.platform,
            "type": self.type,
            "created_at": self.created_at,
            "actions": [a.to_dict() for a in self.actions],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Workflow":
        if d.get("actions") is not None:
            raw_actions = list(d["actions"])
        else:
            raw_actions = [_step_to_action_dict(step) for step in d.get("steps") or []]
        return cls(
            id=str(d.get("id", "")),
            name=d.get("name", ""),
            platform=d.get("platform") or "default",
            type=d.get("type") or "custom",
            created_at=d.get("created_at", ""),
            actions=[Action.from_dict(a) for a in raw_actions],
        )


def _step_to_action_dict(step: dict) -> dict:
    """Flatten a ``{micro_action, params_override}`` step into an action record."""
    micro = dict(step.get("micro_action") or {})
    override = step.get("params_override") or {}
    params = {**(micro.get("params") or {}), **override}
    micro["params"] = params
    if "type" not in micro and "type" in step:
        micro["type"] = step["type"]
    return micro


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


@dataclass
class ElementRef:
    """Driver-neutral handle on a page element."""

    point: Point  # absolute center, CSS pixels
    selector: str | None = None
    index: int = 0
    relative: Point | None = None
    bounding_box: BoundingBox | None = None
    text: str = ""
    tag: str = ""
    attributes: dict = field(default_factory=dict)


@dataclass
class Candidate:
    element: ElementRef
    confidence: float
    strategy: Strategy


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


@dataclass
class RawEvent:
    """One debounced interaction as seen by the recorder, before compilation."""

    type: str
    timestamp: int
    url: str = ""
    visual: VisualDescriptor | None = None
    backup_selector: str | None = None
    value: str | None = None
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "url": self.url,
            "visual": self.visual.to_dict() if self.visual else None,
            "backup_selector": self.backup_selector,
            "value": self.value,
            "params": dict(self.params),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RawEvent":
        visual = d.get("visual")
        return cls(
            type=d["type"],
            timestamp=d.get("timestamp", 0),
            url=d.get("url", ""),
            visual=VisualDescriptor.from_dict(visual) if visual else None,
            backup_selector=d.get("backup_selector"),
            value=d.get("value"),
            params=dict(d.get("params") or {}),
        )


@dataclass
class SessionInfo:
    session_id: str
    url: str
    platform: str
    started_at: str
    viewport: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Execution reporting
# ---------------------------------------------------------------------------


@dataclass
class ActionResult:
    index: int
    name: str
    type: str
    success: bool
    method: str | None = None
    confidence: float | None = None
    retries: int = 0
    duration_ms: float = 0.0
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "type": self.type,
            "success": self.success,
            "method": self.method,
            "confidence": self.confidence,
            "retries": self.retries,
            "durationMs": round(self.duration_ms, 2),
            "error": self.error,
            "errorType": self.error_type,
        }


@dataclass
class ErrorRecord:
    error_id: str
    timestamp: str
    action_index: int
    action_name: str
    action_type: str
    error: str
    error_type: str
    method: str | None = None
    retries: int = 0
    search_criteria: dict = field(default_factory=dict)
    page_state: dict = field(default_factory=dict)
    error_screenshot: str | None = None

    def to_dict(self) -> dict:
        return {
            "errorId": self.error_id,
            "timestamp": self.timestamp,
            "actionIndex": self.action_index,
            "actionName": self.action_name,
            "actionType": self.action_type,
            "error": self.error,
            "errorType": self.error_type,
            "method": self.method,
            "retries": self.retries,
            "searchCriteria": self.search_criteria,
            "pageState": self.page_state,
            "errorScreenshot": self.error_screenshot,
        }


@dataclass
class MethodStat:
    count: int = 0
    total_time: float = 0.0

    def to_dict(self) -> dict:
        return {"count": self.count, "totalTime": round(self.total_time, 2)}


@dataclass
class OverallStats:
    total: int
    successful: int
    failed: int
    success_rate: float
    average_time: float
    average_confidence: float

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "successRate": self.success_rate,
            "averageTime": self.average_time,
            "averageConfidence": self.average_confidence,
        }


@dataclass
class ExecutionReport:
    workflow_id: str
    start_time: str = ""
    end_time: str | None = None
    actions: list[ActionResult] = field(default_factory=list)
    method_stats: dict[str, MethodStat] = field(default_factory=dict)
    errors: list[ErrorRecord] = field(default_factory=list)
    aborted: bool = False
    debug_report_path: str | None = None

    def add_result(self, result: ActionResult) -> None:
        self.actions.append(result)
        key = result.method if result.success and result.method else "failed"
        stat = self.method_stats.setdefault(key, MethodStat())
        stat.count += 1
        stat.total_time += result.duration_ms

    @property
    def overall_stats(self) -> OverallStats:
        total = len(self.actions)
        successful = sum(1 for r in self.actions if r.success)
        confidences = [r.confidence for r in self.actions if r.success and r.confidence is not None]
        return OverallStats(
            total=total,
            successful=successful,
            failed=total - successful,
            success_rate=round(successful / total * 100, 2) if total else 0.0,
            average_time=round(sum(r.duration_ms for r in self.actions) / total, 2) if total else 0.0,
            average_confidence=round(sum(confidences) / len(confidences), 3) if confidences else 0.0,
        )

    def to_dict(self) -> dict:
        return {
            "workflowId": self.workflow_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "aborted": self.aborted,
            "actions": [r.to_dict() for r in self.actions],
            "methodStats": {k: v.to_dict() for k, v in self.method_stats.items()},
            "overallStats": self.overall_stats.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
            "debugReport": self.debug_report_path,
        }

    def save(self, path: str | Path) -> str:
        """Write the report as JSON and return the absolute path."""
        dest = Path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return str(dest.resolve())
