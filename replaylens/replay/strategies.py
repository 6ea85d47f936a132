"""Element resolution strategies.

Each strategy is an async function ``(ResolutionContext) -> Candidate | None``.
The scoring helpers they share are pure and live at module level so they
can be tested without a browser.
"""

from __future__ import annotations

import asyncio
import math
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Awaitable, Callable

import structlog

from replaylens.core.imaging import compare_images, from_data_url
from replaylens.core.types import Action, ActionType, Candidate, ElementRef, Point, Strategy
from replaylens.driver.base import BrowserDriver
from replaylens.replay.thresholds import Thresholds

logger = structlog.get_logger(__name__)

_TEXT_FLOOR = 0.5  # weaker text matches are not worth proposing
_VISUAL_RADIUS_FACTOR = 2.0  # visual search looks wider than the position filter
_IMAGE_CANDIDATES = 3
_TEXT_INPUT_TAGS = {"input", "textarea", "select"}


@dataclass
class ResolutionContext:
    """Per-attempt state shared by the strategies; the page scan is taken at most once."""

    driver: BrowserDriver
    action: Action
    thresholds: Thresholds
    image_threshold: float = 0.1
    notes: dict[str, str] = field(default_factory=dict)
    _scan: list[ElementRef] | None = None

    async def elements(self) -> list[ElementRef]:
        if self._scan is None:
            self._scan = await self.driver.scan()
        return self._scan

    def note(self, strategy: Strategy, message: str) -> None:
        self.notes[strategy.value] = message


StrategyFn = Callable[[ResolutionContext], Awaitable["Candidate | None"]]


# ---------------------------------------------------------------------------
# Pure scoring helpers
# ---------------------------------------------------------------------------


def _normalize(text: str | None) -> str:
    return re.sub(r"\s+", " ", (text or "")).strip().lower()


def text_similarity(a: str | None, b: str | None) -> float:
    """1.0 for equal text (case and whitespace insensitive), partial credit otherwise."""
    left, right = _normalize(a), _normalize(b)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    shorter, longer = sorted((left, right), key=len)
    if shorter in longer:
        return 0.6 + 0.35 * (len(shorter) / len(longer))
    return SequenceMatcher(None, left, right).ratio()


def element_text_score(target: str, element: ElementRef) -> float:
    """Best similarity between ``target`` and the element's text or labelling attributes."""
    attrs = element.attributes or {}
    return max(
        text_similarity(target, element.text),
        text_similarity(target, attrs.get("placeholder")),
        text_similarity(target, attrs.get("ariaLabel")),
    )


def axis_offsets(element: ElementRef, target: Point) -> tuple[float, float] | None:
    if element.relative is None:
        return None
    return abs(element.relative.x - target.x), abs(element.relative.y - target.y)


def filter_by_position(
    elements: list[ElementRef], target: Point, tolerance: float
) -> list[tuple[ElementRef, float]]:
    """
    Elements whose relative center lies within ``tolerance`` of ``target`` on
    both axes, paired with their Euclidean distance and sorted nearest first.
    """
    matches = []
    for element in elements:
        offsets = axis_offsets(element, target)
        if offsets is None:
            continue
        dx, dy = offsets
        if dx <= tolerance and dy <= tolerance:
            matches.append((element, math.hypot(dx, dy)))
    matches.sort(key=lambda pair: pair[1])
    return matches


def proximity(distance: float, tolerance: float) -> float:
    """1.0 at the recorded point falling to 0.0 at the corner of the tolerance box."""
    if tolerance <= 0:
        return 1.0 if distance == 0 else 0.0
    return max(0.0, 1.0 - distance / (tolerance * math.sqrt(2)))


def size_similarity(element: ElementRef, action: Action) -> float:
    recorded = action.visual.bounding_box if action.visual else None
    current = element.bounding_box
    if recorded is None or current is None or recorded.area <= 0 or current.area <= 0:
        return 0.5
    return min(recorded.area, current.area) / max(recorded.area, current.area)


def is_compatible(element: ElementRef, action: Action) -> bool:
    """Whether ``element`` can receive ``action`` at all."""
    if action.type == ActionType.TYPE:
        attrs = element.attributes or {}
        return (
            element.tag in _TEXT_INPUT_TAGS
            or attrs.get("role") == "textbox"
            or attrs.get("contentEditable") is True
        )
    return True


def structural_score(element: ElementRef, action: Action) -> float:
    """Agreement on input type, placeholder and labelling context, plus size."""
    visual = action.visual
    attrs = element.attributes or {}
    checks: list[float] = [size_similarity(element, action)]
    if visual is not None:
        if visual.input_type:
            checks.append(1.0 if (attrs.get("type") or "") == visual.input_type else 0.0)
        if visual.placeholder:
            checks.append(text_similarity(visual.placeholder, attrs.get("placeholder")))
        labels = [
            s.split(":", 1)[1]
            for s in visual.surrounding_text
            if s.startswith(("aria:", "placeholder:"))
        ]
        if labels:
            own = [attrs.get("ariaLabel"), attrs.get("placeholder"), element.text]
            checks.append(max(text_similarity(label, o) for label in labels for o in own))
    checks.append(1.0 if is_compatible(element, action) else 0.0)
    return sum(checks) / len(checks)


def combined_score(
    element: ElementRef,
    action: Action,
    distance: float,
    radius: float,
) -> float:
    """Weighted text, position and structure score used by the visual strategy."""
    visual = action.visual
    target_text = (visual.text or visual.placeholder) if visual else ""
    pos = proximity(distance, radius)
    struct = structural_score(element, action)
    if target_text:
        return 0.4 * element_text_score(target_text, element) + 0.3 * pos + 0.3 * struct
    return 0.5 * pos + 0.5 * struct


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


async def selector_strategy(ctx: ResolutionContext) -> Candidate | None:
    selector = ctx.action.backup_selector
    if not selector:
        ctx.note(Strategy.SELECTOR, "no backup selector")
        return None
    try:
        matches = await ctx.driver.query(selector)
    except Exception as exc:
        ctx.note(Strategy.SELECTOR, f"selector failed: {exc}")
        return None

    visible = [m for m in matches if m.attributes.get("visible", True)]
    if not visible:
        ctx.note(Strategy.SELECTOR, "no element matches selector")
        return None

    element = visible[0]
    visual = ctx.action.visual
    if (
        ctx.action.type == ActionType.CLICK
        and visual is not None
        and visual.text
        and element.text
        and text_similarity(visual.text, element.text) < _TEXT_FLOOR
    ):
        ctx.note(Strategy.SELECTOR, f"text mismatch: expected {visual.text!r}, found {element.text[:50]!r}")
        return None

    confidence = 1.0 if len(visible) == 1 else round(1.0 / len(visible), 3)
    return Candidate(element=element, confidence=confidence, strategy=Strategy.SELECTOR)


async def text_strategy(ctx: ResolutionContext) -> Candidate | None:
    visual = ctx.action.visual
    target = (visual.text or visual.placeholder) if visual else None
    if not target:
        ctx.note(Strategy.TEXT, "no recorded text")
        return None

    recorded = visual.position.relative if visual and visual.position else None
    scored = []
    for element in await ctx.elements():
        if not is_compatible(element, ctx.action):
            continue
        score = element_text_score(target, element)
        if score < _TEXT_FLOOR:
            continue
        offsets = axis_offsets(element, recorded) if recorded else None
        distance = math.hypot(*offsets) if offsets else 0.0
        interactive = bool(element.attributes.get("interactive"))
        scored.append((score, interactive, -distance, element))

    if not scored:
        ctx.note(Strategy.TEXT, f"no element with text like {target[:50]!r}")
        return None
    score, _, _, element = max(scored, key=lambda item: item[:3])
    return Candidate(element=element, confidence=round(score, 3), strategy=Strategy.TEXT)


async def position_strategy(ctx: ResolutionContext) -> Candidate | None:
    visual = ctx.action.visual
    if visual is None or visual.position is None:
        ctx.note(Strategy.POSITION, "no recorded position")
        return None

    tolerance = ctx.thresholds.position_tolerance
    nearby = [
        (element, distance)
        for element, distance in filter_by_position(
            await ctx.elements(), visual.position.relative, tolerance
        )
        if is_compatible(element, ctx.action)
    ]
    if not nearby:
        ctx.note(Strategy.POSITION, f"position mismatch: nothing within {tolerance:.1f}%")
        return None

    def score(pair: tuple[ElementRef, float]) -> float:
        element, distance = pair
        base = 0.5 + 0.5 * proximity(distance, tolerance)
        return base * (0.8 + 0.2 * size_similarity(element, ctx.action))

    element, distance = max(nearby, key=score)
    return Candidate(
        element=element,
        confidence=round(score((element, distance)), 3),
        strategy=Strategy.POSITION,
    )


async def visual_strategy(ctx: ResolutionContext) -> Candidate | None:
    visual = ctx.action.visual
    if visual is None or visual.position is None:
        ctx.note(Strategy.VISUAL, "no visual descriptor")
        return None

    radius = ctx.thresholds.position_tolerance * _VISUAL_RADIUS_FACTOR
    nearby = filter_by_position(await ctx.elements(), visual.position.relative, radius)
    scored = [
        (combined_score(element, ctx.action, distance, radius), element)
        for element, distance in nearby
        if is_compatible(element, ctx.action)
    ]
    if not scored:
        ctx.note(Strategy.VISUAL, f"visual mismatch: no candidate within {radius:.1f}%")
        return None
    scored.sort(key=lambda item: item[0], reverse=True)

    if visual.screenshot:
        scored = await _rescore_with_images(ctx, scored[:_IMAGE_CANDIDATES]) + scored[_IMAGE_CANDIDATES:]
        scored.sort(key=lambda item: item[0], reverse=True)

    score, element = scored[0]
    return Candidate(element=element, confidence=round(score, 3), strategy=Strategy.VISUAL)


async def _rescore_with_images(
    ctx: ResolutionContext, scored: list[tuple[float, ElementRef]]
) -> list[tuple[float, ElementRef]]:
    try:
        recorded = from_data_url(ctx.action.visual.screenshot)
    except ValueError as exc:
        logger.debug("recorded screenshot unreadable", error=str(exc))
        return scored

    out = []
    for score, element in scored:
        current = await ctx.driver.element_screenshot(element)
        if current is None:
            out.append((score, element))
            continue
        similarity = await asyncio.to_thread(
            compare_images, recorded, current, threshold=ctx.image_threshold
        )
        image_term = similarity if similarity >= ctx.thresholds.min_similarity else 0.0
        out.append((0.75 * score + 0.25 * image_term, element))
    return out


STRATEGIES: dict[Strategy, StrategyFn] = {
    Strategy.SELECTOR: selector_strategy,
    Strategy.TEXT: text_strategy,
    Strategy.POSITION: position_strategy,
    Strategy.VISUAL: visual_strategy,
}
