"""Action compiler: raw recorded events to an ordered list of replayable actions."""

from __future__ import annotations

import random
from typing import Iterable

import structlog

from replaylens.core.types import (
    Action,
    ActionType,
    RawEvent,
    ResolutionMode,
    validate_visual,
)
from replaylens.recorder.sensitive import UPLOAD_PLACEHOLDER

logger = structlog.get_logger(__name__)

# Events closer together than this get a human-like pause in between
_WAIT_GAP_MS = 2000
_WAIT_MIN_MS = 1000
_WAIT_MAX_MS = 2000
_NAME_TEXT_LEN = 30


def _label(event: RawEvent) -> str:
    visual = event.visual
    text = ""
    if visual is not None:
        text = visual.text or visual.placeholder or ""
    return text[:_NAME_TEXT_LEN] or (event.backup_selector or "element")[:_NAME_TEXT_LEN]


class ActionCompiler:
    """
    Turns the recorder's event stream into actions.

    Pure apart from the random wait durations, which come from an
    injectable ``random.Random``.
    """

    def __init__(self, *, rng: random.Random | None = None, insert_waits: bool = True) -> None:
        self._rng = rng or random.Random()
        self._insert_waits = insert_waits

    def compile(self, events: Iterable[RawEvent]) -> list[Action]:
        actions: list[Action] = []
        previous: RawEvent | None = None

        for event in events:
            if self._merge_typing(actions, event):
                previous = event
                continue

            action = self._convert(event)
            if action is None or self._repeats_navigation(actions, action):
                continue

            if (
                self._insert_waits
                and previous is not None
                and event.timestamp - previous.timestamp < _WAIT_GAP_MS
                and not (actions and actions[-1].type == ActionType.WAIT)
            ):
                actions.append(self._wait())

            actions.append(action)
            previous = event

        return [self._finalize(a) for a in actions]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _wait(self) -> Action:
        duration = self._rng.randint(_WAIT_MIN_MS, _WAIT_MAX_MS)
        return Action(
            type=ActionType.WAIT,
            name=f"Wait {duration}ms",
            params={"duration": duration, "randomize": True},
        )

    @staticmethod
    def _merge_typing(actions: list[Action], event: RawEvent) -> bool:
        """Fold ``event`` into the previous type action on the same selector."""
        if event.type != ActionType.TYPE.value or not actions:
            return False
        last = actions[-1]
        if last.type != ActionType.TYPE or not event.backup_selector:
            return False
        if last.backup_selector != event.backup_selector:
            return False
        last.value = event.value
        return True

    def _convert(self, event: RawEvent) -> Action | None:
        kind = event.type

        if kind in (ActionType.CLICK.value, ActionType.TYPE.value):
            if not validate_visual(event.visual):
                logger.warning(
                    "dropping event with incomplete descriptor",
                    event_type=kind,
                    selector=event.backup_selector,
                )
                return None
            if kind == ActionType.CLICK.value:
                return Action(
                    type=ActionType.CLICK,
                    name=f'Click "{_label(event)}"',
                    visual=event.visual,
                    backup_selector=event.backup_selector,
                    resolution_mode=ResolutionMode.VISUAL_FIRST,
                )
            return Action(
                type=ActionType.TYPE,
                name=f'Type into "{_label(event)}"',
                visual=event.visual,
                backup_selector=event.backup_selector,
                value=event.value or "",
                resolution_mode=ResolutionMode.VISUAL_FIRST,
            )

        if kind == ActionType.NAVIGATE.value:
            url = event.params.get("url") or event.url
            if not url:
                return None
            return Action(
                type=ActionType.NAVIGATE,
                name=f"Navigate to {url}",
                params={"url": url, "wait_until": event.params.get("wait_until", "networkidle")},
            )

        if kind == ActionType.UPLOAD.value:
            return Action(
                type=ActionType.UPLOAD,
                name=f'Upload via "{_label(event)}"',
                visual=event.visual,
                backup_selector=event.backup_selector,
                value=UPLOAD_PLACEHOLDER,
                params={"file_path": UPLOAD_PLACEHOLDER},
                resolution_mode=ResolutionMode.VISUAL_FIRST,
            )

        if kind == ActionType.SCROLL.value:
            direction = event.params.get("direction", "down")
            amount = int(event.params.get("amount", 0))
            return Action(
                type=ActionType.SCROLL,
                name=f"Scroll {direction} {amount}px",
                params={"direction": direction, "amount": amount},
            )

        if kind == ActionType.WAIT.value:
            duration = int(event.params.get("duration", _WAIT_MIN_MS))
            return Action(
                type=ActionType.WAIT,
                name=f"Wait {duration}ms",
                params={"duration": duration, "randomize": bool(event.params.get("randomize", True))},
            )

        logger.debug("skipping raw event", event_type=kind)
        return None

    @staticmethod
    def _repeats_navigation(actions: list[Action], action: Action) -> bool:
        if action.type != ActionType.NAVIGATE:
            return False
        for earlier in reversed(actions):
            if earlier.type == ActionType.WAIT:
                continue
            return earlier.type == ActionType.NAVIGATE and earlier.params.get("url") == action.params.get("url")
        return False

    @staticmethod
    def _finalize(action: Action) -> Action:
        if action.visual is not None and not validate_visual(action.visual):
            action.visual = None
        if action.needs_element and action.visual is None and action.backup_selector:
            action.resolution_mode = ResolutionMode.SELECTOR_FIRST
        return action

