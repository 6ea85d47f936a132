"""Resolution engine: finds the live element an action was recorded against."""

from __future__ import annotations

import structlog

from replaylens.core.errors import ResolutionFailure
from replaylens.core.types import Action, Candidate, ResolutionMode, Strategy
from replaylens.driver.base import BrowserDriver
from replaylens.replay.strategies import STRATEGIES, ResolutionContext, StrategyFn
from replaylens.replay.thresholds import Thresholds

logger = structlog.get_logger(__name__)

# Strategy order per resolution mode; earlier entries win ties
MODE_ORDER: dict[ResolutionMode, list[Strategy]] = {
    ResolutionMode.SELECTOR_FIRST: [
        Strategy.SELECTOR,
        Strategy.TEXT,
        Strategy.POSITION,
        Strategy.VISUAL,
    ],
    ResolutionMode.VISUAL_FIRST: [
        Strategy.VISUAL,
        Strategy.POSITION,
        Strategy.TEXT,
        Strategy.SELECTOR,
    ],
    ResolutionMode.VISUAL_ONLY: [
        Strategy.VISUAL,
        Strategy.POSITION,
        Strategy.TEXT,
    ],
}


def search_criteria(
    action: Action,
    thresholds: Thresholds | None = None,
    order: list[Strategy] | None = None,
    notes: dict[str, str] | None = None,
) -> dict:
    """Everything that was searched for, as recorded in error reports."""
    visual = action.visual
    criteria: dict = {
        "text": visual.text if visual else None,
        "placeholder": visual.placeholder if visual else None,
        "position": visual.position.to_dict() if visual and visual.position else None,
        "boundingBox": visual.bounding_box.to_dict() if visual and visual.bounding_box else None,
        "selector": action.backup_selector,
        "hasScreenshot": bool(visual and visual.screenshot),
        "mode": action.resolution_mode.value,
    }
    if thresholds is not None:
        criteria["thresholds"] = thresholds.to_dict()
    if order is not None:
        criteria["strategies"] = [s.value for s in order]
    if notes:
        criteria["notes"] = dict(notes)
    return criteria


class ResolutionEngine:
    """
    Runs the strategies for an action's resolution mode in order.

    A candidate counts only if its confidence reaches the attempt's
    minimum. The first candidate at or above ``decisive_confidence`` ends
    the search; otherwise the best candidate across all strategies wins,
    with ties going to the earlier strategy.
    """

    def __init__(
        self,
        strategies: dict[Strategy, StrategyFn] | None = None,
        *,
        decisive_confidence: float = 0.95,
        image_threshold: float = 0.1,
    ) -> None:
        self._strategies = dict(strategies if strategies is not None else STRATEGIES)
        self._decisive = decisive_confidence
        self._image_threshold = image_threshold

    @staticmethod
    def order_for(mode: ResolutionMode) -> list[Strategy]:
        return list(MODE_ORDER[mode])

    async def resolve(
        self,
        driver: BrowserDriver,
        action: Action,
        thresholds: Thresholds,
    ) -> Candidate:
        """Return the accepted candidate or raise ResolutionFailure."""
        order = [s for s in self.order_for(action.resolution_mode) if s in self._strategies]
        ctx = ResolutionContext(
            driver=driver,
            action=action,
            thresholds=thresholds,
            image_threshold=self._image_threshold,
        )

        best: Candidate | None = None
        for strategy in order:
            candidate = await self._strategies[strategy](ctx)
            if candidate is None:
                continue
            if candidate.confidence < thresholds.min_confidence:
                ctx.note(
                    strategy,
                    f"confidence {candidate.confidence:.2f} below {thresholds.min_confidence:.2f}",
                )
                continue
            if best is None or candidate.confidence > best.confidence:
                best = candidate
            if best.confidence >= self._decisive:
                break

        if best is None:
            raise ResolutionFailure(
                f"No element found for {action.name or action.type.value!r}",
                search_criteria=search_criteria(action, thresholds, order, ctx.notes),
            )

        logger.debug(
            "element resolved",
            action=action.name,
            strategy=best.strategy.value,
            confidence=best.confidence,
        )
        return best
