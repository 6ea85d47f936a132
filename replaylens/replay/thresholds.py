"""Acceptance thresholds and how they relax across retries."""

from __future__ import annotations

from dataclasses import dataclass

from replaylens.core.config import ReplaySettings


@dataclass(frozen=True)
class Thresholds:
    position_tolerance: float  # percent of viewport, per axis
    min_confidence: float
    min_similarity: float  # image similarity needed for the screenshot term to count

    def to_dict(self) -> dict:
        return {
            "positionTolerance": round(self.position_tolerance, 3),
            "minConfidence": round(self.min_confidence, 3),
            "minSimilarity": round(self.min_similarity, 3),
        }


@dataclass(frozen=True)
class RelaxationPolicy:
    """
    Linear relaxation from the initial to the relaxed thresholds.

    Attempt 0 uses the initial values and the last retry uses the relaxed
    ones; attempts in between are interpolated. Tolerance never shrinks and
    confidence never rises from one attempt to the next, even if the
    relaxed values are configured the wrong way round.
    """

    initial_position_tolerance: float = 15.0
    relaxed_position_tolerance: float = 30.0
    initial_min_confidence: float = 0.7
    relaxed_min_confidence: float = 0.5
    initial_min_similarity: float = 0.7
    relaxed_min_similarity: float = 0.5

    @classmethod
    def from_settings(cls, settings: ReplaySettings) -> "RelaxationPolicy":
        return cls(
            initial_position_tolerance=settings.initial_position_tolerance,
            relaxed_position_tolerance=settings.relaxed_position_tolerance,
            initial_min_confidence=settings.initial_min_confidence,
            relaxed_min_confidence=settings.relaxed_min_confidence,
            initial_min_similarity=settings.initial_min_similarity,
            relaxed_min_similarity=settings.relaxed_min_similarity,
        )

    def for_attempt(self, attempt: int, max_retries: int) -> Thresholds:
        if max_retries <= 0 or attempt <= 0:
            fraction = 0.0
        else:
            fraction = min(attempt / max_retries, 1.0)

        def widen(start: float, end: float) -> float:
            return start + (max(start, end) - start) * fraction

        def tighten(start: float, end: float) -> float:
            return start - (start - min(start, end)) * fraction

        return Thresholds(
            position_tolerance=widen(self.initial_position_tolerance, self.relaxed_position_tolerance),
            min_confidence=tighten(self.initial_min_confidence, self.relaxed_min_confidence),
            min_similarity=tighten(self.initial_min_similarity, self.relaxed_min_similarity),
        )
