"""Replay engine: threshold relaxation, element resolution and execution."""

from replaylens.replay.debug import DebugRecorder, render_debug_report
from replaylens.replay.executor import ReplayController
from replaylens.replay.resolver import MODE_ORDER, ResolutionEngine, search_criteria
from replaylens.replay.strategies import STRATEGIES, ResolutionContext
from replaylens.replay.thresholds import RelaxationPolicy, Thresholds

__all__ = [
    "DebugRecorder",
    "MODE_ORDER",
    "RelaxationPolicy",
    "ReplayController",
    "ResolutionContext",
    "ResolutionEngine",
    "STRATEGIES",
    "Thresholds",
    "render_debug_report",
    "search_criteria",
]
