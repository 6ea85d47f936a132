"""Recording pipeline: capture, selector synthesis and action compilation."""

from replaylens.recorder.channel import BackupSync, CaptureChannel, EventLog
from replaylens.recorder.compiler import ActionCompiler
from replaylens.recorder.descriptor import DescriptorCapture, relative_position
from replaylens.recorder.navigation import NavigationDecision, classify_navigation
from replaylens.recorder.recorder import InteractionRecorder, RecorderState
from replaylens.recorder.selectors import SelectorSynthesizer, css_escape
from replaylens.recorder.sensitive import mask_value, sensitive_variable

__all__ = [
    "ActionCompiler",
    "BackupSync",
    "CaptureChannel",
    "DescriptorCapture",
    "EventLog",
    "InteractionRecorder",
    "NavigationDecision",
    "RecorderState",
    "SelectorSynthesizer",
    "classify_navigation",
    "css_escape",
    "mask_value",
    "relative_position",
    "sensitive_variable",
]
