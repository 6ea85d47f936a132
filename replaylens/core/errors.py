"""Error taxonomy shared by the recorder and the replay engine."""

from __future__ import annotations


class ReplayLensError(Exception):
    """Base class for all replaylens errors."""


class CaptureFailure(ReplayLensError):
    """A visual descriptor could not be extracted; the interaction is skipped."""


class InjectionFailure(ReplayLensError):
    """The capture script could not be armed on the page after navigation."""


class ResolutionFailure(ReplayLensError):
    """No candidate element met the acceptance threshold."""

    def __init__(self, message: str, search_criteria: dict | None = None) -> None:
        super().__init__(message)
        self.search_criteria = search_criteria or {}


class ActionExecutionFailure(ReplayLensError):
    """The element was found but the operation on it failed."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigurationError(ReplayLensError):
    """Replay was configured incorrectly, e.g. a template variable is missing."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


# Order matters: first matching bucket wins
_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("timeout", ("timeout", "timed out")),
    ("text_mismatch", ("text mismatch",)),
    ("position_mismatch", ("position",)),
    ("visual_mismatch", ("visual", "similarity")),
    ("selector_failed", ("selector",)),
    ("element_not_found", ("not found", "no candidate", "no element")),
]


def categorize_error(exc: BaseException | str) -> str:
    """Bucket an exception into a coarse category for reports."""
    if isinstance(exc, ConfigurationError):
        return "configuration"
    message = str(exc).lower()
    if isinstance(exc, ResolutionFailure) and not message:
        return "element_not_found"
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in message for k in keywords):
            return category
    if isinstance(exc, ResolutionFailure):
        return "element_not_found"
    return "unknown"
