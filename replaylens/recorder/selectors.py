"""Backup selector synthesis from an element snapshot."""

from __future__ import annotations

from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

SelectorStrategy = Callable[[dict], "str | None"]
MatchCounter = Callable[[str], Awaitable[int]]


def css_escape(value: str) -> str:
    """Python rendition of the browser's ``CSS.escape``."""
    out: list[str] = []
    for i, ch in enumerate(value):
        code = ord(ch)
        if code == 0:
            out.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif i == 0 and ch.isdigit() and ch.isascii():
            out.append(f"\\{code:x} ")
        elif i == 1 and ch.isdigit() and ch.isascii() and value[0] == "-":
            out.append(f"\\{code:x} ")
        elif i == 0 and ch == "-" and len(value) == 1:
            out.append("\\-")
        elif code >= 0x80 or ch in "-_" or (ch.isascii() and ch.isalnum()):
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _attribute(attr: str, key: str) -> SelectorStrategy:
    def strategy(element: dict) -> str | None:
        value = element.get(key)
        if not value:
            return None
        return f"{element.get('tag') or '*'}[{attr}={_quote(value)}]"

    strategy.__name__ = f"by_{attr.replace('-', '_')}"
    return strategy


def by_id(element: dict) -> str | None:
    value = element.get("id")
    return f"#{css_escape(value)}" if value else None


def by_classes(element: dict) -> str | None:
    classes = [c for c in element.get("classes") or [] if c]
    if not classes:
        return None
    return (element.get("tag") or "") + "".join("." + css_escape(c) for c in classes)


by_name = _attribute("name", "name")
by_placeholder = _attribute("placeholder", "placeholder")
by_test_id = _attribute("data-testid", "testId")
by_data_id = _attribute("data-id", "dataId")
by_aria_label = _attribute("aria-label", "ariaLabel")

# Attribute locators survive layout changes better than structural paths
DEFAULT_STRATEGIES: list[tuple[str, SelectorStrategy]] = [
    ("id", by_id),
    ("name", by_name),
    ("placeholder", by_placeholder),
    ("data-testid", by_test_id),
    ("data-id", by_data_id),
    ("aria-label", by_aria_label),
    ("class", by_classes),
]


def structural_path(element: dict) -> str:
    return element.get("structuralPath") or element.get("tag") or "*"


class SelectorSynthesizer:
    """
    Produces a backup selector for an element snapshot.

    Strategies are tried in order and a proposal is kept only if it matches
    exactly one node right now; the structural nth-child path is the
    fallback and is always available.
    """

    def __init__(self, strategies: list[tuple[str, SelectorStrategy]] | None = None) -> None:
        self._strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)

    @property
    def strategy_names(self) -> list[str]:
        return [name for name, _ in self._strategies]

    def proposals(self, element: dict) -> list[tuple[str, str]]:
        """Every ``(strategy, selector)`` proposal for ``element`` in priority order."""
        out = []
        for name, strategy in self._strategies:
            selector = strategy(element)
            if selector:
                out.append((name, selector))
        return out

    async def synthesize(self, element: dict, count_matches: MatchCounter) -> str:
        for name, selector in self.proposals(element):
            try:
                matches = await count_matches(selector)
            except Exception as exc:
                logger.debug("selector proposal rejected", strategy=name, selector=selector, error=str(exc))
                continue
            if matches == 1:
                return selector
        return structural_path(element)
