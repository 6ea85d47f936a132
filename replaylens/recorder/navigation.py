"""Classifies URL changes seen while recording."""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlparse


class NavigationDecision(str, Enum):
    IGNORE = "ignore"  # same URL, nothing happened
    SKIP = "skip"  # same-host route change, capture keeps running
    REARM = "rearm"  # new document context, verify capture after the page settles


def classify_navigation(
    previous_url: str | None,
    current_url: str,
    *,
    login_path: str = "/login",
) -> NavigationDecision:
    if previous_url == current_url:
        return NavigationDecision.IGNORE
    if not previous_url:
        return NavigationDecision.REARM

    prev = urlparse(previous_url)
    curr = urlparse(current_url)
    if not prev.netloc or not curr.netloc:
        return NavigationDecision.REARM
    if prev.hostname != curr.hostname:
        return NavigationDecision.REARM

    # Leaving the login page usually swaps the whole app shell
    if login_path in prev.path and login_path not in curr.path:
        return NavigationDecision.REARM
    return NavigationDecision.SKIP
