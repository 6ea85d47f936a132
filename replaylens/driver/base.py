"""Abstract browser driver.

The recorder, the resolution engine and the replay controller talk to the
browser only through this interface, so any CDP client can back them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from replaylens.core.types import BoundingBox, ElementRef

ChannelHandler = Callable[[Any], Any]
NavigationHandler = Callable[[str], Any]


class BrowserDriver(ABC):
    """Capabilities a page backend has to provide."""

    # ------------------------------------------------------------------
    # Page
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def url(self) -> str: ...

    @abstractmethod
    def is_closed(self) -> bool: ...

    @abstractmethod
    async def goto(self, url: str, *, wait_until: str = "load", timeout: float | None = None) -> None: ...

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    @abstractmethod
    async def viewport(self) -> dict:
        """``{"width": int, "height": int}`` of the current layout viewport."""

    @abstractmethod
    async def screenshot(
        self,
        *,
        path: str | None = None,
        clip: BoundingBox | None = None,
        full_page: bool = False,
    ) -> bytes: ...

    @abstractmethod
    async def wait_for_network_idle(self, timeout: float) -> bool:
        """True when the network settled before ``timeout`` seconds."""

    @abstractmethod
    async def wait_for_dom_quiet(self, quiet: float, timeout: float) -> bool:
        """True when no DOM mutation happened for ``quiet`` seconds before ``timeout``."""

    @abstractmethod
    async def page_state(self) -> dict:
        """URL, title, viewport, element count and a visible-text excerpt."""

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    @abstractmethod
    async def query(self, selector: str) -> list[ElementRef]:
        """Visible matches for ``selector``. Raises on an invalid selector."""

    @abstractmethod
    async def query_count(self, selector: str) -> int: ...

    @abstractmethod
    async def scan(self) -> list[ElementRef]:
        """Visible interactive or text-bearing elements, used by non-selector strategies."""

    @abstractmethod
    async def get_bounding_rect(self, selector: str) -> BoundingBox | None: ...

    @abstractmethod
    async def describe_element(self, selector: str) -> dict | None:
        """Snapshot of the first element matching ``selector`` in capture format."""

    @abstractmethod
    async def element_screenshot(self, ref: ElementRef) -> bytes | None: ...

    @abstractmethod
    async def read_value(self, ref: ElementRef) -> str | None:
        """Current value of a form field, or None when the element has none."""

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    @abstractmethod
    async def click_at(self, x: float, y: float) -> None: ...

    @abstractmethod
    async def click(self, ref: ElementRef) -> None: ...

    @abstractmethod
    async def type_into(self, ref: ElementRef, text: str) -> None: ...

    @abstractmethod
    async def set_input_files(self, ref: ElementRef, path: str) -> None: ...

    @abstractmethod
    async def scroll(self, direction: str, amount: int) -> None: ...

    @abstractmethod
    async def highlight(self, ref: ElementRef, duration: float = 2.0) -> None: ...

    # ------------------------------------------------------------------
    # Capture hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_init_script(self, script: str) -> None:
        """Run ``script`` in every new document before page scripts."""

    @abstractmethod
    async def expose_channel(self, name: str, handler: ChannelHandler) -> None:
        """Expose ``window[name](payload)`` that forwards payloads to ``handler``."""

    @abstractmethod
    def on_main_frame_navigated(self, callback: NavigationHandler) -> None: ...

    @abstractmethod
    def remove_navigation_listener(self, callback: NavigationHandler) -> None: ...

