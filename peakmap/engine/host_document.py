"""Host document - where the engine runtime's script and stylesheet directives live.

The resource loader only talks to the HostDocument interface:

    append_script(src, on_load, on_error) -> ScriptTag
    append_stylesheet(href) -> StylesheetLink
    remove(element)

HTMLHostDocument keeps the directives as <head> elements of an HTML page. A
script counts as loaded once it has been fetched successfully; the fetch runs
with requests on the loop's default executor so the loop is never blocked.
Removing a script before its fetch settles suppresses on_load/on_error.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from html import escape

import requests

from peakmap.constants import EngineDefaults

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ScriptTag:
    src: str
    removed: bool = False
    future: asyncio.Future[int] | None = field(default=None, repr=False)

    def to_html(self) -> str:
        return f'<script src="{escape(self.src, quote=True)}"></script>'


@dataclass(eq=False)
class StylesheetLink:
    href: str
    removed: bool = False

    def to_html(self) -> str:
        return f'<link rel="stylesheet" href="{escape(self.href, quote=True)}"/>'


HeadElement = ScriptTag | StylesheetLink


class HostDocument(ABC):
    """Document that loads the engine runtime."""

    @abstractmethod
    def append_script(
        self,
        src: str,
        on_load: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> ScriptTag:
        """Insert a script directive. Exactly one of on_load/on_error fires unless removed first."""

    @abstractmethod
    def append_stylesheet(self, href: str) -> StylesheetLink:
        """Insert a stylesheet directive."""

    @abstractmethod
    def remove(self, element: HeadElement) -> None:
        """Remove a directive. Removing twice is a no-op."""


class HTMLHostDocument(HostDocument):
    """HTML page head backed by real HTTP fetches.

    Example:
        document = HTMLHostDocument(loop=loop)
        document.append_script(src=url, on_load=start, on_error=fail)
        html = document.inject_head(deck.to_html(as_string=True))
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        http: requests.Session | None = None,
        timeout_s: float = EngineDefaults.FETCH_TIMEOUT_S,
    ) -> None:
        self._loop = loop
        self._http = http or requests.Session()
        self._timeout_s = timeout_s
        self.head: list[HeadElement] = []

    def append_script(
        self,
        src: str,
        on_load: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> ScriptTag:
        tag = ScriptTag(src=src)
        self.head.append(tag)
        future = self._loop.run_in_executor(None, self._fetch, src)
        future.add_done_callback(functools.partial(self._script_settled, tag, on_load, on_error))
        tag.future = future
        logger.info(f"[DOCUMENT] Loading script {src}")
        return tag

    def append_stylesheet(self, href: str) -> StylesheetLink:
        link = StylesheetLink(href=href)
        self.head.append(link)
        logger.info(f"[DOCUMENT] Added stylesheet {href}")
        return link

    def remove(self, element: HeadElement) -> None:
        if element.removed:
            return
        element.removed = True
        if element in self.head:
            self.head.remove(element)
        if isinstance(element, ScriptTag) and element.future is not None:
            element.future.cancel()
        logger.debug(f"[DOCUMENT] Removed {type(element).__name__}")

    def _fetch(self, src: str) -> int:
        """Fetch the script body (runs on an executor thread)."""
        response = self._http.get(src, timeout=self._timeout_s)
        response.raise_for_status()
        return len(response.content)

    def _script_settled(
        self,
        tag: ScriptTag,
        on_load: Callable[[], None],
        on_error: Callable[[Exception], None],
        future: asyncio.Future[int],
    ) -> None:
        if tag.removed or future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"[DOCUMENT] Script failed to load: {tag.src} ({type(error).__name__}: {error})")
            on_error(error)  # type: ignore[arg-type]
            return
        logger.info(f"[DOCUMENT] Script loaded: {tag.src} ({future.result()} bytes)")
        on_load()

    def head_markup(self) -> str:
        return "\n".join(element.to_html() for element in self.head)

    def inject_head(self, html: str) -> str:
        """Insert the head directives into an HTML page (before </head>)."""
        markup = self.head_markup()
        if not markup:
            return html
        marker = "</head>"
        position = html.find(marker)
        if position == -1:
            return f"{markup}\n{html}"
        return f"{html[:position]}{markup}\n{html[position:]}"
