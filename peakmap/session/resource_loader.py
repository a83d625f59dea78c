"""Resource Loader - makes the engine runtime available exactly once per session.

Inserts one script directive and one stylesheet directive into the host document
and delivers a single completion signal when the script has loaded. Load errors
are not retried; they are reported once through on_error and the session never
becomes ready. dispose() removes the directives and guarantees no completion
signal is delivered afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from peakmap.engine.host_document import HostDocument
from peakmap.session.context import SessionState

logger = logging.getLogger(__name__)


class ResourceLoader:
    """Loads the engine's script and stylesheet for one session."""

    def __init__(self, document: HostDocument, state: SessionState) -> None:
        self._document = document
        self._state = state
        self._started = False
        self._settled = False

    @property
    def started(self) -> bool:
        return self._started

    def load(
        self,
        script_url: str,
        style_url: str,
        on_loaded: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Insert the script and stylesheet directives.

        Args:
            script_url: Engine runtime script
            style_url: Engine stylesheet
            on_loaded: Completion signal (fires at most once)
            on_error: Failure signal (fires at most once, no retry)
        """
        if self._started:
            logger.warning("[LOADER] Resources already requested for this session - ignoring")
            return
        self._started = True

        def loaded() -> None:
            if self._settled or self._state.disposed:
                return
            self._settled = True
            logger.info("[LOADER] Engine runtime available")
            on_loaded()

        def failed(error: Exception) -> None:
            if self._settled or self._state.disposed:
                return
            self._settled = True
            logger.error(f"[LOADER] Engine runtime failed to load: {error}")
            on_error(error)

        self._state.stylesheet_link = self._document.append_stylesheet(href=style_url)
        self._state.script_tag = self._document.append_script(src=script_url, on_load=loaded, on_error=failed)

    def dispose(self) -> None:
        """Remove the inserted directives. Safe to call repeatedly or before load()."""
        if self._state.script_tag is not None:
            self._document.remove(self._state.script_tag)
            self._state.script_tag = None
        if self._state.stylesheet_link is not None:
            self._document.remove(self._state.stylesheet_link)
            self._state.stylesheet_link = None
        self._settled = True
