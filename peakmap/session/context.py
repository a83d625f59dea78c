"""SessionState - everything one map session has acquired.

The Session Lifecycle Manager owns the single SessionState and passes it to the
components it coordinates; nothing else keeps a reference beyond the session.
Teardown releases every handle recorded here, whichever bootstrap stage was
reached.

Invariants:
- At most one engine per session (engine is set once, removed once)
- At most one pending rotation step at any instant
- ready flips False → True once and is never reset
- phase is owned by SessionPhaseMachine (python-statemachine state field)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from peakmap.engine.base import MapEngine
    from peakmap.engine.host_document import ScriptTag, StylesheetLink

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Mutable state of one mounted map session."""

    phase: str | None = None
    engine: MapEngine | None = None
    rotation_active: bool = False
    pending_rotation_timer: asyncio.Handle | None = None
    ready: bool = False
    list_open: bool = False

    script_tag: ScriptTag | None = None
    stylesheet_link: StylesheetLink | None = None
    poll_handle: asyncio.Handle | None = None
    pending_callbacks: set[asyncio.Handle] = field(default_factory=set)
    failure: str | None = None
    disposed: bool = False

    def mark_ready(self) -> bool:
        """Flip ready to True. Returns False if it already was (no second flip)."""
        if self.ready:
            return False
        self.ready = True
        return True

    def set_rotation_timer(self, handle: asyncio.Handle) -> None:
        """Record the next rotation step. Any previous pending step is cancelled."""
        self.cancel_rotation_timer()
        self.pending_rotation_timer = handle

    def cancel_rotation_timer(self) -> None:
        """Cancel the pending rotation step (timer or next-tick handle)."""
        if self.pending_rotation_timer is not None:
            self.pending_rotation_timer.cancel()
            self.pending_rotation_timer = None

    def cancel_poll(self) -> None:
        if self.poll_handle is not None:
            self.poll_handle.cancel()
            self.poll_handle = None

    def cancel_pending_callbacks(self) -> None:
        for handle in self.pending_callbacks:
            handle.cancel()
        self.pending_callbacks.clear()

    @property
    def has_pending_work(self) -> bool:
        """True while any scheduled callback could still run."""
        return (
            self.pending_rotation_timer is not None
            or self.poll_handle is not None
            or bool(self.pending_callbacks)
        )

    def __repr__(self) -> str:
        return (
            f"SessionState(phase={self.phase}, engine={'yes' if self.engine else 'no'}, ready={self.ready}, "
            f"rotation_active={self.rotation_active}, list_open={self.list_open}, disposed={self.disposed})"
        )
