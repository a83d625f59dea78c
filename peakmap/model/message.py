"""Message - User-facing messages for the map panel.

Architecture:
- CENTER (map area): ONE message at a time - missing key placeholder, loading
  overlay, or bootstrap failure
- TOASTS: transient feedback when a location is selected

Messages are plain frozen dataclasses; display() renders them with Streamlit so
the session layer never imports Streamlit.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class MessageLevel(Enum):
    """Display level for UI messages."""

    INFO = "info"  # Blue - loading
    WARNING = "warning"  # Yellow - configuration needed
    ERROR = "error"  # Red - bootstrap failures


@dataclass(frozen=True)
class Message(ABC):
    """Abstract base class for messages displayed inline in the map area."""

    @property
    @abstractmethod
    def message(self) -> str:
        """Formatted message for display in Streamlit."""
        raise NotImplementedError

    @property
    @abstractmethod
    def level(self) -> MessageLevel:
        """Display level."""
        raise NotImplementedError

    def display(self) -> None:
        """Render this message using the appropriate Streamlit function."""
        import streamlit as st

        render_fn = {
            MessageLevel.INFO: st.info,
            MessageLevel.WARNING: st.warning,
            MessageLevel.ERROR: st.error,
        }[self.level]
        render_fn(self.message)


@dataclass(frozen=True)
class ToastMessage(ABC):
    """Abstract base class for transient popup notifications."""

    @property
    @abstractmethod
    def message(self) -> str:
        """Formatted message for the toast notification."""
        raise NotImplementedError

    @property
    @abstractmethod
    def icon(self) -> str:
        """Icon to show in toast. Override in subclasses."""
        raise NotImplementedError

    def display(self) -> None:
        """Show this message as a toast notification and log it."""
        import streamlit as st

        logger = logging.getLogger(__name__)
        logger.info(f"[TOAST] {self.icon} {self.message}")
        st.toast(f"{self.icon} {self.message}")


# =============================================================================
# MAP AREA - Placeholder / loading / failure
# =============================================================================


@dataclass(frozen=True)
class MissingApiKeyMessage(Message):
    """No API key configured: the map is never bootstrapped."""

    env_var: str

    @property
    def level(self) -> MessageLevel:
        return MessageLevel.WARNING

    @property
    def message(self) -> str:
        return (
            "🔑 **Missing MapTiler API key**: enter a key in the sidebar, "
            f"add `maptiler_api_key` to Streamlit secrets or set `{self.env_var}`."
        )


@dataclass(frozen=True)
class MapLoadingMessage(Message):
    """Loading overlay shown until the session reports ready."""

    phase: str

    @property
    def level(self) -> MessageLevel:
        return MessageLevel.INFO

    @property
    def message(self) -> str:
        return f"🗺️ **Loading map**: {self.phase}..."


@dataclass(frozen=True)
class BootstrapFailedMessage(Message):
    """The session gave up bootstrapping (resource load failure or unmeasurable mount)."""

    reason: str

    @property
    def level(self) -> MessageLevel:
        return MessageLevel.ERROR

    @property
    def message(self) -> str:
        return f"⚠️ **Map failed to load**: {self.reason}"


# =============================================================================
# TOASTS
# =============================================================================


@dataclass(frozen=True)
class MarkerSelectedToast(ToastMessage):
    """A location was reached from the list."""

    title: str

    @property
    def icon(self) -> str:
        return "📍"

    @property
    def message(self) -> str:
        return f"Arrived at {self.title}"
