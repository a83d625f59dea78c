"""Map engine capability and backends.

- base.py: MapEngine ABC, event names, engine options and feature specs
- pydeck_engine.py: PydeckMapEngine (deck.gl via pydeck)
- host_document.py: Script/stylesheet directives for the engine runtime
"""

from peakmap.engine.base import (
    ControlKind,
    ControlSpec,
    EngineEvent,
    EngineFactory,
    EngineOptions,
    EngineRemovedError,
    EventEmitter,
    MapEngine,
    MarkerElement,
    MountTarget,
    Popup,
    SourceDescriptor,
    TerrainOptions,
    linear,
)
from peakmap.engine.host_document import HostDocument, HTMLHostDocument, ScriptTag, StylesheetLink
from peakmap.engine.pydeck_engine import PydeckMapEngine

__all__ = [
    "MapEngine",
    "EngineFactory",
    "EngineOptions",
    "EngineEvent",
    "EngineRemovedError",
    "EventEmitter",
    "ControlKind",
    "ControlSpec",
    "MarkerElement",
    "MountTarget",
    "Popup",
    "SourceDescriptor",
    "TerrainOptions",
    "linear",
    "PydeckMapEngine",
    "HostDocument",
    "HTMLHostDocument",
    "ScriptTag",
    "StylesheetLink",
]
