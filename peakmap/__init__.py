"""PeakMap - 3D terrain map panel with points of interest.

An interactive map panel: MapTiler terrain, one marker and popup per point,
a location list that flies the camera to a point, and optional slow
auto-rotation that stops for good on the first user interaction.

Modules:
    model: Data structures (MapPoint, CameraState, config groups, messages)
    core: Geo helpers and popup rendering
    engine: MapEngine capability, pydeck backend, host document
    session: Map session controller (loader, bootstrapper, features, rotation, navigation)
    ui: Streamlit components (map panel, location list)

Example:
    from peakmap.model import MapPoint, resolve_config
    from peakmap.session import LoopThread, SessionLifecycleManager
"""
