"""Configuration constants for PeakMap.

All documented defaults are centralized here for easy tuning. The frozen config
groups in peakmap.model.map_config read their field defaults from these classes.

Classes:
    AppConfig: Streamlit host settings
    CameraDefaults: Initial camera (center, zoom, pitch, bearing)
    TerrainDefaults: Elevation source and vertical exaggeration
    RotationDefaults: Auto-rotation step size and timing
    AnimationDefaults: Fly-to transition parameters
    StyleDefaults: Visual style tokens
    UIDefaults: Control and location list toggles
    MarkerDefaults: Marker icon dimensions
    EngineDefaults: MapLibre script/stylesheet locations
    BootstrapDefaults: Mount polling and pan bounds
    MapTilerConfig: MapTiler URL templates
"""


class AppConfig:
    """Streamlit host settings."""

    TITLE = "PeakMap - 3D Terrain Explorer"
    ICON = "🏔️"
    LAYOUT = "wide"
    MAP_HEIGHT_PX = 620
    # Fallback width for the mount target; Streamlit does not report column widths
    MAP_WIDTH_PX = 960
    # Map fragment refresh period (seconds) while rotation or bootstrap is in progress
    REFRESH_SECONDS = 1.0
    # Timeout for calls submitted to the session loop thread (seconds)
    LOOP_CALL_TIMEOUT_S = 5.0
    API_KEY_ENV = "MAPTILER_API_KEY"


class CameraDefaults:
    """Initial camera state."""

    # Swiss Alps near Andermatt, [lon, lat]
    CENTER = (8.763649918607726, 46.68006894117724)
    ZOOM = 12.0
    PITCH = 50.0
    BEARING = -90.0


class TerrainDefaults:
    """3D terrain settings."""

    ENABLED = True
    EXAGGERATION = 1.5
    SOURCE = "terrainSource"

    # Raster DEM source descriptor
    TILE_SIZE = 512
    MAX_ZOOM = 14


class RotationDefaults:
    """Continuous camera rotation."""

    ENABLED = False
    SPEED_DEG = 30.0  # degrees per step
    STEP_DURATION_MS = 12000
    INITIAL_BEARING = -90.0


class AnimationDefaults:
    """Fly-to transition toward a selected point."""

    FLY_TO_DURATION_MS = 2400
    ZOOM_LEVEL = 16.0
    # The marker callback fires this long before the fly-to ends
    CALLBACK_LEAD_MS = 200


class StyleDefaults:
    """Visual style tokens."""

    MAP_NAME = "outdoor"
    BG_COLOR = "#333"
    POPUP_BG_COLOR = "rgba(0,0,0,0.8)"
    POPUP_TEXT_COLOR = "#fff"
    FONT_FAMILY = "Arial, sans-serif"


class UIDefaults:
    """Controls and location list."""

    SHOW_NAVIGATION = True
    SHOW_FULLSCREEN = False
    SHOW_LIST = True
    SIDEBAR_WIDTH = 300
    LIST_ALWAYS_VISIBLE = False
    LIST_ALIGN = "left"
    LIST_SIZE = 320
    LIST_ALIGNMENTS = ("left", "right")

    NAVIGATION_POSITION = "top-right"
    FULLSCREEN_POSITION = "top-left"


class MarkerDefaults:
    """Marker icon and popup geometry."""

    WIDTH = 20
    HEIGHT = 20
    POPUP_OFFSET_PX = 25


class EngineDefaults:
    """MapLibre runtime resources."""

    VERSION = "3.6.2"
    SCRIPT_URL_TEMPLATE = "https://unpkg.com/maplibre-gl@{version}/dist/maplibre-gl.js"
    CSS_URL_TEMPLATE = "https://unpkg.com/maplibre-gl@{version}/dist/maplibre-gl.css"
    # Timeout for the script availability check (seconds)
    FETCH_TIMEOUT_S = 30


class BootstrapDefaults:
    """Mount target polling and pan constraint."""

    POLL_INTERVAL_MS = 100
    MAX_WAIT_MS = 10000
    BOUNDS_RADIUS_KM = 5.0
    # 1 degree of latitude ≈ 111 km
    KM_PER_DEGREE = 111.0


class MapTilerConfig:
    """MapTiler URL templates. All require an API key."""

    STYLE_URL = "https://api.maptiler.com/maps/{map_name}/style.json?key={api_key}"
    TERRAIN_TILEJSON_URL = "https://api.maptiler.com/tiles/terrain-rgb/tiles.json?key={api_key}"
    TERRAIN_TILES_URL = "https://api.maptiler.com/tiles/terrain-rgb/{{z}}/{{x}}/{{y}}.png?key={api_key}"
    RASTER_TILES_URL = "https://api.maptiler.com/maps/{map_name}/256/{{z}}/{{x}}/{{y}}.png?key={api_key}"

    # Terrain-RGB decoder: height = -10000 + (R * 256 * 256 + G * 256 + B) * 0.1
    ELEVATION_DECODER = {
        "rScaler": 6553.6,
        "gScaler": 25.6,
        "bScaler": 0.1,
        "offset": -10000,
    }
