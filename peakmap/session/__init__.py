"""Map session controller: resource loading, bootstrap, features, rotation, navigation."""

from peakmap.session.bootstrapper import BootstrapTimeout, SessionBootstrapper, build_engine_options
from peakmap.session.context import SessionState
from peakmap.session.feature_layers import FeatureLayerBuilder
from peakmap.session.lifecycle import (
    PhaseLogListener,
    SessionLifecycleManager,
    SessionPhaseMachine,
    pydeck_engine_factory,
)
from peakmap.session.navigator import CameraNavigator, MarkerClickCallback
from peakmap.session.resource_loader import ResourceLoader
from peakmap.session.rotation import RotationAnimator, RotationModel, RotationStateMachine
from peakmap.session.runner import HostEvent, HostEvents, LoopThread

__all__ = [
    "BootstrapTimeout",
    "CameraNavigator",
    "FeatureLayerBuilder",
    "HostEvent",
    "HostEvents",
    "LoopThread",
    "MarkerClickCallback",
    "PhaseLogListener",
    "ResourceLoader",
    "RotationAnimator",
    "RotationModel",
    "RotationStateMachine",
    "SessionBootstrapper",
    "SessionLifecycleManager",
    "SessionPhaseMachine",
    "SessionState",
    "build_engine_options",
    "pydeck_engine_factory",
]
