"""
TangibleCameraInput - physical input from a live camera.

Turns hand poses (MediaPipe Hands) or fiducial markers (OpenCV ArUco) seen
by a camera into a stream of detection results that can drive numeric
parameters such as sliders.
"""

from .camera_stream import CameraError, CameraStream, VideoElement
from .config import MarkerGroupConfig, PipelineOptions
from .detector import Detector, DetectorError, DetectorUnreachableError
from .device_enumerator import (
    DeviceDescriptor,
    DeviceEnumerator,
    EnumerationFailedError,
    PermissionDeniedError,
)
from .errors import PipelineStateError, TangibleInputError
from .failure_notifier import FailureNotifier, FailureState, Notice
from .hand_detector import HandDetector
from .marker_detector import MarkerDetector
from .observable import NumberProperty, Property, ReadOnlyProperty, ResultSlot
from .pipeline import LifecycleState, TrackingPipeline
from .results import (
    HandLandmarks,
    HandResults,
    Landmark,
    LandmarkIndex,
    MarkerGroup,
    MarkerInput,
    MarkerResults,
)
from .slider_binding import HandSliderBinding, SliderGroupBinding
from .video_overlay import VideoOverlay

__version__ = "1.0.0"
__author__ = "TangibleInput Team"

__all__ = [
    "CameraError",
    "CameraStream",
    "Detector",
    "DetectorError",
    "DetectorUnreachableError",
    "DeviceDescriptor",
    "DeviceEnumerator",
    "EnumerationFailedError",
    "FailureNotifier",
    "FailureState",
    "HandDetector",
    "HandLandmarks",
    "HandResults",
    "HandSliderBinding",
    "Landmark",
    "LandmarkIndex",
    "LifecycleState",
    "MarkerDetector",
    "MarkerGroup",
    "MarkerGroupConfig",
    "MarkerInput",
    "MarkerResults",
    "Notice",
    "NumberProperty",
    "PermissionDeniedError",
    "PipelineOptions",
    "PipelineStateError",
    "Property",
    "ReadOnlyProperty",
    "ResultSlot",
    "SliderGroupBinding",
    "TangibleInputError",
    "TrackingPipeline",
    "VideoElement",
    "VideoOverlay",
]
