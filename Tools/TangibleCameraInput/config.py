"""
Configuration constants for TangibleCameraInput.

This module contains the tunable parameters for camera capture, detector
pacing, hand and marker detection, logging and the command line entry point.
"""

from dataclasses import dataclass, field
from typing import Final, Optional


# Camera configuration
CAMERA_WIDTH: Final[int] = 1280
CAMERA_HEIGHT: Final[int] = 720
CAMERA_FPS: Final[int] = 30
CAMERA_MAX_PROBE_INDEX: Final[int] = 10  # Highest device index probed during enumeration
CAMERA_FIRST_FRAME_TIMEOUT: Final[float] = 5.0  # seconds until a silent camera counts as failed
CAMERA_READ_FAILURE_LIMIT: Final[int] = 30  # consecutive failed reads before the capture thread ends
CAMERA_THREAD_JOIN_TIMEOUT: Final[float] = 2.0  # seconds

# Detector pacing
# A send that has not settled after this many seconds is treated as an
# unreachable detector. None waits forever; the first hand detector send
# includes the model download.
DETECTOR_SEND_TIMEOUT: Final[Optional[float]] = None

# MediaPipe configuration
MEDIAPIPE_MAX_NUM_HANDS: Final[int] = 2
MEDIAPIPE_MODEL_COMPLEXITY: Final[int] = 1  # 0 = Lite, 1 = Full
MEDIAPIPE_MIN_DETECTION_CONFIDENCE: Final[float] = 0.2
MEDIAPIPE_MIN_TRACKING_CONFIDENCE: Final[float] = 0.2
MODEL_COMPLEXITY_VALUES: Final[tuple[int, ...]] = (0, 1)

# Fiducial marker configuration (OpenCV ArUco)
ARUCO_DICTIONARY: Final[str] = "DICT_4X4_50"
MARKER_GROUP_SPAN: Final[float] = 6.0  # Slider travel measured in anchor marker widths

# Logging
LOG_ROOT_NAME: Final[str] = "TangibleInput"
LOG_FILENAME: Final[str] = "tangible_camera_input.log"
LOG_MAX_BYTES: Final[int] = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT: Final[int] = 3

# Exit codes
EXIT_SUCCESS: Final[int] = 0
EXIT_USAGE_ERROR: Final[int] = 1
EXIT_CAMERA_ERROR: Final[int] = 2
EXIT_RUNTIME_ERROR: Final[int] = 3
EXIT_DETECTOR_ERROR: Final[int] = 4


@dataclass
class PipelineOptions:
    """
    Options recognised by TrackingPipeline.initialize().

    Defaults match the MediaPipe Hands settings used for slider control:
    two hands, full model, permissive confidences.
    """

    max_targets: int = MEDIAPIPE_MAX_NUM_HANDS
    model_complexity: int = MEDIAPIPE_MODEL_COMPLEXITY
    min_detection_confidence: float = MEDIAPIPE_MIN_DETECTION_CONFIDENCE
    min_tracking_confidence: float = MEDIAPIPE_MIN_TRACKING_CONFIDENCE
    preferred_device_id: Optional[str] = None

    def validate(self) -> "PipelineOptions":
        """
        Bounds-check every numeric option.

        Returns:
            self, so calls can be chained.

        Raises:
            ValueError: If any option is out of range.
        """
        if isinstance(self.max_targets, bool) or not isinstance(self.max_targets, int):
            raise ValueError(f"max_targets must be an integer, got {self.max_targets!r}")
        if self.max_targets <= 0:
            raise ValueError(f"max_targets must be positive, got {self.max_targets}")

        if self.model_complexity not in MODEL_COMPLEXITY_VALUES:
            raise ValueError(
                f"model_complexity must be one of {MODEL_COMPLEXITY_VALUES}, "
                f"got {self.model_complexity!r}"
            )

        for name in ("min_detection_confidence", "min_tracking_confidence"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

        if self.preferred_device_id is not None and not isinstance(self.preferred_device_id, str):
            raise ValueError(
                f"preferred_device_id must be a string, got {self.preferred_device_id!r}"
            )

        return self


@dataclass
class MarkerGroupConfig:
    """
    A named set of fiducial markers that together form one input control.

    Attributes:
        name: Group name used by consumers (e.g. "slider").
        anchor_id: ArUco id of the marker that defines the group's frame.
        inputs: Mapping of input name to the ArUco id of its moving marker.
        span: Travel of an input along the anchor's x axis, in anchor widths,
              that maps to the full [0, 1] value range.
    """

    name: str
    anchor_id: int
    inputs: dict[str, int] = field(default_factory=dict)
    span: float = MARKER_GROUP_SPAN


DEFAULT_MARKER_GROUPS: Final[tuple[MarkerGroupConfig, ...]] = (
    MarkerGroupConfig(name="slider", anchor_id=0, inputs={"position": 1}),
)
