"""
Detection result types for TangibleCameraInput.

Two result families are produced by the bundled detectors:

- HandResults: ordered hands, each with 21 MediaPipe landmarks.
- MarkerResults: named marker groups with anchor presence and scalar inputs.

Both expose is_empty() so the detector adapter can publish None when nothing
was detected instead of an empty-but-present payload.
"""

from dataclasses import dataclass, field
from typing import Optional, Union


class LandmarkIndex:
    """MediaPipe hand landmark indices."""
    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_MCP = 5
    INDEX_PIP = 6
    INDEX_DIP = 7
    INDEX_TIP = 8
    MIDDLE_MCP = 9
    MIDDLE_PIP = 10
    MIDDLE_DIP = 11
    MIDDLE_TIP = 12
    RING_MCP = 13
    RING_PIP = 14
    RING_DIP = 15
    RING_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


NUM_HAND_LANDMARKS = 21

HAND_CONNECTIONS: tuple[tuple[int, int], ...] = (
    (0, 1), (1, 2), (2, 3), (3, 4),  # Thumb
    (0, 5), (5, 6), (6, 7), (7, 8),  # Index
    (0, 9), (9, 10), (10, 11), (11, 12),  # Middle
    (0, 13), (13, 14), (14, 15), (15, 16),  # Ring
    (0, 17), (17, 18), (18, 19), (19, 20),  # Pinky
    (5, 9), (9, 13), (13, 17)  # Palm
)


@dataclass(frozen=True)
class Landmark:
    """Single hand landmark with 3D coordinates and visibility."""
    x: float  # Normalized x [0, 1]
    y: float  # Normalized y [0, 1]
    z: float  # Relative depth
    visibility: float = 1.0


@dataclass(frozen=True)
class HandLandmarks:
    """
    One detected hand.

    Attributes:
        landmarks: The 21 hand landmarks in MediaPipe order.
        handedness: 'Left' or 'Right'.
        score: Handedness classification confidence.
    """
    landmarks: tuple[Landmark, ...]
    handedness: str = "Right"
    score: float = 1.0

    def get_landmark(self, index: int) -> Optional[Landmark]:
        """Get landmark by index."""
        if 0 <= index < len(self.landmarks):
            return self.landmarks[index]
        return None

    @property
    def wrist(self) -> Landmark:
        return self.landmarks[LandmarkIndex.WRIST]

    @property
    def thumb_tip(self) -> Landmark:
        return self.landmarks[LandmarkIndex.THUMB_TIP]

    @property
    def index_tip(self) -> Landmark:
        return self.landmarks[LandmarkIndex.INDEX_TIP]

    def get_palm_center(self) -> tuple[float, float]:
        """
        Calculate approximate palm center.

        Returns:
            (x, y) normalized coordinates of palm center.
        """
        points = [
            self.landmarks[LandmarkIndex.WRIST],
            self.landmarks[LandmarkIndex.INDEX_MCP],
            self.landmarks[LandmarkIndex.MIDDLE_MCP],
            self.landmarks[LandmarkIndex.RING_MCP],
            self.landmarks[LandmarkIndex.PINKY_MCP],
        ]

        x = sum(p.x for p in points) / len(points)
        y = sum(p.y for p in points) / len(points)

        return (x, y)


@dataclass(frozen=True)
class HandResults:
    """All hands found in one frame, in detector order."""
    multi_hand_landmarks: tuple[HandLandmarks, ...] = ()

    def is_empty(self) -> bool:
        return len(self.multi_hand_landmarks) == 0

    @property
    def hand_count(self) -> int:
        return len(self.multi_hand_landmarks)

    def describe(self) -> str:
        hands = ", ".join(
            f"{hand.handedness}({hand.score:.2f})" for hand in self.multi_hand_landmarks
        )
        return f"{self.hand_count} hand(s): {hands}" if hands else "no hands"


@dataclass(frozen=True)
class DetectedMarker:
    """A raw fiducial marker: id and its four image corners in pixels."""
    marker_id: int
    corners: tuple[tuple[float, float], ...]

    @property
    def center(self) -> tuple[float, float]:
        xs = [c[0] for c in self.corners]
        ys = [c[1] for c in self.corners]
        return (sum(xs) / len(xs), sum(ys) / len(ys))


@dataclass(frozen=True)
class MarkerAnchor:
    """Anchor state of a marker group."""
    present: bool
    center: Optional[tuple[float, float]] = None


@dataclass(frozen=True)
class MarkerInput:
    """
    One scalar input of a marker group.

    Attributes:
        name: Input name from the group configuration.
        val: Normalized value in [0, 1].
        present: Whether the input's marker was seen in this frame.
    """
    name: str
    val: float = 0.0
    present: bool = False


@dataclass(frozen=True)
class MarkerGroup:
    """A named marker group resolved against one frame."""
    name: str
    anchor: MarkerAnchor
    inputs: tuple[MarkerInput, ...] = ()

    def get_input(self, name: str) -> Optional[MarkerInput]:
        for marker_input in self.inputs:
            if marker_input.name == name:
                return marker_input
        return None


@dataclass(frozen=True)
class MarkerResults:
    """Marker groups and the raw markers they were resolved from."""
    groups: tuple[MarkerGroup, ...] = ()
    markers: tuple[DetectedMarker, ...] = field(default=())

    def is_empty(self) -> bool:
        return len(self.markers) == 0

    def get_group(self, name: str) -> Optional[MarkerGroup]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def describe(self) -> str:
        present = [g.name for g in self.groups if g.anchor.present]
        return f"{len(self.markers)} marker(s), groups present: {present or 'none'}"


DetectionResult = Union[HandResults, MarkerResults]
