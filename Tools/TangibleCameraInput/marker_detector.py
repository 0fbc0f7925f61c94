"""
Fiducial marker detector using OpenCV ArUco.

Finds ArUco markers in each frame and resolves them into configured marker
groups. A group has one anchor marker that defines a local x axis; each of
its inputs is the normalised position of another marker along that axis.
"""

import asyncio
from typing import Iterable, Optional, Sequence

import cv2
import numpy as np

from .config import ARUCO_DICTIONARY, DEFAULT_MARKER_GROUPS, MarkerGroupConfig, PipelineOptions
from .detector import Detector, DetectorError
from .logger import get_logger
from .results import DetectedMarker, MarkerAnchor, MarkerGroup, MarkerInput, MarkerResults

logger = get_logger("MarkerDetector")


def resolve_group(config: MarkerGroupConfig, markers_by_id: dict[int, DetectedMarker]) -> MarkerGroup:
    """
    Resolve one marker group against the markers seen in a frame.

    An input's value is the projection of (input center - anchor center) on
    the anchor's top edge direction, divided by span anchor widths and
    clipped to [0, 1]. Without the anchor, every input is absent.
    """
    anchor_marker = markers_by_id.get(config.anchor_id)
    if anchor_marker is None:
        return MarkerGroup(
            name=config.name,
            anchor=MarkerAnchor(present=False),
            inputs=tuple(MarkerInput(name=name) for name in config.inputs)
        )

    anchor_center = np.array(anchor_marker.center, dtype=np.float64)
    top_left = np.array(anchor_marker.corners[0], dtype=np.float64)
    top_right = np.array(anchor_marker.corners[1], dtype=np.float64)
    x_axis = top_right - top_left
    side = float(np.linalg.norm(x_axis))

    inputs = []
    for name, marker_id in config.inputs.items():
        marker = markers_by_id.get(marker_id)
        if marker is None or side <= 0.0 or config.span <= 0.0:
            inputs.append(MarkerInput(name=name))
            continue

        offset = np.array(marker.center, dtype=np.float64) - anchor_center
        distance = float(np.dot(offset, x_axis / side))
        val = float(np.clip(distance / (config.span * side), 0.0, 1.0))
        inputs.append(MarkerInput(name=name, val=val, present=True))

    return MarkerGroup(
        name=config.name,
        anchor=MarkerAnchor(present=True, center=(float(anchor_center[0]), float(anchor_center[1]))),
        inputs=tuple(inputs)
    )


def markers_from_detection(corners: Sequence[np.ndarray], ids: Optional[np.ndarray]) -> list[DetectedMarker]:
    """Convert ArucoDetector.detectMarkers output into DetectedMarkers."""
    if ids is None:
        return []

    markers = []
    for marker_corners, marker_id in zip(corners, ids.flatten()):
        points = np.asarray(marker_corners, dtype=np.float64).reshape(-1, 2)
        markers.append(DetectedMarker(
            marker_id=int(marker_id),
            corners=tuple((float(x), float(y)) for x, y in points)
        ))
    return markers


class MarkerDetector(Detector):
    """
    ArUco marker detector producing MarkerResults.

    Only the first marker of each id is used when a frame contains
    duplicates.
    """

    def __init__(
        self,
        groups: Iterable[MarkerGroupConfig] = DEFAULT_MARKER_GROUPS,
        dictionary: str = ARUCO_DICTIONARY
    ):
        super().__init__()
        self.groups = tuple(groups)
        self.dictionary = dictionary
        self.frame_count = 0
        self._detector: Optional[cv2.aruco.ArucoDetector] = None

    def configure(self, options: PipelineOptions) -> None:
        """
        Build the ArUco detector.

        Hand tracking options have no marker counterpart and are ignored.
        """
        dictionary_id = getattr(cv2.aruco, self.dictionary, None)
        if dictionary_id is None:
            raise ValueError(f"Unknown ArUco dictionary: {self.dictionary}")

        aruco_dict = cv2.aruco.getPredefinedDictionary(dictionary_id)
        self._detector = cv2.aruco.ArucoDetector(aruco_dict, cv2.aruco.DetectorParameters())
        logger.info(
            f"Marker detector ready ({self.dictionary}, groups: "
            f"{', '.join(g.name for g in self.groups) or 'none'})"
        )

    async def send(self, image: np.ndarray) -> None:
        if self.closed:
            raise DetectorError("MarkerDetector is closed")
        if self._detector is None:
            raise DetectorError("MarkerDetector used before configure()")

        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, self._process, image)
        self._emit(results)

    def _process(self, image: np.ndarray) -> MarkerResults:
        self.frame_count += 1
        try:
            gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            corners, ids, _ = self._detector.detectMarkers(gray)
        except cv2.error as e:
            raise DetectorError(f"Marker detection failed: {e}") from e

        markers = markers_from_detection(corners, ids)
        return self.resolve(markers)

    def resolve(self, markers: Sequence[DetectedMarker]) -> MarkerResults:
        """Resolve every configured group against a list of markers."""
        markers_by_id: dict[int, DetectedMarker] = {}
        for marker in markers:
            markers_by_id.setdefault(marker.marker_id, marker)

        return MarkerResults(
            groups=tuple(resolve_group(config, markers_by_id) for config in self.groups),
            markers=tuple(markers)
        )

    def close(self) -> None:
        super().close()
        self._detector = None
