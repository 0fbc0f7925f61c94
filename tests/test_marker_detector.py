"""Unit tests for ArUco marker detection and group resolution."""

import cv2
import numpy as np
import pytest

from TangibleCameraInput.config import MarkerGroupConfig, PipelineOptions
from TangibleCameraInput.detector import DetectorError
from TangibleCameraInput.marker_detector import MarkerDetector, markers_from_detection, resolve_group
from TangibleCameraInput.results import DetectedMarker, MarkerResults


def square_marker(marker_id: int, x: float, y: float, size: float = 10.0) -> DetectedMarker:
    """Axis-aligned marker with its top-left corner at (x, y)."""
    return DetectedMarker(
        marker_id=marker_id,
        corners=((x, y), (x + size, y), (x + size, y + size), (x, y + size))
    )


@pytest.fixture
def slider_config():
    return MarkerGroupConfig(name="slider", anchor_id=0, inputs={"position": 1}, span=6.0)


class TestResolveGroup:
    """Test marker group geometry."""

    def test_input_halfway_along_span(self, slider_config):
        anchor = square_marker(0, 0, 0)  # center (5, 5), side 10
        knob = square_marker(1, 30, 0)  # center (35, 5): 30 px = half of 6 * 10

        group = resolve_group(slider_config, {0: anchor, 1: knob})

        assert group.anchor.present
        assert group.anchor.center == (5.0, 5.0)
        position = group.get_input("position")
        assert position.present
        assert position.val == pytest.approx(0.5)

    def test_value_clipped(self, slider_config):
        anchor = square_marker(0, 100, 0)
        beyond = square_marker(1, 400, 0)
        behind = square_marker(1, 0, 0)

        assert resolve_group(slider_config, {0: anchor, 1: beyond}).get_input("position").val == 1.0
        assert resolve_group(slider_config, {0: anchor, 1: behind}).get_input("position").val == 0.0

    def test_follows_anchor_rotation(self, slider_config):
        # Anchor rotated 90 degrees: its top edge points down the image
        anchor = DetectedMarker(0, ((10, 0), (10, 10), (0, 10), (0, 0)))
        knob = square_marker(1, 0, 30)  # 30 px below the anchor center

        position = resolve_group(slider_config, {0: anchor, 1: knob}).get_input("position")

        assert position.val == pytest.approx(0.5)

    def test_missing_anchor(self, slider_config):
        group = resolve_group(slider_config, {1: square_marker(1, 30, 0)})

        assert not group.anchor.present
        assert group.anchor.center is None
        assert not group.get_input("position").present

    def test_missing_input(self, slider_config):
        group = resolve_group(slider_config, {0: square_marker(0, 0, 0)})

        position = group.get_input("position")
        assert group.anchor.present
        assert not position.present
        assert position.val == 0.0


class TestMarkersFromDetection:

    def test_no_ids(self):
        assert markers_from_detection((), None) == []

    def test_converts_corners(self):
        corners = (np.array([[[1, 2], [3, 2], [3, 4], [1, 4]]], dtype=np.float32),)
        ids = np.array([[7]], dtype=np.int32)

        markers = markers_from_detection(corners, ids)

        assert markers == [DetectedMarker(7, ((1.0, 2.0), (3.0, 2.0), (3.0, 4.0), (1.0, 4.0)))]


class TestMarkerDetector:
    """Test detection on rendered ArUco markers."""

    @staticmethod
    def render_markers(placements: dict[int, tuple[int, int]], size: int = 80) -> np.ndarray:
        aruco_dict = cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_4X4_50)
        canvas = np.full((240, 480), 255, dtype=np.uint8)
        for marker_id, (x, y) in placements.items():
            canvas[y:y + size, x:x + size] = cv2.aruco.generateImageMarker(aruco_dict, marker_id, size)
        return cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)

    @pytest.mark.asyncio
    async def test_detects_slider_group(self, slider_config):
        detector = MarkerDetector(groups=[slider_config])
        detector.configure(PipelineOptions())
        results = []
        detector.on_results(results.append)

        # Anchor center (80, 80), knob center (280, 80): 200 px over a 480 px span
        await detector.send(self.render_markers({0: (40, 40), 1: (240, 40)}))

        assert len(results) == 1
        result = results[0]
        assert isinstance(result, MarkerResults)
        assert sorted(m.marker_id for m in result.markers) == [0, 1]
        group = result.get_group("slider")
        assert group.anchor.present
        assert group.get_input("position").val == pytest.approx(200 / 480, abs=0.05)

    @pytest.mark.asyncio
    async def test_blank_frame_is_empty(self, slider_config):
        detector = MarkerDetector(groups=[slider_config])
        detector.configure(PipelineOptions())
        results = []
        detector.on_results(results.append)

        await detector.send(np.full((120, 160, 3), 255, dtype=np.uint8))

        assert results[0].is_empty()
        assert not results[0].get_group("slider").anchor.present

    @pytest.mark.asyncio
    async def test_send_before_configure(self, frame):
        detector = MarkerDetector()

        with pytest.raises(DetectorError):
            await detector.send(frame)

    def test_unknown_dictionary(self):
        detector = MarkerDetector(dictionary="DICT_NOT_REAL")

        with pytest.raises(ValueError):
            detector.configure(PipelineOptions())
