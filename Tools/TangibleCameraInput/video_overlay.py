"""
Debug video overlay for TangibleCameraInput.

When enabled, redraws the frame a result was detected on, with that result
on top, into an OpenCV window every time a result is published.
"""

from typing import Callable, Optional

import cv2
import numpy as np

from .logger import get_logger
from .results import HAND_CONNECTIONS, DetectionResult, HandLandmarks, HandResults, MarkerResults

logger = get_logger("VideoOverlay")

WINDOW_NAME = "Tangible Input"

FrameSource = Callable[[], Optional[np.ndarray]]


def draw_hand_landmarks(
    image: np.ndarray,
    hand_landmarks: HandLandmarks,
    draw_connections: bool = True,
    mirror: bool = False
) -> np.ndarray:
    """
    Draw hand landmarks on an image.

    Args:
        image: BGR image to draw on.
        hand_landmarks: Detected hand landmarks.
        draw_connections: Draw connections between landmarks.
        mirror: The image was flipped horizontally after detection.

    Returns:
        Image with landmarks drawn.
    """
    h, w = image.shape[:2]

    def to_pixel(lm) -> tuple[int, int]:
        x = 1.0 - lm.x if mirror else lm.x
        return int(x * w), int(lm.y * h)

    if draw_connections:
        for start_idx, end_idx in HAND_CONNECTIONS:
            start_pt = to_pixel(hand_landmarks.landmarks[start_idx])
            end_pt = to_pixel(hand_landmarks.landmarks[end_idx])
            cv2.line(image, start_pt, end_pt, (0, 0, 255), 2)

    for lm in hand_landmarks.landmarks:
        cv2.circle(image, to_pixel(lm), 3, (0, 255, 0), -1)

    return image


def draw_markers(image: np.ndarray, results: MarkerResults, mirror: bool = False) -> np.ndarray:
    """Outline every marker and label it with its id; mark present anchors."""
    w = image.shape[1]

    def to_pixel(x: float, y: float) -> tuple[int, int]:
        return int(w - 1 - x if mirror else x), int(y)

    for marker in results.markers:
        corners = [to_pixel(x, y) for x, y in marker.corners]
        points = np.array(corners, dtype=np.int32).reshape(-1, 1, 2)
        cv2.polylines(image, [points], True, (0, 255, 0), 2)
        cv2.putText(
            image, str(marker.marker_id), to_pixel(*marker.center),
            cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2
        )

    for group in results.groups:
        if group.anchor.present and group.anchor.center is not None:
            cv2.circle(image, to_pixel(*group.anchor.center), 6, (255, 0, 0), -1)

    return image


def draw_results(
    image: np.ndarray,
    results: Optional[DetectionResult],
    mirror: bool = False
) -> np.ndarray:
    if isinstance(results, HandResults):
        for hand in results.multi_hand_landmarks:
            draw_hand_landmarks(image, hand, mirror=mirror)
    elif isinstance(results, MarkerResults):
        draw_markers(image, results, mirror=mirror)
    return image


class VideoOverlay:
    """
    OpenCV window showing the analysed frames with results drawn on top.

    Rendering is driven by result publications, not by the camera, so the
    window shows exactly what the detector last reported on the frame it
    looked at.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        enabled: bool = True,
        mirror: bool = True,
        window_name: str = WINDOW_NAME,
        on_quit: Optional[Callable[[], None]] = None
    ):
        """
        Args:
            frame_source: Returns the frame the latest result belongs to.
            enabled: Render at all.
            mirror: Show the image flipped horizontally, like a mirror.
            window_name: OpenCV window title.
            on_quit: Called when q or ESC is pressed in the window.
        """
        self.frame_source = frame_source
        self.enabled = enabled
        self.mirror = mirror
        self.window_name = window_name
        self.frames_rendered = 0
        self._on_quit = on_quit
        self._source = None
        self._listener = None
        self._window_open = False

    def attach(self, results_property) -> None:
        """Render on every publication of a result property."""
        self._source = results_property
        self._listener = results_property.link(lambda new, _old: self.render(new), immediate=False)

    def render(self, results: Optional[DetectionResult]) -> Optional[np.ndarray]:
        """
        Draw the analysed frame with results and show it.

        Returns:
            The drawn image, or None if disabled or no frame is available.
        """
        if not self.enabled:
            return None

        frame = self.frame_source()
        if frame is None:
            return None

        # Flip first so text is drawn readable
        image = cv2.flip(frame, 1) if self.mirror else frame.copy()
        draw_results(image, results, mirror=self.mirror)

        cv2.imshow(self.window_name, image)
        self._window_open = True
        self.frames_rendered += 1

        key = cv2.waitKey(1) & 0xFF
        if key in (ord("q"), 27) and self._on_quit:  # 'q' or ESC
            logger.info("Quit requested from video window")
            self._on_quit()

        return image

    def close(self) -> None:
        if self._source is not None:
            self._source.unlink(self._listener)
            self._source = None
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False
