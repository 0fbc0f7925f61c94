"""
Camera stream for TangibleCameraInput.

Wraps OpenCV VideoCapture. A CameraStream owns one capture and a background
thread that keeps only the newest frame in a VideoElement, together with its
presentation timestamp. The dispatch loop reads the VideoElement without
ever blocking on the camera.
"""

import sys
import threading
import time
from typing import Any, Callable, Optional, Union

import cv2
import numpy as np

from .config import (
    CAMERA_FIRST_FRAME_TIMEOUT,
    CAMERA_FPS,
    CAMERA_HEIGHT,
    CAMERA_READ_FAILURE_LIMIT,
    CAMERA_THREAD_JOIN_TIMEOUT,
    CAMERA_WIDTH,
)
from .errors import TangibleInputError
from .logger import get_logger

logger = get_logger("CameraStream")

CaptureFactory = Callable[[str], Any]


class CameraError(TangibleInputError):
    """Raised when a camera cannot be opened or stops producing frames."""
    pass


def parse_device_id(device_id: str) -> Union[int, str]:
    """
    Convert a device id to what cv2.VideoCapture expects.

    Numeric ids ("0", "1") become indices; anything else (a device path or
    a stream URL) is passed through.
    """
    if device_id.isdigit():
        return int(device_id)
    return device_id


def create_video_capture(source: Union[int, str]) -> cv2.VideoCapture:
    """
    Create a VideoCapture with the preferred backend for this platform.

    On Windows DirectShow is tried first for lower latency, falling back to
    the default backend.
    """
    if sys.platform == "win32" and isinstance(source, int):
        capture = cv2.VideoCapture(source, cv2.CAP_DSHOW)
        if capture.isOpened():
            return capture
        capture.release()
        logger.debug("DirectShow failed, trying default backend")

    return cv2.VideoCapture(source)


def open_capture(
    device_id: str,
    width: int = CAMERA_WIDTH,
    height: int = CAMERA_HEIGHT,
    fps: int = CAMERA_FPS
) -> cv2.VideoCapture:
    """
    Open and configure a capture device.

    Args:
        device_id: Device index as a string, or a device path.
        width: Desired capture width.
        height: Desired capture height.
        fps: Desired frame rate.

    Returns:
        An opened VideoCapture.

    Raises:
        CameraError: If the device cannot be opened.
    """
    logger.info(f"Opening camera {device_id}...")
    capture = create_video_capture(parse_device_id(device_id))

    if not capture.isOpened():
        capture.release()
        raise CameraError(f"Failed to open camera {device_id}")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    capture.set(cv2.CAP_PROP_FPS, fps)
    capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # Minimize latency

    actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
    actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
    actual_fps = capture.get(cv2.CAP_PROP_FPS)
    logger.info(f"Camera {device_id} opened: {actual_w}x{actual_h} @ {actual_fps:.1f} FPS")

    if actual_w != width or actual_h != height:
        logger.warning(f"Requested {width}x{height}, got {actual_w}x{actual_h}")

    return capture


class VideoElement:
    """
    Latest frame of the playing stream and its presentation timestamp.

    Written by the capture thread, read by the dispatch loop. current_time
    only changes when a new frame is presented.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._current_time: float = -1.0
        self._frame_count = 0

    def present(self, frame: np.ndarray, timestamp_ms: float) -> None:
        """Make a frame current."""
        with self._lock:
            self._frame = frame
            self._current_time = timestamp_ms
            self._frame_count += 1

    def snapshot(self) -> tuple[float, Optional[np.ndarray]]:
        """Get (current_time, frame) as one consistent pair."""
        with self._lock:
            return self._current_time, self._frame

    def clear(self) -> None:
        """Drop the current frame, e.g. after the stream was closed."""
        with self._lock:
            self._frame = None
            self._current_time = -1.0

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._current_time

    @property
    def frame_count(self) -> int:
        """Frames presented since creation."""
        with self._lock:
            return self._frame_count


class CameraStream:
    """
    One live camera stream bound to a VideoElement.

    start() blocks until the first frame arrives and is meant to run in an
    executor. stop() releases the capture exactly once.

    Attributes:
        device_id: Device the stream was opened on.
        generation: Stream controller generation this stream belongs to.
    """

    def __init__(
        self,
        device_id: str,
        video: VideoElement,
        generation: int = 0,
        capture_factory: Optional[CaptureFactory] = None,
        width: int = CAMERA_WIDTH,
        height: int = CAMERA_HEIGHT,
        fps: int = CAMERA_FPS,
        first_frame_timeout: float = CAMERA_FIRST_FRAME_TIMEOUT
    ):
        self.device_id = device_id
        self.video = video
        self.generation = generation
        self.width = width
        self.height = height
        self.fps = fps
        self.first_frame_timeout = first_frame_timeout
        self._capture_factory = capture_factory or (
            lambda dev: open_capture(dev, self.width, self.height, self.fps)
        )

        self._capture: Optional[Any] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._stop_lock = threading.Lock()
        self._stopped = False
        self._playing = False
        self._last_timestamp = -1.0
        self.release_count = 0

    @property
    def is_playing(self) -> bool:
        """True once the first frame was presented and until stop()."""
        return self._playing and not self._stopped

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """
        Open the capture, wait for the first frame and start the capture thread.

        Raises:
            CameraError: If the device cannot be opened or stays silent.
        """
        if self._stopped:
            raise CameraError(f"Camera stream {self.device_id} was already stopped")

        try:
            capture = self._capture_factory(self.device_id)
        except CameraError:
            raise
        except Exception as e:
            raise CameraError(f"Failed to open camera {self.device_id}: {e}") from e

        self._capture = capture
        if not capture.isOpened():
            self.stop()
            raise CameraError(f"Failed to open camera {self.device_id}")

        deadline = time.perf_counter() + self.first_frame_timeout
        while True:
            if self._stop_event.is_set():
                raise CameraError(f"Camera stream {self.device_id} stopped while starting")
            try:
                presented = self._read_and_present()
            except cv2.error as e:
                self.stop()
                raise CameraError(f"Reading from camera {self.device_id} failed: {e}") from e
            if presented:
                break
            if time.perf_counter() >= deadline:
                self.stop()
                raise CameraError(
                    f"Camera {self.device_id} produced no frames within "
                    f"{self.first_frame_timeout:.1f}s"
                )
            time.sleep(0.01)

        self._playing = True
        self._thread = threading.Thread(
            target=self._capture_loop,
            name=f"CameraStream-{self.device_id}",
            daemon=True
        )
        self._thread.start()
        logger.info(f"Camera {self.device_id} playing (generation {self.generation})")

    def stop(self) -> None:
        """Stop the capture thread and release the device. Safe to call twice."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=CAMERA_THREAD_JOIN_TIMEOUT)
            if self._thread.is_alive():
                logger.warning(f"Capture thread for camera {self.device_id} did not stop in time")
        self._thread = None

        if self._capture is not None:
            self._capture.release()
            self.release_count += 1
            self._capture = None
            logger.info(f"Camera {self.device_id} released")
        self._playing = False

    def _capture_loop(self) -> None:
        """Background loop that keeps the VideoElement on the newest frame."""
        failures = 0
        while not self._stop_event.is_set():
            if self._read_and_present():
                failures = 0
                continue

            failures += 1
            if failures >= CAMERA_READ_FAILURE_LIMIT:
                logger.warning(
                    f"Camera {self.device_id} stopped delivering frames "
                    f"after {failures} failed reads"
                )
                break
            time.sleep(0.01)

    def _read_and_present(self) -> bool:
        capture = self._capture
        if capture is None:
            return False

        ret, frame = capture.read()
        if not ret or frame is None:
            return False

        # Never present from a stream that is shutting down
        if self._stop_event.is_set():
            return False

        self.video.present(frame, self._presentation_time(capture))
        return True

    def _presentation_time(self, capture: Any) -> float:
        """
        Timestamp of the frame just read, in milliseconds.

        Uses the capture's own position where it reports one (files, some
        drivers), otherwise the local clock. Always strictly increasing.
        """
        timestamp = 0.0
        try:
            timestamp = float(capture.get(cv2.CAP_PROP_POS_MSEC))
        except (cv2.error, TypeError, ValueError):
            timestamp = 0.0

        if timestamp <= 0.0 or timestamp <= self._last_timestamp:
            timestamp = max(time.perf_counter() * 1000.0, self._last_timestamp + 0.001)

        self._last_timestamp = timestamp
        return timestamp

    def __enter__(self) -> "CameraStream":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
