"""
Stream controller for TangibleCameraInput.

Owns at most one live CameraStream. Opening a device first closes the active
stream, then acquires the new capture in an executor so the event loop is
never blocked. Every open bumps a generation counter that the detector
adapter checks before publishing results.
"""

import asyncio
from typing import Optional

from .camera_stream import CameraError, CameraStream, CaptureFactory, VideoElement
from .config import CAMERA_FPS, CAMERA_HEIGHT, CAMERA_WIDTH
from .failure_notifier import FailureNotifier, FailureState
from .logger import get_logger, set_log_device
from .observable import Property

logger = get_logger("StreamController")


class StreamController:
    """
    Opens, swaps and closes the camera stream bound to one VideoElement.

    Attributes:
        video: Frame sink shared with the dispatch loop.
        playing: Observable, True once the active stream delivered a frame.
        generation: Incremented on every open().
    """

    def __init__(
        self,
        notifier: FailureNotifier,
        video: Optional[VideoElement] = None,
        capture_factory: Optional[CaptureFactory] = None,
        width: int = CAMERA_WIDTH,
        height: int = CAMERA_HEIGHT,
        fps: int = CAMERA_FPS
    ):
        self.video = video or VideoElement()
        self.playing: Property[bool] = Property(False, name="playing")
        self.generation = 0
        self.width = width
        self.height = height
        self.fps = fps
        self.open_count = 0

        self._notifier = notifier
        self._capture_factory = capture_factory
        self._active: Optional[CameraStream] = None
        self._lock = asyncio.Lock()

    @property
    def active_stream(self) -> Optional[CameraStream]:
        return self._active

    def is_current(self, generation: int) -> bool:
        """True if generation belongs to the stream that is playing now."""
        return self._active is not None and self._active.generation == generation

    async def open(self, device_id: str) -> Optional[CameraStream]:
        """
        Switch to a device.

        The active stream, if any, is closed first. An empty device id only
        closes. Open failures are reported through the failure notifier and
        never raised.

        Args:
            device_id: Device to open, "" for none.

        Returns:
            The new stream, or None if nothing is playing.
        """
        async with self._lock:
            self._close_active()

            if not device_id:
                logger.info("No camera selected")
                return None

            if self._notifier.failed:
                logger.info(
                    f"Not opening camera {device_id}: pipeline failed "
                    f"({self._notifier.state.value.name})"
                )
                return None

            self.generation += 1
            set_log_device(device_id)
            stream = CameraStream(
                device_id,
                self.video,
                generation=self.generation,
                capture_factory=self._capture_factory,
                width=self.width,
                height=self.height,
                fps=self.fps
            )

            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, stream.start)
            except CameraError as e:
                logger.error(f"Camera {device_id} could not be started: {e}")
                stream.stop()
                set_log_device(None)
                self._notifier.fail(FailureState.STREAM_OPEN_FAILED, e)
                return None

            self.open_count += 1
            self._active = stream
            self.playing.value = True
            return stream

    async def close(self) -> None:
        """Stop the active stream, if any."""
        async with self._lock:
            self._close_active()

    def _close_active(self) -> None:
        stream = self._active
        self._active = None
        if stream is not None:
            logger.debug(f"Closing camera {stream.device_id} (generation {stream.generation})")
            stream.stop()
            set_log_device(None)
        self.playing.value = False
        self.video.clear()
