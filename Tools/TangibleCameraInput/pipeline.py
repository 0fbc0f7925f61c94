"""
Tracking pipeline for TangibleCameraInput.

Wires the device enumerator, stream controller, frame dispatch loop,
detector adapter and failure notifier into one object owned by the host.
All state lives on the instance, so several pipelines can coexist.
"""

import asyncio
from enum import Enum
from typing import Optional

import numpy as np

from .camera_stream import CaptureFactory
from .config import (
    CAMERA_FPS,
    CAMERA_HEIGHT,
    CAMERA_WIDTH,
    DETECTOR_SEND_TIMEOUT,
    PipelineOptions,
)
from .detector_adapter import DetectorAdapter, DetectorFactory
from .device_enumerator import (
    DeviceDescriptor,
    DeviceEnumerator,
    EnumerationFailedError,
    PermissionDeniedError,
)
from .errors import PipelineStateError
from .failure_notifier import FailureNotifier, FailureState, NoticeHandler
from .frame_dispatch import FrameClock, FrameDispatchLoop
from .hand_detector import HandDetector
from .logger import get_logger
from .observable import Property, ReadOnlyProperty, ResultSlot
from .results import DetectionResult
from .stream_controller import StreamController

logger = get_logger("Pipeline")


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class TrackingPipeline:
    """
    Camera-to-tracking pipeline.

    Typical use::

        pipeline = TrackingPipeline()
        pipeline.results.link(on_results)
        await pipeline.initialize(PipelineOptions(max_targets=1))
        ...
        await pipeline.close()
    """

    def __init__(
        self,
        detector_factory: DetectorFactory = HandDetector,
        *,
        enumerator: Optional[DeviceEnumerator] = None,
        capture_factory: Optional[CaptureFactory] = None,
        notice_handler: Optional[NoticeHandler] = None,
        clock: Optional[FrameClock] = None,
        start_clock: bool = True,
        send_timeout: Optional[float] = DETECTOR_SEND_TIMEOUT,
        fps: int = CAMERA_FPS,
        width: int = CAMERA_WIDTH,
        height: int = CAMERA_HEIGHT
    ):
        """
        Create an uninitialized pipeline.

        Args:
            detector_factory: Builds the detector; called once per pipeline.
            enumerator: Device enumerator, defaults to OpenCV index probing.
            capture_factory: Opens a capture for a device id (tests, files).
            notice_handler: Receives the user-visible failure notice.
            clock: Frame clock driving the dispatch loop.
            start_clock: Start the clock task during initialize(). Tests
                         that tick manually pass False.
            send_timeout: Seconds before an unsettled send counts as failed.
            fps: Camera and clock frame rate.
            width: Requested capture width.
            height: Requested capture height.
        """
        self.notifier = FailureNotifier(notice_handler)
        self.enumerator = enumerator or DeviceEnumerator()
        self.stream_controller = StreamController(
            self.notifier,
            capture_factory=capture_factory,
            width=width,
            height=height,
            fps=fps
        )
        self.clock = clock or FrameClock(fps)
        self.send_timeout = send_timeout

        self._detector_factory = detector_factory
        self._start_clock = start_clock
        self._slot = ResultSlot()
        self._lifecycle: Property[LifecycleState] = Property(
            LifecycleState.UNINITIALIZED, name="lifecycle"
        )
        self._options: Optional[PipelineOptions] = None
        self._initialized = False
        self._adapter: Optional[DetectorAdapter] = None
        self._dispatch: Optional[FrameDispatchLoop] = None
        self._selection_listener = None
        self._swap_tasks: list[asyncio.Task] = []

        self.notifier.state.link(self._on_failure_state_changed, immediate=False)

    @property
    def results(self) -> ReadOnlyProperty[Optional[DetectionResult]]:
        """Latest detection result, None when nothing is detected."""
        return self._slot.read_only()

    @property
    def failure_state(self) -> ReadOnlyProperty[FailureState]:
        return self.notifier.state.read_only()

    @property
    def lifecycle(self) -> ReadOnlyProperty[LifecycleState]:
        return self._lifecycle.read_only()

    @property
    def selected_device_id(self) -> ReadOnlyProperty[str]:
        return self.enumerator.selected_device_id.read_only()

    @property
    def devices(self) -> list[DeviceDescriptor]:
        return self.enumerator.devices

    @property
    def options(self) -> Optional[PipelineOptions]:
        return self._options

    @property
    def adapter(self) -> Optional[DetectorAdapter]:
        return self._adapter

    def result_frame(self) -> Optional[np.ndarray]:
        """Frame the current result was detected on."""
        if self._adapter is None:
            return None
        return self._adapter.result_frame

    @property
    def dispatch_loop(self) -> Optional[FrameDispatchLoop]:
        return self._dispatch

    async def initialize(self, options: Optional[PipelineOptions] = None) -> None:
        """
        Configure the detector, enumerate devices and open the default camera.

        Device and stream failures do not raise; they move the failure state
        and the lifecycle to FAILED.

        Raises:
            PipelineStateError: If called twice or after close().
            ValueError: If an option is out of range.
        """
        if self._lifecycle.value is LifecycleState.CLOSED:
            raise PipelineStateError("Pipeline is closed")
        if self._initialized:
            raise PipelineStateError("initialize() may only be called once per pipeline")

        options = (options or PipelineOptions()).validate()
        self._initialized = True
        self._options = options

        if self._adapter is None:
            self._adapter = DetectorAdapter(
                self._detector_factory,
                self._slot,
                is_current=self.stream_controller.is_current,
                is_failed=lambda: self.notifier.failed
            )
        self._adapter.configure(options)

        self._dispatch = FrameDispatchLoop(
            self.stream_controller.video,
            self.stream_controller.playing,
            self._adapter,
            self.notifier,
            current_generation=lambda: self.stream_controller.generation,
            send_timeout=self.send_timeout
        )
        self.clock.add_listener(self._dispatch.tick)
        self._lifecycle.value = LifecycleState.READY
        logger.info("Camera input initializing")

        try:
            devices = await self.enumerator.list_video_input_devices(options.preferred_device_id)
        except (PermissionDeniedError, EnumerationFailedError) as e:
            logger.error(f"Camera enumeration failed: {e}")
            self.notifier.fail(FailureState.NO_DEVICE_AVAILABLE, e)
        else:
            if not devices:
                self.notifier.fail(FailureState.NO_DEVICE_AVAILABLE)

        # Fires immediately for the default selection
        self._selection_listener = self.enumerator.selected_device_id.link(
            self._on_selected_device_changed
        )
        await self._wait_for_swaps()

        if self._start_clock:
            self.clock.start()

        if self._lifecycle.value is LifecycleState.READY:
            logger.info(f"Camera input ready on camera {self.selected_device_id.value or '(none)'}")

    async def select_device(self, device_id: str) -> None:
        """
        Switch to another camera. "" closes the current stream.

        Before initialize() only the selection is stored.
        """
        self.enumerator.select_device(device_id)
        await self._wait_for_swaps()

    async def reinitialize(self) -> None:
        """
        Tear down and initialize again with the same options.

        The only way out of a failure state.
        """
        if not self._initialized:
            raise PipelineStateError("reinitialize() requires a prior initialize()")
        if self._lifecycle.value is LifecycleState.CLOSED:
            raise PipelineStateError("Pipeline is closed")

        logger.info("Reinitializing camera input")
        await self._teardown()
        self.notifier.reset()
        self._slot.value = None
        self._initialized = False
        self._lifecycle.value = LifecycleState.UNINITIALIZED
        await self.initialize(self._options)

    async def close(self) -> None:
        """Stop the clock, close the camera and release the detector."""
        if self._lifecycle.value is LifecycleState.CLOSED:
            return

        await self._teardown()
        if self._adapter is not None:
            self._adapter.close()
        self._lifecycle.value = LifecycleState.CLOSED
        logger.info("Camera input closed")

    def _on_selected_device_changed(self, device_id: str, _old: Optional[str]) -> None:
        if self._lifecycle.value is LifecycleState.CLOSED:
            return
        task = asyncio.ensure_future(self._swap(device_id))
        self._swap_tasks.append(task)

    async def _swap(self, device_id: str) -> None:
        try:
            await self.stream_controller.open(device_id)
        except Exception as e:
            logger.exception(f"Switching to camera {device_id!r} failed")
            self.notifier.fail(FailureState.STREAM_OPEN_FAILED, e)

    async def _wait_for_swaps(self) -> None:
        while self._swap_tasks:
            task = self._swap_tasks[0]
            await task
            if self._swap_tasks and self._swap_tasks[0] is task:
                self._swap_tasks.pop(0)

    def _on_failure_state_changed(self, state: FailureState, _old: Optional[FailureState]) -> None:
        if state is not FailureState.OK and self._lifecycle.value is not LifecycleState.CLOSED:
            self._lifecycle.value = LifecycleState.FAILED

    async def _teardown(self) -> None:
        await self.clock.stop()

        if self._selection_listener is not None:
            self.enumerator.selected_device_id.unlink(self._selection_listener)
            self._selection_listener = None
        await self._wait_for_swaps()

        if self._dispatch is not None:
            self.clock.remove_listener(self._dispatch.tick)
            await self._dispatch.drain()
            self._dispatch.close()
            self._dispatch = None

        await self.stream_controller.close()
