"""
Frame dispatch loop for TangibleCameraInput.

On every clock tick the loop decides whether the newest video frame may be
handed to the detector. At most one send is outstanding at any time and a
frame is never sent twice. A failed send latches DETECTOR_UNREACHABLE and
closes the gate for good.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from .camera_stream import VideoElement
from .config import CAMERA_FPS, DETECTOR_SEND_TIMEOUT
from .detector_adapter import DetectorAdapter
from .failure_notifier import FailureNotifier, FailureState
from .logger import get_logger
from .observable import Property

logger = get_logger("FrameDispatch")

TickListener = Callable[[], None]


def _collect_abandoned_send(send: asyncio.Future) -> None:
    if send.cancelled():
        return
    error = send.exception()
    if error is not None:
        logger.warning(f"Timed-out detector send failed later: {error}")


@dataclass
class DispatchGate:
    """
    Dispatch conditions, updated from observables and the send lifecycle.

    Attributes:
        sending: A send is outstanding.
        last_timestamp: Presentation time of the last dispatched frame.
        playing: The stream is delivering frames.
        failed: The failure notifier left OK.
    """
    sending: bool = False
    last_timestamp: Optional[float] = None
    playing: bool = False
    failed: bool = False

    def can_dispatch(self, timestamp: float) -> bool:
        return (
            not self.sending
            and self.playing
            and timestamp != self.last_timestamp
            and not self.failed
        )


class FrameDispatchLoop:
    """
    Feeds frames from a VideoElement to a DetectorAdapter.

    tick() is synchronous and never waits for the detector; the gate's
    sending flag is the only backpressure.
    """

    def __init__(
        self,
        video: VideoElement,
        playing: Property[bool],
        adapter: DetectorAdapter,
        notifier: FailureNotifier,
        current_generation: Callable[[], int] = lambda: 0,
        send_timeout: Optional[float] = DETECTOR_SEND_TIMEOUT
    ):
        """
        Initialize the loop.

        Args:
            video: Source of frames and presentation timestamps.
            playing: Observable playing flag of the stream controller.
            adapter: Detector adapter receiving frames.
            notifier: Failure notifier, tripped on send failure.
            current_generation: Returns the generation of the live stream.
            send_timeout: Seconds before an unsettled send counts as failed,
                          None to wait forever. A timed-out send is left
                          running and its results are dropped once the
                          failure latched.
        """
        self.video = video
        self.gate = DispatchGate()
        self.send_timeout = send_timeout
        self.frames_dispatched = 0
        self.frames_skipped_duplicate = 0

        self._adapter = adapter
        self._notifier = notifier
        self._current_generation = current_generation
        self._pending: Optional[asyncio.Future] = None

        self._playing = playing
        self._playing_listener = playing.link(self._on_playing_changed)
        self._failure_listener = notifier.state.link(self._on_failure_changed)

    def _on_playing_changed(self, playing: bool, _old: Optional[bool]) -> None:
        self.gate.playing = bool(playing)

    def _on_failure_changed(self, state: FailureState, _old: Optional[FailureState]) -> None:
        self.gate.failed = state is not FailureState.OK

    @property
    def sending(self) -> bool:
        return self.gate.sending

    def tick(self) -> None:
        """Dispatch the current frame if the gate allows it."""
        gate = self.gate
        if gate.failed or gate.sending or not gate.playing:
            return

        timestamp, frame = self.video.snapshot()
        if frame is None:
            return
        if timestamp == gate.last_timestamp:
            self.frames_skipped_duplicate += 1
            return

        gate.last_timestamp = timestamp
        gate.sending = True
        generation = self._current_generation()
        self._pending = asyncio.ensure_future(self._dispatch(frame, generation))

    async def _dispatch(self, frame, generation: int) -> None:
        try:
            send = asyncio.ensure_future(self._adapter.send(frame, generation))
            if self.send_timeout is None:
                await send
            else:
                # shield: a timed-out send is abandoned, not cancelled
                await asyncio.wait_for(asyncio.shield(send), self.send_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Detector did not accept a frame within {self.send_timeout:.1f}s")
            send.add_done_callback(_collect_abandoned_send)
            self._notifier.fail(FailureState.DETECTOR_UNREACHABLE, e)
        except Exception as e:
            logger.error(f"Detector send failed: {e}")
            self._notifier.fail(FailureState.DETECTOR_UNREACHABLE, e)
        else:
            self.frames_dispatched += 1
        finally:
            self.gate.sending = False

    async def drain(self) -> None:
        """Wait for the outstanding send, if any, to settle."""
        pending = self._pending
        if pending is not None and not pending.done():
            await pending

    def close(self) -> None:
        """Stop observing the stream and the notifier."""
        self._playing.unlink(self._playing_listener)
        self._notifier.state.unlink(self._failure_listener)


class FrameClock:
    """
    Per-frame render clock.

    Calls its listeners once per tick, either from an asyncio task running
    at the target rate or manually through tick().
    """

    def __init__(self, fps: float = CAMERA_FPS):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.interval = 1.0 / fps
        self.tick_count = 0
        self._listeners: list[TickListener] = []
        self._task: Optional[asyncio.Task] = None

    def add_listener(self, listener: TickListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TickListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> None:
        self.tick_count += 1
        for listener in list(self._listeners):
            listener()

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Frame clock listener failed")

            next_tick += self.interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind; skip missed ticks instead of bursting
                next_tick = loop.time()
                delay = 0
            await asyncio.sleep(delay)
