"""
Detector adapter for TangibleCameraInput.

Wraps one detector instance for the lifetime of the pipeline. Frames go in
through send(); every detector callback becomes exactly one publication on
the ResultSlot, with empty results normalised to None and results from a
replaced stream discarded.
"""

import asyncio
import threading
from collections import deque
from typing import Callable, Optional

import numpy as np

from .config import PipelineOptions
from .detector import Detector
from .logger import get_logger
from .observable import ResultSlot
from .results import DetectionResult

logger = get_logger("DetectorAdapter")

DetectorFactory = Callable[[], Detector]

# Sends whose results have not arrived yet
PENDING_SEND_LIMIT = 8


class DetectorAdapter:
    """
    Owns the detector and forwards its results to a ResultSlot.

    Each send records the stream generation of its frame. Results are matched
    to sends in order, one callback per accepted frame, so a result delivered
    after its send resolved is still checked against the stream that produced
    it. A detector that accepts a frame and never reports on it shifts this
    matching by one until PENDING_SEND_LIMIT newer sends push it out.

    Attributes:
        detector: The wrapped detector, constructed once.
        slot: Destination of every result.
        results_published: Publications made to the slot.
        results_discarded: Results dropped because their stream was replaced
                           or the pipeline failed.
        result_frame: Frame that produced the latest publication, set before
                      the slot notifies.
    """

    def __init__(
        self,
        detector_factory: DetectorFactory,
        slot: ResultSlot,
        is_current: Callable[[int], bool] = lambda generation: True,
        is_failed: Callable[[], bool] = lambda: False
    ):
        self.detector = detector_factory()
        self.slot = slot
        self.results_published = 0
        self.results_discarded = 0
        self.result_frame: Optional[np.ndarray] = None

        self._is_current = is_current
        self._is_failed = is_failed
        self._pending: deque[tuple[object, int, np.ndarray]] = deque(maxlen=PENDING_SEND_LIMIT)
        self._pending_lock = threading.Lock()
        self._last_generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None

        self.detector.on_results(self._on_results)
        logger.debug(f"Detector {type(self.detector).__name__} created")

    def configure(self, options: PipelineOptions) -> None:
        """
        Validate options and forward them to the detector.

        Raises:
            ValueError: If an option is out of range.
        """
        options.validate()
        self.detector.configure(options)
        logger.info(
            f"Detector configured: max_targets={options.max_targets}, "
            f"complexity={options.model_complexity}, "
            f"detection={options.min_detection_confidence}, "
            f"tracking={options.min_tracking_confidence}"
        )

    @property
    def pending_sends(self) -> int:
        """Accepted frames whose results have not arrived yet."""
        return len(self._pending)

    async def send(self, frame: np.ndarray, generation: int = 0) -> None:
        """
        Submit a frame captured under the given stream generation.

        Resolves when the detector accepted the frame. A rejected frame
        produces no result and is forgotten.
        """
        self._loop = asyncio.get_running_loop()
        self._loop_thread_id = threading.get_ident()
        self._last_generation = generation
        token = object()
        with self._pending_lock:
            self._pending.append((token, generation, frame))
        try:
            await self.detector.send(frame)
        except BaseException:
            self._forget(token)
            raise

    def _forget(self, token: object) -> None:
        with self._pending_lock:
            for entry in self._pending:
                if entry[0] is token:
                    self._pending.remove(entry)
                    return

    def _on_results(self, results: Optional[DetectionResult]) -> None:
        with self._pending_lock:
            if self._pending:
                _token, generation, frame = self._pending.popleft()
            else:
                generation, frame = self._last_generation, None
        loop = self._loop
        if loop is not None and threading.get_ident() != self._loop_thread_id:
            loop.call_soon_threadsafe(self._publish, results, generation, frame)
        else:
            self._publish(results, generation, frame)

    def _publish(
        self,
        results: Optional[DetectionResult],
        generation: int,
        frame: Optional[np.ndarray] = None
    ) -> None:
        if self._is_failed():
            self.results_discarded += 1
            logger.debug("Discarding results that arrived after a failure")
            return
        if not self._is_current(generation):
            self.results_discarded += 1
            logger.debug(f"Discarding results from replaced stream (generation {generation})")
            return

        if results is None or results.is_empty():
            value = None
        else:
            value = results
        self.results_published += 1
        self.result_frame = frame
        self.slot.value = value

    def close(self) -> None:
        with self._pending_lock:
            self._pending.clear()
        self.detector.close()
