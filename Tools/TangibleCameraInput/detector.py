"""
Detector capability interface for TangibleCameraInput.

A detector is configured once, registers result callbacks, and accepts
frames through an awaitable send(). Results are delivered through the
callbacks, possibly later and from another thread.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import numpy as np

from .errors import TangibleInputError
from .logger import get_logger
from .results import DetectionResult

logger = get_logger("Detector")

ResultCallback = Callable[[Optional[DetectionResult]], None]


class DetectorError(TangibleInputError):
    """Raised when a detector rejects a frame or cannot run."""
    pass


class DetectorUnreachableError(DetectorError):
    """Raised when the detector model cannot be loaded or fetched."""
    pass


class Detector(ABC):
    """Base class for frame detectors."""

    def __init__(self):
        self._callbacks: list[ResultCallback] = []
        self._closed = False

    @abstractmethod
    def configure(self, options: Any) -> None:
        """Apply detector options. Called before the first send."""

    def on_results(self, callback: ResultCallback) -> None:
        """Register a callback for every detector result."""
        self._callbacks.append(callback)

    @abstractmethod
    async def send(self, image: np.ndarray) -> None:
        """
        Submit one BGR frame.

        Resolves once the frame was accepted. Results are delivered through
        the registered callbacks.

        Raises:
            DetectorError: If the frame could not be processed.
        """

    def close(self) -> None:
        self._closed = True
        self._callbacks.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def _emit(self, results: Optional[DetectionResult]) -> None:
        for callback in list(self._callbacks):
            callback(results)
