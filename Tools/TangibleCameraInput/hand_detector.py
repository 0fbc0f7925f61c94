"""
Hand detector using MediaPipe Hands.

Provides hand landmark detection with MediaPipe integration.
Supports both Solutions API (Python 3.9-3.12) and Tasks API (Python 3.13+).
MediaPipe is imported on first use, so a missing or broken installation
surfaces as an unreachable detector instead of an import error.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import cv2
import numpy as np

from .config import PipelineOptions
from .detector import Detector, DetectorError, DetectorUnreachableError
from .logger import get_logger
from .model_manager import ensure_hand_landmarker_model
from .results import HandLandmarks, HandResults, Landmark

logger = get_logger("HandDetector")

ModelPathProvider = Callable[[], str]


def _load_mediapipe() -> tuple[Any, bool]:
    """
    Import MediaPipe and pick the available API.

    Returns:
        (mediapipe module, True if only the Tasks API is available).

    Raises:
        DetectorUnreachableError: If MediaPipe is missing or incomplete.
    """
    try:
        import mediapipe as mp
    except ImportError as e:
        raise DetectorUnreachableError(
            "MediaPipe is required. Install with: pip install mediapipe"
        ) from e

    logger.debug(f"MediaPipe version: {getattr(mp, '__version__', 'unknown')}")

    # Legacy Solutions API first (Python 3.9-3.12)
    if hasattr(mp, "solutions") and hasattr(mp.solutions, "hands"):
        return mp, False
    if hasattr(mp, "tasks"):
        return mp, True

    raise DetectorUnreachableError(
        "MediaPipe installation incomplete. "
        "Neither Solutions API nor Tasks API found."
    )


def _to_landmark(lm: Any) -> Landmark:
    return Landmark(
        x=float(lm.x),
        y=float(lm.y),
        z=float(lm.z),
        visibility=float(lm.visibility) if getattr(lm, "visibility", None) is not None else 1.0
    )


def convert_solutions_results(results: Any) -> HandResults:
    """
    Convert mp.solutions.hands output into HandResults.

    Every detected hand is kept, in MediaPipe order.
    """
    if not results.multi_hand_landmarks:
        return HandResults()

    handedness_list = results.multi_handedness or []
    hands = []
    for i, hand_landmarks in enumerate(results.multi_hand_landmarks):
        handedness = "Right"
        score = 1.0
        if i < len(handedness_list):
            classification = handedness_list[i].classification[0]
            handedness = classification.label
            score = classification.score

        hands.append(HandLandmarks(
            landmarks=tuple(_to_landmark(lm) for lm in hand_landmarks.landmark),
            handedness=handedness,
            score=float(score)
        ))

    return HandResults(multi_hand_landmarks=tuple(hands))


def convert_tasks_results(result: Any) -> HandResults:
    """Convert a Tasks API HandLandmarkerResult into HandResults."""
    if not result.hand_landmarks:
        return HandResults()

    handedness_list = result.handedness or []
    hands = []
    for i, hand_landmarks in enumerate(result.hand_landmarks):
        handedness = "Right"
        score = 1.0
        if i < len(handedness_list) and handedness_list[i]:
            category = handedness_list[i][0]
            handedness = category.category_name
            score = category.score

        hands.append(HandLandmarks(
            landmarks=tuple(_to_landmark(lm) for lm in hand_landmarks),
            handedness=handedness,
            score=float(score)
        ))

    return HandResults(multi_hand_landmarks=tuple(hands))


class HandDetector(Detector):
    """
    Hand detector using MediaPipe Hands.

    The MediaPipe graph is created lazily on the first frame, inside a
    dedicated worker thread that also runs every inference.
    """

    def __init__(
        self,
        options: Optional[PipelineOptions] = None,
        model_path_provider: ModelPathProvider = ensure_hand_landmarker_model
    ):
        """
        Initialize hand detector.

        Args:
            options: Detection options; configure() may replace them.
            model_path_provider: Returns a local hand_landmarker.task path
                                 (Tasks API only). May download.
        """
        super().__init__()
        self.options = options or PipelineOptions()
        self._model_path_provider = model_path_provider
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="HandDetector")

        self._mp: Any = None
        self._hands = None  # Solutions API Hands object
        self._landmarker = None  # Tasks API HandLandmarker object
        self._using_tasks_api = False
        self._is_initialized = False
        self._timestamp_ms = 0
        self.frame_count = 0

    def configure(self, options: PipelineOptions) -> None:
        """Store options. A running graph is rebuilt on the next frame."""
        self.options = options
        if self._is_initialized:
            self._executor.submit(self._close_backend)

    async def send(self, image: np.ndarray) -> None:
        """
        Run hand detection on one BGR frame and emit the result.

        Raises:
            DetectorUnreachableError: If MediaPipe or its model is unavailable.
            DetectorError: If inference fails.
        """
        if self.closed:
            raise DetectorError("HandDetector is closed")

        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(self._executor, self._process, image)
        self._emit(results)

    def _process(self, image: np.ndarray) -> HandResults:
        if not self._is_initialized:
            self._initialize()

        self.frame_count += 1
        try:
            rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
            if self._using_tasks_api:
                return self._detect_tasks_api(rgb_image)
            return self._detect_solutions_api(rgb_image)
        except cv2.error as e:
            raise DetectorError(f"Invalid frame for hand detection: {e}") from e
        except (RuntimeError, ValueError) as e:
            raise DetectorError(f"Hand detection failed: {e}") from e

    def _initialize(self) -> None:
        """Initialize the MediaPipe Hands model."""
        self._mp, self._using_tasks_api = _load_mediapipe()

        try:
            if self._using_tasks_api:
                self._initialize_tasks_api()
            else:
                self._initialize_solutions_api()
        except DetectorUnreachableError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize MediaPipe Hands: {e}")
            raise DetectorUnreachableError(f"MediaPipe Hands could not be initialized: {e}") from e

        self._is_initialized = True

    def _initialize_solutions_api(self) -> None:
        """Initialize using Solutions API (Python 3.9-3.12)."""
        logger.debug("Initializing MediaPipe Hands (Solutions API)...")

        self._hands = self._mp.solutions.hands.Hands(
            static_image_mode=False,
            model_complexity=self.options.model_complexity,
            max_num_hands=self.options.max_targets,
            min_detection_confidence=self.options.min_detection_confidence,
            min_tracking_confidence=self.options.min_tracking_confidence
        )

        logger.info(
            f"MediaPipe Hands initialized (Solutions API, "
            f"complexity={self.options.model_complexity}, max_hands={self.options.max_targets})"
        )

    def _initialize_tasks_api(self) -> None:
        """Initialize using Tasks API (Python 3.13+)."""
        logger.debug("Initializing MediaPipe Hands (Tasks API)...")
        model_path = self._model_path_provider()
        logger.debug(f"Model path: {model_path}")

        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision as mp_vision

        # VIDEO mode keeps tracking state between frames
        options = mp_vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=mp_vision.RunningMode.VIDEO,
            num_hands=self.options.max_targets,
            min_hand_detection_confidence=self.options.min_detection_confidence,
            min_hand_presence_confidence=self.options.min_detection_confidence,
            min_tracking_confidence=self.options.min_tracking_confidence
        )

        self._landmarker = mp_vision.HandLandmarker.create_from_options(options)
        self._timestamp_ms = 0
        logger.info(f"MediaPipe Hands initialized (Tasks API, max_hands={self.options.max_targets})")

    def _detect_solutions_api(self, rgb_image: np.ndarray) -> HandResults:
        return convert_solutions_results(self._hands.process(rgb_image))

    def _detect_tasks_api(self, rgb_image: np.ndarray) -> HandResults:
        if not rgb_image.flags["C_CONTIGUOUS"]:
            rgb_image = np.ascontiguousarray(rgb_image)

        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb_image)

        # detect_for_video requires strictly increasing timestamps
        self._timestamp_ms = max(self._timestamp_ms + 1, int(time.perf_counter() * 1000))
        result = self._landmarker.detect_for_video(mp_image, self._timestamp_ms)
        return convert_tasks_results(result)

    def _close_backend(self) -> None:
        if self._hands:
            self._hands.close()
            self._hands = None
        if self._landmarker:
            self._landmarker.close()
            self._landmarker = None
        self._is_initialized = False

    def close(self) -> None:
        """Release MediaPipe resources."""
        super().close()
        self._executor.shutdown(wait=True)
        self._close_backend()
        logger.debug(f"HandDetector closed after {self.frame_count} frames")
