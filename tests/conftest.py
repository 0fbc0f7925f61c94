"""Shared pytest configuration and fixtures for the TangibleCameraInput test suite."""

import asyncio
import sys
import threading
import time
from pathlib import Path
from typing import Optional

import numpy as np
import pytest

# Ensure the package directory is importable without installation
TOOLS_DIR = Path(__file__).parent.parent / "Tools"
if str(TOOLS_DIR) not in sys.path:
    sys.path.insert(0, str(TOOLS_DIR))

from TangibleCameraInput.detector import Detector, DetectorError  # noqa: E402
from TangibleCameraInput.device_enumerator import DeviceDescriptor, DeviceEnumerator  # noqa: E402
from TangibleCameraInput.results import HandLandmarks, HandResults, Landmark  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a physical camera"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical camera",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Fakes
# =============================================================================

class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, device_id: str = "0", opened: bool = True, frames: Optional[int] = None):
        self.device_id = device_id
        self.opened = opened
        self.frames_left = frames
        self.release_count = 0
        self.read_count = 0
        self.properties: dict[int, float] = {}
        self._lock = threading.Lock()

    def isOpened(self) -> bool:
        return self.opened

    def read(self):
        time.sleep(0.002)
        with self._lock:
            if not self.opened:
                return False, None
            if self.frames_left is not None:
                if self.frames_left <= 0:
                    return False, None
                self.frames_left -= 1
            self.read_count += 1
            frame = np.full((48, 64, 3), self.read_count % 255, dtype=np.uint8)
        return True, frame

    def get(self, prop_id: int) -> float:
        return self.properties.get(prop_id, 0.0)

    def set(self, prop_id: int, value: float) -> bool:
        self.properties[prop_id] = value
        return True

    def release(self) -> None:
        with self._lock:
            self.release_count += 1
            self.opened = False


class FakeCaptureFactory:
    """Capture factory that records every capture it hands out."""

    def __init__(self, broken: tuple[str, ...] = (), silent: tuple[str, ...] = ()):
        self.broken = set(broken)
        self.silent = set(silent)
        self.captures: list[FakeCapture] = []

    def __call__(self, device_id: str) -> FakeCapture:
        if device_id in self.broken:
            capture = FakeCapture(device_id, opened=False)
        elif device_id in self.silent:
            capture = FakeCapture(device_id, frames=0)
        else:
            capture = FakeCapture(device_id)
        self.captures.append(capture)
        return capture

    def for_device(self, device_id: str) -> list[FakeCapture]:
        return [c for c in self.captures if c.device_id == device_id]


class FakeDetector(Detector):
    """
    Detector that emits a preset result for every frame.

    Set hold to an asyncio.Event to keep sends outstanding until it is set,
    error to make sends fail, and deliver to False to accept frames without
    reporting (tests then call _emit themselves).
    """

    def __init__(self):
        super().__init__()
        self.options = None
        self.configure_count = 0
        self.sent: list[np.ndarray] = []
        self.result = HandResults()
        self.error: Optional[BaseException] = None
        self.hold: Optional[asyncio.Event] = None
        self.active_sends = 0
        self.max_active_sends = 0
        self.deliver = True

    def configure(self, options) -> None:
        self.options = options
        self.configure_count += 1

    async def send(self, image: np.ndarray) -> None:
        self.active_sends += 1
        self.max_active_sends = max(self.max_active_sends, self.active_sends)
        try:
            self.sent.append(image)
            if self.hold is not None:
                await self.hold.wait()
            if self.error is not None:
                raise self.error
            if self.deliver:
                self._emit(self.result)
        finally:
            self.active_sends -= 1


def make_hand(x: float = 0.5, y: float = 0.5, handedness: str = "Right") -> HandLandmarks:
    return HandLandmarks(
        landmarks=tuple(Landmark(x=x, y=y, z=0.0) for _ in range(21)),
        handedness=handedness,
        score=0.9
    )


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def capture_factory() -> FakeCaptureFactory:
    return FakeCaptureFactory()


@pytest.fixture
def fake_detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def two_cameras():
    return [DeviceDescriptor("0", "Fake Camera 0"), DeviceDescriptor("1", "Fake Camera 1")]


@pytest.fixture
def enumerator(two_cameras) -> DeviceEnumerator:
    return DeviceEnumerator(probe=lambda: list(two_cameras))


@pytest.fixture
def frame() -> np.ndarray:
    return np.zeros((48, 64, 3), dtype=np.uint8)


@pytest.fixture
def detection_error() -> DetectorError:
    return DetectorError("network unreachable")
