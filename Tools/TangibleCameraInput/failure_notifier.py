"""
Failure notifier for TangibleCameraInput.

Tracks the pipeline's terminal failure state. The first transition out of
OK raises exactly one user-visible notice; later failures are ignored until
the pipeline is reinitialized.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .logger import get_logger
from .observable import Property
from .strings import get_string

logger = get_logger("FailureNotifier")


class FailureState(Enum):
    """Pipeline failure state. Every non-OK state is terminal."""
    OK = "ok"
    NO_DEVICE_AVAILABLE = "noDeviceAvailable"
    STREAM_OPEN_FAILED = "streamOpenFailed"
    DETECTOR_UNREACHABLE = "detectorUnreachable"


# (title key, message key) per failure
_NOTICE_KEYS: dict[FailureState, tuple[str, str]] = {
    FailureState.NO_DEVICE_AVAILABLE: ("errorLoadingCameraInputHands", "noMediaDevices"),
    FailureState.STREAM_OPEN_FAILED: ("errorLoadingCameraInputHands", "noMediaDevice"),
    FailureState.DETECTOR_UNREACHABLE: ("errorLoadingCameraInputHands", "cameraInputRequiresInternet"),
}


@dataclass(frozen=True)
class Notice:
    """A user-visible failure notice."""
    state: FailureState
    title: str
    message: str
    error: Optional[BaseException] = None


NoticeHandler = Callable[[Notice], None]


def log_notice(notice: Notice) -> None:
    """Default notice handler: report the notice through the log."""
    detail = f" ({notice.error})" if notice.error else ""
    logger.error(f"{notice.title}: {notice.message}{detail}")


def build_notice(state: FailureState, error: Optional[BaseException] = None) -> Notice:
    title_key, message_key = _NOTICE_KEYS[state]
    return Notice(
        state=state,
        title=get_string(title_key),
        message=get_string(message_key),
        error=error
    )


class FailureNotifier:
    """
    One-shot failure latch with an observable state.

    Attributes:
        state: Observable FailureState, OK until the first failure.
        notice_count: Number of notices raised since the last reset.
    """

    def __init__(self, notice_handler: Optional[NoticeHandler] = None):
        self.state: Property[FailureState] = Property(FailureState.OK, name="failureState")
        self.notice_count = 0
        self.last_notice: Optional[Notice] = None
        self._notice_handler = notice_handler or log_notice

    @property
    def failed(self) -> bool:
        return self.state.value is not FailureState.OK

    def fail(self, state: FailureState, error: Optional[BaseException] = None) -> bool:
        """
        Latch a failure and raise its notice.

        Args:
            state: The failure to enter. Must not be OK.
            error: The exception that caused it, if any.

        Returns:
            True if this call changed the state, False if a failure was
            already latched.
        """
        if state is FailureState.OK:
            raise ValueError("fail() requires a failure state, use reset() to clear")

        if self.failed:
            logger.debug(
                f"Ignoring {state.name}: already failed with {self.state.value.name}"
            )
            return False

        logger.warning(f"Camera input failed: {state.name}")
        self.state.value = state

        notice = build_notice(state, error)
        self.notice_count += 1
        self.last_notice = notice
        self._notice_handler(notice)
        return True

    def reset(self) -> None:
        """Return to OK. Only a pipeline reinitialization should call this."""
        if self.failed:
            logger.info(f"Clearing failure state {self.state.value.name}")
        self.state.value = FailureState.OK
        self.notice_count = 0
        self.last_notice = None
