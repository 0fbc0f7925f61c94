"""
Slider bindings for TangibleCameraInput.

Map detection results onto a NumberProperty so a physical input can drive a
numeric parameter. Each binding can read a result directly through update()
or follow a result property through bind().
"""

from abc import ABC, abstractmethod
from typing import Optional

from .logger import get_logger
from .observable import NumberProperty
from .results import DetectionResult, HandResults, LandmarkIndex, MarkerResults

logger = get_logger("SliderBinding")


class _Binding(ABC):
    """Shared range mapping and result subscription."""

    def __init__(self, target: NumberProperty, value_range: Optional[tuple[float, float]] = None):
        self.target = target
        self.range = value_range or target.range
        if self.range[0] > self.range[1]:
            raise ValueError(f"Invalid range {self.range}: min is greater than max")
        self._source = None
        self._listener = None

    def set_from_input(self, input_value: float) -> None:
        """Set the target from a normalised input value in [0, 1]."""
        low, high = self.range
        self.target.value = input_value * (high - low) + low

    @abstractmethod
    def update(self, results: Optional[DetectionResult]) -> bool:
        """Apply a result to the target. Returns True if the target was set."""

    def bind(self, results_property) -> None:
        """Call update() for every publication on a result property."""
        self.unbind()
        self._source = results_property
        self._listener = results_property.link(lambda new, _old: self.update(new), immediate=False)

    def unbind(self) -> None:
        if self._source is not None:
            self._source.unlink(self._listener)
        self._source = None
        self._listener = None


class SliderGroupBinding(_Binding):
    """
    Drives a NumberProperty from one input of a marker group.

    The target only moves while the group's anchor and the input's marker
    are both visible.
    """

    def __init__(
        self,
        input_group: str,
        input_name: str,
        target: NumberProperty,
        value_range: Optional[tuple[float, float]] = None
    ):
        """
        Args:
            input_group: Marker group name.
            input_name: Input name within the group.
            target: Property to drive.
            value_range: Range mapped to [0, 1], defaults to the target's range.
        """
        super().__init__(target, value_range)
        self.input_group = input_group
        self.input_name = input_name

    def update(self, results: Optional[DetectionResult]) -> bool:
        """
        Apply the group input from a result.

        Returns:
            True if the target was set.
        """
        if not isinstance(results, MarkerResults):
            return False

        group = results.get_group(self.input_group)
        if group is None or not group.anchor.present:
            return False

        marker_input = group.get_input(self.input_name)
        if marker_input is None:
            logger.warning(f"Marker group '{self.input_group}' has no input '{self.input_name}'")
            return False
        if not marker_input.present:
            return False

        self.set_from_input(marker_input.val)
        return True


class HandSliderBinding(_Binding):
    """Drives a NumberProperty from one landmark coordinate of a tracked hand."""

    def __init__(
        self,
        target: NumberProperty,
        landmark_index: int = LandmarkIndex.INDEX_TIP,
        axis: str = "x",
        hand_index: int = 0,
        value_range: Optional[tuple[float, float]] = None,
        invert: bool = False
    ):
        super().__init__(target, value_range)
        if axis not in ("x", "y"):
            raise ValueError(f"axis must be 'x' or 'y', got {axis!r}")
        self.landmark_index = landmark_index
        self.axis = axis
        self.hand_index = hand_index
        self.invert = invert

    def update(self, results: Optional[DetectionResult]) -> bool:
        if not isinstance(results, HandResults):
            return False
        if self.hand_index >= results.hand_count:
            return False

        landmark = results.multi_hand_landmarks[self.hand_index].get_landmark(self.landmark_index)
        if landmark is None:
            return False

        value = min(max(getattr(landmark, self.axis), 0.0), 1.0)
        if self.invert:
            value = 1.0 - value
        self.set_from_input(value)
        return True

