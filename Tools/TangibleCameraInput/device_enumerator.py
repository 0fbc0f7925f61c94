"""
Device enumerator for TangibleCameraInput.

Lists the camera input devices available to OpenCV and exposes the currently
selected device id as an observable.
"""

import asyncio
import glob
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import cv2

from .camera_stream import create_video_capture
from .config import CAMERA_MAX_PROBE_INDEX
from .errors import TangibleInputError
from .logger import get_logger
from .observable import Property

logger = get_logger("DeviceEnumerator")

SYSFS_VIDEO_ROOT = Path("/sys/class/video4linux")


class PermissionDeniedError(TangibleInputError):
    """Raised when camera devices exist but this process may not open them."""
    pass


class EnumerationFailedError(TangibleInputError):
    """Raised when the device list cannot be obtained."""
    pass


@dataclass(frozen=True)
class DeviceDescriptor:
    """
    A camera input device.

    Attributes:
        id: Device index as a string ("0", "1", ...) or a device path.
        label: Human-readable device name.
    """
    id: str
    label: str


ProbeFunction = Callable[[], list[DeviceDescriptor]]


def _device_label(index: int) -> str:
    """Kernel name of /dev/video<index> on Linux, otherwise a generic label."""
    name_file = SYSFS_VIDEO_ROOT / f"video{index}" / "name"
    try:
        name = name_file.read_text(encoding="utf-8").strip()
    except OSError:
        name = ""
    return name or f"Camera {index}"


def _check_device_permissions() -> None:
    """
    Raise PermissionDeniedError if video nodes exist but none is accessible.

    Only meaningful on Linux, where cameras are /dev/video* nodes.
    """
    if not sys.platform.startswith("linux"):
        return

    nodes = sorted(
        node for node in glob.glob("/dev/video*")
        if re.fullmatch(r"/dev/video\d+", node)
    )
    if nodes and not any(os.access(node, os.R_OK | os.W_OK) for node in nodes):
        raise PermissionDeniedError(
            f"No access to camera devices {', '.join(nodes)} "
            "(is the user in the 'video' group?)"
        )


def probe_video_devices(max_index: int = CAMERA_MAX_PROBE_INDEX) -> list[DeviceDescriptor]:
    """
    Enumerate available camera devices by probing indices.

    Blocking; run it in an executor from async code.

    Args:
        max_index: Number of indices to probe.

    Returns:
        Descriptors of every index that opened.

    Raises:
        PermissionDeniedError: If devices exist but are not accessible.
        EnumerationFailedError: If OpenCV fails while probing.
    """
    _check_device_permissions()

    available: list[DeviceDescriptor] = []
    for index in range(max_index):
        try:
            capture = create_video_capture(index)
        except cv2.error as e:
            raise EnumerationFailedError(f"Probing camera {index} failed: {e}") from e
        try:
            if capture.isOpened():
                available.append(DeviceDescriptor(id=str(index), label=_device_label(index)))
        finally:
            capture.release()

    logger.debug(f"Available cameras: {[d.id for d in available]}")
    return available


class DeviceEnumerator:
    """
    Lists camera devices and holds the selected device id.

    Attributes:
        selected_device_id: Observable id of the chosen device, "" for none.
    """

    def __init__(self, probe: Optional[ProbeFunction] = None):
        """
        Initialize the enumerator.

        Args:
            probe: Blocking function returning the device list. Defaults to
                   probing OpenCV device indices.
        """
        self._probe = probe or probe_video_devices
        self._devices: list[DeviceDescriptor] = []
        self.selected_device_id: Property[str] = Property("", name="selectedDeviceId")

    @property
    def devices(self) -> list[DeviceDescriptor]:
        """Devices from the last enumeration."""
        return list(self._devices)

    def find(self, device_id: str) -> Optional[DeviceDescriptor]:
        for device in self._devices:
            if device.id == device_id:
                return device
        return None

    async def list_video_input_devices(
        self,
        preferred_device_id: Optional[str] = None
    ) -> list[DeviceDescriptor]:
        """
        Enumerate video input devices.

        If the list is non-empty and the current selection is not in it, the
        preferred device (when listed) or else the first device is selected.
        An empty list leaves the selection untouched.

        Args:
            preferred_device_id: Device to select by default, if available.

        Returns:
            The device list.

        Raises:
            PermissionDeniedError: If devices exist but are not accessible.
            EnumerationFailedError: If enumeration fails for any other reason.
        """
        loop = asyncio.get_running_loop()
        try:
            devices = await loop.run_in_executor(None, self._probe)
        except (PermissionDeniedError, EnumerationFailedError):
            raise
        except Exception as e:
            raise EnumerationFailedError(f"Camera enumeration failed: {e}") from e

        self._devices = list(devices)
        logger.info(
            f"Found {len(self._devices)} camera(s): "
            f"{', '.join(f'{d.id}={d.label}' for d in self._devices) or 'none'}"
        )

        if not self._devices:
            return []

        ids = [device.id for device in self._devices]
        if self.selected_device_id.value not in ids:
            if preferred_device_id and preferred_device_id in ids:
                default = preferred_device_id
            else:
                if preferred_device_id:
                    logger.warning(
                        f"Preferred camera {preferred_device_id} not available, using {ids[0]}"
                    )
                default = ids[0]
            logger.info(f"Auto-selected camera: {default}")
            self.selected_device_id.value = default

        return list(self._devices)

    async def refresh(self) -> list[DeviceDescriptor]:
        """Re-enumerate devices, keeping the current selection when possible."""
        return await self.list_video_input_devices()

    def select_device(self, device_id: str) -> None:
        """Set the selected device id. "" means no device."""
        if device_id and self._devices and self.find(device_id) is None:
            logger.warning(f"Selecting camera {device_id}, which was not enumerated")
        self.selected_device_id.value = device_id
