"""
User-facing English strings for TangibleCameraInput.

Keys follow the names used by the host application's string tables so a
localized table can replace this one wholesale.
"""

from typing import Final

STRINGS: Final[dict[str, str]] = {
    "title": "Tangible Input",
    "cameraInputHands": "Camera Input: Hands",
    "cameraInputMarkers": "Camera Input: Markers",
    "inputDevice": "Input Device",
    "cameraInputRequiresInternet": (
        "Camera input requires an internet connection to load the hand tracking model."
    ),
    "noMediaDevices": "No camera was found. Connect a camera and restart camera input.",
    "noMediaDevice": "The selected camera could not be started. It may be in use by another application.",
    "errorLoadingCameraInputHands": "Error loading camera input",
    "cameraInputHandsHelpText": "Move your hands in front of the camera to control the simulation.",
}


def get_string(key: str) -> str:
    """
    Look up a user-facing string.

    Raises:
        KeyError: If the key is unknown.
    """
    return STRINGS[key]
