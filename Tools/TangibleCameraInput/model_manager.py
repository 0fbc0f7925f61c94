"""
MediaPipe model file manager.

Downloads and caches the hand landmarker model needed by the Tasks API.
A camera input that cannot fetch its model reports the detector as
unreachable.
"""

import os
import sys
import time
import urllib.request
from pathlib import Path
from typing import Optional

from .detector import DetectorUnreachableError
from .logger import get_logger

logger = get_logger("ModelManager")

# Model configuration
HAND_LANDMARKER_URL = "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task"
HAND_LANDMARKER_FILENAME = "hand_landmarker.task"
HAND_LANDMARKER_SIZE_MB = 7.8  # Approximate size in MB

# Download settings
DOWNLOAD_TIMEOUT = 120  # seconds
DOWNLOAD_CHUNK_SIZE = 8192  # bytes
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds


def get_model_cache_dir() -> Path:
    """
    Get the model cache directory.

    TANGIBLE_INPUT_MODEL_DIR overrides the platform default.

    Returns:
        Path to model cache directory (creates if needed).
    """
    override = os.environ.get("TANGIBLE_INPUT_MODEL_DIR")
    if override:
        cache_dir = Path(override)
    else:
        if sys.platform == "win32":
            base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
        else:
            base = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))
        cache_dir = Path(base) / "TangibleInput" / "mediapipe_models"

    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def ensure_hand_landmarker_model(
    url: str = HAND_LANDMARKER_URL,
    cache_dir: Optional[Path] = None,
    retry_delay: float = RETRY_DELAY
) -> str:
    """
    Ensure the hand landmarker model is available.

    Downloads the model if not present in cache.

    Returns:
        Path to the model file.

    Raises:
        DetectorUnreachableError: If download fails after retries.
    """
    cache_dir = cache_dir or get_model_cache_dir()
    model_path = cache_dir / HAND_LANDMARKER_FILENAME

    if model_path.exists():
        logger.debug(f"Using cached model: {model_path}")
        return str(model_path)

    logger.info(f"Downloading hand landmarker model (~{HAND_LANDMARKER_SIZE_MB} MB) from {url}")

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            _download_model(url, model_path)
            logger.info(f"Model downloaded: {model_path}")
            return str(model_path)
        except OSError as e:
            logger.warning(f"Download attempt {attempt}/{MAX_RETRIES} failed: {e}")
            if attempt < MAX_RETRIES:
                time.sleep(retry_delay * attempt)
            else:
                raise DetectorUnreachableError(
                    f"Failed to download MediaPipe model after {MAX_RETRIES} attempts. "
                    f"Please check your internet connection and try again."
                ) from e

    raise DetectorUnreachableError("Model download failed")


def _download_model(url: str, dest_path: Path) -> None:
    """
    Download a model file, logging progress at debug level.

    The file only appears at dest_path once complete.
    """
    temp_path = dest_path.with_suffix(".tmp")

    try:
        request = urllib.request.Request(
            url,
            headers={"User-Agent": "TangibleInput/1.0"}
        )

        with urllib.request.urlopen(request, timeout=DOWNLOAD_TIMEOUT) as response:
            total_size = int(response.headers.get("Content-Length", 0))
            downloaded = 0
            next_report = 0.0

            with open(temp_path, "wb") as f:
                while True:
                    chunk = response.read(DOWNLOAD_CHUNK_SIZE)
                    if not chunk:
                        break

                    f.write(chunk)
                    downloaded += len(chunk)

                    if total_size > 0:
                        progress = downloaded / total_size * 100
                        if progress >= next_report:
                            logger.debug(
                                f"Progress: {progress:.1f}% ({downloaded / 1024 / 1024:.1f} MB)"
                            )
                            next_report += 25.0

        temp_path.replace(dest_path)

    except BaseException:
        if temp_path.exists():
            temp_path.unlink()
        raise


def get_model_info() -> dict:
    """
    Get information about the cached model.

    Returns:
        Dictionary with model status information.
    """
    cache_dir = get_model_cache_dir()
    model_path = cache_dir / HAND_LANDMARKER_FILENAME

    info = {
        "cache_dir": str(cache_dir),
        "model_path": str(model_path),
        "model_exists": model_path.exists(),
        "model_size_mb": 0.0,
    }

    if model_path.exists():
        info["model_size_mb"] = model_path.stat().st_size / 1024 / 1024

    return info
