"""
TangibleCameraInput command line entry point.

Runs the camera-to-tracking pipeline until interrupted, logging results and
optionally showing the annotated camera feed.

Usage:
    python -m TangibleCameraInput --camera-input hands
    python -m TangibleCameraInput --camera-input markers --device 1 --show-video
    python -m TangibleCameraInput --list-devices
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from .config import (
    DETECTOR_SEND_TIMEOUT,
    EXIT_CAMERA_ERROR,
    EXIT_DETECTOR_ERROR,
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    MEDIAPIPE_MAX_NUM_HANDS,
    MEDIAPIPE_MIN_DETECTION_CONFIDENCE,
    MEDIAPIPE_MIN_TRACKING_CONFIDENCE,
    MEDIAPIPE_MODEL_COMPLEXITY,
    MODEL_COMPLEXITY_VALUES,
    PipelineOptions,
)
from .device_enumerator import DeviceEnumerator, EnumerationFailedError, PermissionDeniedError
from .failure_notifier import FailureState
from .hand_detector import HandDetector
from .logger import setup_logging
from .marker_detector import MarkerDetector
from .pipeline import LifecycleState, TrackingPipeline
from .video_overlay import VideoOverlay

EXIT_CODES = {
    FailureState.OK: EXIT_SUCCESS,
    FailureState.NO_DEVICE_AVAILABLE: EXIT_CAMERA_ERROR,
    FailureState.STREAM_OPEN_FAILED: EXIT_CAMERA_ERROR,
    FailureState.DETECTOR_UNREACHABLE: EXIT_DETECTOR_ERROR,
}


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="python -m TangibleCameraInput",
        description="Tangible camera input - hand and marker tracking from a live camera",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0  Success
  1  Usage error (invalid option value)
  2  Camera error (no camera, camera could not start)
  3  Runtime error (unexpected error)
  4  Detector error (hand tracking model unavailable)

Examples:
  python -m TangibleCameraInput --camera-input hands
  python -m TangibleCameraInput --camera-input markers --device 1 --show-video
  python -m TangibleCameraInput --list-devices
"""
    )

    parser.add_argument(
        "--camera-input",
        choices=("hands", "markers"),
        default="hands",
        help="What to track (default: hands)"
    )

    parser.add_argument(
        "--device",
        default=None,
        help="Camera device id (default: first available)"
    )

    parser.add_argument(
        "--show-video",
        action="store_true",
        help="Show the camera feed with detections drawn on top"
    )

    parser.add_argument(
        "--max-hands",
        type=int,
        default=MEDIAPIPE_MAX_NUM_HANDS,
        help=f"Maximum number of hands to track (default: {MEDIAPIPE_MAX_NUM_HANDS})"
    )

    parser.add_argument(
        "--model-complexity",
        type=int,
        choices=MODEL_COMPLEXITY_VALUES,
        default=MEDIAPIPE_MODEL_COMPLEXITY,
        help="Hand model complexity, 0 = lite, 1 = full"
    )

    parser.add_argument(
        "--min-detection-confidence",
        type=float,
        default=MEDIAPIPE_MIN_DETECTION_CONFIDENCE,
        help=f"Minimum detection confidence (default: {MEDIAPIPE_MIN_DETECTION_CONFIDENCE})"
    )

    parser.add_argument(
        "--min-tracking-confidence",
        type=float,
        default=MEDIAPIPE_MIN_TRACKING_CONFIDENCE,
        help=f"Minimum tracking confidence (default: {MEDIAPIPE_MIN_TRACKING_CONFIDENCE})"
    )

    parser.add_argument(
        "--send-timeout",
        type=float,
        default=DETECTOR_SEND_TIMEOUT,
        help="Seconds before a stuck detector counts as unreachable (default: wait forever)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List camera devices and exit"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


async def list_devices(logger) -> int:
    """Print the available cameras."""
    try:
        devices = await DeviceEnumerator().list_video_input_devices()
    except (PermissionDeniedError, EnumerationFailedError) as e:
        logger.error(f"Camera enumeration failed: {e}")
        return EXIT_CAMERA_ERROR

    if not devices:
        print("No cameras found")
        return EXIT_CAMERA_ERROR

    for device in devices:
        print(f"{device.id}: {device.label}")
    return EXIT_SUCCESS


async def run(args: argparse.Namespace, logger) -> int:
    """Run the pipeline until interrupted or failed."""
    options = PipelineOptions(
        max_targets=args.max_hands,
        model_complexity=args.model_complexity,
        min_detection_confidence=args.min_detection_confidence,
        min_tracking_confidence=args.min_tracking_confidence,
        preferred_device_id=args.device
    )
    try:
        options.validate()
    except ValueError as e:
        logger.error(f"Invalid option: {e}")
        return EXIT_USAGE_ERROR

    detector_factory = HandDetector if args.camera_input == "hands" else MarkerDetector
    pipeline = TrackingPipeline(
        detector_factory,
        send_timeout=args.send_timeout or None
    )

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def request_stop() -> None:
        loop.call_soon_threadsafe(stop_event.set)

    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        request_stop()

    signal.signal(signal.SIGINT, signal_handler)
    # SIGTERM is not available on Windows
    if sys.platform != "win32":
        signal.signal(signal.SIGTERM, signal_handler)

    def on_lifecycle(state: LifecycleState, _old) -> None:
        if state is LifecycleState.FAILED:
            request_stop()

    def on_results(results, _old) -> None:
        logger.debug(results.describe() if results is not None else "nothing detected")

    pipeline.lifecycle.link(on_lifecycle, immediate=False)
    pipeline.results.link(on_results, immediate=False)

    overlay: Optional[VideoOverlay] = None
    if args.show_video:
        overlay = VideoOverlay(pipeline.result_frame, on_quit=request_stop)
        overlay.attach(pipeline.results)

    dispatch = None
    try:
        await pipeline.initialize(options)
        dispatch = pipeline.dispatch_loop
        if pipeline.lifecycle.value is LifecycleState.READY:
            logger.info("Tracking started, press Ctrl+C to stop")
            await stop_event.wait()
    finally:
        if overlay:
            overlay.close()
        await pipeline.close()

    adapter = pipeline.adapter
    if adapter is not None:
        logger.info(
            f"Tracking stopped. Published {adapter.results_published} results, "
            f"discarded {adapter.results_discarded}"
        )
    if dispatch is not None:
        logger.debug(f"Frames dispatched: {dispatch.frames_dispatched}")

    return EXIT_CODES[pipeline.failure_state.value]


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code.
    """
    args = parse_args(argv)

    logger = setup_logging(debug=args.debug)
    logger.info("Tangible camera input starting...")

    try:
        if args.list_devices:
            return asyncio.run(list_devices(logger))
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        return EXIT_SUCCESS
    except Exception as e:
        logger.exception(f"Runtime error: {e}")
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    sys.exit(main())
