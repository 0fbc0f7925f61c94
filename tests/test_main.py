"""Unit tests for the command line entry point."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from TangibleCameraInput import __main__ as cli
from TangibleCameraInput.config import (
    EXIT_CAMERA_ERROR,
    EXIT_DETECTOR_ERROR,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
)
from TangibleCameraInput.device_enumerator import DeviceDescriptor, EnumerationFailedError
from TangibleCameraInput.failure_notifier import FailureState


@pytest.fixture
def logger():
    return logging.getLogger("TangibleInput.test")


class TestParseArgs:

    def test_defaults(self):
        args = cli.parse_args([])

        assert args.camera_input == "hands"
        assert args.device is None
        assert args.max_hands == 2
        assert args.model_complexity == 1
        assert not args.show_video

    def test_markers_on_device(self):
        args = cli.parse_args(["--camera-input", "markers", "--device", "1", "--show-video"])

        assert args.camera_input == "markers"
        assert args.device == "1"
        assert args.show_video

    def test_invalid_complexity_rejected(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["--model-complexity", "3"])


class TestExitCodes:

    @pytest.mark.parametrize("state,code", [
        (FailureState.OK, EXIT_SUCCESS),
        (FailureState.NO_DEVICE_AVAILABLE, EXIT_CAMERA_ERROR),
        (FailureState.STREAM_OPEN_FAILED, EXIT_CAMERA_ERROR),
        (FailureState.DETECTOR_UNREACHABLE, EXIT_DETECTOR_ERROR),
    ])
    def test_failure_state_mapping(self, state, code):
        assert cli.EXIT_CODES[state] == code

    @pytest.mark.asyncio
    async def test_invalid_option_is_usage_error(self, logger):
        args = cli.parse_args(["--min-detection-confidence", "1.5"])

        assert await cli.run(args, logger) == EXIT_USAGE_ERROR


class TestListDevices:

    @pytest.mark.asyncio
    async def test_prints_devices(self, logger, capsys):
        devices = [DeviceDescriptor("0", "Integrated Camera")]
        with patch.object(cli.DeviceEnumerator, "list_video_input_devices", AsyncMock(return_value=devices)):
            code = await cli.list_devices(logger)

        assert code == EXIT_SUCCESS
        assert "0: Integrated Camera" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_no_devices(self, logger):
        with patch.object(cli.DeviceEnumerator, "list_video_input_devices", AsyncMock(return_value=[])):
            assert await cli.list_devices(logger) == EXIT_CAMERA_ERROR

    @pytest.mark.asyncio
    async def test_enumeration_failure(self, logger):
        failing = AsyncMock(side_effect=EnumerationFailedError("backend crashed"))
        with patch.object(cli.DeviceEnumerator, "list_video_input_devices", failing):
            assert await cli.list_devices(logger) == EXIT_CAMERA_ERROR
