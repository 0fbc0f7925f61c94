"""Integration tests for TrackingPipeline with fake cameras and detectors."""

import asyncio

import pytest
import pytest_asyncio

from TangibleCameraInput.config import PipelineOptions
from TangibleCameraInput.device_enumerator import DeviceDescriptor, DeviceEnumerator, PermissionDeniedError
from TangibleCameraInput.errors import PipelineStateError
from TangibleCameraInput.failure_notifier import FailureState
from TangibleCameraInput.pipeline import LifecycleState, TrackingPipeline
from TangibleCameraInput.results import HandResults

from conftest import FakeCaptureFactory, make_hand


class PipelineHarness:
    """Pipeline with fakes and a manually ticked clock."""

    def __init__(self, detector, enumerator, capture_factory):
        self.detector = detector
        self.capture_factory = capture_factory
        self.notices = []
        self.pipeline = TrackingPipeline(
            lambda: detector,
            enumerator=enumerator,
            capture_factory=capture_factory,
            notice_handler=self.notices.append,
            start_clock=False,
            send_timeout=1.0
        )

    async def step(self) -> None:
        """Tick once and let the resulting send settle."""
        await self.wait_for_new_frame()
        self.pipeline.clock.tick()
        if self.pipeline.dispatch_loop is not None:
            await self.pipeline.dispatch_loop.drain()

    async def wait_for_send(self, timeout: float = 1.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while self.detector.active_sends == 0:
            if asyncio.get_running_loop().time() > deadline:
                return
            await asyncio.sleep(0.001)

    async def wait_for_new_frame(self, timeout: float = 1.0) -> None:
        dispatch = self.pipeline.dispatch_loop
        if dispatch is None:
            return
        video = self.pipeline.stream_controller.video
        deadline = asyncio.get_running_loop().time() + timeout
        while video.current_time == dispatch.gate.last_timestamp:
            if asyncio.get_running_loop().time() > deadline:
                return
            await asyncio.sleep(0.005)


@pytest_asyncio.fixture
async def harness(fake_detector, enumerator, capture_factory):
    harness = PipelineHarness(fake_detector, enumerator, capture_factory)
    yield harness
    await harness.pipeline.close()


class TestInitialize:
    """Test initialization scenarios."""

    @pytest.mark.asyncio
    async def test_one_camera_no_hands(self, fake_detector, capture_factory):
        enumerator = DeviceEnumerator(probe=lambda: [DeviceDescriptor("0", "Cam")])
        harness = PipelineHarness(fake_detector, enumerator, capture_factory)
        pipeline = harness.pipeline
        publications = []
        pipeline.results.link(lambda new, old: publications.append(new), immediate=False)

        try:
            await pipeline.initialize(PipelineOptions())

            assert pipeline.lifecycle.value is LifecycleState.READY
            assert pipeline.selected_device_id.value == "0"
            assert pipeline.stream_controller.playing.value is True

            await harness.step()
            await harness.step()

            assert pipeline.results.value is None
            assert publications == [None, None]
            assert pipeline.failure_state.value is FailureState.OK
            assert harness.notices == []
        finally:
            await pipeline.close()

    @pytest.mark.asyncio
    async def test_detections_published(self, harness):
        hands = HandResults(multi_hand_landmarks=(make_hand(),))
        harness.detector.result = hands

        await harness.pipeline.initialize()
        await harness.step()

        assert harness.pipeline.results.value is hands
        assert harness.pipeline.result_frame() is harness.detector.sent[-1]

    @pytest.mark.asyncio
    async def test_options_forwarded_to_detector(self, harness):
        options = PipelineOptions(max_targets=1, model_complexity=0)

        await harness.pipeline.initialize(options)

        assert harness.detector.options is options

    @pytest.mark.asyncio
    async def test_initialize_twice_rejected(self, harness):
        await harness.pipeline.initialize()

        with pytest.raises(PipelineStateError):
            await harness.pipeline.initialize()

    @pytest.mark.asyncio
    async def test_invalid_options_rejected(self, harness):
        with pytest.raises(ValueError):
            await harness.pipeline.initialize(PipelineOptions(min_detection_confidence=2.0))

        assert harness.detector.configure_count == 0

    @pytest.mark.asyncio
    async def test_no_devices(self, fake_detector, capture_factory):
        harness = PipelineHarness(fake_detector, DeviceEnumerator(probe=lambda: []), capture_factory)

        try:
            await harness.pipeline.initialize()

            assert harness.pipeline.failure_state.value is FailureState.NO_DEVICE_AVAILABLE
            assert harness.pipeline.lifecycle.value is LifecycleState.FAILED
            assert len(harness.notices) == 1
            assert capture_factory.captures == []
        finally:
            await harness.pipeline.close()

    @pytest.mark.asyncio
    async def test_permission_denied_means_no_device(self, fake_detector, capture_factory):
        def denied():
            raise PermissionDeniedError("no access")

        harness = PipelineHarness(fake_detector, DeviceEnumerator(probe=denied), capture_factory)

        try:
            await harness.pipeline.initialize()

            assert harness.pipeline.failure_state.value is FailureState.NO_DEVICE_AVAILABLE
            assert isinstance(harness.notices[0].error, PermissionDeniedError)
        finally:
            await harness.pipeline.close()

    @pytest.mark.asyncio
    async def test_broken_camera(self, fake_detector, enumerator):
        factory = FakeCaptureFactory(broken=("0",))
        harness = PipelineHarness(fake_detector, enumerator, factory)

        try:
            await harness.pipeline.initialize()
            await harness.step()

            assert harness.pipeline.failure_state.value is FailureState.STREAM_OPEN_FAILED
            assert harness.pipeline.stream_controller.playing.value is False
            assert fake_detector.sent == []
        finally:
            await harness.pipeline.close()

    @pytest.mark.asyncio
    async def test_clock_started_by_default(self, fake_detector, enumerator, capture_factory):
        pipeline = TrackingPipeline(
            lambda: fake_detector,
            enumerator=enumerator,
            capture_factory=capture_factory,
            fps=100
        )
        try:
            await pipeline.initialize()
            await asyncio.sleep(0.1)

            assert pipeline.clock.running
            assert len(fake_detector.sent) > 0
        finally:
            await pipeline.close()

        assert not pipeline.clock.running


class TestDetectorFailure:

    @pytest.mark.asyncio
    async def test_rejecting_send(self, harness, detection_error):
        harness.detector.error = detection_error
        await harness.pipeline.initialize()

        await harness.step()

        assert harness.pipeline.failure_state.value is FailureState.DETECTOR_UNREACHABLE
        assert harness.pipeline.lifecycle.value is LifecycleState.FAILED
        assert len(harness.notices) == 1

        harness.detector.error = None
        for _ in range(3):
            await harness.step()

        assert len(harness.detector.sent) == 1
        assert len(harness.notices) == 1

    @pytest.mark.asyncio
    async def test_timed_out_send_cannot_publish_after_failure(self, harness):
        harness.pipeline.send_timeout = 0.05
        harness.detector.hold = asyncio.Event()
        harness.detector.result = HandResults(multi_hand_landmarks=(make_hand(),))
        await harness.pipeline.initialize()

        await harness.step()
        assert harness.pipeline.failure_state.value is FailureState.DETECTOR_UNREACHABLE

        harness.detector.hold.set()
        await asyncio.sleep(0.01)

        assert harness.detector.active_sends == 0
        assert harness.pipeline.results.value is None
        assert harness.pipeline.adapter.results_discarded == 1
        assert len(harness.notices) == 1

    @pytest.mark.asyncio
    async def test_reinitialize_recovers(self, harness, detection_error):
        harness.detector.error = detection_error
        await harness.pipeline.initialize()
        await harness.step()
        assert harness.pipeline.lifecycle.value is LifecycleState.FAILED

        harness.detector.error = None
        await harness.pipeline.reinitialize()
        await harness.step()

        assert harness.pipeline.failure_state.value is FailureState.OK
        assert harness.pipeline.lifecycle.value is LifecycleState.READY
        assert len(harness.detector.sent) == 2
        assert harness.detector.configure_count == 2

    @pytest.mark.asyncio
    async def test_reinitialize_requires_initialize(self, harness):
        with pytest.raises(PipelineStateError):
            await harness.pipeline.reinitialize()


class TestDeviceSwitching:

    @pytest.mark.asyncio
    async def test_switch_releases_old_stream_once(self, harness):
        await harness.pipeline.initialize()

        await harness.pipeline.select_device("1")

        old = harness.capture_factory.for_device("0")
        new = harness.capture_factory.for_device("1")
        assert len(old) == 1 and old[0].release_count == 1
        assert len(new) == 1 and new[0].release_count == 0
        assert harness.pipeline.stream_controller.active_stream.device_id == "1"

        await harness.step()

        assert len(harness.detector.sent) == 1

    @pytest.mark.asyncio
    async def test_select_empty_device_is_noop_close(self, harness):
        await harness.pipeline.initialize()

        await harness.pipeline.select_device("")
        await harness.step()

        assert harness.pipeline.stream_controller.playing.value is False
        assert harness.capture_factory.captures[0].release_count == 1
        assert harness.pipeline.failure_state.value is FailureState.OK
        assert harness.detector.sent == []

        await harness.pipeline.select_device("1")

        assert harness.pipeline.stream_controller.playing.value is True

    @pytest.mark.asyncio
    async def test_select_before_initialize(self, harness):
        await harness.pipeline.select_device("1")

        assert harness.capture_factory.captures == []

        await harness.pipeline.initialize()

        assert harness.pipeline.stream_controller.active_stream.device_id == "1"

    @pytest.mark.asyncio
    async def test_results_from_replaced_stream_discarded(self, harness):
        harness.detector.hold = asyncio.Event()
        harness.detector.result = HandResults(multi_hand_landmarks=(make_hand(),))
        await harness.pipeline.initialize()
        publications = []
        harness.pipeline.results.link(lambda new, old: publications.append(new), immediate=False)

        await harness.wait_for_new_frame()
        harness.pipeline.clock.tick()
        await harness.wait_for_send()
        assert harness.detector.active_sends == 1

        await harness.pipeline.select_device("1")
        harness.detector.hold.set()
        await harness.pipeline.dispatch_loop.drain()

        assert publications == []
        assert harness.pipeline.adapter.results_discarded == 1


    @pytest.mark.asyncio
    async def test_late_result_from_replaced_stream_discarded(self, harness):
        harness.detector.deliver = False
        old = HandResults(multi_hand_landmarks=(make_hand(x=0.1),))
        new = HandResults(multi_hand_landmarks=(make_hand(x=0.9),))
        await harness.pipeline.initialize()

        await harness.step()
        await harness.pipeline.select_device("1")
        await harness.step()
        assert len(harness.detector.sent) == 2

        harness.detector._emit(old)

        assert harness.pipeline.results.value is None
        assert harness.pipeline.adapter.results_discarded == 1

        harness.detector._emit(new)

        assert harness.pipeline.results.value is new
        assert harness.pipeline.adapter.results_published == 1


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, harness):
        await harness.pipeline.initialize()

        await harness.pipeline.close()

        assert harness.pipeline.lifecycle.value is LifecycleState.CLOSED
        assert all(c.release_count == 1 for c in harness.capture_factory.captures)
        assert harness.detector.closed

    @pytest.mark.asyncio
    async def test_closed_pipeline_cannot_initialize(self, harness):
        await harness.pipeline.close()

        with pytest.raises(PipelineStateError):
            await harness.pipeline.initialize()
