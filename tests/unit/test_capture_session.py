import numpy as np
import pytest

from conftest import FakeCamera, make_profile
from cvscan.camera import (
    CameraError,
    CaptureSessionManager,
    NoDeviceAvailableError,
    PermissionDeniedError,
    SessionStatus,
)
from cvscan.models import CameraDevice, PageSource


class TestCaptureSessionManager:
    def test_low_power_profile_uses_reduced_resolution_and_quality(self, capture, fake_camera, encoder) -> None:
        session = capture.start(make_profile(low_power=True))

        page = capture.capture_frame(session)

        assert fake_camera.opened[0][1] == (1280, 720)
        assert encoder.qualities == [80]
        assert page.source is PageSource.CAMERA
        assert page.mime_type == "image/jpeg"

    def test_regular_profile_uses_full_resolution_and_quality(self, capture, fake_camera, encoder) -> None:
        session = capture.start(make_profile(low_power=False))
        capture.capture_frame(session)

        assert fake_camera.opened[0][1] == (1920, 1080)
        assert encoder.qualities == [90]

    def test_each_capture_is_a_new_page(self, capture) -> None:
        session = capture.start(make_profile())

        first = capture.capture_frame(session)
        second = capture.capture_frame(session)

        assert first.id != second.id
        assert first.image.read() != second.image.read()
        assert session.frames_captured == 2
        assert session.status is SessionStatus.LIVE

    def test_capture_attaches_quality(self, capture) -> None:
        page = capture.capture_frame(capture.start(make_profile()))

        assert page.quality is not None
        assert page.quality.acceptable

    def test_stop_releases_once(self, capture, fake_camera) -> None:
        session = capture.start(make_profile())

        capture.stop(session)
        capture.stop(session)
        capture.stop(None)

        assert len(fake_camera.released) == 1
        assert session.status is SessionStatus.STOPPED

    def test_capture_after_stop_raises(self, capture) -> None:
        session = capture.start(make_profile())
        capture.stop(session)

        with pytest.raises(CameraError, match="stopped"):
            capture.capture_frame(session)

    def test_no_camera_in_profile_raises(self, capture) -> None:
        with pytest.raises(NoDeviceAvailableError):
            capture.start(make_profile(has_camera=False))

    def test_permission_error_propagates(self, settings, encoder) -> None:
        camera = FakeCamera(open_error=PermissionDeniedError("denied"))
        manager = CaptureSessionManager(settings, camera=camera, encoder=encoder)

        with pytest.raises(PermissionDeniedError):
            manager.start(make_profile())

    def test_live_context_releases_on_error(self, capture, fake_camera) -> None:
        with pytest.raises(RuntimeError):
            with capture.live(make_profile()) as session:
                assert session.active
                raise RuntimeError("boom")

        assert not fake_camera.is_streaming

    def test_prefers_rear_camera(self) -> None:
        devices = [
            CameraDevice(0, "Front Camera", "user"),
            CameraDevice(1, "USB Camera", "unknown"),
            CameraDevice(2, "Back Camera", "environment"),
        ]

        assert CaptureSessionManager.choose_device(devices).index == 2
        assert CaptureSessionManager.choose_device(devices[:2]).index == 1
        assert CaptureSessionManager.choose_device([]) is None

    def test_blurry_frame_is_kept_with_issues(self, settings, encoder) -> None:
        flat = np.full((120, 160, 3), 128, dtype=np.uint8)
        manager = CaptureSessionManager(settings, camera=FakeCamera(frame=flat), encoder=encoder)

        page = manager.capture_frame(manager.start(make_profile()))

        assert "blurry" in page.quality.issues
