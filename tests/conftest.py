import threading
import time
from typing import List, Optional

import numpy as np
import pytest

from cvscan.camera import CaptureSessionManager
from cvscan.camera.exceptions import CameraError
from cvscan.config import IntakeSettings
from cvscan.models import (
    BlobHandle,
    CameraDevice,
    CapturedPage,
    DeviceProfile,
    ExtractedCV,
    IntakeResult,
    PageSource,
    ScreenDimensions,
    new_page_id,
)
from cvscan.pipeline import IntakeController


def make_frame(height: int = 120, width: int = 160) -> np.ndarray:
    """Sharp, evenly lit BGR frame: an 8px black/white checkerboard."""
    rows, cols = np.indices((height, width))
    board = (((rows // 8) + (cols // 8)) % 2 * 255).astype(np.uint8)
    return np.dstack([board, board, board])


def make_profile(
    has_camera: bool = True,
    low_power: bool = False,
    cameras=None,
    supports_file_selection: bool = True,
) -> DeviceProfile:
    if cameras is None:
        cameras = (CameraDevice(index=0, name="Back Camera", facing="environment"),) if has_camera else ()
    return DeviceProfile(
        has_camera=has_camera,
        has_multiple_cameras=len(cameras) > 1,
        supports_file_selection=supports_file_selection,
        screen=ScreenDimensions(width=1920, height=1080),
        is_low_power_device=low_power,
        cameras=tuple(cameras),
    )


def make_page(data: bytes = b"jpeg-bytes", source: PageSource = PageSource.CAMERA) -> CapturedPage:
    return CapturedPage(id=new_page_id(), image=BlobHandle(data), source=source, mime_type="image/jpeg")


def make_cv(name: str = "Ada Lovelace") -> ExtractedCV:
    return ExtractedCV(
        personal_info={"name": name, "email": "ada@example.com"},
        summary="Mathematician",
        work_history=[{"title": "Analyst", "company": "Engine Co", "duration": "1842-1843"}],
        skills=["mathematics"],
        education=[],
        confidence_score=0.85,
    )


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeCamera:
    """Camera backend double: hands out frames, records open/release."""

    def __init__(self, devices=None, frame=None, open_error: Optional[Exception] = None):
        self.devices = list(devices if devices is not None else [CameraDevice(0, "Back Camera", "environment")])
        self.frame = make_frame() if frame is None else frame
        self.open_error = open_error
        self.opened: List[tuple] = []
        self.released: List[object] = []
        self.reads = 0

    def list_devices(self):
        return list(self.devices)

    def open(self, device, resolution):
        if self.open_error is not None:
            raise self.open_error
        self.opened.append((device, resolution))
        return object()

    def read(self, handle):
        if handle is None:
            raise CameraError("Camera not initialized")
        self.reads += 1
        return self.frame

    def release(self, handle):
        self.released.append(handle)

    @property
    def is_streaming(self) -> bool:
        return len(self.opened) > len(self.released)


class RecordingEncoder:
    def __init__(self):
        self.qualities: List[int] = []

    def encode(self, frame, quality):
        self.qualities.append(quality)
        return f"jpeg:{len(self.qualities)}:{quality}".encode()


class FakeProber:
    def __init__(self, profile: DeviceProfile):
        self.profile = profile
        self.calls = 0

    def probe(self) -> DeviceProfile:
        self.calls += 1
        return self.profile


class FakeOrchestrator:
    """Returns queued results in order; optionally blocks until released."""

    def __init__(self, *results: IntakeResult, gate: Optional[threading.Event] = None):
        self.results = list(results) or [IntakeResult.success(make_cv())]
        self.gate = gate
        self.started = threading.Event()
        self.submissions: List[List[CapturedPage]] = []
        self.closed = False

    def submit(self, pages):
        self.submissions.append(list(pages))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]

    def close(self):
        self.closed = True


@pytest.fixture()
def settings() -> IntakeSettings:
    return IntakeSettings(endpoint_url="http://cv.test/api/v1/cv/scan")


@pytest.fixture()
def fake_camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture()
def encoder() -> RecordingEncoder:
    return RecordingEncoder()


@pytest.fixture()
def capture(settings, fake_camera, encoder) -> CaptureSessionManager:
    return CaptureSessionManager(settings, camera=fake_camera, encoder=encoder)


@pytest.fixture()
def make_controller(settings, capture):
    created = []

    def factory(profile=None, orchestrator=None, **kwargs):
        orchestrator = orchestrator or FakeOrchestrator()
        controller = IntakeController(
            settings,
            prober=FakeProber(profile or make_profile()),
            capture=capture,
            orchestrator_factory=lambda _profile: orchestrator,
            **kwargs,
        )
        controller.orchestrator_double = orchestrator
        created.append(controller)
        controller.start()
        return controller

    yield factory

    for controller in created:
        controller.close()
