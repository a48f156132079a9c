import mimetypes
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from loguru import logger

from cvscan.camera.evaluator import PageQualityEvaluator
from cvscan.camera.exceptions import CameraError, NoDeviceAvailableError
from cvscan.camera.opencv_camera import JpegEncoder, OpenCVCamera
from cvscan.config import IntakeSettings
from cvscan.models import (
    BlobHandle,
    CameraDevice,
    CapturedPage,
    DeviceProfile,
    FileHandle,
    PageSource,
    new_page_id,
)


ACCEPTED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})

# Not in every interpreter's default table
mimetypes.add_type("image/webp", ".webp")
mimetypes.add_type("application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx")

# Preferred camera facing for documents, best first
FACING_PREFERENCE = ("environment", "unknown", "user")


class SessionStatus(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    LIVE = "live"
    CAPTURING = "capturing"
    STOPPED = "stopped"


@dataclass
class LiveSession:
    """One camera stream, bounded by start() and stop()."""

    device: CameraDevice
    resolution: Tuple[int, int]
    jpeg_quality: int
    low_power: bool
    handle: Any = None
    status: SessionStatus = SessionStatus.IDLE
    frames_captured: int = 0

    @property
    def active(self) -> bool:
        return self.status in (SessionStatus.LIVE, SessionStatus.CAPTURING)


class CaptureSessionManager:
    """
    Owns the camera stream for the live capture phase:
    - picks a camera and resolution from the device profile
    - grabs frames and encodes them into pages
    - releases the hardware on stop()
    """

    def __init__(
        self,
        settings: Optional[IntakeSettings] = None,
        camera: Optional[OpenCVCamera] = None,
        encoder: Optional[JpegEncoder] = None,
        evaluator: Optional[PageQualityEvaluator] = None,
    ):
        self.settings = settings or IntakeSettings()
        self.camera = camera or OpenCVCamera(max_index=self.settings.camera_max_index)
        self.encoder = encoder or JpegEncoder()
        self.evaluator = evaluator or PageQualityEvaluator()

    # -------------------- Policy helpers --------------------

    def resolution_for(self, profile: DeviceProfile) -> Tuple[int, int]:
        if profile.is_low_power_device:
            return self.settings.low_power_resolution
        return self.settings.resolution

    def quality_for(self, profile: DeviceProfile) -> int:
        if profile.is_low_power_device:
            return self.settings.low_power_jpeg_quality
        return self.settings.jpeg_quality

    @staticmethod
    def choose_device(devices: Iterable[CameraDevice]) -> Optional[CameraDevice]:
        """Prefer a rear (environment-facing) camera for documents."""
        devices = list(devices)
        for facing in FACING_PREFERENCE:
            for device in devices:
                if device.facing == facing:
                    return device
        return devices[0] if devices else None

    # -------------------- Session lifecycle --------------------

    def start(self, profile: DeviceProfile) -> LiveSession:
        """Open a camera stream suited to ``profile``.

        Raises PermissionDeniedError or NoDeviceAvailableError. Callers fall
        back to file selection; the request is never retried automatically.
        """
        device = self.choose_device(profile.cameras)
        if device is None:
            raise NoDeviceAvailableError("No camera reported by the device profile")

        session = LiveSession(
            device=device,
            resolution=self.resolution_for(profile),
            jpeg_quality=self.quality_for(profile),
            low_power=profile.is_low_power_device,
        )
        session.status = SessionStatus.REQUESTING
        logger.info(
            f"Requesting camera {device.index} '{device.name}' "
            f"({device.facing}) at {session.resolution[0]}x{session.resolution[1]}"
        )

        try:
            session.handle = self.camera.open(device, session.resolution)
        except CameraError:
            session.status = SessionStatus.STOPPED
            raise

        session.status = SessionStatus.LIVE
        return session

    def capture_frame(self, session: LiveSession) -> CapturedPage:
        """Grab the current frame and return it as a new camera page."""
        if not session.active:
            raise CameraError(f"Cannot capture from a {session.status.value} session")

        session.status = SessionStatus.CAPTURING
        try:
            frame = self.camera.read(session.handle)
            quality = self.evaluator.assess(frame, low_power=session.low_power)
            data = self.encoder.encode(frame, session.jpeg_quality)
        finally:
            session.status = SessionStatus.LIVE

        session.frames_captured += 1
        if not quality.acceptable:
            logger.warning(f"Captured page looks {', '.join(quality.issues)}; consider a retake")
        logger.debug(f"Frame {session.frames_captured} encoded at quality {session.jpeg_quality} ({len(data)} bytes)")

        return CapturedPage(
            id=new_page_id(),
            image=BlobHandle(data),
            source=PageSource.CAMERA,
            mime_type="image/jpeg",
            quality=quality,
        )

    def stop(self, session: Optional[LiveSession]) -> None:
        """Release the camera. Safe to call more than once."""
        if session is None or session.status == SessionStatus.STOPPED:
            return
        handle, session.handle = session.handle, None
        session.status = SessionStatus.STOPPED
        self.camera.release(handle)
        logger.info(f"Camera session on device {session.device.index} stopped after {session.frames_captured} frame(s)")

    @contextmanager
    def live(self, profile: DeviceProfile) -> Iterator[LiveSession]:
        """Scoped camera session: the stream is released on every exit path."""
        session = self.start(profile)
        try:
            yield session
        finally:
            self.stop(session)


# -------------------- File selection --------------------

def guess_mime_type(path: Path) -> Optional[str]:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type


def select_files(paths: Iterable, max_bytes: int = 10 * 1024 * 1024) -> List[CapturedPage]:
    """Turn user-selected files into pages.

    Missing files, unsupported types and oversized files are skipped without
    raising; selection is best effort.
    """
    pages = []
    for raw_path in paths:
        path = Path(raw_path).expanduser()

        if not path.is_file():
            logger.debug(f"Skipping {path}: not a file")
            continue

        mime_type = guess_mime_type(path)
        if mime_type not in ACCEPTED_MIME_TYPES:
            logger.debug(f"Skipping {path.name}: unsupported type {mime_type}")
            continue

        size = path.stat().st_size
        if size > max_bytes:
            logger.debug(f"Skipping {path.name}: {size} bytes exceeds limit of {max_bytes}")
            continue

        pages.append(
            CapturedPage(
                id=new_page_id(),
                image=FileHandle(path),
                source=PageSource.FILE_UPLOAD,
                mime_type=mime_type,
                filename=path.name,
            )
        )

    logger.info(f"Selected {len(pages)} page(s) from files")
    return pages
