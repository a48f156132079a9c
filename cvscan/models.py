"""Data model shared by every stage of the intake pipeline.

Device capabilities, captured pages, intake results and the state snapshot
handed to the view layer live here so that the camera, pipeline and FSM
packages can import them without importing each other.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class PageSource(str, Enum):
    CAMERA = "camera"
    FILE_UPLOAD = "file_upload"


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE_AVAILABLE = "no_device_available"
    EMPTY_BUFFER = "empty_buffer"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER_REJECTED = "server_rejected"
    PAGE_UNREADABLE = "page_unreadable"


class Phase(str, Enum):
    """User-facing phases; values match the state names in states.yaml."""

    CHOOSING_METHOD = "choosing_method"
    LIVE_CAPTURE = "live_capture"
    FILE_SELECTION = "file_selection"
    REVIEWING_PAGES = "reviewing_pages"
    PROCESSING = "processing"
    RESULT = "result"
    FAILED = "failed"


class NetworkClass(str, Enum):
    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"
    UNKNOWN = "unknown"


# -------------------- Device capabilities --------------------

@dataclass(frozen=True)
class ScreenDimensions:
    width: int = 0
    height: int = 0
    pixel_density: float = 1.0


@dataclass(frozen=True)
class CameraDevice:
    """One video input. ``facing`` is environment | user | unknown."""

    index: int
    name: str = ""
    facing: str = "unknown"


@dataclass(frozen=True)
class DeviceProfile:
    """Capabilities of the host, probed once per intake session."""

    has_camera: bool
    has_multiple_cameras: bool
    supports_file_selection: bool
    screen: ScreenDimensions
    is_low_power_device: bool
    network_class: NetworkClass = NetworkClass.UNKNOWN
    cameras: Tuple[CameraDevice, ...] = ()
    memory_gb: Optional[float] = None
    cpu_count: Optional[int] = None


def new_page_id() -> str:
    return uuid.uuid4().hex


# -------------------- Image handles --------------------

class ImageHandle(ABC):
    """Opaque reference to the binary data of one page."""

    @abstractmethod
    def read(self) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def release(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def released(self) -> bool:
        raise NotImplementedError


class BlobHandle(ImageHandle):
    """In-memory encoded image, e.g. a JPEG captured from the camera."""

    def __init__(self, data: bytes):
        self._data: Optional[bytes] = data

    def read(self) -> bytes:
        if self._data is None:
            raise ValueError("Image data already released")
        return self._data

    def release(self) -> None:
        self._data = None

    @property
    def released(self) -> bool:
        return self._data is None

    def __len__(self):
        return 0 if self._data is None else len(self._data)


class FileHandle(ImageHandle):
    """Reference to a user-selected file.

    Releasing only detaches the handle; the user's file is never deleted.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._released = False

    def read(self) -> bytes:
        if self._released:
            raise ValueError(f"File handle for {self.path.name} already released")
        return self.path.read_bytes()

    def release(self) -> None:
        self._released = True

    @property
    def released(self) -> bool:
        return self._released


# -------------------- Pages --------------------

@dataclass(frozen=True)
class PageQuality:
    """Advisory quality reading for a camera frame."""

    sharpness: float
    brightness: float
    issues: Tuple[str, ...] = ()

    @property
    def acceptable(self) -> bool:
        return not self.issues


@dataclass(frozen=True, eq=False)
class CapturedPage:
    id: str
    image: ImageHandle
    source: PageSource
    mime_type: str
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    filename: Optional[str] = None
    quality: Optional[PageQuality] = None

    def release(self) -> None:
        self.image.release()


# -------------------- Intake results --------------------

@dataclass(frozen=True)
class ExtractedCV:
    """Structured CV data returned by the backend."""

    personal_info: Dict[str, Any]
    summary: str
    work_history: List[Dict[str, Any]]
    skills: List[str]
    education: List[Dict[str, Any]]
    confidence_score: float
    improvement_suggestions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class IntakeFailure:
    error_kind: ErrorKind
    message: str


@dataclass(frozen=True)
class IntakeResult:
    """Outcome of one submission: exactly one of ``cv`` / ``failure`` is set."""

    cv: Optional[ExtractedCV] = None
    failure: Optional[IntakeFailure] = None

    @classmethod
    def success(cls, cv: ExtractedCV) -> "IntakeResult":
        return cls(cv=cv)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "IntakeResult":
        return cls(failure=IntakeFailure(error_kind=kind, message=message))

    @property
    def succeeded(self) -> bool:
        return self.cv is not None


# -------------------- View snapshot --------------------

@dataclass(frozen=True)
class PipelineState:
    """Everything the view needs to render the current phase."""

    phase: Phase
    pages: Tuple[CapturedPage, ...] = ()
    profile: Optional[DeviceProfile] = None
    result: Optional[ExtractedCV] = None
    failure: Optional[IntakeFailure] = None
    notice: Optional[str] = None
    actions: Tuple[str, ...] = ()

    @property
    def page_count(self) -> int:
        return len(self.pages)
