"""OpenCV camera backend for document capture.

Wraps ``cv2.VideoCapture`` behind three plain operations (open / read /
release) plus device enumeration, so the session manager never touches
OpenCV directly.

Enumeration notes:
- On Linux the ``video4linux`` sysfs tree gives device names without opening
  anything; only capture nodes (``index`` 0) are listed.
- Elsewhere indices ``0..max_index`` are probed with ``VideoCapture``.
- OpenCV cannot report which way a camera faces. The facing is guessed from
  the device name ("Back Camera", "rear", "front", ...).
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from cvscan.camera.exceptions import CameraError, NoDeviceAvailableError, PermissionDeniedError
from cvscan.models import CameraDevice


ENVIRONMENT_HINTS = ("back", "rear", "environment", "world")
USER_HINTS = ("front", "user", "face", "selfie")


def classify_facing(name: str) -> str:
    """Guess camera facing from its name: environment | user | unknown."""
    lowered = (name or "").lower()
    if any(hint in lowered for hint in ENVIRONMENT_HINTS):
        return "environment"
    if any(hint in lowered for hint in USER_HINTS):
        return "user"
    return "unknown"


class OpenCVCamera:
    def __init__(
        self,
        max_index: int = 4,
        sysfs_root: Path = Path("/sys/class/video4linux"),
        dev_root: Path = Path("/dev"),
    ):
        self.max_index = max_index
        self.sysfs_root = Path(sysfs_root)
        self.dev_root = Path(dev_root)

    # -------------------- Enumeration --------------------

    def list_devices(self) -> List[CameraDevice]:
        """Return the available video inputs, sysfs first, probing as fallback."""
        if self.sysfs_root.is_dir():
            devices = self._list_sysfs_devices()
            logger.debug(f"sysfs reported {len(devices)} capture device(s)")
            return devices
        return self._probe_indices()

    def _list_sysfs_devices(self) -> List[CameraDevice]:
        devices = []
        for entry in sorted(self.sysfs_root.glob("video*")):
            try:
                index = int(entry.name[len("video"):])
            except ValueError:
                continue

            # Metadata nodes share the name of their capture node but have index >= 1
            index_file = entry / "index"
            if index_file.exists() and index_file.read_text().strip() not in ("", "0"):
                continue

            name_file = entry / "name"
            name = name_file.read_text().strip() if name_file.exists() else entry.name
            devices.append(CameraDevice(index=index, name=name, facing=classify_facing(name)))
        return devices

    def _probe_indices(self) -> List[CameraDevice]:
        devices = []
        for index in range(self.max_index + 1):
            cap = cv2.VideoCapture(index)
            try:
                if cap.isOpened():
                    name = f"Camera {index}"
                    devices.append(CameraDevice(index=index, name=name, facing=classify_facing(name)))
            finally:
                cap.release()
        logger.debug(f"Index probing found {len(devices)} camera(s)")
        return devices

    # -------------------- Stream lifecycle --------------------

    def _device_node(self, device: CameraDevice) -> Path:
        return self.dev_root / f"video{device.index}"

    def _is_permission_problem(self, device: CameraDevice) -> bool:
        node = self._device_node(device)
        return node.exists() and not os.access(node, os.R_OK | os.W_OK)

    def open(self, device: CameraDevice, resolution: Tuple[int, int]) -> "cv2.VideoCapture":
        """Open ``device`` asking for ``resolution`` (width, height)."""
        if self._is_permission_problem(device):
            raise PermissionDeniedError(
                f"Access to {self._device_node(device)} denied. "
                "Add the user to the 'video' group or use file upload instead."
            )

        try:
            cap = cv2.VideoCapture(device.index)
        except Exception as e:
            raise NoDeviceAvailableError(f"Could not open camera {device.index}: {e}") from e

        if not cap.isOpened():
            cap.release()
            raise NoDeviceAvailableError(f"Camera {device.index} ({device.name}) could not be opened")

        width, height = resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info(
            f"Camera {device.index} opened (requested {width}x{height}, "
            f"got {int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))})"
        )
        return cap

    def read(self, handle) -> np.ndarray:
        """Grab the current frame as a BGR array."""
        if handle is None:
            raise CameraError("Camera not initialized")
        ok, frame = handle.read()
        if not ok or frame is None:
            raise CameraError("Camera returned empty frame")
        return np.asarray(frame)

    def release(self, handle: Optional["cv2.VideoCapture"]) -> None:
        if handle is None:
            return
        try:
            handle.release()
        except Exception as e:
            logger.debug(f"Camera release returned: {e} (may already be released)")
        logger.info("Camera stopped")


class JpegEncoder:
    """Encodes frames to JPEG bytes at a given quality (1-100)."""

    def encode(self, frame: np.ndarray, quality: int) -> bytes:
        encode_param = [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)]
        success, buffer = cv2.imencode(".jpg", frame, encode_param)
        if not success:
            raise CameraError("Failed to encode frame as JPEG")
        return buffer.tobytes()
