"""
Camera package for the CV scanner.

- opencv_camera: device enumeration and the VideoCapture wrapper
- evaluator: advisory sharpness / exposure check on captured pages
- session: camera session lifecycle and the file selection path
"""

from .exceptions import CameraError, NoDeviceAvailableError, PermissionDeniedError
from .evaluator import PageQualityEvaluator
from .opencv_camera import JpegEncoder, OpenCVCamera
from .session import CaptureSessionManager, LiveSession, SessionStatus, select_files


__all__ = [
    "CameraError",
    "NoDeviceAvailableError",
    "PermissionDeniedError",
    "PageQualityEvaluator",
    "JpegEncoder",
    "OpenCVCamera",
    "CaptureSessionManager",
    "LiveSession",
    "SessionStatus",
    "select_files",
]
