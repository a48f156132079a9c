from cvscan.models import ErrorKind


class CameraError(Exception):
    """Base exception for camera session failures."""

    kind = ErrorKind.NO_DEVICE_AVAILABLE


class PermissionDeniedError(CameraError):
    """Raised when the camera exists but access to it was refused."""

    kind = ErrorKind.PERMISSION_DENIED


class NoDeviceAvailableError(CameraError):
    """Raised when no usable camera could be opened."""

    kind = ErrorKind.NO_DEVICE_AVAILABLE
