from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from cvscan.camera import CameraError, JpegEncoder, NoDeviceAvailableError, OpenCVCamera
from cvscan.camera.opencv_camera import classify_facing
from cvscan.models import CameraDevice


def _video_node(root, name, label, index="0"):
    node = root / name
    node.mkdir()
    (node / "name").write_text(label + "\n")
    (node / "index").write_text(index + "\n")


class TestClassifyFacing:
    def test_names(self) -> None:
        assert classify_facing("Back Camera") == "environment"
        assert classify_facing("Integrated Front Webcam") == "user"
        assert classify_facing("HD Pro Webcam C920") == "unknown"
        assert classify_facing("") == "unknown"


class TestOpenCVCamera:
    def test_lists_sysfs_capture_nodes(self, tmp_path) -> None:
        _video_node(tmp_path, "video0", "Rear Camera")
        _video_node(tmp_path, "video1", "Rear Camera", index="1")
        _video_node(tmp_path, "video2", "Front Camera")

        devices = OpenCVCamera(sysfs_root=tmp_path).list_devices()

        assert devices == [
            CameraDevice(index=0, name="Rear Camera", facing="environment"),
            CameraDevice(index=2, name="Front Camera", facing="user"),
        ]

    def test_probes_indices_without_sysfs(self, tmp_path) -> None:
        opened = MagicMock()
        opened.isOpened.return_value = True
        closed = MagicMock()
        closed.isOpened.return_value = False

        with patch("cvscan.camera.opencv_camera.cv2.VideoCapture", side_effect=[opened, closed]):
            devices = OpenCVCamera(max_index=1, sysfs_root=tmp_path / "missing").list_devices()

        assert [d.index for d in devices] == [0]
        opened.release.assert_called_once()
        closed.release.assert_called_once()

    def test_open_failure_raises_no_device(self, tmp_path) -> None:
        cap = MagicMock()
        cap.isOpened.return_value = False

        with patch("cvscan.camera.opencv_camera.cv2.VideoCapture", return_value=cap):
            with pytest.raises(NoDeviceAvailableError):
                OpenCVCamera(dev_root=tmp_path).open(CameraDevice(0), (1280, 720))
        cap.release.assert_called_once()

    def test_read_failure_raises(self) -> None:
        cap = MagicMock()
        cap.read.return_value = (False, None)

        with pytest.raises(CameraError, match="empty frame"):
            OpenCVCamera().read(cap)
        with pytest.raises(CameraError, match="not initialized"):
            OpenCVCamera().read(None)


class TestJpegEncoder:
    def test_lower_quality_gives_smaller_output(self) -> None:
        rng = np.random.default_rng(0)
        frame = rng.integers(0, 255, size=(120, 160, 3), dtype=np.uint8)
        encoder = JpegEncoder()

        high = encoder.encode(frame, 90)
        low = encoder.encode(frame, 80)

        assert high[:2] == b"\xff\xd8"
        assert len(low) < len(high)
