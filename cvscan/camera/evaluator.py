import cv2
import numpy as np

from cvscan.models import PageQuality


class PageQualityEvaluator:
    """
    Rates a captured CV page so the user can be told to retake it.

    The verdict is advisory: a blurry or badly lit page is still appended to
    the buffer, it only carries the issues found.
    """

    def __init__(
        self,
        sharpness_threshold: float = 100.0,  # Laplacian variance below this is blurry
        brightness_min: float = 40.0,        # mean grey level below this is too dark
        brightness_max: float = 235.0,       # above this the paper is washed out
        max_analysis_width: int = 960,
    ):
        self.sharpness_threshold = sharpness_threshold
        self.brightness_min = brightness_min
        self.brightness_max = brightness_max
        self.max_analysis_width = max_analysis_width

    def assess(self, frame: np.ndarray, low_power: bool = False) -> PageQuality:
        """Return sharpness, brightness and any issues found in ``frame``."""
        if frame is None or frame.size == 0:
            return PageQuality(sharpness=0.0, brightness=0.0, issues=("empty",))

        gray = self._to_gray(frame)

        # Low-power devices analyse a half-size copy
        limit = self.max_analysis_width // 2 if low_power else self.max_analysis_width
        gray = self._downscale(gray, limit)

        sharpness = float(cv2.Laplacian(gray, cv2.CV_64F).var())
        brightness = float(np.mean(gray))

        issues = []
        if sharpness < self.sharpness_threshold:
            issues.append("blurry")
        if brightness < self.brightness_min:
            issues.append("too_dark")
        elif brightness > self.brightness_max:
            issues.append("too_bright")

        return PageQuality(sharpness=sharpness, brightness=brightness, issues=tuple(issues))

    @staticmethod
    def _to_gray(frame: np.ndarray) -> np.ndarray:
        if len(frame.shape) == 3:
            return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        return frame

    @staticmethod
    def _downscale(gray: np.ndarray, max_width: int) -> np.ndarray:
        h, w = gray.shape[:2]
        if max_width <= 0 or w <= max_width:
            return gray
        scale = max_width / float(w)
        return cv2.resize(gray, (max_width, max(1, int(h * scale))), interpolation=cv2.INTER_AREA)
