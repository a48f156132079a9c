import numpy as np

from conftest import make_frame
from cvscan.camera import PageQualityEvaluator


class TestPageQualityEvaluator:
    def test_sharp_page_has_no_issues(self) -> None:
        quality = PageQualityEvaluator().assess(make_frame())

        assert quality.acceptable
        assert quality.sharpness > 100.0

    def test_flat_frame_is_blurry(self) -> None:
        frame = np.full((100, 100, 3), 128, dtype=np.uint8)

        quality = PageQualityEvaluator().assess(frame)

        assert quality.issues == ("blurry",)

    def test_dark_and_bright_frames(self) -> None:
        evaluator = PageQualityEvaluator()

        dark = evaluator.assess(np.zeros((50, 50), dtype=np.uint8))
        bright = evaluator.assess(np.full((50, 50), 250, dtype=np.uint8))

        assert "too_dark" in dark.issues
        assert "too_bright" in bright.issues

    def test_empty_frame(self) -> None:
        evaluator = PageQualityEvaluator()

        assert evaluator.assess(None).issues == ("empty",)
        assert evaluator.assess(np.zeros((0, 0, 3), dtype=np.uint8)).issues == ("empty",)

    def test_low_power_still_assesses_large_frames(self) -> None:
        frame = make_frame(height=720, width=1280)

        quality = PageQualityEvaluator().assess(frame, low_power=True)

        assert quality.brightness > 0
