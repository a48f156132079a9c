import logging
import os
import time
from typing import List, Optional

import httpx

from cvscan.camera.opencv_camera import OpenCVCamera
from cvscan.config import IntakeSettings
from cvscan.models import CameraDevice, DeviceProfile, NetworkClass, ScreenDimensions


# Browser-style "effective connection type" values
EFFECTIVE_TYPE_CLASSES = {
    "slow-2g": NetworkClass.SLOW,
    "2g": NetworkClass.SLOW,
    "3g": NetworkClass.MODERATE,
    "4g": NetworkClass.FAST,
    "5g": NetworkClass.FAST,
    "wifi": NetworkClass.FAST,
    "ethernet": NetworkClass.FAST,
}

FAST_RTT_SECONDS = 0.3
MODERATE_RTT_SECONDS = 1.0


def classify_effective_type(hint: Optional[str]) -> NetworkClass:
    if not hint:
        return NetworkClass.UNKNOWN
    return EFFECTIVE_TYPE_CLASSES.get(hint.strip().lower(), NetworkClass.UNKNOWN)


def classify_round_trip(seconds: float) -> NetworkClass:
    if seconds < FAST_RTT_SECONDS:
        return NetworkClass.FAST
    if seconds < MODERATE_RTT_SECONDS:
        return NetworkClass.MODERATE
    return NetworkClass.SLOW


class CapabilityProber:
    """
    Inspects the host once, at pipeline start.

    Each check degrades on its own: no camera, low power and unknown network
    are the fallbacks. probe() never raises.
    """

    def __init__(self, settings: Optional[IntakeSettings] = None, camera: Optional[OpenCVCamera] = None):
        self.settings = settings or IntakeSettings()
        self.camera = camera or OpenCVCamera(max_index=self.settings.camera_max_index)
        self.log = logging.getLogger("CapabilityProber")

    def probe(self) -> DeviceProfile:
        cameras = self._cameras()
        memory_gb, cpu_count = self._memory_gb(), self._cpu_count()
        low_power = self.is_low_power(memory_gb, cpu_count)

        profile = DeviceProfile(
            has_camera=len(cameras) > 0,
            has_multiple_cameras=len(cameras) > 1,
            supports_file_selection=self.settings.enable_file_selection,
            screen=self._screen_dimensions(),
            is_low_power_device=low_power,
            network_class=self._network_class(),
            cameras=tuple(cameras),
            memory_gb=memory_gb,
            cpu_count=cpu_count,
        )
        self.log.info(
            f"Device profile: cameras={len(cameras)} low_power={low_power} "
            f"network={profile.network_class.value} screen={profile.screen.width}x{profile.screen.height}"
        )
        return profile

    # -------------------- Individual probes --------------------

    def is_low_power(self, memory_gb: Optional[float], cpu_count: Optional[int]) -> bool:
        """Heuristic: little memory OR few cores. Unknown counts as low power."""
        if memory_gb is None or cpu_count is None:
            return True
        return memory_gb <= self.settings.low_power_memory_gb or cpu_count <= self.settings.low_power_cores

    def _cameras(self) -> List[CameraDevice]:
        try:
            return list(self.camera.list_devices())
        except Exception as e:
            self.log.warning(f"Camera detection failed: {e}")
            return []

    def _memory_gb(self) -> Optional[float]:
        try:
            total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
        except (AttributeError, ValueError, OSError) as e:
            self.log.warning(f"Could not read physical memory: {e}")
            return None
        return round(total / float(1024 ** 3), 2)

    def _cpu_count(self) -> Optional[int]:
        count = os.cpu_count()
        if count is None:
            self.log.warning("Could not read logical core count")
        return count

    def _screen_dimensions(self) -> ScreenDimensions:
        try:
            import tkinter as tk
        except ImportError:
            return ScreenDimensions()

        try:
            root = tk.Tk()
        except tk.TclError as e:
            self.log.debug(f"No display for screen probing: {e}")
            return ScreenDimensions()

        try:
            root.withdraw()
            # 96 dpi is density 1.0
            density = round(root.winfo_fpixels("1i") / 96.0, 2)
            return ScreenDimensions(root.winfo_screenwidth(), root.winfo_screenheight(), density)
        finally:
            root.destroy()

    def _network_class(self) -> NetworkClass:
        hinted = classify_effective_type(self.settings.network_hint)
        if hinted is not NetworkClass.UNKNOWN:
            return hinted

        url = self.settings.network_probe_url
        if not url:
            return NetworkClass.UNKNOWN

        rtt = self._round_trip(url)
        return NetworkClass.UNKNOWN if rtt is None else classify_round_trip(rtt)

    def _round_trip(self, url: str) -> Optional[float]:
        start = time.perf_counter()
        try:
            httpx.head(url, timeout=3.0)
        except httpx.HTTPError as e:
            self.log.warning(f"Network probe to {url} failed: {e}")
            return None
        return time.perf_counter() - start
