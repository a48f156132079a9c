"""Runtime settings for the CV intake pipeline.

Settings come from four layers, last one wins:

1. field defaults below
2. an optional YAML file (``--config`` on the command line)
3. ``CVSCAN_*`` environment variables, e.g. ``CVSCAN_ENDPOINT_URL``
4. command line flags, applied through ``with_overrides()``

Every layer is validated by pydantic, so a wrongly typed value fails when the
settings load. The auth token is only passed through to the backend; it is
never stored.
"""

from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IntakeSettings(BaseSettings):
    """Intake pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="CVSCAN_", extra="forbid", frozen=True)

    endpoint_url: str = "http://localhost:3001/api/v1/cv/scan"
    auth_token: Optional[str] = None

    # Submission timeout budgets (seconds), total per request
    timeout_seconds: float = Field(default=30.0, gt=0)
    low_power_timeout_seconds: float = Field(default=50.0, gt=0)

    # Page buffer / file selection limits
    max_pages: int = Field(default=20, ge=0)
    max_file_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    enable_file_selection: bool = True

    # Camera capture
    resolution: Tuple[int, int] = (1920, 1080)
    low_power_resolution: Tuple[int, int] = (1280, 720)
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    low_power_jpeg_quality: int = Field(default=80, ge=1, le=100)
    camera_max_index: int = Field(default=4, ge=0)

    # Device probing
    low_power_memory_gb: float = 2.0
    low_power_cores: int = 2
    network_hint: Optional[str] = None
    network_probe_url: Optional[str] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values passed in, which is how the YAML file arrives
        return env_settings, init_settings, file_secret_settings

    def with_overrides(self, **overrides) -> "IntakeSettings":
        """Return a validated copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return self.model_validate({**self.model_dump(), **changes})


def load_settings(config_path=None) -> IntakeSettings:
    """Build settings from an optional YAML file plus ``CVSCAN_*`` variables.

    Raises:
        ValueError: the file is not a mapping, or a key is unknown or has the
            wrong type (pydantic's ``ValidationError`` is a ``ValueError``).
    """
    values = {}

    if config_path is not None:
        with open(Path(config_path), "r") as f:
            values = yaml.safe_load(f) or {}

        if not isinstance(values, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")

    return IntakeSettings(**values)
