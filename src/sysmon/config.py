"""Runtime settings for sysmon, read from SYSMON_* environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings. There is no configuration file."""

    # --- logging ---
    log_level: str = "WARNING"
    log_file: str | None = None

    # --- counter source ---
    source: Literal["auto", "procfs", "psutil"] = "auto"
    proc_root: str = "/proc"

    # --- display ---
    command_width: int = 40

    model_config = SettingsConfigDict(env_prefix="SYSMON_")
