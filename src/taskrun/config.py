"""Runtime configuration for task orchestration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class SupervisorSettings:
    """Process spawning and termination settings."""

    shell: str = "/bin/sh"
    grace_seconds: float = 5.0
    drain_seconds: float = 2.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    task_file: Path = Path("tasks.ini")
    exit_when_stalled: bool = False
    log_level: str = "WARNING"
    supervisor: SupervisorSettings = field(default_factory=SupervisorSettings)

    @classmethod
    def from_env(cls, task_file: Path | None = None) -> Settings:
        """Load settings from environment with defaults suited for local runs."""

        return cls(
            task_file=task_file or Path(os.getenv("TASKRUN_TASK_FILE", "tasks.ini")),
            exit_when_stalled=_env_bool("TASKRUN_EXIT_WHEN_STALLED", default=False),
            log_level=os.getenv("TASKRUN_LOG_LEVEL", "WARNING").strip().upper(),
            supervisor=SupervisorSettings(
                shell=os.getenv("TASKRUN_SHELL", "/bin/sh").strip(),
                grace_seconds=_env_float("TASKRUN_GRACE_SECONDS", "5.0"),
                drain_seconds=_env_float("TASKRUN_DRAIN_SECONDS", "2.0"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the orchestrator cannot use."""

        if not self.supervisor.shell:
            raise ValueError("TASKRUN_SHELL must not be empty.")
        if self.supervisor.grace_seconds < 0:
            raise ValueError("TASKRUN_GRACE_SECONDS must be >= 0.")
        if self.supervisor.drain_seconds < 0:
            raise ValueError("TASKRUN_DRAIN_SECONDS must be >= 0.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"TASKRUN_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}: {self.log_level!r}",
            )

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
