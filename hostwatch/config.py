from __future__ import annotations

from pathlib import Path

from pydantic import PositiveInt, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # State directory (findings, logs, performance history live under it)
    state_dir: Path = Path.home() / ".claude"

    # Optional YAML file overriding the built-in probe sets
    probes_file: str = "probes.yaml"

    # Claude Code CLI (the external remediation agent)
    claude_cli_path: str = "claude"  # assumes `claude` is on PATH
    agent_skip_permissions: bool = True  # unattended: no one to approve tool use

    # Escalation
    issue_threshold: PositiveInt = 3
    max_consecutive_failures: PositiveInt = 5

    # Adaptive sleep (seconds)
    min_sleep_seconds: float = 5
    max_sleep_seconds: float = 300
    busy_sleep_seconds: float = 10  # issues >= threshold
    warn_sleep_seconds: float = 20  # 0 < issues < threshold
    idle_sleep_seconds: float = 30  # no issues
    failure_sleep_seconds: float = 15
    recovery_sleep_seconds: float = 60

    # Cadences (in cycles / samples)
    health_every: PositiveInt = 1
    service_every: PositiveInt = 1
    performance_every: PositiveInt = 5
    trend_every: PositiveInt = 10
    trend_window: PositiveInt = 10

    # Probe thresholds
    load_threshold: float = 5.0
    memory_threshold: float = 90.0
    watched_processes: list[str] = ["waybar"]
    display_command: list[str] = ["hyprctl", "monitors"]
    display_timeout_seconds: float = 5
    agent_process_pattern: str = "claude-code"
    max_agent_processes: int = 5

    # Logging
    log_level: str = "INFO"

    @field_validator("state_dir")
    @classmethod
    def _expand_state_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {v!r}")
        return level

    # -- derived paths ---------------------------------------------------------

    @property
    def findings_dir(self) -> Path:
        return self.state_dir / "findings"

    @property
    def diagnostics_dir(self) -> Path:
        return self.state_dir / "diagnostics"

    @property
    def solutions_dir(self) -> Path:
        return self.state_dir / "solutions"

    @property
    def performance_log(self) -> Path:
        return self.state_dir / "performance_history.jsonl"

    @property
    def log_file(self) -> Path:
        return self.state_dir / "autonomous-monitoring.log"

    @property
    def pid_file(self) -> Path:
        return self.state_dir / "hostwatch.pid"


settings = Settings()
