"""Probes — single host/service checks.

Each probe returns a ProbeResult: an optional Finding plus whether the
check actually ran. A missing tool means the probe is SKIPPED, which is not
an issue and never produces a Finding. Anything unexpected raises
ProbeError and is left to the enclosing sampler.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .models import Finding, Severity

logger = logging.getLogger(__name__)

MEMINFO_PATH = Path("/proc/meminfo")
THERMAL_ZONE_PATH = Path("/sys/class/thermal/thermal_zone0/temp")


class Availability(str, Enum):
    PRESENT = "present"
    SKIPPED = "skipped"


class ProbeError(Exception):
    """Raised when a probe fails in a way that is not tool unavailability."""


@dataclass
class ProbeResult:
    finding: Finding | None = None
    availability: Availability = Availability.PRESENT

    @property
    def skipped(self) -> bool:
        return self.availability == Availability.SKIPPED

    @classmethod
    def skip(cls) -> "ProbeResult":
        return cls(availability=Availability.SKIPPED)

    @classmethod
    def ok(cls) -> "ProbeResult":
        return cls()

    @classmethod
    def issue(cls, finding: Finding) -> "ProbeResult":
        return cls(finding=finding)


# ── Helpers ──────────────────────────────────────────────────────────────────


def tool_available(tool: str) -> bool:
    return shutil.which(tool) is not None


def count_processes(pattern: str, full: bool = False) -> int | None:
    """Count processes matching ``pattern`` via pgrep. None if pgrep is missing."""
    if not tool_available("pgrep"):
        return None
    cmd = ["pgrep", "-f", pattern] if full else ["pgrep", pattern]
    result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
    # pgrep: 0 = matched, 1 = nothing matched, anything else = real error
    if result.returncode == 1:
        return 0
    if result.returncode != 0:
        raise ProbeError(f"pgrep exited {result.returncode}: {result.stderr.strip()}")
    return len([line for line in result.stdout.splitlines() if line.strip()])


def read_load_average() -> float | None:
    try:
        return os.getloadavg()[0]
    except (AttributeError, OSError):
        return None


def read_memory_percent(path: Path = MEMINFO_PATH) -> float | None:
    """Used memory as a percentage of total, from /proc/meminfo."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None

    values: dict[str, int] = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        parts = rest.split()
        if parts:
            try:
                values[key.strip()] = int(parts[0])
            except ValueError:
                continue

    total = values.get("MemTotal")
    if not total:
        raise ProbeError(f"MemTotal missing from {path}")
    available = values.get("MemAvailable")
    if available is None:
        available = values.get("MemFree", 0) + values.get("Buffers", 0) + values.get("Cached", 0)
    return round((total - available) * 100 / total, 1)


def read_cpu_temperature(path: Path = THERMAL_ZONE_PATH) -> float | None:
    """CPU temperature in °C from the first thermal zone, if exposed."""
    try:
        return int(path.read_text(encoding="utf-8").strip()) / 1000
    except (OSError, ValueError):
        return None


# ── Probe variants ───────────────────────────────────────────────────────────


class Probe:
    """Base class. Subclasses implement ``run``."""

    kind: str = "probe"

    def __init__(self, name: str, finding_type: str, severity: Severity) -> None:
        self.name = name
        self.finding_type = finding_type
        self.severity = severity

    def run(self) -> ProbeResult:
        raise NotImplementedError

    def _issue(self, description: str) -> ProbeResult:
        return ProbeResult.issue(Finding(self.finding_type, self.severity, description))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class ProcessPresenceProbe(Probe):
    """Issue when no process matches ``process``."""

    kind = "process"

    def __init__(
        self,
        process: str,
        name: str | None = None,
        finding_type: str | None = None,
        severity: Severity = Severity.HIGH,
    ) -> None:
        super().__init__(name or process, finding_type or f"{process}_missing", severity)
        self.process = process

    def run(self) -> ProbeResult:
        count = count_processes(self.process)
        if count is None:
            logger.info("pgrep not available, skipping %s check", self.process)
            return ProbeResult.skip()
        if count == 0:
            return self._issue(f"{self.process} process not running")
        return ProbeResult.ok()


class CommandHealthProbe(Probe):
    """Issue when ``command`` fails or times out."""

    kind = "command"

    def __init__(
        self,
        name: str,
        command: list[str],
        finding_type: str | None = None,
        severity: Severity = Severity.HIGH,
        timeout: float = 5,
        description: str = "",
    ) -> None:
        super().__init__(name, finding_type or f"{name}_error", severity)
        self.command = command
        self.timeout = timeout
        self.description = description or f"{' '.join(command)} failed"

    def run(self) -> ProbeResult:
        if not self.command or not tool_available(self.command[0]):
            logger.info("%s not available, skipping %s check", self.command[:1], self.name)
            return ProbeResult.skip()
        try:
            result = subprocess.run(
                self.command, capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return self._issue(f"{self.description} (timed out after {self.timeout}s)")
        if result.returncode != 0:
            return self._issue(f"{self.description} (exit {result.returncode})")
        return ProbeResult.ok()


class LoadThresholdProbe(Probe):
    kind = "load"

    def __init__(
        self,
        limit: float = 5.0,
        name: str = "load",
        finding_type: str = "high_load",
        severity: Severity = Severity.MEDIUM,
    ) -> None:
        super().__init__(name, finding_type, severity)
        self.limit = limit

    def run(self) -> ProbeResult:
        load = read_load_average()
        if load is None:
            logger.warning("Load average not available, skipping load check")
            return ProbeResult.skip()
        if load > self.limit:
            return self._issue(f"System load is {load:.2f}")
        return ProbeResult.ok()


class MemoryThresholdProbe(Probe):
    kind = "memory"

    def __init__(
        self,
        limit: float = 90.0,
        name: str = "memory",
        finding_type: str = "high_memory",
        severity: Severity = Severity.HIGH,
        meminfo_path: Path = MEMINFO_PATH,
    ) -> None:
        super().__init__(name, finding_type, severity)
        self.limit = limit
        self.meminfo_path = meminfo_path

    def run(self) -> ProbeResult:
        pct = read_memory_percent(self.meminfo_path)
        if pct is None:
            logger.warning("%s not readable, skipping memory check", self.meminfo_path)
            return ProbeResult.skip()
        if pct > self.limit:
            return self._issue(f"Memory usage is {pct}%")
        return ProbeResult.ok()


class DirectoryPresenceProbe(Probe):
    kind = "directory"

    def __init__(
        self,
        path: Path | str,
        name: str = "state_dir",
        finding_type: str = "framework_missing",
        severity: Severity = Severity.CRITICAL,
    ) -> None:
        super().__init__(name, finding_type, severity)
        self.path = Path(path).expanduser()

    def run(self) -> ProbeResult:
        if not self.path.is_dir():
            return self._issue(f"Required directory missing: {self.path}")
        return ProbeResult.ok()


class CountThresholdProbe(Probe):
    """Issue when more than ``bound`` processes match ``pattern`` (full command line)."""

    kind = "count"

    def __init__(
        self,
        pattern: str,
        bound: int = 5,
        name: str = "agents",
        finding_type: str = "agent_overflow",
        severity: Severity = Severity.HIGH,
    ) -> None:
        super().__init__(name, finding_type, severity)
        self.pattern = pattern
        self.bound = bound

    def run(self) -> ProbeResult:
        count = count_processes(self.pattern, full=True)
        if count is None:
            logger.info("pgrep not available, skipping %s count", self.pattern)
            return ProbeResult.skip()
        if count > self.bound:
            return self._issue(f"Too many '{self.pattern}' processes running: {count} (max {self.bound})")
        return ProbeResult.ok()
