"""Typed records produced by the monitor.

Every record is a dataclass with a fixed JSON schema:
- Finding / FindingsRecord — what a sampler observed
- ExceptionRecord — an operational failure of the monitor itself
- DispatchRecord — the audit trail of an agent launch
- PerformanceSample — one line of the performance history
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

UNKNOWN = "unknown"
SUMMARY_TYPE = "summary"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Enums ────────────────────────────────────────────────────────────────────


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SamplerName(str, Enum):
    HEALTH = "health"
    SERVICES = "services"
    PERFORMANCE = "performance"


class DispatchKind(str, Enum):
    DIAGNOSTIC = "diagnostic"
    REMEDIATION = "remediation"


class RecordSealedError(Exception):
    """Raised when adding a finding to a record whose pass has completed."""


class DispatchError(Exception):
    """Raised when an agent cannot be launched or its record cannot be written."""


# ── Findings ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Finding:
    """A single observed health/service problem."""

    type: str
    severity: Severity
    description: str

    @property
    def is_summary(self) -> bool:
        return self.type == SUMMARY_TYPE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "severity": self.severity.value, "description": self.description}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Finding":
        return cls(
            type=raw["type"],
            severity=Severity(raw.get("severity", Severity.LOW.value)),
            description=raw.get("description", ""),
        )


@dataclass
class FindingsRecord:
    """Aggregated output of one sampler invocation."""

    source: SamplerName
    items: list[Finding] = field(default_factory=list)
    probe_errors: list[dict[str, str]] = field(default_factory=list)
    timestamp: str = ""
    sealed: bool = False

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    @property
    def issue_count(self) -> int:
        return sum(1 for f in self.items if not f.is_summary)

    def add(self, finding: Finding) -> None:
        if self.sealed:
            raise RecordSealedError(f"{self.source.value} record is sealed")
        self.items.append(finding)

    def add_probe_error(self, probe: str, error: str) -> None:
        if self.sealed:
            raise RecordSealedError(f"{self.source.value} record is sealed")
        self.probe_errors.append({"probe": probe, "error": error})

    def seal(self) -> None:
        """Close the pass: append the trailing summary entry and freeze."""
        if self.sealed:
            return
        total = self.issue_count
        self.items.append(Finding(
            type=SUMMARY_TYPE,
            severity=Severity.LOW,
            description=f"{total} issue(s) detected",
        ))
        self.sealed = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "source": self.source.value,
            "items": [f.to_dict() for f in self.items],
            "issue_count": self.issue_count,
            "probe_errors": list(self.probe_errors),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FindingsRecord":
        return cls(
            source=SamplerName(raw["source"]),
            items=[Finding.from_dict(i) for i in raw.get("items", [])],
            probe_errors=list(raw.get("probe_errors") or []),
            timestamp=raw.get("timestamp", ""),
            sealed=True,
        )


# ── Exceptions ───────────────────────────────────────────────────────────────


@dataclass
class SystemSnapshot:
    """Best-effort host state at the moment of a crash."""

    load: str = UNKNOWN
    memory_pct: str = UNKNOWN
    process_count: str = UNKNOWN
    disk_pct: str = UNKNOWN


@dataclass
class ExceptionRecord:
    """Documentation of an unexpected sampler crash (never a Finding)."""

    error_context: str
    failed_operation: str
    error_details: str
    system_snapshot: SystemSnapshot = field(default_factory=SystemSnapshot)
    analysis_request: str = (
        "This operation failed. Analyze what went wrong and suggest solutions. "
        "Write a diagnostic report but do not assume you can fix it automatically."
    )
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ExceptionRecord":
        return cls(
            error_context=raw["error_context"],
            failed_operation=raw["failed_operation"],
            error_details=raw.get("error_details", ""),
            system_snapshot=SystemSnapshot(**(raw.get("system_snapshot") or {})),
            analysis_request=raw.get("analysis_request", ""),
            timestamp=raw.get("timestamp", ""),
        )


# ── Dispatch ─────────────────────────────────────────────────────────────────


@dataclass
class DispatchRecord:
    """Audit record of one agent launch. Written before dispatch() returns."""

    kind: DispatchKind
    context: str
    pid: int
    reference_file: str
    task: str = ""
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DispatchRecord":
        return cls(
            kind=DispatchKind(raw["kind"]),
            context=raw.get("context", ""),
            pid=int(raw.get("pid", 0)),
            reference_file=raw.get("reference_file", ""),
            task=raw.get("task", ""),
            timestamp=raw.get("timestamp", ""),
        )


# ── Performance ──────────────────────────────────────────────────────────────


@dataclass
class PerformanceSample:
    """One performance history entry."""

    load: float | None
    cpu_temperature: float | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "cpu_temperature": self.cpu_temperature, "load": self.load}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PerformanceSample":
        return cls(
            load=raw.get("load"),
            cpu_temperature=raw.get("cpu_temperature"),
            timestamp=raw.get("timestamp", ""),
        )
