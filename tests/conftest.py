"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from hostwatch.autonomy.dispatcher import DispatchError
from hostwatch.config import Settings
from hostwatch.health.models import DispatchKind, DispatchRecord, Finding, SamplerName, Severity
from hostwatch.health.probes import Probe, ProbeResult
from hostwatch.health.samplers import SamplerOutcome
from hostwatch.health.store import FindingsStore


class FakeDispatcher:
    """Records dispatches instead of spawning agents."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[DispatchRecord] = []
        self._next_pid = 1000

    def dispatch(self, kind, context, reference_file, task) -> DispatchRecord:
        if self.fail:
            raise DispatchError("agent CLI not installed")
        self._next_pid += 1
        record = DispatchRecord(
            kind=kind, context=context, pid=self._next_pid,
            reference_file=str(reference_file), task=task,
        )
        self.calls.append(record)
        return record

    def of_kind(self, kind: DispatchKind) -> list[DispatchRecord]:
        return [c for c in self.calls if c.kind == kind]


class StubProbe(Probe):
    """Probe returning a canned result, or raising."""

    def __init__(self, name: str, result: ProbeResult | None = None, exc: Exception | None = None) -> None:
        super().__init__(name, f"{name}_issue", Severity.HIGH)
        self.result = result or ProbeResult.ok()
        self.exc = exc
        self.calls = 0

    def run(self) -> ProbeResult:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return self.result


class StubSampler:
    """Sampler returning a fixed issue count, or raising."""

    def __init__(
        self,
        name: SamplerName,
        issues: int = 0,
        exc: Exception | None = None,
        record_path: Path | None = None,
    ) -> None:
        self.name = name
        self.issues = issues
        self.exc = exc
        self.record_path = record_path or Path(f"/tmp/{name.value}_findings.json")
        self.calls = 0

    @property
    def operation(self) -> str:
        return f"Stub{self.name.value.title()}Sampler.run"

    def run(self) -> SamplerOutcome:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return SamplerOutcome(source=self.name, issue_count=self.issues, record_path=self.record_path)


def issue(name: str, finding_type: str = "", severity: Severity = Severity.HIGH) -> ProbeResult:
    return ProbeResult.issue(Finding(finding_type or f"{name}_issue", severity, f"{name} is unhappy"))


@pytest.fixture
def store(tmp_path: Path) -> FindingsStore:
    return FindingsStore(tmp_path / "findings", tmp_path / "performance_history.jsonl")


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        state_dir=tmp_path / "state",
        probes_file=str(tmp_path / "probes.yaml"),
        claude_cli_path="claude-test",
    )
