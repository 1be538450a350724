"""Samplers — named passes over a fixed, ordered set of probes.

- HealthSampler: process presence, display, load, memory. Its issues only
  reach the agent through the shared escalation threshold.
- ServiceSampler: agent overflow, state directory. Every issue dispatches a
  remediation agent immediately, without waiting for the threshold. This
  differs from the health pass on purpose and is kept as two separate paths.
- PerformanceSampler: appends to the performance history and requests a
  trend analysis every ``trend_every`` samples.

Each probe is isolated: a crashing probe is logged and listed under
``probe_errors`` while the rest of the pass keeps running. Failures outside
a probe (e.g. the record cannot be written) escape ``run`` and are handled
by the ExceptionHandler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .models import (
    DispatchError,
    DispatchKind,
    Finding,
    FindingsRecord,
    PerformanceSample,
    SamplerName,
)
from .probes import Probe, read_cpu_temperature, read_load_average
from .store import FindingsStore

if TYPE_CHECKING:
    from ..autonomy.dispatcher import AgentDispatcher

logger = logging.getLogger(__name__)

# finding type → (dispatch context, task) for immediate service remediation
SERVICE_REMEDIATIONS: dict[str, tuple[str, str]] = {
    "agent_overflow": (
        "agent_cleanup",
        "Clean up excess Claude agent processes using safe termination methods",
    ),
    "framework_missing": (
        "framework_repair",
        "Restore the monitor state directory structure",
    ),
}


@dataclass
class SamplerOutcome:
    """What a sampler invocation produced for the current cycle."""

    source: SamplerName
    issue_count: int = 0
    record_path: Path | None = None
    findings: list[Finding] = field(default_factory=list)
    crashed: bool = False

    @classmethod
    def crash(cls, source: SamplerName) -> "SamplerOutcome":
        return cls(source=source, crashed=True)


class Sampler:
    """Runs probes in order and persists one Findings Record per invocation."""

    name: SamplerName

    def __init__(self, probes: list[Probe], store: FindingsStore) -> None:
        self.probes = list(probes)
        self.store = store

    @property
    def operation(self) -> str:
        return f"{type(self).__name__}.run"

    def run(self) -> SamplerOutcome:
        logger.info("MONITORING: %s pass (%d probes)", self.name.value, len(self.probes))
        record = FindingsRecord(source=self.name)

        for probe in self.probes:
            try:
                result = probe.run()
            except Exception as e:
                logger.exception("Probe %s crashed", probe.name)
                record.add_probe_error(probe.name, f"{type(e).__name__}: {e}")
                continue

            if result.skipped:
                continue
            if result.finding is not None:
                record.add(result.finding)
                logger.warning("ISSUE: %s", result.finding.description)
            else:
                logger.info("OK: %s", probe.name)

        record.seal()
        path = self.store.write_findings(record)
        findings = [f for f in record.items if not f.is_summary]
        self.after_record(findings, path)

        return SamplerOutcome(
            source=self.name,
            issue_count=record.issue_count,
            record_path=path,
            findings=findings,
        )

    def after_record(self, findings: list[Finding], path: Path) -> None:
        """Hook run once the record is durable."""


class HealthSampler(Sampler):
    name = SamplerName.HEALTH


class ServiceSampler(Sampler):
    name = SamplerName.SERVICES

    def __init__(
        self,
        probes: list[Probe],
        store: FindingsStore,
        dispatcher: AgentDispatcher,
    ) -> None:
        super().__init__(probes, store)
        self.dispatcher = dispatcher

    def after_record(self, findings: list[Finding], path: Path) -> None:
        # Immediate remediation per issue, independent of the threshold.
        for finding in findings:
            context, task = SERVICE_REMEDIATIONS.get(
                finding.type,
                (f"{finding.type}_repair", f"Resolve the {finding.type} issue: {finding.description}"),
            )
            try:
                self.dispatcher.dispatch(DispatchKind.REMEDIATION, context, path, task)
            except DispatchError as e:
                logger.error("Failed to dispatch %s agent: %s", context, e)


class PerformanceSampler:
    """Appends one Performance Sample per invocation; no findings, no issues."""

    name = SamplerName.PERFORMANCE

    def __init__(
        self,
        store: FindingsStore,
        dispatcher: AgentDispatcher,
        trend_every: int = 10,
        trend_window: int = 10,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.trend_every = trend_every
        self.trend_window = trend_window

    @property
    def operation(self) -> str:
        return f"{type(self).__name__}.run"

    def run(self) -> SamplerOutcome:
        logger.info("MONITORING: performance trends")
        sample = PerformanceSample(load=read_load_average(), cpu_temperature=read_cpu_temperature())
        count = self.store.append_performance(sample)

        if count > 0 and count % self.trend_every == 0:
            logger.info("ANALYSIS: %d samples recorded, requesting trend analysis", count)
            try:
                self.dispatcher.dispatch(
                    DispatchKind.REMEDIATION,
                    "performance_analysis",
                    self.store.performance_log,
                    self.trend_task(),
                )
            except DispatchError as e:
                logger.error("Failed to dispatch performance analysis agent: %s", e)

        return SamplerOutcome(source=self.name, record_path=self.store.performance_log)

    def trend_task(self) -> str:
        """Task text naming the window of samples the agent should analyze."""
        window = self.store.performance_tail(self.trend_window)
        task = (
            "Analyze performance trends and recommend optimizations "
            f"using the last {self.trend_window} data points"
        )
        if not window:
            return task
        task += f" (from {window[0].timestamp or 'unknown'} to {window[-1].timestamp or 'unknown'}"
        loads = [s.load for s in window if s.load is not None]
        if loads:
            task += f", peak load {max(loads):.2f}"
        return task + ")"
