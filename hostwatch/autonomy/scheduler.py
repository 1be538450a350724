"""Monitoring scheduler — the control loop.

States:  IDLE → RUNNING → SLEEPING → (RECOVERING) → RUNNING …  → TERMINATED

Each cycle runs the health and service passes (and the performance pass
every ``performance_every`` cycles) through the ExceptionHandler, escalates
the Health+Service issue total, then sleeps for an adaptive delay.

A crash that escapes the cycle bumps ``consecutive_failures``: short sleep
below the limit, one long recovery sleep at the limit. Failing to perform
the recovery sleep is the only fatal path (exit status 1). A shutdown
request ends the loop at the next sleep with exit status 0; launched agents
are left running.

The sleep function is injectable so tests can drive the loop without time.

Lifecycle:
    scheduler = Scheduler.from_settings(settings)
    exit_code = await scheduler.run()
    ...
    scheduler.request_stop()   # from a signal handler
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..config import Settings
from ..health.registry import ProbeRegistry
from ..health.samplers import HealthSampler, PerformanceSampler, SamplerOutcome, ServiceSampler
from ..health.store import FindingsStore
from .dispatcher import AgentDispatcher
from .escalation import Escalation, EscalationPolicy
from .exceptions import ExceptionHandler

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SLEEPING = "sleeping"
    RECOVERING = "recovering"
    TERMINATED = "terminated"


@dataclass
class CycleState:
    """Loop counters. Owned by one Scheduler; lives as long as the process."""

    cycle_count: int = 0
    consecutive_failures: int = 0


@dataclass
class CycleReport:
    cycle: int
    total_issues: int
    escalation: Escalation
    delay: float
    outcomes: list[SamplerOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "cycle": self.cycle,
            "total_issues": self.total_issues,
            "escalation": self.escalation.value,
            "delay": self.delay,
            "outcomes": [
                {
                    "source": o.source.value,
                    "issue_count": o.issue_count,
                    "crashed": o.crashed,
                    "record": str(o.record_path) if o.record_path else None,
                }
                for o in self.outcomes
            ],
        }


def compute_delay(
    issues: int,
    threshold: int = 3,
    busy: float = 10,
    warn: float = 20,
    idle: float = 30,
    minimum: float = 5,
    maximum: float = 300,
) -> float:
    """Check more often when things look bad; always within [minimum, maximum]."""
    if issues >= threshold:
        delay = busy
    elif issues > 0:
        delay = warn
    else:
        delay = idle
    return max(minimum, min(maximum, delay))


class Scheduler:
    """Sequences the samplers each cycle and owns the recovery policy."""

    def __init__(
        self,
        health: HealthSampler,
        services: ServiceSampler,
        performance: PerformanceSampler | None,
        handler: ExceptionHandler,
        policy: EscalationPolicy,
        *,
        health_every: int = 1,
        service_every: int = 1,
        performance_every: int = 5,
        max_failures: int = 5,
        busy_sleep: float = 10,
        warn_sleep: float = 20,
        idle_sleep: float = 30,
        min_sleep: float = 5,
        max_sleep: float = 300,
        failure_sleep: float = 15,
        recovery_sleep: float = 60,
        sleep: Sleeper | None = None,
    ) -> None:
        self.health = health
        self.services = services
        self.performance = performance
        self.handler = handler
        self.policy = policy
        self.health_every = health_every
        self.service_every = service_every
        self.performance_every = performance_every
        self.max_failures = max_failures
        self.busy_sleep = busy_sleep
        self.warn_sleep = warn_sleep
        self.idle_sleep = idle_sleep
        self.min_sleep = min_sleep
        self.max_sleep = max_sleep
        self.failure_sleep = failure_sleep
        self.recovery_sleep = recovery_sleep
        self._sleep: Sleeper = sleep or self._interruptible_sleep

        self.state = CycleState()
        self.status = SchedulerState.IDLE
        self.last_report: CycleReport | None = None
        self._stop_requested = False
        self._stop_event: asyncio.Event | None = None

    @classmethod
    def from_settings(cls, settings: Settings, sleep: Sleeper | None = None) -> "Scheduler":
        """Wire store, dispatcher, samplers and policy from configuration."""
        store = FindingsStore(settings.findings_dir, settings.performance_log)
        dispatcher = AgentDispatcher(
            store,
            claude_cli_path=settings.claude_cli_path,
            diagnostics_dir=settings.diagnostics_dir,
            solutions_dir=settings.solutions_dir,
            skip_permissions=settings.agent_skip_permissions,
            cwd=settings.state_dir,
        )
        registry = ProbeRegistry(settings, Path(settings.probes_file))
        return cls(
            health=HealthSampler(registry.health_probes(), store),
            services=ServiceSampler(registry.service_probes(), store, dispatcher),
            performance=PerformanceSampler(
                store, dispatcher,
                trend_every=settings.trend_every,
                trend_window=settings.trend_window,
            ),
            handler=ExceptionHandler(store, dispatcher),
            policy=EscalationPolicy(dispatcher, threshold=settings.issue_threshold),
            health_every=settings.health_every,
            service_every=settings.service_every,
            performance_every=settings.performance_every,
            max_failures=settings.max_consecutive_failures,
            busy_sleep=settings.busy_sleep_seconds,
            warn_sleep=settings.warn_sleep_seconds,
            idle_sleep=settings.idle_sleep_seconds,
            min_sleep=settings.min_sleep_seconds,
            max_sleep=settings.max_sleep_seconds,
            failure_sleep=settings.failure_sleep_seconds,
            recovery_sleep=settings.recovery_sleep_seconds,
            sleep=sleep,
        )

    # -- public API ------------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the loop to terminate at its next suspension point."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> int:
        """Run cycles until stopped. Returns the process exit status."""
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()

        logger.info(
            "STARTING: autonomous monitoring (threshold=%d, max_failures=%d)",
            self.policy.threshold, self.max_failures,
        )

        while not self._stop_requested:
            self.status = SchedulerState.RUNNING
            try:
                report = self.run_cycle()
                self.state.consecutive_failures = 0
                self.status = SchedulerState.SLEEPING
                await self._sleep(report.delay)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.state.consecutive_failures += 1
                logger.exception(
                    "CRITICAL ERROR: monitoring cycle %d failed completely (failure %d/%d)",
                    self.state.cycle_count, self.state.consecutive_failures, self.max_failures,
                )
                if not await self._recover():
                    self.status = SchedulerState.TERMINATED
                    return 1

        self.status = SchedulerState.TERMINATED
        logger.info("SHUTDOWN: monitoring stopped after %d cycles", self.state.cycle_count)
        return 0

    def run_cycle(self) -> CycleReport:
        """One monitoring cycle. Crashes outside the samplers propagate."""
        self.state.cycle_count += 1
        cycle = self.state.cycle_count
        logger.info("CYCLE %d: starting monitoring cycle", cycle)

        counted: list[SamplerOutcome] = []
        outcomes: list[SamplerOutcome] = []

        if cycle % self.health_every == 0:
            counted.append(self.handler.run(self.health))
        if cycle % self.service_every == 0:
            counted.append(self.handler.run(self.services))
        outcomes.extend(counted)

        if self.performance is not None and cycle % self.performance_every == 0:
            outcomes.append(self.handler.run(self.performance))

        total = sum(o.issue_count for o in counted)
        record_paths = [o.record_path for o in counted if o.record_path is not None]
        escalation, _ = self.policy.apply(total, record_paths)

        delay = compute_delay(
            total,
            threshold=self.policy.threshold,
            busy=self.busy_sleep,
            warn=self.warn_sleep,
            idle=self.idle_sleep,
            minimum=self.min_sleep,
            maximum=self.max_sleep,
        )
        logger.info("CYCLE %d COMPLETE: %d total issues detected", cycle, total)
        logger.info("SLEEP: %.0f seconds until next cycle", delay)

        self.last_report = CycleReport(
            cycle=cycle,
            total_issues=total,
            escalation=escalation,
            delay=delay,
            outcomes=outcomes,
        )
        return self.last_report

    # -- internals -------------------------------------------------------------

    async def _recover(self) -> bool:
        """Back off after a crashed cycle. False means terminate."""
        if self.state.consecutive_failures < self.max_failures:
            try:
                await self._sleep(self.failure_sleep)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Short recovery sleep failed", exc_info=True)
            return True

        self.status = SchedulerState.RECOVERING
        logger.error("FATAL: too many consecutive failures, entering recovery mode")
        try:
            await self._sleep(self.recovery_sleep)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.critical("TERMINAL: recovery failed, terminating", exc_info=True)
            return False

        self.state.consecutive_failures = 0
        logger.info("RECOVERY: attempting to continue after failure recovery")
        return True

    async def _interruptible_sleep(self, seconds: float) -> None:
        if self._stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
