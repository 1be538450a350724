"""Exception handler — turns a sampler crash into diagnosis, never remediation.

Every sampler call goes through ``ExceptionHandler.run``. On a crash it:
1. captures a best-effort system snapshot,
2. writes an Exception Record,
3. dispatches a DIAGNOSTIC agent that is told not to fix anything,
4. returns a crashed outcome contributing zero issues (no same-cycle retry).

If writing the record or dispatching fails, the handler logs one CRITICAL
line and counts the failure. It never re-enters itself.
"""

from __future__ import annotations

import logging
import shutil
from typing import Protocol

from ..health.models import DispatchError, DispatchKind, ExceptionRecord, SamplerName, SystemSnapshot
from ..health.probes import count_processes, read_load_average, read_memory_percent
from ..health.samplers import SamplerOutcome
from ..health.store import FindingsStore
from .dispatcher import AgentDispatcher

logger = logging.getLogger(__name__)

DIAGNOSTIC_TASK = (
    "DIAGNOSTIC MODE: Analyze the failure in {operation}. Create a detailed diagnostic "
    "report. Do not attempt automatic fixes - focus on understanding and documenting "
    "the problem."
)


class RunnableSampler(Protocol):
    name: SamplerName

    @property
    def operation(self) -> str: ...

    def run(self) -> SamplerOutcome: ...


def capture_system_snapshot() -> SystemSnapshot:
    """Each field independently; a failing field stays "unknown"."""
    snapshot = SystemSnapshot()

    try:
        load = read_load_average()
        if load is not None:
            snapshot.load = f"{load:.2f}"
    except Exception:
        logger.debug("Snapshot: load unavailable", exc_info=True)

    try:
        mem = read_memory_percent()
        if mem is not None:
            snapshot.memory_pct = f"{mem:.1f}"
    except Exception:
        logger.debug("Snapshot: memory unavailable", exc_info=True)

    try:
        procs = count_processes(".")
        if procs is not None:
            snapshot.process_count = str(procs)
    except Exception:
        logger.debug("Snapshot: process count unavailable", exc_info=True)

    try:
        usage = shutil.disk_usage("/")
        snapshot.disk_pct = f"{usage.used * 100 / usage.total:.0f}%"
    except Exception:
        logger.debug("Snapshot: disk usage unavailable", exc_info=True)

    return snapshot


class ExceptionHandler:
    """Wraps sampler calls; converts crashes into Exception Records + diagnostics."""

    def __init__(self, store: FindingsStore, dispatcher: AgentDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.fallback_failures = 0

    def run(self, sampler: RunnableSampler) -> SamplerOutcome:
        try:
            return sampler.run()
        except Exception as exc:
            logger.exception("EXCEPTION: %s monitoring failed", sampler.name.value)
            self.handle(
                error_context=f"{sampler.name.value}_monitoring",
                failed_operation=sampler.operation,
                error_details=f"{type(exc).__name__}: {exc}",
            )
            return SamplerOutcome.crash(sampler.name)

    def handle(self, error_context: str, failed_operation: str, error_details: str) -> None:
        """Document the failure and launch a diagnostic-only agent."""
        record = ExceptionRecord(
            error_context=error_context,
            failed_operation=failed_operation,
            error_details=error_details,
            system_snapshot=capture_system_snapshot(),
        )
        try:
            path = self.store.write_exception(record)
        except OSError as e:
            self._fallback(error_context, f"exception record not written: {e}")
            return

        try:
            self.dispatcher.dispatch(
                DispatchKind.DIAGNOSTIC,
                error_context,
                path,
                DIAGNOSTIC_TASK.format(operation=failed_operation),
            )
        except DispatchError as e:
            self._fallback(error_context, f"diagnostic dispatch failed: {e}")
            return

        logger.info("Diagnostic agent launched for %s (%s)", error_context, path.name)

    def _fallback(self, error_context: str, reason: str) -> None:
        self.fallback_failures += 1
        logger.critical(
            "Unhandled second-order failure in %s: %s (total %d)",
            error_context, reason, self.fallback_failures,
        )
