"""Escalation policy — threshold-gated remediation for aggregated issues."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from ..health.models import DispatchKind, DispatchRecord
from .dispatcher import AgentDispatcher, DispatchError

logger = logging.getLogger(__name__)

REMEDIATION_TASK = "fix the detected system health issues"


class Escalation(str, Enum):
    REMEDIATE = "remediate"
    LOG_ONLY = "log_only"
    NONE = "none"


class EscalationPolicy:
    """Maps the cycle's Health+Service issue total to at most one remediation."""

    def __init__(self, dispatcher: AgentDispatcher, threshold: int = 3) -> None:
        self.dispatcher = dispatcher
        self.threshold = threshold

    def decide(self, total: int) -> Escalation:
        if total >= self.threshold:
            return Escalation.REMEDIATE
        if total > 0:
            return Escalation.LOG_ONLY
        return Escalation.NONE

    def apply(self, total: int, record_paths: list[Path]) -> tuple[Escalation, DispatchRecord | None]:
        decision = self.decide(total)

        if decision == Escalation.LOG_ONLY:
            logger.warning("Issues detected but below threshold: %d/%d", total, self.threshold)
            return decision, None
        if decision == Escalation.NONE:
            return decision, None

        logger.warning(
            "THRESHOLD EXCEEDED: %d issues detected, spawning remediation agent", total,
        )
        if not record_paths:
            logger.error("No findings records to reference, skipping remediation")
            return decision, None

        primary, *others = record_paths
        task = REMEDIATION_TASK
        if others:
            task += " (related findings: " + ", ".join(str(p) for p in others) + ")"
        try:
            record = self.dispatcher.dispatch(DispatchKind.REMEDIATION, "system_health", primary, task)
        except DispatchError as e:
            logger.error("Failed to spawn remediation agent: %s", e)
            return decision, None
        return decision, record
