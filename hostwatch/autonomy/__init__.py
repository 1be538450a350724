"""Autonomy subsystem — exception handling, escalation, dispatch, scheduling."""

from .dispatcher import AgentDispatcher, DispatchError
from .escalation import Escalation, EscalationPolicy
from .exceptions import ExceptionHandler
from .scheduler import CycleState, Scheduler, SchedulerState, compute_delay
