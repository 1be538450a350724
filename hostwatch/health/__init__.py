"""Health subsystem — probes, samplers, records and their store."""

from .models import (
    DispatchKind,
    DispatchRecord,
    ExceptionRecord,
    Finding,
    FindingsRecord,
    PerformanceSample,
    SamplerName,
    Severity,
)
from .probes import Availability, Probe, ProbeError, ProbeResult
from .samplers import HealthSampler, PerformanceSampler, SamplerOutcome, ServiceSampler
from .store import FindingsStore
