"""Findings store — one JSON file per event plus an append-only performance log.

Files are named ``<prefix>_<UTC timestamp>_<pid>_<counter>.json`` and opened
exclusively, so two records produced in the same second never overwrite
each other.
"""

from __future__ import annotations

import itertools
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import (
    DispatchRecord,
    ExceptionRecord,
    FindingsRecord,
    PerformanceSample,
)

logger = logging.getLogger(__name__)

FINDINGS_PREFIX = "{source}_findings"
EXCEPTION_PREFIX = "exception"
DISPATCH_PREFIX = "dispatch_{kind}"


class FindingsStore:
    """Durable, append-oriented persistence for monitor records."""

    def __init__(self, findings_dir: Path, performance_log: Path) -> None:
        self.findings_dir = findings_dir
        self.performance_log = performance_log
        self.findings_dir.mkdir(parents=True, exist_ok=True)
        self.performance_log.parent.mkdir(parents=True, exist_ok=True)
        self._counter = itertools.count(1)
        self._perf_count: int | None = None

    # ── Records ──────────────────────────────────────────────────────────

    def write_findings(self, record: FindingsRecord) -> Path:
        return self._write(FINDINGS_PREFIX.format(source=record.source.value), record.to_dict())

    def write_exception(self, record: ExceptionRecord) -> Path:
        return self._write(EXCEPTION_PREFIX, record.to_dict())

    def write_dispatch(self, record: DispatchRecord) -> Path:
        return self._write(DISPATCH_PREFIX.format(kind=record.kind.value), record.to_dict())

    def read(self, path: Path) -> dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    def list_records(self, prefix: str = "", limit: int | None = None) -> list[Path]:
        """Record files, newest first."""
        paths = sorted(
            self.findings_dir.glob(f"{prefix}*.json"),
            key=lambda p: (p.stat().st_mtime_ns, p.name),
            reverse=True,
        )
        return paths[:limit] if limit else paths

    def _write(self, prefix: str, payload: dict[str, Any]) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        while True:
            path = self.findings_dir / f"{prefix}_{stamp}_{os.getpid()}_{next(self._counter):06d}.json"
            try:
                with path.open("x", encoding="utf-8") as fh:
                    fh.write(body)
                    fh.flush()
                    os.fsync(fh.fileno())
            except FileExistsError:
                continue
            logger.debug("Wrote %s", path.name)
            return path

    # ── Performance log ──────────────────────────────────────────────────

    def append_performance(self, sample: PerformanceSample) -> int:
        """Append one sample and return the cumulative sample count."""
        count = self.performance_count()
        with self.performance_log.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(sample.to_dict()) + "\n")
        self._perf_count = count + 1
        return self._perf_count

    def performance_count(self) -> int:
        if self._perf_count is None:
            if not self.performance_log.exists():
                self._perf_count = 0
            else:
                with self.performance_log.open(encoding="utf-8") as fh:
                    self._perf_count = sum(1 for line in fh if line.strip())
        return self._perf_count

    def performance_tail(self, n: int = 10) -> list[PerformanceSample]:
        if not self.performance_log.exists():
            return []
        lines = [
            line for line in self.performance_log.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        samples = []
        for line in lines[-n:]:
            try:
                samples.append(PerformanceSample.from_dict(json.loads(line)))
            except (json.JSONDecodeError, TypeError):
                logger.warning("Skipping malformed performance line: %s", line[:80])
        return samples
