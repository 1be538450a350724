"""Tests for the exception handler — crashes route to diagnosis only."""

from __future__ import annotations

import json
from collections import namedtuple
from pathlib import Path
from unittest.mock import patch

from conftest import FakeDispatcher, StubSampler
from hostwatch.autonomy.dispatcher import AgentDispatcher
from hostwatch.autonomy.exceptions import ExceptionHandler, capture_system_snapshot
from hostwatch.health.models import DispatchKind, SamplerName
from hostwatch.health.store import FindingsStore

DiskUsage = namedtuple("DiskUsage", "total used free")


class TestExceptionHandler:
    def test_healthy_sampler_passes_through(self, store: FindingsStore, dispatcher: FakeDispatcher) -> None:
        handler = ExceptionHandler(store, dispatcher)
        outcome = handler.run(StubSampler(SamplerName.HEALTH, issues=2))
        assert outcome.issue_count == 2
        assert not outcome.crashed
        assert dispatcher.calls == []
        assert store.list_records("exception") == []

    def test_crash_yields_one_record_and_one_diagnostic(
        self, store: FindingsStore, dispatcher: FakeDispatcher,
    ) -> None:
        handler = ExceptionHandler(store, dispatcher)
        outcome = handler.run(StubSampler(SamplerName.HEALTH, exc=RuntimeError("probe table corrupt")))

        assert outcome.crashed
        assert outcome.issue_count == 0
        assert outcome.source == SamplerName.HEALTH

        records = store.list_records("exception")
        assert len(records) == 1
        data = json.loads(records[0].read_text())
        assert data["error_context"] == "health_monitoring"
        assert data["failed_operation"] == "StubHealthSampler.run"
        assert data["error_details"] == "RuntimeError: probe table corrupt"
        assert set(data["system_snapshot"]) == {"load", "memory_pct", "process_count", "disk_pct"}

        assert len(dispatcher.calls) == 1
        call = dispatcher.calls[0]
        assert call.kind == DispatchKind.DIAGNOSTIC
        assert call.reference_file == str(records[0])
        assert "Do not attempt automatic fixes" in call.task
        assert dispatcher.of_kind(DispatchKind.REMEDIATION) == []

    def test_no_retry_in_same_call(self, store: FindingsStore, dispatcher: FakeDispatcher) -> None:
        sampler = StubSampler(SamplerName.SERVICES, exc=OSError("boom"))
        ExceptionHandler(store, dispatcher).run(sampler)
        assert sampler.calls == 1

    def test_dispatch_failure_uses_fallback(self, store: FindingsStore) -> None:
        handler = ExceptionHandler(store, FakeDispatcher(fail=True))
        outcome = handler.run(StubSampler(SamplerName.HEALTH, exc=RuntimeError("x")))
        assert outcome.crashed
        assert handler.fallback_failures == 1
        assert len(store.list_records("exception")) == 1

    def test_record_write_failure_skips_dispatch(self, store: FindingsStore, dispatcher: FakeDispatcher) -> None:
        handler = ExceptionHandler(store, dispatcher)
        with patch.object(store, "write_exception", side_effect=OSError("read-only fs")):
            outcome = handler.run(StubSampler(SamplerName.HEALTH, exc=RuntimeError("x")))
        assert outcome.crashed
        assert dispatcher.calls == []
        assert handler.fallback_failures == 1

    def test_unwritable_diagnostics_dir_uses_fallback(self, store: FindingsStore, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        agent = AgentDispatcher(store, diagnostics_dir=blocker / "diagnostics")
        handler = ExceptionHandler(store, agent)

        with patch("hostwatch.autonomy.dispatcher.subprocess.Popen") as popen:
            outcome = handler.run(StubSampler(SamplerName.HEALTH, exc=RuntimeError("x")))

        assert outcome.crashed
        assert handler.fallback_failures == 1
        popen.assert_not_called()
        assert len(store.list_records("exception")) == 1


class TestSystemSnapshot:
    def test_fields_fail_independently(self) -> None:
        with patch("hostwatch.autonomy.exceptions.read_load_average", side_effect=RuntimeError("no")), \
             patch("hostwatch.autonomy.exceptions.read_memory_percent", return_value=42.0), \
             patch("hostwatch.autonomy.exceptions.count_processes", return_value=None), \
             patch("hostwatch.autonomy.exceptions.shutil.disk_usage", return_value=DiskUsage(200, 100, 100)):
            snap = capture_system_snapshot()
        assert snap.load == "unknown"
        assert snap.memory_pct == "42.0"
        assert snap.process_count == "unknown"
        assert snap.disk_pct == "50%"

    def test_everything_broken_still_returns(self) -> None:
        with patch("hostwatch.autonomy.exceptions.read_load_average", side_effect=OSError), \
             patch("hostwatch.autonomy.exceptions.read_memory_percent", side_effect=OSError), \
             patch("hostwatch.autonomy.exceptions.count_processes", side_effect=OSError), \
             patch("hostwatch.autonomy.exceptions.shutil.disk_usage", side_effect=OSError):
            snap = capture_system_snapshot()
        assert (snap.load, snap.memory_pct, snap.process_count, snap.disk_pct) == ("unknown",) * 4
