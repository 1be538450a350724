"""Tests for the findings store."""

from __future__ import annotations

import json
from pathlib import Path

from hostwatch.health.models import (
    DispatchKind,
    DispatchRecord,
    ExceptionRecord,
    FindingsRecord,
    PerformanceSample,
    SamplerName,
)
from hostwatch.health.store import FindingsStore


class TestRecords:
    def test_creates_directories(self, tmp_path: Path) -> None:
        FindingsStore(tmp_path / "a" / "findings", tmp_path / "b" / "perf.jsonl")
        assert (tmp_path / "a" / "findings").is_dir()
        assert (tmp_path / "b").is_dir()

    def test_same_second_records_never_collide(self, store: FindingsStore) -> None:
        paths = []
        for _ in range(50):
            record = FindingsRecord(source=SamplerName.HEALTH)
            record.seal()
            paths.append(store.write_findings(record))
        assert len(set(paths)) == 50
        assert all(p.exists() for p in paths)

    def test_names_carry_prefix(self, store: FindingsStore) -> None:
        f = FindingsRecord(source=SamplerName.SERVICES)
        f.seal()
        assert store.write_findings(f).name.startswith("services_findings_")
        assert store.write_exception(ExceptionRecord("c", "o", "d")).name.startswith("exception_")
        d = DispatchRecord(kind=DispatchKind.REMEDIATION, context="c", pid=1, reference_file="x")
        assert store.write_dispatch(d).name.startswith("dispatch_remediation_")

    def test_written_json_matches_record(self, store: FindingsStore) -> None:
        record = ExceptionRecord("health_monitoring", "HealthSampler.run", "OSError: disk full")
        path = store.write_exception(record)
        assert store.read(path) == record.to_dict()
        assert json.loads(path.read_text())["failed_operation"] == "HealthSampler.run"

    def test_list_records_by_prefix(self, store: FindingsStore) -> None:
        store.write_exception(ExceptionRecord("c", "o", "d"))
        store.write_exception(ExceptionRecord("c", "o", "d"))
        d = DispatchRecord(kind=DispatchKind.DIAGNOSTIC, context="c", pid=1, reference_file="x")
        store.write_dispatch(d)
        assert len(store.list_records("exception")) == 2
        assert len(store.list_records()) == 3
        assert len(store.list_records(limit=1)) == 1


class TestPerformanceLog:
    def test_append_returns_cumulative_count(self, store: FindingsStore) -> None:
        counts = [store.append_performance(PerformanceSample(load=float(i))) for i in range(3)]
        assert counts == [1, 2, 3]
        assert store.performance_count() == 3

    def test_count_from_existing_file(self, tmp_path: Path) -> None:
        log = tmp_path / "perf.jsonl"
        log.write_text('{"load": 1.0}\n{"load": 2.0}\n\n')
        store = FindingsStore(tmp_path / "findings", log)
        assert store.performance_count() == 2
        assert store.append_performance(PerformanceSample(load=3.0)) == 3

    def test_tail(self, store: FindingsStore) -> None:
        for i in range(15):
            store.append_performance(PerformanceSample(load=float(i)))
        tail = store.performance_tail(10)
        assert [s.load for s in tail] == [float(i) for i in range(5, 15)]

    def test_tail_skips_malformed_lines(self, tmp_path: Path) -> None:
        log = tmp_path / "perf.jsonl"
        log.write_text('{"load": 1.0}\nnot json\n{"load": 2.0}\n')
        store = FindingsStore(tmp_path / "findings", log)
        assert [s.load for s in store.performance_tail()] == [1.0, 2.0]

    def test_tail_empty(self, store: FindingsStore) -> None:
        assert store.performance_tail() == []
