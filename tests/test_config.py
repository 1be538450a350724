"""Tests for Settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hostwatch.config import Settings


class TestSettings:
    def test_derived_paths(self, tmp_path: Path) -> None:
        cfg = Settings(state_dir=tmp_path)
        assert cfg.findings_dir == tmp_path / "findings"
        assert cfg.performance_log == tmp_path / "performance_history.jsonl"
        assert cfg.log_file == tmp_path / "autonomous-monitoring.log"

    def test_state_dir_expands_home(self) -> None:
        cfg = Settings(state_dir="~/watch")
        assert cfg.state_dir == Path.home() / "watch"

    def test_log_level_normalised(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ISSUE_THRESHOLD", "7")
        assert Settings().issue_threshold == 7

    @pytest.mark.parametrize(
        "field",
        [
            "health_every",
            "service_every",
            "performance_every",
            "trend_every",
            "trend_window",
            "max_consecutive_failures",
            "issue_threshold",
        ],
    )
    def test_cadences_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_zero_cadence_from_env_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HEALTH_EVERY", "0")
        with pytest.raises(ValidationError):
            Settings()
