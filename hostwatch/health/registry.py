"""Probe registry — loads probes.yaml and builds the probe sets.

The file is optional. Without it the health and services passes use the
built-in defaults derived from Settings.

    health:
      - {type: process, process: waybar}
      - {type: command, name: display, command: [hyprctl, monitors], finding_type: display_error}
      - {type: load, limit: 5.0}
      - {type: memory, limit: 90.0}
    services:
      - {type: count, pattern: claude-code, bound: 5}
      - {type: directory, path: ~/.claude}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..config import Settings
from .models import Severity
from .probes import (
    CommandHealthProbe,
    CountThresholdProbe,
    DirectoryPresenceProbe,
    LoadThresholdProbe,
    MemoryThresholdProbe,
    Probe,
    ProcessPresenceProbe,
)

logger = logging.getLogger(__name__)

PROBE_TYPES = ("process", "command", "load", "memory", "directory", "count")


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class ProbeDef:
    """Definition of a single probe from the registry file."""

    type: str  # process | command | load | memory | directory | count
    name: str = ""
    finding_type: str = ""
    severity: str = ""
    process: str = ""
    command: list[str] = field(default_factory=list)
    timeout: float = 5
    limit: float | None = None
    path: str = ""
    pattern: str = ""
    bound: int = 5


# ── Registry ─────────────────────────────────────────────────────────────────


class ProbeRegistry:
    """Loads and caches probe definitions for the health and services passes."""

    def __init__(self, settings: Settings, path: Path | None = None) -> None:
        self._settings = settings
        self._path = path or Path(settings.probes_file)
        self._health: list[ProbeDef] = []
        self._services: list[ProbeDef] = []
        self._loaded = False

    def load(self, force: bool = False) -> None:
        if self._loaded and not force:
            return

        self._health = default_health_defs(self._settings)
        self._services = default_service_defs(self._settings)
        self._loaded = True

        if not self._path.exists():
            logger.debug("No probe file at %s, using defaults", self._path)
            return

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to parse %s: %s (using defaults)", self._path, e)
            return

        if "health" in raw:
            self._health = _parse_defs(raw.get("health"))
        if "services" in raw:
            self._services = _parse_defs(raw.get("services"))
        logger.info(
            "Loaded %d health / %d service probes from %s",
            len(self._health), len(self._services), self._path,
        )

    def health_probes(self) -> list[Probe]:
        self.load()
        return [build_probe(d) for d in self._health]

    def service_probes(self) -> list[Probe]:
        self.load()
        return [build_probe(d) for d in self._services]


def default_health_defs(settings: Settings) -> list[ProbeDef]:
    """Process presence, display, load, memory — in that order."""
    defs = [ProbeDef(type="process", process=p) for p in settings.watched_processes]
    defs.append(ProbeDef(
        type="command",
        name="display",
        command=list(settings.display_command),
        finding_type="display_error",
        timeout=settings.display_timeout_seconds,
    ))
    defs.append(ProbeDef(type="load", limit=settings.load_threshold))
    defs.append(ProbeDef(type="memory", limit=settings.memory_threshold))
    return defs


def default_service_defs(settings: Settings) -> list[ProbeDef]:
    """Agent overflow, then state directory presence."""
    return [
        ProbeDef(
            type="count",
            pattern=settings.agent_process_pattern,
            bound=settings.max_agent_processes,
        ),
        ProbeDef(type="directory", path=str(settings.state_dir)),
    ]


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_defs(raw_list: Any) -> list[ProbeDef]:
    defs = []
    for entry in raw_list or []:
        try:
            defs.append(_parse_def(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed probe entry %r: %s", entry, e)
    return defs


def _parse_def(raw: dict[str, Any]) -> ProbeDef:
    probe_type = raw["type"]
    if probe_type not in PROBE_TYPES:
        raise ValueError(f"unknown probe type '{probe_type}'")
    command = raw.get("command") or []
    if isinstance(command, str):
        command = command.split()
    limit = raw.get("limit")
    return ProbeDef(
        type=probe_type,
        name=raw.get("name", ""),
        finding_type=raw.get("finding_type", ""),
        severity=raw.get("severity", ""),
        process=raw.get("process", ""),
        command=[str(c) for c in command],
        timeout=float(raw.get("timeout", 5)),
        limit=float(limit) if limit is not None else None,
        path=raw.get("path", ""),
        pattern=raw.get("pattern", ""),
        bound=int(raw.get("bound", 5)),
    )


def build_probe(d: ProbeDef) -> Probe:
    """Instantiate a Probe from its definition, keeping each variant's defaults."""
    kwargs: dict[str, Any] = {}
    if d.name:
        kwargs["name"] = d.name
    if d.finding_type:
        kwargs["finding_type"] = d.finding_type
    if d.severity:
        kwargs["severity"] = Severity(d.severity)

    if d.type == "process":
        return ProcessPresenceProbe(d.process, **kwargs)
    if d.type == "command":
        kwargs.setdefault("name", d.command[0] if d.command else "command")
        return CommandHealthProbe(command=d.command, timeout=d.timeout, **kwargs)
    if d.type == "load":
        return LoadThresholdProbe(limit=d.limit if d.limit is not None else 5.0, **kwargs)
    if d.type == "memory":
        return MemoryThresholdProbe(limit=d.limit if d.limit is not None else 90.0, **kwargs)
    if d.type == "directory":
        return DirectoryPresenceProbe(d.path, **kwargs)
    if d.type == "count":
        return CountThresholdProbe(d.pattern, bound=d.bound, **kwargs)
    raise ValueError(f"unknown probe type '{d.type}'")
