"""Agent dispatcher — fire-and-forget launches of the Claude Code CLI.

A dispatch spawns ``claude -p <prompt>`` in its own session and returns as
soon as the Dispatch Record is on disk. The spawned agent may run for a
human-scale duration, so the monitor never waits on it, reads its output,
retries it, or cancels it. Cancellation of launched agents is unsupported.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from ..health.models import DispatchError, DispatchKind, DispatchRecord
from ..health.store import FindingsStore

logger = logging.getLogger(__name__)

DIAGNOSTIC_PROMPT = (
    "DIAGNOSTIC MODE: Analyze {reference} for: {task}. "
    "Create a detailed diagnostic report in {diagnostics_dir} explaining what went "
    "wrong and possible causes. Do NOT attempt to fix anything - focus only on "
    "understanding the problem."
)

REMEDIATION_PROMPT = (
    "Analyze findings in {reference} and {task}. "
    "Document the solution in {solutions_dir}."
)


class AgentDispatcher:
    """Launches detached agent processes and records every launch.

    Lifecycle:
        dispatcher = AgentDispatcher(store, claude_cli_path="claude", ...)
        record = dispatcher.dispatch(DispatchKind.REMEDIATION, "system_health", path, "Fix ...")
    """

    def __init__(
        self,
        store: FindingsStore,
        claude_cli_path: str = "claude",
        diagnostics_dir: Path | None = None,
        solutions_dir: Path | None = None,
        skip_permissions: bool = True,
        cwd: Path | None = None,
    ) -> None:
        self.store = store
        self.claude_cli_path = claude_cli_path
        self.diagnostics_dir = diagnostics_dir or store.findings_dir.parent / "diagnostics"
        self.solutions_dir = solutions_dir or store.findings_dir.parent / "solutions"
        self.skip_permissions = skip_permissions
        self.cwd = cwd

    def dispatch(
        self,
        kind: DispatchKind,
        context: str,
        reference_file: Path | str,
        task: str,
    ) -> DispatchRecord:
        """Launch an agent in the background and return its Dispatch Record."""
        prompt = self.build_prompt(kind, reference_file, task)
        cmd = self.build_command(prompt)

        output_dir = self.diagnostics_dir if kind == DispatchKind.DIAGNOSTIC else self.solutions_dir
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DispatchError(f"Could not prepare {output_dir} for {context}: {e}") from e

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=str(self.cwd) if self.cwd else None,
                start_new_session=True,
            )
        except OSError as e:
            raise DispatchError(f"Could not launch agent '{self.claude_cli_path}': {e}") from e

        record = DispatchRecord(
            kind=kind,
            context=context,
            pid=proc.pid,
            reference_file=str(reference_file),
            task=task,
        )
        try:
            self.store.write_dispatch(record)
        except OSError as e:
            # No launch without a record
            proc.kill()
            raise DispatchError(f"Could not record dispatch for {context}: {e}") from e

        logger.info(
            "%s agent spawned with PID %d for %s",
            kind.value.capitalize(), proc.pid, context,
        )
        return record

    def build_prompt(self, kind: DispatchKind, reference_file: Path | str, task: str) -> str:
        if kind == DispatchKind.DIAGNOSTIC:
            return DIAGNOSTIC_PROMPT.format(
                reference=reference_file, task=task, diagnostics_dir=self.diagnostics_dir,
            )
        return REMEDIATION_PROMPT.format(
            reference=reference_file, task=task, solutions_dir=self.solutions_dir,
        )

    def build_command(self, prompt: str) -> list[str]:
        cmd = [self.claude_cli_path, "-p", prompt]
        if self.skip_permissions:
            cmd.append("--dangerously-skip-permissions")
        return cmd
