"""Completion notifications for HabitFocus.

The timer engine talks to a Notifier. The shipped HookNotifier plays a
notification by running the shell commands configured in hooks.yaml at the
workspace root, e.g.:

    on_work_complete:
      - paplay ~/sounds/bell.oga
      - command: notify-send "Break time"
        timeout: 5
    on_break_complete:
      - notify-send "Back to work"

Each command gets the notification context as JSON on stdin.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from habitcore.fileio import read_document
from habitcore.workspace import hooks_config_path, workspace_root

logger = logging.getLogger(__name__)


VALID_HOOK_POINTS = {
    "on_work_complete",
    "on_break_complete",
}

DEFAULT_TIMEOUT = 30
_OUTPUT_LIMIT = 4096


@dataclass
class HookResult:
    command: str
    hook_point: str
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def load_hooks_config(root: Path | None = None) -> dict[str, Any]:
    """Load hooks configuration from hooks.yaml ({} when absent)."""
    return read_document(hooks_config_path(root))


def _hook_entries(raw: Any) -> list[tuple[str, float]]:
    # An entry is a bare command string or {command, timeout}.
    if not isinstance(raw, list):
        return []
    entries = []
    for item in raw:
        if isinstance(item, str):
            command, timeout = item, DEFAULT_TIMEOUT
        elif isinstance(item, dict):
            command, timeout = item.get("command", ""), item.get("timeout", DEFAULT_TIMEOUT)
        else:
            continue
        if command:
            entries.append((str(command), float(timeout)))
    return entries


def _run_command(command: str, timeout: float, stdin: str, hook_point: str, cwd: Path) -> HookResult:
    result = HookResult(command=command, hook_point=hook_point)
    try:
        proc = subprocess.run(
            command,
            shell=True,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=str(cwd),
        )
    except subprocess.TimeoutExpired:
        result.exit_code = -1
        result.error = f"Hook timed out after {timeout:g}s"
    except OSError as e:
        result.exit_code = -1
        result.error = str(e)
    else:
        result.exit_code = proc.returncode
        result.stdout = proc.stdout[:_OUTPUT_LIMIT]
        result.stderr = proc.stderr[:_OUTPUT_LIMIT]

    if not result.ok:
        logger.warning("Hook %r for %s failed: %s", command, hook_point,
                       result.error or result.stderr.strip())
    return result


def run_hooks(
    hook_point: str,
    context: dict[str, Any],
    root: Path | None = None,
) -> list[HookResult]:
    """Run every command registered for *hook_point*, in order."""
    if hook_point not in VALID_HOOK_POINTS:
        return []
    if root is None:
        root = workspace_root()

    entries = _hook_entries(load_hooks_config(root).get(hook_point))
    if not entries:
        return []

    stdin = json.dumps(context, ensure_ascii=False)
    return [_run_command(command, timeout, stdin, hook_point, root) for command, timeout in entries]


# ── Notifiers ─────────────────────────────────────────────────


class Notifier(Protocol):
    def play(self, kind: str, context: dict[str, Any] | None = None) -> None:
        """Fire-and-forget notification for *kind* (e.g. 'work_complete')."""
        ...


class NullNotifier:
    def play(self, kind: str, context: dict[str, Any] | None = None) -> None:
        return None


class HookNotifier:
    """Notifier that runs the on_<kind> hooks from hooks.yaml."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        self.last_results: list[HookResult] = []

    def play(self, kind: str, context: dict[str, Any] | None = None) -> None:
        self.last_results = run_hooks(f"on_{kind}", {"event": kind, **(context or {})}, self.root)
