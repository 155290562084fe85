"""Output sinks receiving task output lines and lifecycle notifications."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Protocol

import click

from taskrun.engine.models import OutputEvent, StreamSource, TaskState

_PALETTE = ("cyan", "magenta", "green", "yellow", "blue", "bright_cyan", "bright_magenta")

_STATUS_COLORS = {
    TaskState.READY: "green",
    TaskState.SUCCEEDED: "green",
    TaskState.FAILED: "red",
    TaskState.KILLED: "yellow",
}


class OutputSink(Protocol):
    """Receives pushed output and status updates; called from several threads."""

    def task_output(self, task: str, event: OutputEvent) -> None:
        """Handle one output line of ``task``."""

    def task_status(self, task: str, state: TaskState, detail: str | None = None) -> None:
        """Handle a lifecycle transition of ``task``."""


class ConsoleSink:
    """Prints every line prefixed with its task name, one color per task."""

    def __init__(self, task_names: Iterable[str], *, color: bool | None = None) -> None:
        names = list(task_names)
        self._width = max((len(name) for name in names), default=0)
        self._colors = {name: _PALETTE[index % len(_PALETTE)] for index, name in enumerate(names)}
        self._color = color
        self._lock = threading.Lock()

    def task_output(self, task: str, event: OutputEvent) -> None:
        line = f"{self._prefix(task)} {event.text}"
        with self._lock:
            click.echo(line, err=event.source is StreamSource.STDERR, color=self._color)

    def task_status(self, task: str, state: TaskState, detail: str | None = None) -> None:
        text = f"-- {state.value}"
        if detail:
            text += f" ({detail})"
        styled = click.style(text, fg=_STATUS_COLORS.get(state), dim=state not in _STATUS_COLORS)
        with self._lock:
            click.echo(f"{self._prefix(task)} {styled}", color=self._color)

    def _prefix(self, task: str) -> str:
        label = f"{task:<{self._width}} |"
        return click.style(label, fg=self._colors.get(task), bold=True)
