"""Controllers for taskrun CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from taskrun.config import Settings
from taskrun.engine.graph import TaskGraph
from taskrun.engine.models import RunSummary
from taskrun.engine.orchestrator import Orchestrator
from taskrun.engine.report import render_graph_lines, render_summary_lines
from taskrun.engine.sink import ConsoleSink, OutputSink
from taskrun.taskfile import load_task_file

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for running a task file."""

    task_file: Path | None
    grace_seconds: float | None = None
    exit_when_stalled: bool | None = None
    color: bool | None = None


@dataclass(slots=True)
class GraphCommand:
    """CLI input for graph inspection."""

    task_file: Path | None


@dataclass(slots=True)
class RunResult:
    """Run outcome with printable summary lines."""

    summary: RunSummary
    lines: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.summary.ok


class TaskRunCliController:
    """Wires settings, task file, graph and orchestrator for CLI commands."""

    def run(self, command: RunCommand, *, sink: OutputSink | None = None) -> RunResult:
        """Run every task until completion or a SIGINT/SIGTERM shutdown."""

        settings = _settings(command.task_file)
        if command.grace_seconds is not None:
            settings.supervisor.grace_seconds = command.grace_seconds
        if command.exit_when_stalled is not None:
            settings.exit_when_stalled = command.exit_when_stalled
        settings.validate()

        graph = _load_graph(settings)
        orchestrator = Orchestrator(
            graph,
            sink=sink or ConsoleSink(graph.order, color=command.color),
            grace_seconds=settings.supervisor.grace_seconds,
            shell=settings.supervisor.shell,
            drain_seconds=settings.supervisor.drain_seconds,
            exit_when_stalled=settings.exit_when_stalled,
        )
        logger.info("Running %d task(s) from %s", len(graph), settings.task_file)
        with orchestrator.signal_handlers():
            summary = orchestrator.run()
        return RunResult(summary=summary, lines=render_summary_lines(summary))

    def describe_graph(self, command: GraphCommand) -> Iterator[str]:
        """Validate the task file and yield its execution order."""

        settings = _settings(command.task_file)
        yield f"Task file: {settings.task_file}"
        yield from render_graph_lines(_load_graph(settings))


def _settings(task_file: Path | None) -> Settings:
    return Settings.from_env(task_file=task_file)


def _load_graph(settings: Settings) -> TaskGraph:
    return TaskGraph.build(load_task_file(settings.task_file))
