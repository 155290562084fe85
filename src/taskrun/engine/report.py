"""Text rendering of run summaries and graph descriptions."""

from __future__ import annotations

from taskrun.engine.graph import TaskGraph
from taskrun.engine.models import RunSummary, TaskState, TaskSummary


def render_summary_lines(summary: RunSummary) -> list[str]:
    """Per-task status table followed by run totals."""

    width = max((len(task.name) for task in summary.tasks), default=0)
    lines = ["", "Run summary:"]
    lines.extend(f"  {_task_line(task, width)}" for task in summary.tasks)

    counts = ", ".join(
        f"{summary.count(state)} {state.value}"
        for state in TaskState
        if summary.count(state)
    )
    lines.append("")
    lines.append(f"Tasks: {counts}")
    if summary.shutdown_reason is not None:
        lines.append(f"Shutdown: {summary.shutdown_reason}")
    if summary.pending:
        lines.append(f"Never started (dependencies not ready): {', '.join(summary.pending)}")
    return lines


def render_graph_lines(graph: TaskGraph) -> list[str]:
    """Execution order with each task's dependencies and ready marker."""

    lines = [f"{len(graph)} task(s) in execution order:"]
    for index, name in enumerate(graph.order, start=1):
        definition = graph.definition(name)
        lines.append(f"  {index}. {name}")
        lines.append(f"       command: {definition.command}")
        if definition.depends_on:
            lines.append(f"       after:   {', '.join(sorted(definition.depends_on))}")
        if definition.ready_marker:
            lines.append(f"       ready:   output contains {definition.ready_marker!r}")
        else:
            lines.append("       ready:   on spawn")
        if definition.work_dir is not None:
            lines.append(f"       cwd:     {definition.work_dir}")
    return lines


def _task_line(task: TaskSummary, width: int) -> str:
    parts = [f"{task.name:<{width}}", f"{task.state.value:<9}"]
    if task.duration_seconds is not None:
        parts.append(f"{task.duration_seconds:6.1f}s")
    if task.ready and task.state is not TaskState.READY:
        parts.append("(was ready)")
    if task.outcome is not None and task.state is not TaskState.SUCCEEDED:
        parts.append(task.outcome.describe())
    return "  ".join(parts)
