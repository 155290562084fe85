"""CLI entrypoint for taskrun."""

import logging
from pathlib import Path

import rich_click as click

from taskrun import __version__
from taskrun.config import Settings
from taskrun.controllers import GraphCommand, RunCommand, TaskRunCliController

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TaskRunCliController()

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="taskrun")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostics verbosity written to stderr. [default: TASKRUN_LOG_LEVEL or WARNING]",
)
def taskrun(log_level: str | None) -> None:
    """Run interdependent shell tasks.

    A task starts once all of its `depends_on` tasks are **ready**: right
    after spawn, or when their output contains the `ready_check` marker.
    """

    try:
        settings = Settings.from_env()
        if log_level:
            settings.log_level = log_level.upper()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    logging.basicConfig(level=settings.log_level_number, format=_LOG_FORMAT)


@taskrun.command("run")
@click.argument("task_file", type=click.Path(path_type=Path), required=False)
@click.option(
    "--grace-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait after SIGTERM before killing a task. [default: 5]",
)
@click.option(
    "--exit-when-stalled/--wait-when-stalled",
    default=None,
    help="End the run when remaining tasks wait on dependencies that never became ready.",
)
@click.option(
    "--color/--no-color",
    default=None,
    help="Force or disable colored task prefixes.",
)
def run(
    task_file: Path | None,
    grace_seconds: float | None,
    exit_when_stalled: bool | None,
    color: bool | None,
) -> None:
    """Run all tasks from TASK_FILE (default: tasks.ini). Ctrl+C stops every task."""

    try:
        result = CONTROLLER.run(
            RunCommand(
                task_file=task_file,
                grace_seconds=grace_seconds,
                exit_when_stalled=exit_when_stalled,
                color=color,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Not all tasks succeeded.")


@taskrun.command("graph")
@click.argument("task_file", type=click.Path(path_type=Path), required=False)
def graph(task_file: Path | None) -> None:
    """Validate TASK_FILE and print the order tasks become eligible in."""

    try:
        _emit_lines(list(CONTROLLER.describe_graph(GraphCommand(task_file=task_file))))
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskrun()
