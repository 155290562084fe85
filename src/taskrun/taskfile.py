"""Task file loading.

Each INI section is one task; the section name is the task name::

    [serve]
    command = ./serve.sh
    depends_on = build, migrate
    ready_check = listening on port
    work_dir = services/api
"""

from __future__ import annotations

import configparser
import logging
from pathlib import Path

from taskrun.engine.models import TaskDefinition

logger = logging.getLogger(__name__)

_KNOWN_KEYS = frozenset({"command", "depends_on", "ready_check", "work_dir"})


class TaskFileError(ValueError):
    """Task file is missing, malformed or incomplete."""


def load_task_file(path: Path) -> list[TaskDefinition]:
    """Parse ``path`` into task definitions in file order."""

    if not path.is_file():
        raise TaskFileError(f"Task file not found: {path}")
    try:
        text = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise TaskFileError(f"Failed to read task file {path}: {error}") from error

    parser = configparser.ConfigParser(interpolation=None, default_section="\x00defaults")
    try:
        parser.read_string(text, source=str(path))
    except configparser.Error as error:
        raise TaskFileError(f"Invalid task file {path}: {error}") from error

    base_dir = path.resolve().parent
    definitions = [
        _parse_section(name, parser[name], base_dir=base_dir, path=path)
        for name in parser.sections()
    ]
    if not definitions:
        raise TaskFileError(f"No tasks found in {path}")
    return definitions


def _parse_section(
    name: str,
    section: configparser.SectionProxy,
    *,
    base_dir: Path,
    path: Path,
) -> TaskDefinition:
    for key in section:
        if key not in _KNOWN_KEYS:
            logger.warning("Ignoring unknown key %r in task %r of %s", key, name, path)

    command = section.get("command", "").strip()
    if not command:
        raise TaskFileError(f"Task {name!r} in {path} has no command.")

    depends_on = frozenset(
        part.strip() for part in section.get("depends_on", "").split(",") if part.strip()
    )
    ready_marker = section.get("ready_check", "").strip() or None

    work_dir: Path | None = None
    raw_work_dir = section.get("work_dir", "").strip()
    if raw_work_dir:
        work_dir = Path(raw_work_dir).expanduser()
        if not work_dir.is_absolute():
            work_dir = base_dir / work_dir

    return TaskDefinition(
        name=name,
        command=command,
        work_dir=work_dir,
        depends_on=depends_on,
        ready_marker=ready_marker,
    )
