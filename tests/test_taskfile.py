from __future__ import annotations

import logging
from pathlib import Path

import allure
import pytest

from taskrun.taskfile import TaskFileError, load_task_file

pytestmark = [
    allure.epic("Task Orchestration"),
    allure.feature("Task File"),
]


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "tasks.ini"
    path.write_text(text, "utf-8")
    return path


def test_load_parses_every_field_in_file_order(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "[build]\n"
        "command = make all\n"
        "\n"
        "[serve]\n"
        "command = ./serve --port 8080\n"
        "depends_on = build\n"
        "ready_check = listening on port\n"
        "work_dir = /srv/app\n"
        "\n"
        "[test]\n"
        "command = pytest -q\n"
        "depends_on = serve, build\n",
    )

    build, serve, test = load_task_file(path)

    assert build.name == "build"
    assert build.command == "make all"
    assert build.depends_on == frozenset()
    assert build.ready_marker is None
    assert build.work_dir is None
    assert serve.depends_on == frozenset({"build"})
    assert serve.ready_marker == "listening on port"
    assert serve.work_dir == Path("/srv/app")
    assert test.depends_on == frozenset({"serve", "build"})


def test_relative_work_dir_resolves_against_task_file(tmp_path: Path) -> None:
    path = _write(tmp_path, "[api]\ncommand = ./run\nwork_dir = services/api\n")

    (api,) = load_task_file(path)

    assert api.work_dir == tmp_path.resolve() / "services" / "api"


def test_values_keep_percent_signs_and_inner_spaces(tmp_path: Path) -> None:
    path = _write(tmp_path, "[stamp]\ncommand = date +%Y-%m-%d\nready_check =   server  up  \n")

    (stamp,) = load_task_file(path)

    assert stamp.command == "date +%Y-%m-%d"
    assert stamp.ready_marker == "server  up"


def test_blank_ready_check_means_ready_on_spawn(tmp_path: Path) -> None:
    path = _write(tmp_path, "[a]\ncommand = true\nready_check =\n")

    (task,) = load_task_file(path)

    assert task.ready_marker is None


def test_blank_dependency_entries_are_skipped(tmp_path: Path) -> None:
    path = _write(tmp_path, "[a]\ncommand = true\n[b]\ncommand = true\ndepends_on = a, , \n")

    _, b = load_task_file(path)

    assert b.depends_on == frozenset({"a"})


def test_missing_command_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "[a]\ndepends_on = b\n")

    with pytest.raises(TaskFileError, match="Task 'a' .* has no command"):
        load_task_file(path)


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(TaskFileError, match="Task file not found"):
        load_task_file(tmp_path / "absent.ini")


def test_file_without_sections_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "; nothing here yet\n")

    with pytest.raises(TaskFileError, match="No tasks found"):
        load_task_file(path)


def test_duplicate_section_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "[a]\ncommand = true\n[a]\ncommand = false\n")

    with pytest.raises(TaskFileError, match="Invalid task file"):
        load_task_file(path)


def test_key_outside_section_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "command = true\n")

    with pytest.raises(TaskFileError, match="Invalid task file"):
        load_task_file(path)


def test_unknown_keys_are_logged_and_ignored(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    path = _write(tmp_path, "[a]\ncommand = true\nretries = 3\n")

    with caplog.at_level(logging.WARNING, logger="taskrun.taskfile"):
        (task,) = load_task_file(path)

    assert task.command == "true"
    assert "Ignoring unknown key 'retries'" in caplog.text


def test_task_file_error_is_a_value_error() -> None:
    assert issubclass(TaskFileError, ValueError)
