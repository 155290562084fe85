"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from taskrun.engine.models import OutputEvent, TaskState


class RecordingSink:
    """Thread-safe sink keeping output and status updates in arrival order."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self.log: list[tuple[str, str, object]] = []

    def task_output(self, task: str, event: OutputEvent) -> None:
        with self._condition:
            self.log.append(("output", task, event))
            self._condition.notify_all()

    def task_status(self, task: str, state: TaskState, detail: str | None = None) -> None:
        with self._condition:
            self.log.append(("status", task, (state, detail)))
            self._condition.notify_all()

    def lines(self, task: str) -> list[str]:
        with self._condition:
            return [
                event.text for kind, name, event in self.log if kind == "output" and name == task
            ]

    def states(self, task: str) -> list[TaskState]:
        with self._condition:
            return [item[0] for kind, name, item in self.log if kind == "status" and name == task]

    def index_of(self, task: str, state: TaskState) -> int:
        """Position of the first ``state`` notification for ``task`` in the log."""

        with self._condition:
            for index, (kind, name, item) in enumerate(self.log):
                if kind == "status" and name == task and item[0] is state:
                    return index
        raise AssertionError(f"{task} never reported {state.value}")

    def index_of_line(self, task: str, text: str) -> int:
        with self._condition:
            for index, (kind, name, item) in enumerate(self.log):
                if kind == "output" and name == task and item.text == text:
                    return index
        raise AssertionError(f"{task} never printed {text!r}")

    def wait_for_state(self, task: str, state: TaskState, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                if any(
                    kind == "status" and name == task and item[0] is state
                    for kind, name, item in self.log
                ):
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(remaining)


def python_command(source: str) -> str:
    """Shell command running ``source`` with the current interpreter, unbuffered."""

    return f"{shlex.quote(sys.executable)} -u -c {shlex.quote(source)}"


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def py() -> Callable[[str], str]:
    return python_command


def _process_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except FileNotFoundError:
        return not Path("/proc/self").exists()
    # Killed children of an exited shell may linger as zombies until init reaps them.
    return stat.rsplit(")", 1)[1].split()[0] != "Z"


def wait_process_gone(pid: int, timeout: float = 3.0) -> bool:
    """Poll until ``pid`` no longer runs; False if it survives ``timeout``."""

    deadline = time.monotonic() + timeout
    while _process_running(pid):
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.02)
    return True


@pytest.fixture()
def process_gone() -> Callable[..., bool]:
    return wait_process_gone
