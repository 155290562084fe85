"""Domain models for task definitions, runtime state and run events."""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskrun.engine.supervisor import ProcessSupervisor


class TaskState(str, Enum):
    """Task lifecycle states owned by the orchestrator."""

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    READY = "ready"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def is_live(self) -> bool:
        return self in _LIVE_STATES


_TERMINAL_STATES = frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.KILLED})
_LIVE_STATES = frozenset({TaskState.STARTING, TaskState.RUNNING, TaskState.READY})

ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.STARTING}),
    TaskState.STARTING: frozenset({TaskState.RUNNING, TaskState.FAILED}),
    TaskState.RUNNING: frozenset(
        {TaskState.READY, TaskState.SUCCEEDED, TaskState.FAILED, TaskState.KILLED},
    ),
    TaskState.READY: frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.KILLED}),
    TaskState.SUCCEEDED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.KILLED: frozenset(),
}


class StreamSource(str, Enum):
    """Which standard stream an output line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """Immutable description of one shell task."""

    name: str
    command: str
    work_dir: Path | None = None
    depends_on: frozenset[str] = frozenset()
    ready_marker: str | None = None


@dataclass(frozen=True, slots=True)
class OutputEvent:
    """One line of task output, line break stripped."""

    source: StreamSource
    text: str


@dataclass(frozen=True, slots=True)
class ExitOutcome:
    """How a task's process ended."""

    returncode: int | None
    terminated: bool = False
    forced: bool = False
    error: str | None = None

    @classmethod
    def spawn_failure(cls, error: str) -> ExitOutcome:
        return cls(returncode=None, error=error)

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def signal_name(self) -> str | None:
        if self.returncode is None or self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode).name
        except ValueError:
            return f"signal {-self.returncode}"

    def describe(self) -> str:
        if self.error is not None:
            return f"failed to spawn command: {self.error}"
        if self.signal_name is not None:
            text = f"killed by {self.signal_name}"
        else:
            text = f"exited with code {self.returncode}"
        if self.forced:
            text += " after grace period"
        return text


@dataclass(frozen=True, slots=True)
class TaskReadinessFired:
    """Posted by a supervisor when its task becomes ready."""

    task: str


@dataclass(frozen=True, slots=True)
class TaskExited:
    """Posted by a supervisor once its process has exited and output is drained."""

    task: str
    outcome: ExitOutcome


RunEvent = TaskReadinessFired | TaskExited


@dataclass(slots=True)
class RuntimeTask:
    """Mutable per-task record; written only by the orchestrator thread."""

    definition: TaskDefinition
    state: TaskState = TaskState.PENDING
    supervisor: ProcessSupervisor | None = None
    ready_observed: bool = False
    outcome: ExitOutcome | None = None
    started_at: float | None = None
    ready_at: float | None = None
    finished_at: float | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass(frozen=True, slots=True)
class TaskSummary:
    """Final view of one task for reporting."""

    name: str
    state: TaskState
    ready: bool
    outcome: ExitOutcome | None
    duration_seconds: float | None


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Result of one orchestrator run."""

    tasks: tuple[TaskSummary, ...]
    shutdown_reason: str | None = None
    pending: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return all(task.state is TaskState.SUCCEEDED for task in self.tasks)

    def state_of(self, name: str) -> TaskState:
        for task in self.tasks:
            if task.name == name:
                return task.state
        raise KeyError(name)

    def count(self, state: TaskState) -> int:
        return sum(1 for task in self.tasks if task.state is state)
