"""Dependency-aware shell task orchestration.

Tasks start once every dependency is *ready*, which is not the same as
finished: a dependency is ready as soon as it is spawned, or, when it declares
a ready marker, once that substring shows up in its output. Long-running
services can therefore gate the tasks that need them without ever exiting.

Each live process is owned by a :class:`ProcessSupervisor` whose reader and
waiter threads post events into the :class:`Orchestrator` queue; the
orchestrator thread is the only writer of task state.
"""

from taskrun.engine.graph import (
    CyclicDependency,
    DuplicateTask,
    GraphError,
    TaskGraph,
    UnknownDependency,
)
from taskrun.engine.models import (
    ExitOutcome,
    OutputEvent,
    RunSummary,
    StreamSource,
    TaskDefinition,
    TaskState,
)
from taskrun.engine.orchestrator import Orchestrator
from taskrun.engine.sink import ConsoleSink, OutputSink
from taskrun.engine.supervisor import ProcessSupervisor, SpawnError

__all__ = [
    "ConsoleSink",
    "CyclicDependency",
    "DuplicateTask",
    "ExitOutcome",
    "GraphError",
    "Orchestrator",
    "OutputEvent",
    "OutputSink",
    "ProcessSupervisor",
    "RunSummary",
    "SpawnError",
    "StreamSource",
    "TaskDefinition",
    "TaskGraph",
    "TaskState",
    "UnknownDependency",
]
