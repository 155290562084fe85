"""Reactive scheduler driving task processes through their lifecycle."""

from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from taskrun.engine.graph import TaskGraph
from taskrun.engine.models import (
    ALLOWED_TRANSITIONS,
    ExitOutcome,
    RunEvent,
    RunSummary,
    RuntimeTask,
    TaskDefinition,
    TaskExited,
    TaskReadinessFired,
    TaskState,
    TaskSummary,
)
from taskrun.engine.sink import OutputSink
from taskrun.engine.supervisor import (
    KILL_WAIT_SECONDS,
    ExitCallback,
    ProcessSupervisor,
    ReadyCallback,
    SpawnError,
)

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[
    [TaskDefinition, OutputSink, ReadyCallback, ExitCallback],
    ProcessSupervisor,
]


class Orchestrator:
    """Single writer of task state.

    Supervisors run on their own threads and only post events into the
    orchestrator queue; every transition happens on the thread calling
    :meth:`run`.
    """

    def __init__(  # noqa: PLR0913
        self,
        graph: TaskGraph,
        *,
        sink: OutputSink,
        grace_seconds: float = 5.0,
        shell: str = "/bin/sh",
        drain_seconds: float = 2.0,
        exit_when_stalled: bool = False,
        poll_interval_seconds: float = 0.1,
        supervisor_factory: SupervisorFactory | None = None,
    ) -> None:
        self.graph = graph
        self.sink = sink
        self.grace_seconds = grace_seconds
        self.shell = shell
        self.drain_seconds = drain_seconds
        self.exit_when_stalled = exit_when_stalled
        self.poll_interval_seconds = poll_interval_seconds
        self._supervisor_factory = supervisor_factory or self._default_supervisor
        self._tasks = {name: RuntimeTask(definition=graph.definition(name)) for name in graph.order}
        self._events: queue.Queue[RunEvent] = queue.Queue()
        self._shutdown_reason: str | None = None
        self._shutdown_lock = threading.Lock()
        self._signalled: str | None = None
        self._shutting_down = False
        self._stall_reported = False
        self._terminators: list[threading.Thread] = []

    def request_shutdown(self, reason: str = "requested") -> bool:
        """Stop starting tasks and terminate every live one.

        Safe to call from any thread. Only the first call has an effect; it is
        the one that returns True and whose reason is reported.
        """

        with self._shutdown_lock:
            if self._shutdown_reason is not None:
                return False
            self._shutdown_reason = reason
            return True

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_reason is not None or self._signalled is not None

    def state_of(self, name: str) -> TaskState:
        return self._tasks[name].state

    def run(self) -> RunSummary:
        """Run the graph until every task settles or shutdown completes."""

        for task in self._tasks.values():
            if task.definition.depends_on:
                dependencies = ", ".join(sorted(task.definition.depends_on))
                self.sink.task_status(task.name, TaskState.PENDING, f"waiting on {dependencies}")

        try:
            self._start_eligible()
            while True:
                if self._signalled is not None:
                    self.request_shutdown(self._signalled)
                if self._shutdown_reason is not None and not self._shutting_down:
                    self._begin_shutdown()
                if self._finished():
                    break
                try:
                    event = self._events.get(timeout=self.poll_interval_seconds)
                except queue.Empty:
                    continue
                self._apply(event)
        finally:
            self._release_all()

        if self._shutting_down:
            logger.info("Shutdown complete")
        return self._summary()

    @contextmanager
    def signal_handlers(self) -> Iterator[None]:
        """Route SIGINT/SIGTERM to :meth:`request_shutdown` while the block runs."""

        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            # Lock-free; the run loop turns this into a shutdown request.
            if self._signalled is None:
                self._signalled = name

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            try:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
            except ValueError:
                pass

    def _default_supervisor(
        self,
        definition: TaskDefinition,
        sink: OutputSink,
        on_ready: ReadyCallback,
        on_exit: ExitCallback,
    ) -> ProcessSupervisor:
        return ProcessSupervisor(
            definition,
            sink=sink,
            on_ready=on_ready,
            on_exit=on_exit,
            shell=self.shell,
            drain_seconds=self.drain_seconds,
        )

    def _post_ready(self, name: str) -> None:
        self._events.put(TaskReadinessFired(name))

    def _post_exit(self, name: str, outcome: ExitOutcome) -> None:
        self._events.put(TaskExited(name, outcome))

    def _start_eligible(self) -> None:
        for task in self._tasks.values():
            if self.shutdown_requested:
                return
            if task.state is not TaskState.PENDING:
                continue
            if all(self._tasks[dep].ready_observed for dep in task.definition.depends_on):
                self._launch(task)

    def _launch(self, task: RuntimeTask) -> None:
        self._transition(task, TaskState.STARTING)
        task.started_at = time.monotonic()
        supervisor = self._supervisor_factory(
            task.definition,
            self.sink,
            self._post_ready,
            self._post_exit,
        )
        try:
            supervisor.start()
        except SpawnError as error:
            logger.warning("%s", error)
            task.outcome = ExitOutcome.spawn_failure(str(error.cause))
            task.finished_at = time.monotonic()
            self._transition(task, TaskState.FAILED, task.outcome.describe())
            return
        task.supervisor = supervisor
        self._transition(task, TaskState.RUNNING)

    def _apply(self, event: RunEvent) -> None:
        task = self._tasks[event.task]
        if isinstance(event, TaskReadinessFired):
            if task.state is not TaskState.RUNNING:
                logger.debug(
                    "Ignoring readiness of task %s in state %s",
                    task.name,
                    task.state.value,
                )
                return
            task.ready_observed = True
            task.ready_at = time.monotonic()
            self._transition(task, TaskState.READY)
            self._start_eligible()
            return

        if task.state.is_terminal:
            logger.debug("Ignoring exit of task %s in state %s", task.name, task.state.value)
            return
        outcome = event.outcome
        task.outcome = outcome
        task.supervisor = None
        task.finished_at = time.monotonic()
        if outcome.terminated:
            new_state = TaskState.KILLED
        elif outcome.succeeded:
            new_state = TaskState.SUCCEEDED
        else:
            new_state = TaskState.FAILED
        detail = None if new_state is TaskState.SUCCEEDED else outcome.describe()
        self._transition(task, new_state, detail)

    def _transition(self, task: RuntimeTask, state: TaskState, detail: str | None = None) -> None:
        if state not in ALLOWED_TRANSITIONS[task.state]:
            raise RuntimeError(
                f"Illegal transition for task {task.name!r}: {task.state.value} -> {state.value}",
            )
        task.state = state
        self.sink.task_status(task.name, state, detail)

    def _begin_shutdown(self) -> None:
        self._shutting_down = True
        live = [task for task in self._tasks.values() if task.supervisor is not None]
        logger.info(
            "Shutdown requested (%s); terminating %d live task(s)",
            self._shutdown_reason,
            len(live),
        )
        self._terminate(live)

    def _terminate(self, tasks: list[RuntimeTask]) -> None:
        for task in tasks:
            supervisor = task.supervisor
            assert supervisor is not None
            thread = threading.Thread(
                target=supervisor.terminate,
                args=(self.grace_seconds,),
                name=f"terminate-{task.name}",
                daemon=True,
            )
            thread.start()
            self._terminators.append(thread)

    def _finished(self) -> bool:
        if any(task.supervisor is not None for task in self._tasks.values()):
            return False
        if self._shutting_down:
            return True
        pending = [task.name for task in self._tasks.values() if task.state is TaskState.PENDING]
        if not pending:
            return True
        if not self._stall_reported:
            self._stall_reported = True
            logger.warning(
                "No task is running and %d task(s) wait on dependencies that never "
                "became ready: %s",
                len(pending),
                ", ".join(pending),
            )
        return self.exit_when_stalled

    def _release_all(self) -> None:
        live = [task for task in self._tasks.values() if task.supervisor is not None]
        if live and not self._shutting_down:
            logger.warning("Run aborted; terminating %d live task(s)", len(live))
            self._terminate(live)
        for thread in self._terminators:
            thread.join(timeout=self.grace_seconds + KILL_WAIT_SECONDS)

    def _summary(self) -> RunSummary:
        tasks = tuple(
            TaskSummary(
                name=task.name,
                state=task.state,
                ready=task.ready_observed,
                outcome=task.outcome,
                duration_seconds=task.duration_seconds,
            )
            for task in self._tasks.values()
        )
        pending = tuple(
            task.name for task in self._tasks.values() if task.state is TaskState.PENDING
        )
        return RunSummary(tasks=tasks, shutdown_reason=self._shutdown_reason, pending=pending)
