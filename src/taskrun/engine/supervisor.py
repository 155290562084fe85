"""Lifecycle management for one live task process."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

from taskrun.engine.models import ExitOutcome, OutputEvent, StreamSource, TaskDefinition
from taskrun.engine.readiness import ReadinessDetector
from taskrun.engine.sink import OutputSink

logger = logging.getLogger(__name__)

_USE_PROCESS_GROUPS = os.name == "posix"
KILL_WAIT_SECONDS = 5.0
_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)

ReadyCallback = Callable[[str], None]
ExitCallback = Callable[[str, ExitOutcome], None]


class SpawnError(RuntimeError):
    """The task command could not be started."""

    def __init__(self, task: str, cause: OSError) -> None:
        super().__init__(f"Task {task!r} failed to start: {cause}")
        self.task = task
        self.cause = cause


class ProcessSupervisor:
    """Owns one child process, its stream readers and its exit observation.

    Output lines go through the readiness detector and then to the sink before
    the next line is read. The exit callback fires only after both streams are
    drained (or the drain deadline passes), so a readiness callback produced by
    output always precedes the exit callback.
    """

    def __init__(  # noqa: PLR0913
        self,
        definition: TaskDefinition,
        *,
        sink: OutputSink,
        on_ready: ReadyCallback,
        on_exit: ExitCallback,
        shell: str = "/bin/sh",
        drain_seconds: float = 2.0,
    ) -> None:
        self.definition = definition
        self.detector = ReadinessDetector(definition.ready_marker)
        self._sink = sink
        self._on_ready = on_ready
        self._on_exit = on_exit
        self._shell = shell
        self._drain_seconds = drain_seconds
        self._lock = threading.Lock()
        self._process: subprocess.Popen[str] | None = None
        self._pid: int | None = None
        self._reaped = threading.Event()
        self._readers: list[threading.Thread] = []
        self._terminate_requested = False
        self._forced = False
        self._outcome: ExitOutcome | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def alive(self) -> bool:
        return self._pid is not None and not self._reaped.is_set()

    @property
    def outcome(self) -> ExitOutcome | None:
        return self._outcome

    def start(self) -> None:
        """Spawn the command through the shell and begin supervising it."""

        if self._pid is not None:
            raise RuntimeError(f"Task {self.name!r} was already started.")
        try:
            process = subprocess.Popen(  # noqa: S602
                self.definition.command,
                shell=True,
                executable=self._shell,
                cwd=self.definition.work_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=_USE_PROCESS_GROUPS,
            )
        except OSError as error:
            raise SpawnError(self.name, error) from error

        self._process = process
        self._pid = process.pid
        logger.info("Started task %s (pid %d): %s", self.name, process.pid, self.definition.command)

        if self.detector.mark_spawned():
            self._on_ready(self.name)

        assert process.stdout is not None
        assert process.stderr is not None
        self._readers = [
            self._spawn_thread("stdout", self._read_stream, StreamSource.STDOUT, process.stdout),
            self._spawn_thread("stderr", self._read_stream, StreamSource.STDERR, process.stderr),
        ]
        self._spawn_thread("wait", self._wait)

    def terminate(self, grace_seconds: float) -> None:
        """Ask the process to stop; kill it if it is still alive after ``grace_seconds``.

        Only the first call on a live process sends signals.
        """

        with self._lock:
            process = self._process
            if self._terminate_requested or process is None or self._reaped.is_set():
                return
            self._terminate_requested = True

        logger.info("Terminating task %s (pid %d)", self.name, process.pid)
        self._send(process, signal.SIGTERM)
        if not self._reaped.wait(grace_seconds):
            logger.warning(
                "Task %s did not exit within %.1fs; killing it",
                self.name,
                grace_seconds,
            )
            with self._lock:
                self._forced = True
            self._send(process, _SIGKILL)
            if not self._reaped.wait(KILL_WAIT_SECONDS):
                logger.error("Task %s (pid %d) survived SIGKILL", self.name, process.pid)
                return
        if _USE_PROCESS_GROUPS and _group_alive(process.pid):
            logger.warning("Killing leftover processes of task %s", self.name)
            self._send(process, _SIGKILL)

    def _spawn_thread(
        self,
        label: str,
        target: Callable[..., None],
        *args: object,
    ) -> threading.Thread:
        thread = threading.Thread(
            target=target,
            args=args,
            name=f"task-{self.name}-{label}",
            daemon=True,
        )
        thread.start()
        return thread

    def _read_stream(self, source: StreamSource, stream: IO[str]) -> None:
        try:
            for line in iter(stream.readline, ""):
                fired = self.detector.feed(source, line)
                self._sink.task_output(self.name, OutputEvent(source, line.rstrip("\r\n")))
                if fired:
                    logger.info("Task %s matched ready marker on %s", self.name, source.value)
                    self._on_ready(self.name)
        except (OSError, ValueError):
            logger.debug("Stopped reading %s of task %s", source.value, self.name, exc_info=True)
        finally:
            stream.close()

    def _wait(self) -> None:
        process = self._process
        assert process is not None
        returncode = process.wait()
        self._reaped.set()

        with self._lock:
            terminating = self._terminate_requested
        # Background jobs of the command must not outlive it.
        if _USE_PROCESS_GROUPS and not terminating and _group_alive(process.pid):
            logger.warning("Killing leftover processes of task %s", self.name)
            self._send(process, _SIGKILL)

        deadline = time.monotonic() + self._drain_seconds
        for reader in self._readers:
            reader.join(timeout=max(0.0, deadline - time.monotonic()))
        if any(reader.is_alive() for reader in self._readers):
            logger.warning(
                "Output of task %s is still open %.1fs after exit",
                self.name,
                self._drain_seconds,
            )

        with self._lock:
            self._outcome = ExitOutcome(
                returncode=returncode,
                terminated=self._terminate_requested,
                forced=self._forced,
            )
            self._process = None
        logger.info("Task %s %s", self.name, self._outcome.describe())
        self._on_exit(self.name, self._outcome)

    def _send(self, process: subprocess.Popen[str], signum: int) -> None:
        try:
            if _USE_PROCESS_GROUPS:
                os.killpg(process.pid, signum)
            elif signum == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        except (ProcessLookupError, PermissionError):
            logger.debug("Task %s is already gone", self.name, exc_info=True)


def _group_alive(pgid: int) -> bool:
    try:
        os.killpg(pgid, 0)
    except (ProcessLookupError, PermissionError):
        return False
    return True
