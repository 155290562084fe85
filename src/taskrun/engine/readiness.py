"""Readiness detection over live task output."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, replace

from taskrun.engine.models import StreamSource

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True, slots=True)
class ScanState:
    """Incremental marker scan state for one output stream.

    ``carry`` holds the unterminated tail of the current line, trimmed to the
    longest prefix that could still complete a match.
    """

    marker: str
    carry: str = ""
    fired: bool = False


def scan(state: ScanState, text: str) -> tuple[ScanState, bool]:
    """Consume a chunk of output and report whether readiness fired on it.

    The marker matches anywhere within a single line and never across a line
    break. Returns ``True`` only for the chunk that produced the first match.
    """

    if state.fired:
        return state, False

    buffer = state.carry + text
    segments = _LINE_BREAK.split(buffer)
    for segment in segments:
        if state.marker in segment:
            return replace(state, carry="", fired=True), True

    keep = len(state.marker) - 1
    tail = segments[-1]
    carry = tail[-keep:] if keep > 0 else ""
    return replace(state, carry=carry), False


class ReadinessDetector:
    """Per-task readiness decision shared by the stdout and stderr readers."""

    def __init__(self, marker: str | None) -> None:
        self.marker = marker or None
        self._lock = threading.Lock()
        self._fired = False
        self._states: dict[StreamSource, ScanState] = {}
        if self.marker is not None:
            self._states = {source: ScanState(marker=self.marker) for source in StreamSource}

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def immediate(self) -> bool:
        """Whether readiness fires on spawn rather than on output."""
        return self.marker is None

    def mark_spawned(self) -> bool:
        """Record a confirmed spawn; returns True if that alone makes the task ready."""

        if not self.immediate:
            return False
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True

    def feed(self, source: StreamSource, text: str) -> bool:
        """Scan output from ``source``; returns True exactly once, on the first match."""

        if self._fired or self.immediate:
            return False
        with self._lock:
            if self._fired:
                return False
            state, fired = scan(self._states[source], text)
            self._states[source] = state
            if fired:
                self._fired = True
            return fired
