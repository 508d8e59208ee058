"""Bounded shell command execution for sysdash's info sources.

Every external diagnostic tool (``lscpu``, ``sensors``, ``nvidia-smi`` ...)
goes through :func:`run_command`, which drains the child's output while it
runs, kills the whole process tree once the deadline passes and always reaps
the child before returning.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass

import psutil

log = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────

DEFAULT_TIMEOUT = 5
POLL_INTERVAL = 0.1
READ_CHUNK = 4096
SHELL = "/bin/sh"
SHELL_NOT_FOUND = 127


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one :func:`run_command` call."""

    text: str
    timed_out: bool = False
    exit_failed: bool = False
    returncode: int | None = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        """True when the command effectively did not run.

        A zero-exit command with no output is not a failure; sources report
        that case as "no data found".
        """
        if self.timed_out or self.cancelled:
            return True
        if self.returncode == SHELL_NOT_FOUND:
            return True
        return self.exit_failed and not self.text.strip()


# ── Process helpers ────────────────────────────────────────────────────────


def _kill_tree(proc: subprocess.Popen[bytes], poll_interval: float) -> None:
    """SIGKILL the shell and everything it spawned."""
    victims: list[psutil.Process] = []
    try:
        victims = psutil.Process(proc.pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass
    for child in victims:
        try:
            child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    if victims:
        psutil.wait_procs(victims, timeout=poll_interval)


def _read_available(fd: int) -> bytes | None:
    """Non-blocking read: bytes, ``b""`` at EOF, or None if nothing is ready."""
    try:
        return os.read(fd, READ_CHUNK)
    except BlockingIOError:
        return None


def _drain(fd: int, output: bytearray) -> None:
    while True:
        chunk = _read_available(fd)
        if not chunk:
            return
        output.extend(chunk)


# ── Runner ─────────────────────────────────────────────────────────────────


def run_command(
    command: str,
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
    cancel: threading.Event | None = None,
) -> ProcessResult:
    """Run *command* through the shell with a wall-clock deadline.

    stdout and stderr share one pipe which is drained as the child runs, so
    a chatty child can never block on a full pipe. Returns within
    ``timeout + poll_interval`` (plus process teardown) on every path and
    never raises for spawn failures.
    """
    if cancel is not None and cancel.is_set():
        return ProcessResult(text="", exit_failed=True, cancelled=True)

    try:
        proc = subprocess.Popen(
            [SHELL, "-c", command],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
    except OSError as e:
        log.warning("could not spawn %r: %s", command, e)
        return ProcessResult(text="", exit_failed=True)

    assert proc.stdout is not None
    fd = proc.stdout.fileno()
    os.set_blocking(fd, False)

    output = bytearray()
    timed_out = False
    cancelled = False
    deadline = time.monotonic() + timeout
    log.debug("spawned pid %d: %s (timeout %ss)", proc.pid, command, timeout)

    try:
        while True:
            if proc.poll() is not None:
                break
            if time.monotonic() >= deadline:
                log.debug("pid %d timed out after %ss, killing", proc.pid, timeout)
                _kill_tree(proc, poll_interval)
                timed_out = True
                break
            if cancel is not None and cancel.is_set():
                log.debug("pid %d cancelled, killing", proc.pid)
                _kill_tree(proc, poll_interval)
                cancelled = True
                break
            chunk = _read_available(fd)
            if chunk:
                output.extend(chunk)
            else:
                time.sleep(poll_interval)
        _drain(fd, output)
    finally:
        if proc.poll() is None:
            _kill_tree(proc, poll_interval)
        proc.stdout.close()
        returncode = proc.wait()

    text = output.decode("utf-8", errors="replace")
    return ProcessResult(
        text=text,
        timed_out=timed_out,
        exit_failed=timed_out or cancelled or returncode != 0,
        returncode=returncode,
        cancelled=cancelled,
    )


class ProcessRunner:
    """:func:`run_command` bound to a poll interval and a shared cancel flag.

    The background fetch worker owns one of these; :meth:`cancel` aborts
    whatever command is in flight and every later call until :meth:`reset`.
    """

    def __init__(self, poll_interval: float = POLL_INTERVAL) -> None:
        self.poll_interval = poll_interval
        self._cancel = threading.Event()

    def run(self, command: str, timeout: float = DEFAULT_TIMEOUT) -> ProcessResult:
        return run_command(
            command,
            timeout=timeout,
            poll_interval=self.poll_interval,
            cancel=self._cancel,
        )

    def cancel(self) -> None:
        self._cancel.set()

    def reset(self) -> None:
        self._cancel.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()
