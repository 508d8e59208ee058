"""Interactive terminal dashboard: sysdash's hardware info browser.

A menu of eight info sources on the left, the selected source's report on
the right, refreshed every few seconds. Probes run on a background worker so
a slow tool (nvidia-smi, dmidecode ...) never freezes the keyboard; results
come back to the loop through an :class:`EventChannel`.

Usage:
    uv run sysdash
    uv run sysdash --interval 5 --timeout 3 --log-file /tmp/sysdash.log
"""

from __future__ import annotations

import argparse
import curses
import logging
import os
import queue
import select
import signal
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from sysdash.config import Settings, load_settings
from sysdash.registry import build_registry, source_labels
from sysdash.render import compute_layout, draw_dashboard, init_colors
from sysdash.runner import ProcessRunner
from sysdash.sources import InfoSource

log = logging.getLogger(__name__)

QUIT_KEYS = (ord("q"), ord("Q"))
REFRESH_KEYS = (ord("r"), ord("R"))


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass
class DashboardState:
    """Everything the renderer needs; written only by :class:`Dashboard`."""

    selected_index: int = 0
    scroll_offset: int = 0
    cached_report: str = ""
    last_refresh: float | None = None
    updated_at: float | None = None
    loading: bool = False
    terminal_rows: int = 24
    terminal_cols: int = 80


@dataclass(frozen=True)
class FetchRequest:
    generation: int
    index: int
    source: InfoSource


@dataclass(frozen=True)
class FetchCompleted:
    generation: int
    index: int
    report: str
    elapsed: float
    finished_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Resized:
    pass


def loading_text(label: str) -> str:
    return f"Loading {label} info..."


def execute(request: FetchRequest) -> FetchCompleted:
    started = time.monotonic()
    try:
        report = request.source.fetch()
    except Exception as e:
        log.exception("%s fetch crashed", request.source.label)
        report = f"Error: {e}"
    return FetchCompleted(
        generation=request.generation,
        index=request.index,
        report=report,
        elapsed=time.monotonic() - started,
    )


# ── Event channel ──────────────────────────────────────────────────────────


class EventChannel:
    """Thread-safe event queue with a pipe the UI loop can ``select()`` on."""

    def __init__(self) -> None:
        self._events: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._rfd, self._wfd = os.pipe()
        os.set_blocking(self._rfd, False)
        os.set_blocking(self._wfd, False)

    def fileno(self) -> int:
        return self._rfd

    def post(self, event: Any) -> None:
        self._events.put(event)
        try:
            os.write(self._wfd, b"\0")
        except (BlockingIOError, OSError):
            # Pipe full (a wake-up is already pending) or channel closed.
            pass

    def drain(self) -> list[Any]:
        try:
            while os.read(self._rfd, 512):
                pass
        except (BlockingIOError, OSError):
            pass
        events: list[Any] = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        for fd in (self._rfd, self._wfd):
            try:
                os.close(fd)
            except OSError:
                pass


# ── Fetchers ───────────────────────────────────────────────────────────────


class Fetcher(Protocol):
    def submit(self, request: FetchRequest) -> None: ...

    def cancel(self) -> None: ...

    def close(self) -> None: ...


class InlineFetcher:
    """Runs each fetch synchronously inside :meth:`submit` (``--foreground``)."""

    def __init__(self, channel: EventChannel) -> None:
        self.channel = channel

    def submit(self, request: FetchRequest) -> None:
        self.channel.post(execute(request))

    def cancel(self) -> None:
        pass

    def close(self) -> None:
        pass


class FetchWorker:
    """Single background thread that runs fetch requests one at a time.

    Queued requests are coalesced to the newest one, and a request older
    than the newest submitted generation is never started. Submitting a
    newer request kills the command currently running through the shared
    :class:`ProcessRunner`.
    """

    def __init__(self, channel: EventChannel, runner: ProcessRunner) -> None:
        self.channel = channel
        self.runner = runner
        self._requests: queue.SimpleQueue[FetchRequest | None] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._latest = 0
        self._active: int | None = None
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="sysdash-fetch", daemon=True)
        self._thread.start()

    def submit(self, request: FetchRequest) -> None:
        with self._lock:
            self._latest = max(self._latest, request.generation)
            if self._active is not None and self._active < self._latest:
                self.runner.cancel()
        self._requests.put(request)

    def cancel(self) -> None:
        with self._lock:
            if self._active is not None:
                self.runner.cancel()

    def close(self, timeout: float = 2.0) -> None:
        with self._lock:
            self._closed = True
            self.runner.cancel()
        self._requests.put(None)
        self._thread.join(timeout)

    def _start(self, request: FetchRequest) -> bool:
        """Mark *request* active unless it is already superseded."""
        with self._lock:
            if self._closed:
                return False
            if request.generation < self._latest:
                log.debug("skipping superseded request %d", request.generation)
                return False
            self.runner.reset()
            self._active = request.generation
            return True

    def _next_request(self) -> FetchRequest | None:
        request = self._requests.get()
        while request is not None:
            try:
                newer = self._requests.get_nowait()
            except queue.Empty:
                break
            if newer is not None:
                log.debug("dropping superseded request %d", request.generation)
            request = newer
        return request

    def _run(self) -> None:
        while True:
            request = self._next_request()
            if request is None:
                return
            if not self._start(request):
                continue
            try:
                event = execute(request)
            finally:
                with self._lock:
                    self._active = None
            self.channel.post(event)


# ── Controller ─────────────────────────────────────────────────────────────


class Dashboard:
    """Dashboard state machine: keys, refresh timer and fetch results in, state out."""

    def __init__(
        self,
        sources: list[InfoSource],
        fetcher: Fetcher,
        settings: Settings | None = None,
        rows: int = 24,
        cols: int = 80,
        clock: Any = time.monotonic,
    ) -> None:
        if not sources:
            raise ValueError("dashboard needs at least one source")
        self.sources = sources
        self.labels = source_labels(sources)
        self.fetcher = fetcher
        self.settings = settings or Settings()
        self.clock = clock
        self.state = DashboardState(terminal_rows=rows, terminal_cols=cols)
        self.layout = compute_layout(rows, cols, len(sources))
        self.running = True
        self._generation = 0

    # ── fetch bookkeeping ──────────────────────────────────────────────

    @property
    def current_source(self) -> InfoSource:
        return self.sources[self.state.selected_index]

    def request_fetch(self) -> None:
        """Fetch the selected source, superseding any fetch in flight."""
        if self.state.loading:
            self.fetcher.cancel()
        self._generation += 1
        self.state.loading = True
        self.state.last_refresh = self.clock()
        idx = self.state.selected_index
        log.debug("fetch %d: %s", self._generation, self.labels[idx])
        self.fetcher.submit(FetchRequest(self._generation, idx, self.sources[idx]))

    def on_fetch_completed(self, event: FetchCompleted) -> None:
        if event.generation != self._generation:
            log.debug("discarding stale result %d (current %d)", event.generation, self._generation)
            return
        log.debug("fetch %d done in %.2fs", event.generation, event.elapsed)
        self.state.cached_report = event.report
        self.state.updated_at = event.finished_at
        self.state.loading = False

    def handle_event(self, event: Any) -> None:
        if isinstance(event, FetchCompleted):
            self.on_fetch_completed(event)

    # ── timer ──────────────────────────────────────────────────────────

    def refresh_due(self) -> bool:
        if self.state.loading or self.state.last_refresh is None:
            return False
        return self.clock() - self.state.last_refresh >= self.settings.refresh_interval

    def seconds_until_refresh(self) -> float:
        """How long the loop may wait for input before the next tick."""
        wait = self.settings.input_timeout
        if not self.state.loading and self.state.last_refresh is not None:
            due = self.state.last_refresh + self.settings.refresh_interval - self.clock()
            wait = min(wait, due)
        return max(wait, 0.0)

    def tick(self) -> None:
        if self.refresh_due():
            self.request_fetch()

    # ── input ──────────────────────────────────────────────────────────

    def select(self, delta: int) -> None:
        count = len(self.sources)
        self.state.selected_index = (self.state.selected_index + delta) % count
        self.state.scroll_offset = 0
        self.state.cached_report = loading_text(self.current_source.label)
        self.state.updated_at = None
        self.request_fetch()

    def scroll(self, delta: int) -> None:
        """Move the info pane by *delta* lines; never above the first line."""
        self.state.scroll_offset = max(0, self.state.scroll_offset + delta)

    def handle_key(self, key: int) -> None:
        if key in QUIT_KEYS:
            self.running = False
        elif key == curses.KEY_UP:
            self.select(-1)
        elif key == curses.KEY_DOWN:
            self.select(1)
        elif key == curses.KEY_PPAGE:
            self.scroll(-1)
        elif key == curses.KEY_NPAGE:
            self.scroll(1)
        elif key in REFRESH_KEYS:
            self.request_fetch()

    # ── geometry ───────────────────────────────────────────────────────

    def resize(self, rows: int, cols: int) -> None:
        if (rows, cols) == (self.state.terminal_rows, self.state.terminal_cols):
            return
        self.state.terminal_rows = rows
        self.state.terminal_cols = cols
        self.layout = compute_layout(rows, cols, len(self.sources))

    def start(self) -> None:
        self.state.cached_report = loading_text(self.current_source.label)
        self.request_fetch()

    def status_marker(self) -> str:
        if self.state.loading:
            return "loading..."
        if self.state.updated_at is None:
            return ""
        return "updated " + time.strftime("%H:%M:%S", time.localtime(self.state.updated_at))

    def draw(self, stdscr: curses.window) -> None:
        draw_dashboard(
            stdscr,
            self.layout,
            self.labels,
            self.state.selected_index,
            self.state.cached_report,
            self.state.scroll_offset,
            self.status_marker(),
        )


# ── Main loop ──────────────────────────────────────────────────────────────


def _sync_geometry(stdscr: curses.window, dash: Dashboard) -> None:
    """Pick up a terminal resize before drawing."""
    try:
        size = os.get_terminal_size(sys.__stdout__.fileno())
    except (OSError, AttributeError, ValueError):
        size = None
    if size is not None and curses.is_term_resized(size.lines, size.columns):
        curses.resizeterm(size.lines, size.columns)
        stdscr.clear()
    rows, cols = stdscr.getmaxyx()
    dash.resize(rows, cols)


def _wait_for_input(channel: EventChannel, timeout: float) -> None:
    try:
        select.select([sys.stdin, channel], [], [], timeout)
    except (OSError, ValueError):
        time.sleep(min(timeout, 0.1))


def _dashboard_loop(stdscr: curses.window, settings: Settings) -> None:
    init_colors()
    curses.curs_set(0)
    stdscr.keypad(True)
    stdscr.nodelay(True)

    runner = ProcessRunner(settings.poll_interval)
    sources = build_registry(runner.run, settings)
    channel = EventChannel()
    fetcher: Fetcher = InlineFetcher(channel) if settings.foreground else FetchWorker(channel, runner)
    rows, cols = stdscr.getmaxyx()
    dash = Dashboard(sources, fetcher, settings, rows, cols)

    prev_winch = signal.signal(signal.SIGWINCH, lambda *_: channel.post(Resized()))
    try:
        dash.start()
        while dash.running:
            _sync_geometry(stdscr, dash)
            for event in channel.drain():
                dash.handle_event(event)
            dash.tick()
            dash.draw(stdscr)

            _wait_for_input(channel, dash.seconds_until_refresh())
            while dash.running:
                key = stdscr.getch()
                if key == -1:
                    break
                dash.handle_key(key)
    finally:
        signal.signal(signal.SIGWINCH, prev_winch)
        fetcher.close()
        channel.close()


# ── CLI entry point ────────────────────────────────────────────────────────


def setup_logging(settings: Settings) -> None:
    """Log to a file when asked; never to the terminal curses owns."""
    logger = logging.getLogger("sysdash")
    if settings.log_file is None:
        logger.addHandler(logging.NullHandler())
        logger.propagate = False
        return
    logging.basicConfig(
        filename=settings.log_file,
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Interactive hardware and system info dashboard.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between refreshes (default: 3)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-command timeout in seconds (default: 5)",
    )
    parser.add_argument(
        "--foreground",
        action="store_true",
        default=None,
        help="Run probes in the UI thread (input blocks while a probe runs)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write a debug log to PATH",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level (with --log-file)",
    )
    args = parser.parse_args(argv)

    settings = load_settings(
        {
            "refresh_interval": args.interval,
            "command_timeout": args.timeout,
            "foreground": args.foreground,
            "log_file": args.log_file,
            "log_level": "DEBUG" if args.debug else None,
        }
    )
    setup_logging(settings)
    try:
        curses.wrapper(_dashboard_loop, settings)
    except KeyboardInterrupt:
        pass
    except curses.error as e:
        print(f"sysdash: cannot start terminal UI: {e}", file=sys.stderr)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
