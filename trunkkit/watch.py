"""Watch the project's files and rebuild when they change."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from trunkkit.ws import BuildState

_log = logging.getLogger(__name__)

BLACKLIST = (".git", ".DS_Store")
"""Path segments that never trigger a build."""

DEBOUNCE_DURATION = 0.025
"""Seconds during which file system events are gathered before they are handled."""

WATCHER_COOLDOWN = 1.0
"""Seconds after a build during which changes are ignored.

Copying files, as a build does, produces change events even though nothing
changed; without a cooldown this would cause endless rebuilds.
"""


class EventKind(Enum):
    """The kind of a file system change."""

    CREATE = "create"
    REMOVE = "remove"
    MODIFY_NAME = "modify-name"
    MODIFY_DATA = "modify-data"
    MODIFY_WRITE_TIME = "modify-write-time"
    MODIFY_ANY = "modify-any"
    MODIFY_METADATA = "modify-metadata"
    ACCESS = "access"
    OTHER = "other"

    @property
    def is_relevant(self) -> bool:
        return self in _RELEVANT_KINDS


_RELEVANT_KINDS = frozenset(
    {
        EventKind.CREATE,
        EventKind.REMOVE,
        EventKind.MODIFY_NAME,
        EventKind.MODIFY_DATA,
        EventKind.MODIFY_WRITE_TIME,
        EventKind.MODIFY_ANY,
    }
)

_WATCHDOG_KINDS = {
    "created": EventKind.CREATE,
    "deleted": EventKind.REMOVE,
    "moved": EventKind.MODIFY_NAME,
    "modified": EventKind.MODIFY_DATA,
    "opened": EventKind.ACCESS,
    "closed": EventKind.ACCESS,
    "closed_no_write": EventKind.ACCESS,
}


@dataclass(frozen=True)
class WatchEvent:
    """A debounced change affecting one or more paths."""

    kind: EventKind
    paths: tuple[Path, ...]

    @classmethod
    def of(cls, kind: EventKind, *paths: str | os.PathLike[str]) -> WatchEvent:
        return cls(kind, tuple(Path(path) for path in paths))


def _convert(event: FileSystemEvent) -> WatchEvent:
    kind = _WATCHDOG_KINDS.get(event.event_type, EventKind.OTHER)
    paths = [os.fsdecode(event.src_path)]
    dest = getattr(event, "dest_path", None)
    if dest:
        paths.append(os.fsdecode(dest))
    return WatchEvent.of(kind, *paths)


class _DebouncingHandler(FileSystemEventHandler):
    """Gathers watchdog events for a short while and delivers each distinct one once."""

    def __init__(self, deliver: Callable[[WatchEvent], None]) -> None:
        super().__init__()
        self._deliver = deliver
        self._lock = threading.Lock()
        self._pending: dict[WatchEvent, None] = {}
        self._timer: threading.Timer | None = None

    def on_any_event(self, event: FileSystemEvent) -> None:
        converted = _convert(event)
        with self._lock:
            self._pending[converted] = None
            if self._timer is None:
                self._timer = threading.Timer(DEBOUNCE_DURATION, self._flush)
                self._timer.daemon = True
                self._timer.start()

    def _flush(self) -> None:
        with self._lock:
            events = list(self._pending)
            self._pending.clear()
            self._timer = None
        for event in events:
            self._deliver(event)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()


def build_error_reason(error: BaseException) -> str:
    """Describe a build error together with the chain of errors that caused it."""
    result = f"{error}\n\n"
    current = _cause_of(error)
    index = 0
    while current is not None:
        if index == 0:
            result += "Caused by:\n"
        result += f"\t{index}: {current}\n"
        index += 1
        current = _cause_of(current)
    return result


def _cause_of(error: BaseException) -> BaseException | None:
    if error.__cause__ is not None:
        return error.__cause__
    if error.__suppress_context__:
        return None
    return error.__context__


def is_blacklisted(path: str | os.PathLike[str]) -> bool:
    """Whether any segment of ``path`` is on the blacklist."""
    return any(segment in BLACKLIST for segment in Path(path).parts)


def _canonical(path: Path) -> Path | None:
    try:
        return path.resolve(strict=True)
    except (OSError, RuntimeError):
        return None


class WatchSystem:
    """Runs builds in response to file system changes.

    ``build`` is an async callable that performs one build and raises on failure.
    ``ws_state`` receives the state of every finished build, for the auto-reload
    websocket. ``poll`` switches to polling with that interval in seconds.
    """

    def __init__(
        self,
        build: Callable[[], Awaitable[Any]],
        paths: Iterable[str | os.PathLike[str]] = (),
        *,
        ignored_paths: Iterable[str | os.PathLike[str]] = (),
        poll: float | None = None,
        enable_cooldown: bool = True,
        clear_screen: bool = False,
        no_error_reporting: bool = False,
        ws_state: Callable[[BuildState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._build = build
        self._build_lock = asyncio.Lock()
        self._paths = [Path(path) for path in paths]
        self.ignored_paths: list[Path] = [Path(path) for path in ignored_paths]
        self._poll = poll
        self.watcher_cooldown = WATCHER_COOLDOWN if enable_cooldown else None
        _log.debug("Build cooldown: %s", self.watcher_cooldown)
        self.clear_screen = clear_screen
        self.no_error_reporting = no_error_reporting
        self._ws_state = ws_state
        self._clock = clock

        now = clock()
        self._last_build_started = now
        self._last_build_finished = now
        self._last_change = now

        self._inbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._tasks: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Any = None
        self._handler: _DebouncingHandler | None = None

    async def build(self) -> None:
        """Run one build, never two at once."""
        async with self._build_lock:
            await self._build()

    def start(self) -> None:
        """Start watching the configured paths. Must be called from a running event loop."""
        if self._observer is not None:
            return
        self._loop = asyncio.get_running_loop()
        if self._poll is not None:
            _log.info("Running in polling mode: %ss", self._poll)
            observer = PollingObserver(timeout=self._poll)
        else:
            observer = Observer()
        handler = _DebouncingHandler(self._deliver)
        for path in self._paths:
            try:
                if not path.exists():
                    raise FileNotFoundError(str(path))
                observer.schedule(handler, str(path), recursive=True)
            except OSError as err:
                raise RuntimeError(f"failed to watch {path} for file system changes") from err
        try:
            observer.start()
        except OSError as err:
            raise RuntimeError("failed to build file system watcher") from err
        self._observer = observer
        self._handler = handler

    def _deliver(self, event: WatchEvent) -> None:
        loop = self._loop
        if loop is None:
            return
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(self._inbox.put_nowait, ("watch", event))

    def _stop_watching(self) -> None:
        if self._handler is not None:
            self._handler.cancel()
            self._handler = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    async def run(self, shutdown: asyncio.Event) -> None:
        """Respond to changes and finished builds until ``shutdown`` is set."""
        self.start()
        stopper = asyncio.ensure_future(shutdown.wait())
        try:
            while True:
                getter = asyncio.ensure_future(self._inbox.get())
                done, _ = await asyncio.wait(
                    {getter, stopper}, return_when=asyncio.FIRST_COMPLETED
                )
                if stopper in done:
                    getter.cancel()
                    break
                kind, payload = getter.result()
                if kind == "watch":
                    self.handle_watch_event(payload)
                elif kind == "build":
                    self.build_complete(payload)
        finally:
            if not stopper.done():
                stopper.cancel()
            self._stop_watching()
            _log.debug("watcher system has shut down")

    def is_build_active(self) -> bool:
        """Whether a build was started and has not reported back yet."""
        return self._last_build_started > self._last_build_finished

    def update_ignore_list(self, path: str | os.PathLike[str]) -> None:
        """Ignore changes at or below ``path`` from now on."""
        given = Path(path)
        canonical = _canonical(given) or given
        if canonical not in self.ignored_paths:
            self.ignored_paths.append(canonical)

    def is_event_relevant(self, event: WatchEvent) -> bool:
        """Whether ``event`` should cause a build."""
        if not event.kind.is_relevant:
            return False
        ignored = set(self.ignored_paths)
        for raw in event.paths:
            path = _canonical(raw)
            if path is None:
                # Removed resources, such as staging directories, cannot be resolved.
                continue
            if path in ignored or any(parent in ignored for parent in path.parents):
                continue
            if is_blacklisted(path):
                continue
            _log.debug("accepted change in %s of type %s", path, event.kind.value)
            return True
        return False

    def handle_watch_event(self, event: WatchEvent) -> None:
        """Record a relevant change and start a build if none is running."""
        _log.debug("change detected in %s of type %s", event.paths, event.kind.value)
        if not self.is_event_relevant(event):
            return
        self._last_change = self._clock()
        if self.is_build_active():
            _log.debug("Build is active, postponing start")
            return
        self._check_spawn_build()

    def build_complete(self, error: BaseException | None) -> None:
        """Handle the end of a build: report its outcome and rebuild if changes came in."""
        _log.debug("Build reported completion")
        self._last_build_finished = self._clock()
        if self._ws_state is not None:
            if error is None:
                self._ws_state(BuildState.ok())
            elif not self.no_error_reporting:
                self._ws_state(BuildState.failed(build_error_reason(error)))
        self._check_spawn_build()

    def _check_spawn_build(self) -> None:
        if self._last_change <= self._last_build_started:
            return
        if self.watcher_cooldown is not None:
            since_build = max(0.0, self._last_change - self._last_build_finished)
            if since_build < self.watcher_cooldown:
                _log.debug(
                    "Cooldown is still active: %.3fs remaining",
                    self.watcher_cooldown - since_build,
                )
                return
        if self.clear_screen:
            try:
                sys.stdout.write("\x1b[2J\x1b[H")
                sys.stdout.flush()
            except OSError as err:
                _log.error("Unable to clear the screen due to error: %s", err)
        self._spawn_build()

    def _spawn_build(self) -> None:
        self._last_build_started = self._clock()
        task = asyncio.get_running_loop().create_task(self._run_build())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_build(self) -> None:
        error: BaseException | None = None
        try:
            await self.build()
        except Exception as err:  # noqa: BLE001 - a failed build is reported, not raised
            error = err
        self._inbox.put_nowait(("build", error))