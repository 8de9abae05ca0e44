"""Watcher - Poll bundled files for changes and debounce bursts.

Only the paths of the current module graph are tracked. Each poll compares
a ``(mtime_ns, size)`` fingerprint per path; a change (deletion included)
touches the path in a Debouncer, which releases one ChangeEvent once the
path has been quiet for the debounce window. Editors that write a file
several times per save therefore trigger a single rebuild.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

Fingerprint = tuple[int, int] | None


@dataclass(frozen=True)
class ChangeEvent:
    """A debounced change to one tracked file.

    Attributes:
        path: Canonical path of the changed module.
        timestamp: Clock reading when the event was released.
    """

    path: Path
    timestamp: float


def fingerprint(path: Path) -> Fingerprint:
    """Return ``(mtime_ns, size)`` for ``path``, or None if it is missing."""
    try:
        stat = path.stat()
    except OSError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


class Debouncer:
    """Merge repeated touches of the same path within a quiet window.

    A path becomes ready once ``window`` seconds have passed since its most
    recent touch; it is then reported once and forgotten.
    """

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.window = window
        self.clock = clock
        self._last_touch: dict[Path, float] = {}

    def touch(self, path: Path) -> None:
        self._last_touch[path] = self.clock()

    def discard(self, path: Path) -> None:
        self._last_touch.pop(path, None)

    def pending(self) -> int:
        return len(self._last_touch)

    def ready(self) -> list[ChangeEvent]:
        """Release paths whose quiet period has elapsed, oldest first."""
        now = self.clock()
        released = [
            (touched, path)
            for path, touched in self._last_touch.items()
            if now - touched >= self.window
        ]
        released.sort(key=lambda item: (item[0], str(item[1])))
        for _, path in released:
            del self._last_touch[path]
        return [ChangeEvent(path=path, timestamp=now) for _, path in released]


class Watcher:
    """Polling file watcher over a replaceable set of paths.

    Args:
        poll_interval: Seconds between polls in ``watch()``.
        debounce: Debounce window in seconds.
        clock: Monotonic clock (injectable for tests).
        sleep: Sleep function used between polls.
    """

    def __init__(
        self,
        poll_interval: float = 0.1,
        debounce: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.poll_interval = poll_interval
        self.debouncer = Debouncer(debounce, clock)
        self._tracked: dict[Path, Fingerprint] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sleep = sleep

    @property
    def tracked(self) -> frozenset[Path]:
        """Paths currently being watched."""
        with self._lock:
            return frozenset(self._tracked)

    def set_paths(self, paths: Iterable[Path]) -> None:
        """Replace the tracked set.

        Paths that stay tracked keep their fingerprint, so a change that
        happened before the call is still reported. New paths are
        snapshotted silently; dropped paths stop producing events.
        """
        new_paths = {Path(p) for p in paths}
        with self._lock:
            for path in list(self._tracked):
                if path not in new_paths:
                    del self._tracked[path]
                    self.debouncer.discard(path)
            for path in new_paths:
                if path not in self._tracked:
                    self._tracked[path] = fingerprint(path)
        logger.debug("Watching %d files", len(new_paths))

    def poll_once(self) -> list[Path]:
        """Compare fingerprints once; touch and return the changed paths."""
        changed: list[Path] = []
        with self._lock:
            for path, known in sorted(self._tracked.items(), key=lambda item: str(item[0])):
                current = fingerprint(path)
                if current != known:
                    self._tracked[path] = current
                    self.debouncer.touch(path)
                    changed.append(path)
        return changed

    def drain(self) -> list[ChangeEvent]:
        """Return debounced events that are ready."""
        with self._lock:
            return self.debouncer.ready()

    def watch(self, paths: Iterable[Path] | None = None) -> Iterator[ChangeEvent]:
        """Yield change events until ``stop()`` is called.

        Calling ``watch()`` again after a stop restarts the loop.

        Args:
            paths: Initial tracked set; None keeps the current one.
        """
        self._stop.clear()
        if paths is not None:
            self.set_paths(paths)
        while not self._stop.is_set():
            self.poll_once()
            yield from self.drain()
            if self._sleep is not None:
                self._sleep(self.poll_interval)
            else:
                self._stop.wait(self.poll_interval)

    def stop(self) -> None:
        """Make ``watch()`` return after its current poll."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()
