"""Dev session - Owns the graph, the artifact and the background threads.

Lifecycle::

    IDLE -> BUILDING -> SERVING <-> REBUILDING
                 \\_______________________> STOPPED

The initial build runs on the caller's thread and its errors propagate.
Afterwards a watcher thread feeds change events into ``submit()`` and a
single worker thread runs rebuilds, so at most one rebuild is in flight.
Events arriving during a rebuild form the next batch.

Usage:
    session = DevSession(config)
    session.start()
    session.wait()
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from werkzeug.serving import BaseWSGIServer, make_server

from kiln.bundle.emitter import Artifact, BundleEmitter, clean_output_dir, write_artifact
from kiln.config.models import BundlerConfig
from kiln.errors import CycleError, EmitError, KilnError, ParseError, ResolutionError
from kiln.graph.builder import GraphBuilder, ModuleGraph
from kiln.graph.resolver import Resolver
from kiln.server.app import create_app
from kiln.server.broadcast import Broadcaster
from kiln.watcher import ChangeEvent, Watcher

logger = logging.getLogger(__name__)

# Rebuild failures that leave the previous bundle serving.
RECOVERABLE_ERRORS = (ResolutionError, ParseError, CycleError, OSError)


class SessionState(Enum):
    """Lifecycle states of a DevSession."""

    IDLE = "idle"
    BUILDING = "building"
    SERVING = "serving"
    REBUILDING = "rebuilding"
    STOPPED = "stopped"


class DevSession:
    """Build-watch-serve loop for one entry file.

    Args:
        config: Resolved bundler configuration.
        broadcaster: Push channel registry (a new one by default).
        watcher: File watcher (built from ``config.dev_server`` by default).

    Attributes:
        state: Current SessionState.
        version: Bundle version, 1 after the initial build, +1 per rebuild.
        last_error: Message of the most recent failed rebuild, if any.
        fatal_error: EmitError that stopped the session, if any.
    """

    def __init__(
        self,
        config: BundlerConfig,
        broadcaster: Broadcaster | None = None,
        watcher: Watcher | None = None,
    ) -> None:
        server_config = config.dev_server
        self.config = config
        self.builder = GraphBuilder(Resolver.from_config(config))
        self.emitter = BundleEmitter(
            config.root, mode=config.mode, hot_client=server_config.hot_reload
        )
        self.broadcaster = broadcaster or Broadcaster()
        self.watcher = watcher or Watcher(
            poll_interval=server_config.poll_interval,
            debounce=server_config.debounce,
        )

        self.state = SessionState.IDLE
        self.version = 0
        self.last_error: str | None = None
        self.fatal_error: EmitError | None = None

        self._graph: ModuleGraph | None = None
        self._artifact: Artifact | None = None
        self._lock = threading.Lock()

        # Pending change paths in arrival order; guarded by _wakeup.
        self._pending: dict[Path, None] = {}
        self._carried: set[Path] = set()
        self._wakeup = threading.Condition()

        self._stopping = threading.Event()
        self._stopped = threading.Event()
        self._threads: list[threading.Thread] = []
        self._server: BaseWSGIServer | None = None

    # ─────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────

    @property
    def graph(self) -> ModuleGraph | None:
        with self._lock:
            return self._graph

    @property
    def artifact(self) -> Artifact | None:
        with self._lock:
            return self._artifact

    @property
    def server_address(self) -> tuple[str, int] | None:
        """(host, port) the HTTP server is bound to, once serving."""
        if self._server is None:
            return None
        return (self._server.host, self._server.server_port)

    def status(self) -> dict[str, Any]:
        """Snapshot used by ``/__kiln/status``."""
        with self._lock:
            graph = self._graph
            artifact = self._artifact
            version = self.version
            state = self.state
            last_error = self.last_error
        return {
            "state": state.value,
            "version": version,
            "digest": artifact.digest if artifact is not None else None,
            "modules": graph.module_count() if graph is not None else 0,
            "entry": str(self.config.entry_path),
            "last_error": last_error,
        }

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def start(self, serve: bool = True, watch: bool = True) -> None:
        """Run the initial build and start the background threads.

        Args:
            serve: Also start the HTTP server.
            watch: Start the watcher and rebuild worker threads. Without
                them, rebuilds run only through ``process_pending()``.

        Raises:
            KilnError: If the session was already started or the initial
                build fails. Nothing is written in that case.
            OSError: If the bundle cannot be written or the port is taken.
        """
        with self._lock:
            if self.state is not SessionState.IDLE:
                raise KilnError(f"Session cannot start from state '{self.state.value}'")
            self.state = SessionState.BUILDING
        try:
            graph = self.builder.build(self.config.entry_path)
            artifact = self.emitter.emit(graph)
            if self.config.has_feature("clean"):
                clean_output_dir(self.config.output_path)
            write_artifact(artifact, self.config.output_path, self.config.output_filename)
            if serve:
                self._server = self._make_server()
        except BaseException:
            with self._lock:
                self.state = SessionState.STOPPED
            self._stopped.set()
            raise

        self.watcher.set_paths(graph.paths())
        with self._lock:
            self._graph = graph
            self._artifact = artifact
            self.version = 1
            self.state = SessionState.SERVING
        logger.info(
            "Built %s: %d modules -> %s",
            self.config.entry_path.name,
            graph.module_count(),
            self.config.artifact_path,
        )

        if watch:
            self._spawn("kiln-watcher", self._watch_loop)
            self._spawn("kiln-rebuild", self._worker_loop)
        if self._server is not None:
            self._spawn("kiln-http", self._server.serve_forever)
            host, port = self.server_address
            logger.info("Serving on http://%s:%d/", host, port)

    def shutdown(self) -> None:
        """Stop watcher, worker, push channel and HTTP server.

        Safe to call more than once and from any of the session's threads.
        """
        with self._lock:
            if self._stopping.is_set():
                return
            self.state = SessionState.STOPPED
            self._stopping.set()

        self.watcher.stop()
        with self._wakeup:
            self._wakeup.notify_all()
        self.broadcaster.close()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()

        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(timeout=5.0)
        self._stopped.set()
        logger.info("Dev session stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session has stopped.

        Returns:
            True if stopped, False if ``timeout`` expired first.
        """
        return self._stopped.wait(timeout)

    # ─────────────────────────────────────────────────────────────────
    # Rebuilds
    # ─────────────────────────────────────────────────────────────────

    def submit(self, event: ChangeEvent) -> bool:
        """Queue a change event for the next rebuild.

        Returns:
            False if the path is not part of the current graph (ignored).
        """
        graph = self.graph
        if graph is None or event.path not in graph:
            logger.debug("Ignoring change to untracked file %s", event.path)
            return False
        with self._wakeup:
            self._pending[event.path] = None
            self._wakeup.notify()
        return True

    def process_pending(self) -> bool:
        """Rebuild once for every event queued so far.

        Returns:
            True if a new bundle version was published.
        """
        with self._wakeup:
            batch = list(self._pending)
            self._pending.clear()
        if not batch or self._stopping.is_set():
            return False
        return self._rebuild(batch)

    def _rebuild(self, batch: list[Path]) -> bool:
        with self._lock:
            previous = self._graph
            if previous is None:
                raise KilnError("Session has not been started")
            if self._stopping.is_set():
                return False
            changed = self._carried | set(batch)
            self.state = SessionState.REBUILDING
        logger.info("Rebuilding after changes to %s", ", ".join(sorted(p.name for p in changed)))

        try:
            graph = self.builder.rebuild(previous, changed)
            artifact = self.emitter.emit(graph)
        except EmitError as e:
            self._fail(e)
            return False
        except RECOVERABLE_ERRORS as e:
            self._report(changed, e)
            return False

        try:
            write_artifact(artifact, self.config.output_path, self.config.output_filename)
        except OSError as e:
            self._report(changed, e)
            return False

        self.watcher.set_paths(graph.paths())
        with self._lock:
            self._graph = graph
            self._artifact = artifact
            self.version += 1
            version = self.version
            self._carried = set()
            self.last_error = None
            if not self._stopping.is_set():
                self.state = SessionState.SERVING
        logger.info("Rebuilt %d modules (version %d)", graph.module_count(), version)
        self.broadcaster.broadcast({"type": "update", "version": version})
        return True

    def _report(self, changed: set[Path], error: Exception) -> None:
        """Publish a recoverable rebuild failure; the old bundle stays."""
        with self._lock:
            self._carried = changed
            self.last_error = str(error)
            if not self._stopping.is_set():
                self.state = SessionState.SERVING
        logger.error("Rebuild failed: %s", error)
        self.broadcaster.broadcast({"type": "error", "message": str(error)})

    def _fail(self, error: EmitError) -> None:
        with self._lock:
            self.fatal_error = error
            self.last_error = str(error)
        logger.critical("Internal bundling error, stopping: %s", error)
        self.broadcaster.broadcast({"type": "error", "message": str(error)})
        self.shutdown()

    # ─────────────────────────────────────────────────────────────────
    # Threads
    # ─────────────────────────────────────────────────────────────────

    def _spawn(self, name: str, target) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _watch_loop(self) -> None:
        for event in self.watcher.watch():
            self.submit(event)

    def _worker_loop(self) -> None:
        while True:
            with self._wakeup:
                while not self._pending and not self._stopping.is_set():
                    self._wakeup.wait()
            if self._stopping.is_set():
                return
            self.process_pending()

    def _make_server(self) -> BaseWSGIServer:
        server_config = self.config.dev_server
        app = create_app(
            output_dir=self.config.output_path,
            content_base=server_config.content_base,
            broadcaster=self.broadcaster,
            public_path=self.config.public_path,
            status=self.status,
        )
        return make_server(server_config.host, server_config.port, app, threaded=True)
