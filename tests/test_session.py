"""Tests for the dev session: initial build, rebuilds, failures, lifecycle."""

import json
import time
import urllib.request

import pytest

from kiln.errors import CycleError, EmitError, KilnError, ResolutionError
from kiln.session import DevSession, SessionState
from kiln.watcher import ChangeEvent


def _event(path):
    return ChangeEvent(path=path, timestamp=time.monotonic())


@pytest.fixture
def session(bundler_config):
    session = DevSession(bundler_config)
    yield session
    session.shutdown()


@pytest.fixture
def started(session):
    """Session after the initial build, without background threads."""
    session.start(serve=False, watch=False)
    return session


@pytest.fixture
def client(started):
    return started.broadcaster.open_session()


def _artifact_bytes(config):
    return config.artifact_path.read_bytes()


class TestStart:
    def test_initial_build(self, started, bundler_config, src):
        assert started.state is SessionState.SERVING
        assert started.version == 1
        assert bundler_config.artifact_path.is_file()
        assert started.artifact.text == bundler_config.artifact_path.read_text(encoding="utf-8")
        assert started.watcher.tracked == started.graph.paths()
        assert src / "c.js" in started.watcher.tracked

    def test_bundle_includes_livereload_client(self, started):
        assert "/__livereload" in started.artifact.header

    def test_initial_error_aborts(self, session, bundler_config, src, write):
        write(src / "c.js", 'import "./main.js";\n')
        with pytest.raises(CycleError):
            session.start(serve=False, watch=False)
        assert session.state is SessionState.STOPPED
        assert not bundler_config.artifact_path.exists()

    def test_start_twice(self, started):
        with pytest.raises(KilnError, match="cannot start"):
            started.start(serve=False, watch=False)

    def test_status(self, started):
        status = started.status()
        assert status["state"] == "serving"
        assert status["version"] == 1
        assert status["modules"] == 4
        assert status["digest"] == started.artifact.digest
        assert status["last_error"] is None


class TestSubmit:
    def test_untracked_event_ignored(self, started, js_project, bundler_config):
        before = _artifact_bytes(bundler_config)
        assert started.submit(_event(js_project / "README.md")) is False
        assert started.process_pending() is False
        assert started.version == 1
        assert _artifact_bytes(bundler_config) == before

    def test_batch_rebuilds_once(self, started, src, write, client):
        write(src / "b.js", "export default 20;\n")
        write(src / "c.js", "export const c = 10;\n")
        assert started.submit(_event(src / "b.js"))
        assert started.submit(_event(src / "c.js"))
        assert started.submit(_event(src / "c.js"))
        assert started.process_pending() is True
        assert started.version == 2
        assert started.process_pending() is False
        assert client.next_message(timeout=0) == {"type": "update", "version": 2}
        assert client.next_message(timeout=0) is None


class TestRebuild:
    def test_edit_leaf_module(self, started, bundler_config, src, write, client):
        order_before = started.artifact.order
        write(src / "c.js", "export const c = 41;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending()

        text = bundler_config.artifact_path.read_text(encoding="utf-8")
        assert "const c = 41;" in text
        assert started.artifact.order == order_before
        assert started.version == 2
        assert started.state is SessionState.SERVING
        assert client.next_message(timeout=0) == {"type": "update", "version": 2}

    def test_unchanged_rebuild_is_byte_identical(self, started, bundler_config, src, write):
        before = _artifact_bytes(bundler_config)
        write(src / "c.js", (src / "c.js").read_text())
        started.submit(_event(src / "c.js"))
        assert started.process_pending()
        assert _artifact_bytes(bundler_config) == before
        assert started.version == 2

    def test_syntax_error_keeps_previous_bundle(
        self, started, bundler_config, src, write, client
    ):
        before = _artifact_bytes(bundler_config)
        write(src / "c.js", "export const c = (1;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending() is False

        assert _artifact_bytes(bundler_config) == before
        assert started.version == 1
        assert started.state is SessionState.SERVING
        message = client.next_message(timeout=0)
        assert message["type"] == "error"
        assert "c.js" in message["message"]
        assert "c.js" in started.status()["last_error"]

        write(src / "c.js", "export const c = 5;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending()
        assert started.version == 2
        assert started.last_error is None
        assert "const c = 5;" in bundler_config.artifact_path.read_text(encoding="utf-8")

    def test_status_during_rebuild(self, started, src, write, monkeypatch):
        seen = []
        rebuild = started.builder.rebuild

        def observed(previous, changed):
            seen.append(started.status())
            return rebuild(previous, changed)

        monkeypatch.setattr(started.builder, "rebuild", observed)
        write(src / "c.js", "export const c = (1;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending() is False
        assert seen[0]["state"] == "rebuilding"
        assert seen[0]["version"] == 1

        status = started.status()
        assert status["state"] == "serving"
        assert "c.js" in status["last_error"]

    def test_no_rebuild_after_shutdown(self, started, src, write):
        write(src / "c.js", "export const c = 7;\n")
        started.submit(_event(src / "c.js"))
        started.shutdown()
        assert started.process_pending() is False
        assert started.status()["state"] == "stopped"
        assert started.version == 1

    def test_failed_batch_is_carried_forward(self, started, src, write):
        write(src / "a.js", 'import { c } from "./c.js";\nimport "./missing.js";\n')
        started.submit(_event(src / "a.js"))
        assert started.process_pending() is False

        write(src / "a.js", 'import { c } from "./c.js";\nexport const a = c + 100;\n')
        write(src / "b.js", "export default 2 ;\n")
        started.submit(_event(src / "b.js"))
        assert started.process_pending()
        assert "c + 100" in started.artifact.text

    def test_resolution_error_reported(self, started, src, write, client):
        write(src / "b.js", 'import "./nowhere";\nexport default 2;\n')
        started.submit(_event(src / "b.js"))
        started.process_pending()
        message = client.next_message(timeout=0)
        assert message["type"] == "error"
        assert "nowhere" in message["message"]

    def test_cycle_reported(self, started, src, write, client):
        write(src / "c.js", 'import { a } from "./a.js";\nexport const c = 1;\n')
        started.submit(_event(src / "c.js"))
        assert started.process_pending() is False
        message = client.next_message(timeout=0)
        assert "a.js" in message["message"] and "c.js" in message["message"]

    def test_removed_import_untracks_module(self, started, src, write):
        write(src / "main.js", 'import { a } from "./a.js";\nexport const result = a;\n')
        started.submit(_event(src / "main.js"))
        assert started.process_pending()
        assert src / "b.js" not in started.graph
        assert src / "b.js" not in started.watcher.tracked
        assert '"./src/b.js"' not in started.artifact.text

        # b is no longer part of the graph, so its edits are ignored
        write(src / "b.js", "export default 99;\n")
        assert started.submit(_event(src / "b.js")) is False

    def test_new_import_becomes_tracked(self, started, src, write):
        write(src / "d.js", "export const d = 4;\n")
        write(src / "b.js", 'import { d } from "./d.js";\nexport default d;\n')
        started.submit(_event(src / "b.js"))
        assert started.process_pending()
        assert src / "d.js" in started.watcher.tracked

    def test_emit_error_is_fatal(self, started, src, write, client, monkeypatch):
        def broken_emit(graph):
            raise EmitError("edge target missing")

        monkeypatch.setattr(started.emitter, "emit", broken_emit)
        write(src / "c.js", "export const c = 2;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending() is False
        assert isinstance(started.fatal_error, EmitError)
        assert started.state is SessionState.STOPPED
        assert client.next_message(timeout=0)["type"] == "error"
        assert started.wait(timeout=0)


class TestShutdown:
    def test_shutdown_idempotent(self, started):
        started.shutdown()
        started.shutdown()
        assert started.state is SessionState.STOPPED
        assert started.watcher.stopped
        assert started.broadcaster.closed
        assert started.wait(timeout=0)

    def test_events_after_shutdown_do_nothing(self, started, src, write):
        started.shutdown()
        write(src / "c.js", "export const c = 3;\n")
        started.submit(_event(src / "c.js"))
        assert started.process_pending() is False
        assert started.version == 1


class TestBackgroundThreads:
    def test_watch_rebuild_and_serve(self, session, bundler_config, src, write):
        session.start()
        host, port = session.server_address
        assert port > 0

        write(src / "c.js", "export const c = 77;\n")
        deadline = time.monotonic() + 10
        while session.version < 2 and time.monotonic() < deadline:
            time.sleep(0.02)
        assert session.version == 2

        with urllib.request.urlopen(f"http://{host}:{port}/__kiln/status", timeout=5) as r:
            status = json.loads(r.read())
        assert status["version"] == 2
        with urllib.request.urlopen(f"http://{host}:{port}/dist/app.js", timeout=5) as r:
            assert b"const c = 77;" in r.read()

        session.shutdown()
        assert session.wait(timeout=5)


class TestStartupFailure:
    def test_missing_entry(self, bundler_config, src):
        (src / "main.js").unlink()
        session = DevSession(bundler_config)
        with pytest.raises(ResolutionError):
            session.start(serve=False, watch=False)
        assert not bundler_config.artifact_path.exists()
