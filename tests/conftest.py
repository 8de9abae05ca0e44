"""Shared fixtures: small JavaScript projects written into tmp_path."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from kiln.config import BundlerConfig, get_config

PROJECT_CONFIG = """\
mode = "development"

[entry]
path = "src/main.js"

[output]
path = "public/dist"
filename = "app.js"
public_path = "/dist/"

[dev_server]
content_base = "public"
host = "127.0.0.1"
port = 0
poll_interval = 0.01
debounce = 0.01
"""

PROJECT_FILES = {
    "src/main.js": (
        'import { a } from "./a.js";\n'
        'import b from "./b";\n'
        "export const result = a + b;\n"
    ),
    "src/a.js": 'import { c } from "./c.js";\nexport const a = c + 1;\n',
    "src/b.js": "export default 2;\n",
    "src/c.js": "export const c = 1;\n",
    "public/index.html": '<!doctype html>\n<script src="/dist/app.js"></script>\n',
}


def write_source(path: Path, content: str) -> Path:
    """Write ``content`` and move the mtime forward.

    File system timestamps can be coarser than the time between two writes
    in a test; bumping the mtime makes every write observable.
    """
    previous = path.stat().st_mtime_ns if path.exists() else None
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if previous is not None:
        bumped = max(path.stat().st_mtime_ns, previous + 1_000_000_000)
        os.utime(path, ns=(bumped, bumped))
    return path


@pytest.fixture
def write():
    """Expose write_source to tests."""
    return write_source


@pytest.fixture
def js_project(tmp_path):
    """Project root: main imports a and b; a imports c."""
    root = tmp_path.resolve() / "project"
    for relative, content in PROJECT_FILES.items():
        write_source(root / relative, content)
    (root / ".kiln.toml").write_text(PROJECT_CONFIG, encoding="utf-8")
    return root


@pytest.fixture
def bundler_config(js_project) -> BundlerConfig:
    """Typed config for js_project, isolated from the process environment."""
    data = get_config(config_path=js_project / ".kiln.toml", environ={})
    return BundlerConfig.from_dict(data)


@pytest.fixture
def src(js_project) -> Path:
    return js_project / "src"
