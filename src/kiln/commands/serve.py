"""
kiln.commands.serve - Dev session: build, watch, serve, live reload.
"""

from __future__ import annotations

import argparse
import dataclasses
import signal
import sys
import threading

from kiln.commands import load_bundler_config
from kiln.session import DevSession


def run(args: argparse.Namespace) -> int:
    """Start a dev session and block until Ctrl+C or SIGTERM.

    Initial build errors propagate (exit 1, no bundle written). Rebuild
    errors are reported to the browser and the session keeps running.
    """
    config = load_bundler_config(args)
    overrides = {}
    if getattr(args, "port", None) is not None:
        overrides["port"] = args.port
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "no_hot", False):
        overrides["hot_reload"] = False
    server = dataclasses.replace(config.dev_server, **overrides)
    config = dataclasses.replace(config, dev_server=server)

    session = DevSession(config)
    session.start()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, lambda signum, frame: session.shutdown())

    host, port = session.server_address
    if not getattr(args, "quiet", False):
        print(
            f"""
======================================
  kiln dev server
======================================

Entry:       {config.entry_path}
Bundle:      http://{host}:{port}{config.public_path}{config.output_filename}
Server:      http://{host}:{port}/
Live reload: {"on" if server.hot_reload else "off"}

Press Ctrl+C to stop
"""
        )

    try:
        while not session.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        print("\nServer stopped.")
    finally:
        session.shutdown()

    if session.fatal_error is not None:
        print(f"Error: {session.fatal_error}", file=sys.stderr)
        return 1
    return 0
