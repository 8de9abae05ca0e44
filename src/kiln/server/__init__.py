"""kiln.server - Flask dev server and live-reload push channel.

Serves the bundle output directory and the content base over HTTP and
notifies connected browsers about rebuilds through server-sent events.
"""

from kiln.server.app import create_app, format_event
from kiln.server.broadcast import Broadcaster, ClientSession

__all__ = ["Broadcaster", "ClientSession", "create_app", "format_event"]
