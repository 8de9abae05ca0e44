"""Broadcast - Client sessions of the live-reload push channel.

Each connected browser owns a ClientSession with its own message queue.
``Broadcaster.broadcast`` fans a message out to every subscribed session;
the HTTP stream for that session drains the queue. Sessions that have gone
away are simply absent, so broadcasting never fails on them.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Queued to wake a stream that must end.
CLOSE = object()


@dataclass
class ClientSession:
    """One connected live-reload client.

    Attributes:
        id: Session identifier, unique within a Broadcaster.
        subscribed: Whether broadcasts are delivered to this session.
        last_acknowledged: Last bundle version the client confirmed.
    """

    id: str
    subscribed: bool = True
    last_acknowledged: int = 0
    _queue: queue.Queue = field(default_factory=queue.Queue, repr=False)

    def deliver(self, message: dict[str, Any]) -> None:
        self._queue.put(message)

    def next_message(self, timeout: float | None = None) -> Any:
        """Return the next queued message, ``CLOSE``, or None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


class Broadcaster:
    """Registry of client sessions with thread-safe fan-out."""

    def __init__(self) -> None:
        self._sessions: dict[str, ClientSession] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open_session(self, last_acknowledged: int = 0) -> ClientSession:
        """Register a new subscribed session."""
        with self._lock:
            session = ClientSession(id=str(next(self._ids)), last_acknowledged=last_acknowledged)
            if self._closed:
                session.subscribed = False
                session.deliver(CLOSE)
            else:
                self._sessions[session.id] = session
        logger.debug("Live-reload client %s connected", session.id)
        return session

    def close_session(self, session_id: str) -> None:
        """Forget a session; unknown ids are ignored."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.subscribed = False
            logger.debug("Live-reload client %s disconnected", session_id)

    def get(self, session_id: str) -> ClientSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def acknowledge(self, session_id: str, version: int) -> bool:
        """Record that a client has loaded ``version``."""
        session = self.get(session_id)
        if session is None:
            return False
        session.last_acknowledged = max(session.last_acknowledged, version)
        return True

    def client_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def broadcast(self, message: dict[str, Any]) -> int:
        """Queue ``message`` for every subscribed session.

        Returns:
            Number of sessions the message was queued for.
        """
        with self._lock:
            targets = [s for s in self._sessions.values() if s.subscribed]
        for session in targets:
            session.deliver(message)
        return len(targets)

    def close(self) -> None:
        """End every stream and refuse further subscriptions."""
        with self._lock:
            self._closed = True
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.subscribed = False
            session.deliver(CLOSE)
