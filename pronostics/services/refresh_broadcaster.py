"""
Refresh signal relay for Server-Sent Events clients.

Every open ``/api/refresh-games-cards`` stream owns a bounded queue.
Broadcasting puts the same message on every queue; a queue that is full
belongs to a client that stopped reading and is dropped.
"""

import json
import logging
import queue
import threading
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

REFRESH_GAMES = "refresh_games"


class RefreshBroadcaster:
    """Fan-out of refresh signals to SSE subscribers"""

    def __init__(self, queue_size=100):
        self.queue_size = queue_size
        self._subscribers = set()
        self._lock = threading.Lock()

    def init_app(self, app):
        self.queue_size = app.config.get("SSE_QUEUE_SIZE", self.queue_size)

    @property
    def connected_clients(self):
        with self._lock:
            return len(self._subscribers)

    def subscribe(self):
        """Register a new client and return its queue"""
        client_queue = queue.Queue(maxsize=self.queue_size)
        with self._lock:
            self._subscribers.add(client_queue)
            count = len(self._subscribers)
        logger.debug(f"SSE client subscribed ({count} connected)")
        return client_queue

    def unsubscribe(self, client_queue):
        with self._lock:
            self._subscribers.discard(client_queue)
            count = len(self._subscribers)
        logger.debug(f"SSE client unsubscribed ({count} connected)")

    def broadcast(self, message_type=REFRESH_GAMES):
        """
        Send a refresh signal to every subscriber.

        Returns:
            dict with connected_clients and signal_id
        """
        message = {
            "type": message_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "signal_id": uuid.uuid4().hex,
        }

        with self._lock:
            subscribers = list(self._subscribers)

        dead = []
        for client_queue in subscribers:
            try:
                client_queue.put_nowait(message)
            except queue.Full:
                dead.append(client_queue)

        if dead:
            with self._lock:
                for client_queue in dead:
                    self._subscribers.discard(client_queue)
            logger.warning(f"Dropped {len(dead)} unresponsive SSE clients")

        connected = len(subscribers) - len(dead)
        logger.info(f"Refresh signal {message['signal_id']} sent to {connected} clients")

        return {
            "connected_clients": connected,
            "signal_id": message["signal_id"],
            "timestamp": message["timestamp"],
        }

    def stream(self, client_queue, keepalive_seconds=20):
        """
        Yield SSE frames for one client until it disconnects.

        ``:ok`` first, one ``data:`` frame per message and a ``:keep-alive``
        comment after each silent period.
        """
        try:
            yield ":ok\n\n"
            while True:
                try:
                    message = client_queue.get(timeout=keepalive_seconds)
                except queue.Empty:
                    yield ":keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(message)}\n\n"
        finally:
            self.unsubscribe(client_queue)


# Global broadcaster instance
refresh_broadcaster = RefreshBroadcaster()
