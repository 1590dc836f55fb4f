import threading

from flask import current_app


class SessionRegistry:
    """
    Maps user ids to their live socket connection ids.

    A user may hold several connections (tabs, devices). Disconnecting a socket
    evicts only that connection; the user entry goes away with its last one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_user = {}
        self._by_sid = {}

    def add(self, user_id: int, sid: str) -> None:
        with self._lock:
            previous = self._by_sid.get(sid)
            if previous is not None and previous != user_id:
                self._discard(previous, sid)
            self._by_sid[sid] = user_id
            self._by_user.setdefault(user_id, set()).add(sid)

    def remove(self, sid: str):
        """Evict a connection. Returns the user id it belonged to, if any."""
        with self._lock:
            user_id = self._by_sid.pop(sid, None)
            if user_id is not None:
                self._discard(user_id, sid)
            return user_id

    def lookup(self, user_id: int) -> set:
        with self._lock:
            return set(self._by_user.get(user_id, ()))

    def is_connected(self, user_id: int) -> bool:
        return bool(self.lookup(user_id))

    def _discard(self, user_id, sid):
        sids = self._by_user.get(user_id)
        if not sids:
            return
        sids.discard(sid)
        if not sids:
            del self._by_user[user_id]


class NotificationRelay:
    """
    Fire-and-forget fan-out to connected users.

    At most once, no persistence: a user who is not connected when an event is
    published never sees it. Emission errors are logged and dropped.
    """

    def __init__(self, registry: SessionRegistry, emit=None):
        self.registry = registry
        self._emit = emit

    def bind(self, emit) -> None:
        self._emit = emit

    def publish(self, recipient_user_id: int, event_name: str, payload: dict) -> int:
        """Returns the number of connections the event was handed to."""
        if self._emit is None:
            return 0

        delivered = 0
        for sid in self.registry.lookup(recipient_user_id):
            try:
                self._emit(event_name, payload, sid)
                delivered += 1
            except Exception as exc:
                current_app.logger.warning(
                    "Dropped %s for user %s (sid %s): %s", event_name, recipient_user_id, sid, exc
                )
        return delivered


def get_relay() -> NotificationRelay:
    return current_app.extensions["notification_relay"]


def notify(user_id: int, event_name: str, payload: dict) -> None:
    get_relay().publish(user_id, event_name, payload)
