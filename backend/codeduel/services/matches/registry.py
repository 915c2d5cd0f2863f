import logging
import threading
from typing import Dict

from .messages import CHANNEL_EVENT, Envelope

logger = logging.getLogger(__name__)


class SocketChannel:
    """A participant's live Socket.IO connection (one sid on one namespace)."""

    def __init__(self, sid: str, namespace: str = '/ws', server=None):
        self.sid = sid
        self.namespace = namespace
        self.open = True
        self._server = server

    def send(self, payload: dict) -> None:
        server = self._server
        if server is None:
            from codeduel import socketio as server
        server.emit(CHANNEL_EVENT, payload, to=self.sid, namespace=self.namespace)

    def close(self) -> None:
        self.open = False

    def __repr__(self):
        return f'<SocketChannel sid={self.sid} open={self.open}>'


class ConnectionRegistry:
    """Participant id -> live channel. One channel per participant at a time."""

    def __init__(self):
        self._channels: Dict[str, object] = {}
        self._lock = threading.RLock()

    def register(self, participant_id: str, channel) -> None:
        with self._lock:
            previous = self._channels.get(participant_id)
            self._channels[participant_id] = channel
        if previous is not None and previous is not channel:
            logger.info(f"[registry-replace] participant={participant_id}")

    def unregister(self, participant_id: str, channel=None) -> bool:
        """Drop the entry; with ``channel`` only if it is still the current one."""
        with self._lock:
            current = self._channels.get(participant_id)
            if current is None or (channel is not None and current is not channel):
                return False
            del self._channels[participant_id]
            return True

    def get(self, participant_id: str):
        with self._lock:
            return self._channels.get(participant_id)

    def is_current(self, participant_id: str, channel) -> bool:
        return self.get(participant_id) is channel

    def send(self, participant_id: str, message) -> bool:
        """Best-effort delivery; closed or missing channels are skipped."""
        channel = self.get(participant_id)
        if channel is None or not getattr(channel, 'open', False):
            return False
        payload = message.to_dict() if isinstance(message, Envelope) else message
        try:
            channel.send(payload)
        except Exception:
            logger.exception(f"[registry-send-failed] participant={participant_id}")
            return False
        return True

    def __contains__(self, participant_id) -> bool:
        return self.get(participant_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)
