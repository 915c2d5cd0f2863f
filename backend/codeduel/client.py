"""Python client for the /ws match channel, with explicit reconnect states.

    disconnected -> connecting -> connected -> backoff -> connecting ...

Backoff doubles from ``base_delay`` up to ``max_delay`` and gives up after
``max_attempts`` consecutive failures. A clean close never reconnects.
"""

import enum
import logging
import threading
import time

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from codeduel.services.matches.messages import CHANNEL_EVENT, MessageType

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    BACKOFF = 'backoff'


class ReconnectStateMachine:
    def __init__(self, base_delay=1.0, max_delay=30.0, max_attempts=5):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0

    def _move(self, new_state):
        logger.debug(f"[client-state] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def start(self):
        """Begin a connection attempt; False if one is already underway or up."""
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return False
        self._move(ConnectionState.CONNECTING)
        return True

    def connected(self):
        self.attempts = 0
        self._move(ConnectionState.CONNECTED)

    def next_delay(self):
        return min(self.base_delay * (2 ** self.attempts), self.max_delay)

    def lost(self, clean=False):
        """Connection dropped or attempt failed; returns the retry delay or None."""
        if clean:
            self.attempts = 0
            self._move(ConnectionState.DISCONNECTED)
            return None
        if self.attempts >= self.max_attempts:
            logger.error("[client-giveup] max reconnection attempts reached")
            self._move(ConnectionState.DISCONNECTED)
            return None
        delay = self.next_delay()
        self.attempts += 1
        self._move(ConnectionState.BACKOFF)
        return delay

    def reset(self):
        self.attempts = 0
        self._move(ConnectionState.DISCONNECTED)


class MatchChannelClient:
    """Connects a participant to /ws and speaks the match channel protocol."""

    def __init__(self, url, user_id, token=None, namespace='/ws', machine=None,
                 sio=None, sleep=time.sleep, on_message=None):
        self.url = url
        self.user_id = user_id
        self.token = token
        self.namespace = namespace
        self.machine = machine or ReconnectStateMachine()
        self.sio = sio or socketio.Client(reconnection=False)
        self._sleep = sleep
        self._closing = False
        self._lock = threading.Lock()
        self.on_message = on_message
        self.received = []
        self.sio.on('disconnect', self._on_disconnect, namespace=namespace)
        self.sio.on(CHANNEL_EVENT, self._on_message, namespace=namespace)

    @property
    def state(self):
        return self.machine.state

    def _auth(self):
        auth = {'userId': self.user_id}
        if self.token:
            auth['token'] = self.token
        return auth

    def connect(self):
        """Try to connect, backing off between failures. Returns True when up."""
        with self._lock:
            self._closing = False
            if not self.machine.start():
                return self.machine.state == ConnectionState.CONNECTED
            while True:
                try:
                    self.sio.connect(self.url, namespaces=[self.namespace], auth=self._auth())
                except SocketConnectionError as exc:
                    delay = self.machine.lost()
                    logger.warning(f"[client-connect-failed] error={exc} retry_in={delay}")
                    if delay is None:
                        return False
                    self._sleep(delay)
                    self.machine.start()
                    continue
                self.machine.connected()
                return True

    def close(self):
        self._closing = True
        try:
            self.sio.disconnect()
        finally:
            self.machine.lost(clean=True)

    def _on_disconnect(self, *args):
        if self._closing:
            return
        delay = self.machine.lost()
        if delay is not None:
            logger.info(f"[client-reconnect] in {delay}s")
            self._sleep(delay)
            self.connect()

    def _on_message(self, payload):
        self.received.append(payload)
        if self.on_message is not None:
            self.on_message(payload)

    def send(self, kind, match_id, **data):
        if self.machine.state != ConnectionState.CONNECTED:
            logger.warning(f"[client-send-skipped] type={kind.value} state={self.machine.state.value}")
            return False
        self.sio.emit(CHANNEL_EVENT, {'type': kind.value, 'matchId': match_id,
                                      'data': dict(data, matchId=match_id)},
                      namespace=self.namespace)
        return True

    def join_match(self, match_id, username):
        return self.send(MessageType.PLAYER_JOINED, match_id, username=username)

    def leave_match(self, match_id, username=None):
        return self.send(MessageType.PLAYER_LEFT, match_id, username=username)

    def share_code(self, match_id, joining_code, username=None):
        return self.send(MessageType.CODE_SHARED, match_id, joiningCode=joining_code, username=username)
