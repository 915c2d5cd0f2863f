"""Channel protocol: outbound envelopes and the closed set of inbound events."""

import enum
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from codeduel.errors import InvalidFormat

logger = logging.getLogger(__name__)

# Socket.IO event name used in both directions on the /ws namespace
CHANNEL_EVENT = 'match_message'


class MessageType(str, enum.Enum):
    PLAYER_JOINED = 'PLAYER_JOINED'
    PLAYER_LEFT = 'PLAYER_LEFT'
    CODE_SHARED = 'CODE_SHARED'
    MATCH_READY = 'MATCH_READY'
    WAITING_FOR_PLAYERS = 'WAITING_FOR_PLAYERS'
    MATCH_COMPLETED = 'MATCH_COMPLETED'
    ERROR = 'ERROR'


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Envelope:
    type: MessageType
    data: Dict[str, Any]
    match_id: Optional[str] = None
    user_id: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        payload = {'type': self.type.value, 'data': self.data, 'timestamp': self.timestamp}
        if self.match_id is not None:
            payload['matchId'] = self.match_id
        if self.user_id is not None:
            payload['userId'] = self.user_id
        return payload


def error_envelope(code: str, message: str, user_id: Optional[str] = None,
                   match_id: Optional[str] = None) -> Envelope:
    return Envelope(MessageType.ERROR, {'message': message, 'code': code},
                    match_id=match_id, user_id=user_id)


# ---- Inbound (client-originated) events ----

@dataclass(frozen=True)
class PlayerJoinedEvent:
    match_id: str
    username: str
    joining_code: Optional[str] = None


@dataclass(frozen=True)
class PlayerLeftEvent:
    match_id: str
    username: Optional[str] = None


@dataclass(frozen=True)
class CodeSharedEvent:
    match_id: str
    joining_code: str
    username: Optional[str] = None


InboundEvent = Union[PlayerJoinedEvent, PlayerLeftEvent, CodeSharedEvent]


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    raise InvalidFormat('Expected a string value')


def _parse_joined(match_id, data):
    return PlayerJoinedEvent(match_id=match_id, username=_text(data.get('username')) or 'Anonymous',
                             joining_code=_text(data.get('joiningCode')))


def _parse_left(match_id, data):
    return PlayerLeftEvent(match_id=match_id, username=_text(data.get('username')))


def _parse_code_shared(match_id, data):
    code = _text(data.get('joiningCode'))
    if not code:
        raise InvalidFormat('joiningCode is required')
    return CodeSharedEvent(match_id=match_id, joining_code=code, username=_text(data.get('username')))


_PARSERS = {
    MessageType.PLAYER_JOINED.value: _parse_joined,
    MessageType.PLAYER_LEFT.value: _parse_left,
    MessageType.CODE_SHARED.value: _parse_code_shared,
}


def parse_inbound(raw) -> Optional[InboundEvent]:
    """Turn a raw channel payload into an inbound event.

    Raises InvalidFormat for anything unparsable; returns None for a
    well-formed message of a kind the server does not consume.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise InvalidFormat() from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise InvalidFormat() from exc
    if not isinstance(raw, dict):
        raise InvalidFormat()

    kind = raw.get('type')
    if not isinstance(kind, str):
        raise InvalidFormat('type is required')
    parser = _PARSERS.get(kind)
    if parser is None:
        logger.info(f"[channel-ignore] unknown message type={kind}")
        return None

    data = raw.get('data') or {}
    if not isinstance(data, dict):
        raise InvalidFormat('data must be an object')
    match_id = _text(raw.get('matchId')) or _text(data.get('matchId'))
    if not match_id:
        raise InvalidFormat('matchId is required')
    return parser(match_id, data)
