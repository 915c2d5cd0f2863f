from flask import current_app, request
from flask_socketio import ConnectionRefusedError
from codeduel import socketio
from codeduel.errors import AuthInvalid, AuthMissing
from codeduel.auth import participant_from_handshake
from codeduel.services import get_services
from codeduel.services.matches.messages import CHANNEL_EVENT
from codeduel.services.matches.registry import SocketChannel

NAMESPACE = '/ws'


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    """Handshake: a participant id is required before any message exchange."""
    try:
        participant_id = participant_from_handshake(auth, request.args)
    except (AuthMissing, AuthInvalid) as exc:
        current_app.logger.info(f"[ws-refused] code={exc.code}")
        raise ConnectionRefusedError({'code': exc.code, 'message': exc.message})
    sid = _get_sid()
    services = get_services()
    channel = SocketChannel(sid, namespace=NAMESPACE, server=socketio)
    services.sockets[sid] = (participant_id, channel)
    services.coordinator.connect(participant_id, channel)


def handle_disconnect(reason=None):
    services = get_services()
    ctx = services.sockets.pop(_get_sid(), None)
    if not ctx:
        return
    participant_id, channel = ctx
    channel.close()
    current_app.logger.info(f"[ws-disconnect] participant={participant_id} reason={reason}")
    services.coordinator.disconnect(participant_id, channel)


def handle_match_message(data=None):
    services = get_services()
    ctx = services.sockets.get(_get_sid())
    if not ctx:
        return
    services.coordinator.handle_message(ctx[0], data)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event(CHANNEL_EVENT, handle_match_message, namespace=NAMESPACE)
