"""Match presence: who is connected to which match, and the ready/waiting
state machine driven by join, leave, code-share and disconnect events.

Per match the states are EMPTY (no record) -> WAITING (one participant) ->
READY (two or more) -> EMPTY once the last participant leaves. All mutation
and the broadcasts it triggers happen under one coordinator lock, so the
broadcasts for a match go out in the order its events were processed.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from codeduel.errors import InsufficientPlayers, InvalidFormat
from .messages import (
    CodeSharedEvent,
    Envelope,
    MessageType,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    error_envelope,
    parse_inbound,
)

logger = logging.getLogger(__name__)

READY_THRESHOLD = 2

STATE_EMPTY = 'EMPTY'
STATE_WAITING = 'WAITING'
STATE_READY = 'READY'


@dataclass
class PresenceRecord:
    match_id: str
    players: Dict[str, str] = field(default_factory=dict)  # participant id -> display name
    joining_code: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.players)


class MatchPresenceTable:
    """match id -> PresenceRecord. A record exists iff its player set is non-empty."""

    def __init__(self):
        self._records: Dict[str, PresenceRecord] = {}

    def get(self, match_id: str) -> Optional[PresenceRecord]:
        return self._records.get(match_id)

    def add(self, match_id: str, participant_id: str, display_name: str,
            joining_code: Optional[str] = None) -> PresenceRecord:
        """Add a participant; a new record starts with the join code it was opened with."""
        record = self._records.get(match_id)
        if record is None:
            record = self._records[match_id] = PresenceRecord(match_id, joining_code=joining_code)
        record.players[participant_id] = display_name
        return record

    def remove(self, match_id: str, participant_id: str):
        """Remove a participant; returns (record, display name) or (None, None).

        The record is dropped, join code included, when it becomes empty.
        """
        record = self._records.get(match_id)
        if record is None or participant_id not in record.players:
            return None, None
        name = record.players.pop(participant_id)
        if not record.players:
            del self._records[match_id]
        return record, name

    def matches_for(self, participant_id: str) -> List[str]:
        return [mid for mid, rec in self._records.items() if participant_id in rec.players]

    def state(self, match_id: str) -> str:
        record = self._records.get(match_id)
        if record is None:
            return STATE_EMPTY
        return STATE_READY if record.size >= READY_THRESHOLD else STATE_WAITING

    def __contains__(self, match_id) -> bool:
        return match_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class PresenceCoordinator:
    def __init__(self, registry, table: Optional[MatchPresenceTable] = None):
        self.registry = registry
        self.table = table if table is not None else MatchPresenceTable()
        self._lock = threading.RLock()
        self._handlers = {
            PlayerJoinedEvent: self._on_joined,
            PlayerLeftEvent: self._on_left,
            CodeSharedEvent: self._on_code_shared,
        }

    # ---- connection lifecycle ----

    def connect(self, participant_id: str, channel) -> None:
        with self._lock:
            self.registry.register(participant_id, channel)
        logger.info(f"[presence-connect] participant={participant_id}")

    def disconnect(self, participant_id: str, channel=None) -> List[str]:
        """Apply a leave to every match the participant is in, then drop the channel.

        A stale channel (already replaced by a newer connection) is ignored.
        """
        with self._lock:
            if channel is not None and not self.registry.is_current(participant_id, channel):
                logger.info(f"[presence-disconnect-stale] participant={participant_id}")
                return []
            left = []
            for match_id in self.table.matches_for(participant_id):
                self.leave(match_id, participant_id)
                left.append(match_id)
            self.registry.unregister(participant_id, channel)
        logger.info(f"[presence-disconnect] participant={participant_id} matches={left}")
        return left

    # ---- inbound channel messages ----

    def handle_message(self, participant_id: str, raw) -> None:
        """Parse and apply one inbound message; malformed input only hurts the sender."""
        try:
            event = parse_inbound(raw)
        except InvalidFormat as exc:
            logger.info(f"[presence-invalid] participant={participant_id} reason={exc.message}")
            self.registry.send(participant_id, error_envelope(exc.code, exc.message, user_id=participant_id))
            return
        if event is None:
            return
        self._handlers[type(event)](participant_id, event)

    def _on_joined(self, participant_id, event: PlayerJoinedEvent):
        self.join(event.match_id, participant_id, event.username, event.joining_code)

    def _on_left(self, participant_id, event: PlayerLeftEvent):
        self.leave(event.match_id, participant_id)

    def _on_code_shared(self, participant_id, event: CodeSharedEvent):
        self.share_code(event.match_id, participant_id, event.joining_code, event.username)

    # ---- state transitions ----

    def join(self, match_id: str, participant_id: str, display_name: str,
             joining_code: Optional[str] = None) -> str:
        with self._lock:
            record = self.table.add(match_id, participant_id, display_name, joining_code)
            total = record.size
            logger.info(f"[presence-join] match={match_id} participant={participant_id} size={total}")
            if total < READY_THRESHOLD:
                self.registry.send(participant_id, Envelope(
                    MessageType.WAITING_FOR_PLAYERS,
                    {'matchId': match_id, 'totalPlayers': total,
                     'message': 'Waiting for another player to join'},
                    match_id=match_id, user_id=participant_id))
                return STATE_WAITING

            ready = {'matchId': match_id, 'totalPlayers': total, 'message': 'All players joined'}
            if record.joining_code:
                ready['joiningCode'] = record.joining_code
            self.broadcast(match_id, Envelope(
                MessageType.MATCH_READY, ready, match_id=match_id, user_id=participant_id))
            self.broadcast(match_id, Envelope(
                MessageType.PLAYER_JOINED,
                {'playerId': participant_id, 'username': display_name,
                 'matchId': match_id, 'totalPlayers': total},
                match_id=match_id, user_id=participant_id), exclude=participant_id)
            return STATE_READY

    def leave(self, match_id: str, participant_id: str) -> str:
        with self._lock:
            record, name = self.table.remove(match_id, participant_id)
            if record is None:
                return self.table.state(match_id)
            remaining = record.size
            logger.info(f"[presence-leave] match={match_id} participant={participant_id} remaining={remaining}")
            if remaining == 0:
                return STATE_EMPTY
            self.broadcast(match_id, Envelope(
                MessageType.PLAYER_LEFT,
                {'playerId': participant_id, 'username': name,
                 'matchId': match_id, 'remainingPlayers': remaining},
                match_id=match_id, user_id=participant_id))
            if remaining < READY_THRESHOLD:
                self.broadcast(match_id, Envelope(
                    MessageType.WAITING_FOR_PLAYERS,
                    {'matchId': match_id, 'totalPlayers': remaining,
                     'message': 'Your opponent left, waiting for players'},
                    match_id=match_id))
                return STATE_WAITING
            return STATE_READY

    def share_code(self, match_id: str, participant_id: str, code: str,
                   display_name: Optional[str] = None) -> bool:
        """Store the match's join code; broadcast it only once the match is ready.

        A solo participant gets INSUFFICIENT_PLAYERS back, but the code is kept
        and relayed with the MATCH_READY sent when the second player arrives.
        """
        with self._lock:
            record = self.table.get(match_id)
            if record is not None:
                record.joining_code = code
            if record is None or record.size < READY_THRESHOLD:
                logger.info(f"[presence-code-held] match={match_id} participant={participant_id}")
                exc = InsufficientPlayers()
                self.registry.send(participant_id, error_envelope(
                    exc.code, exc.message, user_id=participant_id, match_id=match_id))
                return False
            name = display_name or record.players.get(participant_id)
            self.broadcast(match_id, Envelope(
                MessageType.CODE_SHARED,
                {'playerId': participant_id, 'username': name,
                 'joiningCode': code, 'matchId': match_id},
                match_id=match_id, user_id=participant_id))
            return True

    def notify_match_completed(self, match_id: str, data: dict) -> int:
        envelope = Envelope(MessageType.MATCH_COMPLETED, dict(data, matchId=match_id),
                            match_id=match_id, user_id=data.get('winnerId'))
        with self._lock:
            sent = self.broadcast(match_id, envelope)
        logger.info(f"[presence-completed] match={match_id} delivered={sent}")
        return sent

    def broadcast(self, match_id: str, envelope: Envelope, exclude: Optional[str] = None) -> int:
        record = self.table.get(match_id)
        if record is None:
            return 0
        payload = envelope.to_dict()
        sent = 0
        for participant_id in list(record.players):
            if participant_id == exclude:
                continue
            if self.registry.send(participant_id, payload):
                sent += 1
        return sent

    def participants(self, match_id: str) -> Dict[str, str]:
        with self._lock:
            record = self.table.get(match_id)
            return dict(record.players) if record else {}
