"""Short-lived join codes that pair a creator with one buddy.

Codes are single-use: once a joiner has been paired the entry stays around
(so the creator can ``check`` it) until it expires, but further joins fail
with ALREADY_MATCHED.
"""

import logging
import random
import string
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from codeduel.errors import (
    AlreadyMatched,
    ConstraintMismatch,
    Expired,
    Forbidden,
    InvalidRequest,
    NotFound,
    SelfJoin,
)
from codeduel.models import generate_match_id

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 30 * 60
DEFAULT_CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits


def primary(values) -> Optional[str]:
    """First element of a filter selection (a bare string counts as one)."""
    if isinstance(values, str):
        return values or None
    if isinstance(values, (list, tuple)) and values:
        return values[0]
    return None


@dataclass
class JoinCodeEntry:
    code: str
    creator_id: str
    topics: List[str]
    difficulties: List[str]
    created_at: float
    expires_at: float
    reserved_match_id: str
    match_id: Optional[str] = None
    joiner_id: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def status(self) -> str:
        return 'matched' if self.match_id else 'waiting'


@dataclass(frozen=True)
class JoinClaim:
    code: str
    creator_id: str
    joiner_id: str
    match_id: str
    topics: List[str]
    difficulties: List[str]


def _as_list(values, field_name):
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)) or not values:
        raise InvalidRequest(f'{field_name} must be a non-empty list')
    return list(values)


class JoinCodeBroker:
    def __init__(self, ttl_sec: float = DEFAULT_TTL_SEC, code_length: int = DEFAULT_CODE_LENGTH,
                 clock: Callable[[], float] = time.time):
        self.ttl_sec = ttl_sec
        self.code_length = code_length
        self._clock = clock
        self._entries: Dict[str, JoinCodeEntry] = {}
        self._lock = threading.RLock()

    def _generate(self, now: float) -> str:
        while True:
            code = ''.join(random.choices(CODE_ALPHABET, k=self.code_length))
            entry = self._entries.get(code)
            if entry is None or entry.is_expired(now):
                return code

    def create_code(self, creator_id: str, topics, difficulties) -> JoinCodeEntry:
        topics = _as_list(topics, 'topic')
        difficulties = _as_list(difficulties, 'Difficulty')
        with self._lock:
            now = self._clock()
            code = self._generate(now)
            entry = JoinCodeEntry(
                code=code,
                creator_id=creator_id,
                topics=topics,
                difficulties=difficulties,
                created_at=now,
                expires_at=now + self.ttl_sec,
                reserved_match_id=generate_match_id(),
            )
            self._entries[code] = entry
        logger.info(f"[joincode-create] code={code} creator={creator_id} match={entry.reserved_match_id}")
        return entry

    def _live_entry(self, code: str) -> JoinCodeEntry:
        entry = self._entries.get(code)
        if entry is None:
            raise NotFound('Invalid joining code')
        if entry.is_expired(self._clock()):
            del self._entries[code]
            logger.info(f"[joincode-expired] code={code}")
            raise Expired()
        return entry

    def join_code(self, code: str, joiner_id: str, topics, difficulties) -> JoinClaim:
        """Pair ``joiner_id`` onto a code; the entry is marked matched on success."""
        if not code:
            raise InvalidRequest('Joining code is required')
        code = code.upper()
        with self._lock:
            entry = self._live_entry(code)
            if entry.creator_id == joiner_id:
                raise SelfJoin()
            if entry.match_id:
                raise AlreadyMatched()
            if (primary(entry.difficulties) != primary(difficulties)
                    or primary(entry.topics) != primary(topics)):
                raise ConstraintMismatch()
            entry.match_id = entry.reserved_match_id
            entry.joiner_id = joiner_id
        logger.info(f"[joincode-join] code={code} creator={entry.creator_id} joiner={joiner_id} match={entry.match_id}")
        return JoinClaim(code=code, creator_id=entry.creator_id, joiner_id=joiner_id,
                         match_id=entry.match_id, topics=list(entry.topics),
                         difficulties=list(entry.difficulties))

    def release(self, code: str, match_id: str) -> None:
        """Undo a claim whose match could not be persisted."""
        with self._lock:
            entry = self._entries.get(code)
            if entry is not None and entry.match_id == match_id:
                entry.match_id = None
                entry.joiner_id = None
                logger.info(f"[joincode-release] code={code}")

    def check_code(self, code: str, requester_id: str) -> JoinCodeEntry:
        if not code:
            raise InvalidRequest('Joining code is required')
        with self._lock:
            entry = self._live_entry(code.upper())
            if entry.creator_id != requester_id:
                raise Forbidden("You don't have permission to check this code")
            return entry

    def sweep(self) -> int:
        """Evict every expired entry; safe against concurrent lookups."""
        with self._lock:
            now = self._clock()
            expired = [code for code, entry in list(self._entries.items()) if entry.is_expired(now)]
            for code in expired:
                self._entries.pop(code, None)
        if expired:
            logger.info(f"[joincode-sweep] evicted={len(expired)}")
        return len(expired)

    def get(self, code: str) -> Optional[JoinCodeEntry]:
        with self._lock:
            return self._entries.get(code.upper())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
