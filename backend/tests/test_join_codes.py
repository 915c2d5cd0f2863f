import pytest

from codeduel.errors import (
    AlreadyMatched,
    ConstraintMismatch,
    Expired,
    Forbidden,
    InvalidRequest,
    NotFound,
    SelfJoin,
)
from codeduel.services.matches.join_codes import CODE_ALPHABET, JoinCodeBroker, primary


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def broker(clock):
    return JoinCodeBroker(ttl_sec=1800, clock=clock)


def test_primary_takes_first_element():
    assert primary(['ARRAY', 'GRAPH']) == 'ARRAY'
    assert primary('EASY') == 'EASY'
    assert primary([]) is None
    assert primary(None) is None


def test_create_returns_code_and_reserved_match(broker, clock):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    assert len(entry.code) == 6
    assert set(entry.code) <= set(CODE_ALPHABET)
    assert entry.expires_at == clock.now + 1800
    assert entry.reserved_match_id
    assert entry.match_id is None
    assert entry.status == 'waiting'


def test_create_rejects_empty_filters(broker):
    with pytest.raises(InvalidRequest):
        broker.create_code('alice', [], ['EASY'])
    with pytest.raises(InvalidRequest):
        broker.create_code('alice', ['ARRAY'], None)


def test_codes_are_unique_among_live_entries(broker):
    codes = {broker.create_code(f'user{i}', ['ARRAY'], ['EASY']).code for i in range(200)}
    assert len(codes) == 200
    assert len(broker) == 200


def test_join_with_matching_filters_succeeds(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    claim = broker.join_code(entry.code, 'bob', ['ARRAY'], ['EASY'])
    assert claim.creator_id == 'alice'
    assert claim.joiner_id == 'bob'
    assert claim.match_id == entry.reserved_match_id
    assert broker.get(entry.code).status == 'matched'


def test_join_is_case_insensitive_on_code(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    assert broker.join_code(entry.code.lower(), 'bob', ['ARRAY'], ['EASY']).match_id


def test_join_with_other_topic_is_constraint_mismatch(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    with pytest.raises(ConstraintMismatch):
        broker.join_code(entry.code, 'bob', ['GRAPH'], ['EASY'])
    with pytest.raises(ConstraintMismatch):
        broker.join_code(entry.code, 'bob', ['ARRAY'], ['HARD'])
    assert broker.get(entry.code).match_id is None


def test_join_compares_only_primary_selection(broker):
    entry = broker.create_code('alice', ['ARRAY', 'GRAPH'], ['EASY'])
    assert broker.join_code(entry.code, 'bob', ['ARRAY', 'MATH'], ['EASY'])


def test_unknown_code_is_not_found(broker):
    with pytest.raises(NotFound):
        broker.join_code('NOPE00', 'bob', ['ARRAY'], ['EASY'])


def test_expired_code_is_evicted(broker, clock):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    clock.now += 1800
    with pytest.raises(Expired):
        broker.join_code(entry.code, 'bob', ['ARRAY'], ['EASY'])
    assert broker.get(entry.code) is None
    with pytest.raises(NotFound):
        broker.join_code(entry.code, 'bob', ['ARRAY'], ['EASY'])


def test_code_is_single_use(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    broker.join_code(entry.code, 'bob', ['ARRAY'], ['EASY'])
    with pytest.raises(AlreadyMatched):
        broker.join_code(entry.code, 'carol', ['ARRAY'], ['EASY'])


def test_creator_cannot_join_own_code(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    with pytest.raises(SelfJoin):
        broker.join_code(entry.code, 'alice', ['ARRAY'], ['EASY'])


def test_release_makes_code_joinable_again(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    claim = broker.join_code(entry.code, 'bob', ['ARRAY'], ['EASY'])
    broker.release(claim.code, claim.match_id)
    assert broker.join_code(entry.code, 'carol', ['ARRAY'], ['EASY']).joiner_id == 'carol'


def test_check_only_for_creator(broker):
    entry = broker.create_code('alice', ['ARRAY'], ['EASY'])
    assert broker.check_code(entry.code, 'alice').status == 'waiting'
    with pytest.raises(Forbidden):
        broker.check_code(entry.code, 'bob')


def test_sweep_evicts_only_expired(broker, clock):
    old = broker.create_code('alice', ['ARRAY'], ['EASY'])
    clock.now += 1000
    fresh = broker.create_code('bob', ['ARRAY'], ['EASY'])
    clock.now += 900
    assert broker.sweep() == 1
    assert broker.get(old.code) is None
    assert broker.get(fresh.code) is not None
    assert broker.sweep() == 0
