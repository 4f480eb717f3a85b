"""
Tests for SessionStorage: value routing, mapping behaviour and expiry.
"""
import pytest
from datetime import datetime, timezone

from calendar_crypto.crypto import DerivedSecret, SecretKind
from calendar_crypto.storage import SessionStorage


@pytest.fixture
def secret():
    return DerivedSecret(b"\x05" * 32, SecretKind.ENCRYPTION_KEY)


@pytest.fixture
def preferences():
    return SessionStorage(data={
        'email': 'ana@example.com',
        'week_starts_on': 1,
        'remember': True
    })


class TestInitialization:

    def test_new_storage_is_empty(self, storage):
        assert storage.empty is True
        assert len(storage) == 0

    def test_initial_values(self, preferences):
        assert preferences.empty is False
        assert preferences['week_starts_on'] == 1
        assert set(preferences.session_data()) == {
            'email', 'week_starts_on', 'remember'
        }

    def test_ids_are_unique(self, storage):
        assert storage.session_id
        assert SessionStorage().session_id != storage.session_id

    def test_explicit_id(self):
        assert SessionStorage(id="tab-1").session_id == "tab-1"

    def test_created_is_epoch_seconds(self, storage):
        now = int(datetime.now(timezone.utc).timestamp())
        assert abs(now - storage.created) <= 1


class TestRouting:

    def test_plain_values_are_persistable(self, storage):
        storage['name'] = 'test'
        storage['when'] = datetime.now(timezone.utc)
        storage['nested'] = {'a': [1, 2, {'b': None}]}
        assert set(storage.session_data()) == {'name', 'when', 'nested'}
        assert storage.session_objects() == {}

    def test_secret_kept_in_memory(self, storage, secret):
        storage['key'] = secret
        assert storage['key'] is secret
        assert 'key' in storage.session_objects()
        assert 'key' not in storage.session_data()

    def test_bytes_kept_in_memory(self, storage):
        storage['raw'] = b'\x00\x01'
        assert 'raw' in storage.session_objects()

    def test_container_with_secret_kept_in_memory(self, storage, secret):
        storage['keys'] = [secret]
        assert 'keys' in storage.session_objects()

    def test_reassignment_moves_value(self, storage, secret):
        storage['k'] = 'plain'
        storage['k'] = secret
        assert 'k' not in storage.session_data()
        storage['k'] = 'plain'
        assert 'k' not in storage.session_objects()
        assert len(storage) == 1


class TestMapping:

    def test_missing_key(self, storage):
        with pytest.raises(KeyError):
            _ = storage['missing']
        with pytest.raises(KeyError):
            del storage['missing']

    def test_delete_from_both_slots(self, storage, secret):
        storage['a'] = 1
        storage['b'] = secret
        del storage['a']
        del storage['b']
        assert storage.empty

    def test_membership_and_iteration(self, storage, secret):
        storage['a'] = 1
        storage['b'] = secret
        assert 'a' in storage and 'b' in storage
        assert 'c' not in storage
        assert sorted(storage) == ['a', 'b']

    def test_mixin_methods(self, storage, secret):
        storage['b'] = secret
        assert storage.get('missing') is None
        assert storage.pop('b') is secret
        assert storage.pop('b', None) is None

    def test_repr_names_objects_only(self, storage, secret):
        storage['key'] = secret
        text = repr(storage)
        assert 'key' in text
        assert secret.hex() not in text


class TestLifecycle:

    def test_invalidate(self, storage, secret):
        storage['name'] = 'x'
        storage['key'] = secret
        storage.invalidate()
        assert storage.empty is True

    def test_no_max_age_never_expires(self, storage):
        storage._created -= 10_000
        assert storage.max_age is None
        assert storage.expired is False

    def test_expires_after_max_age(self):
        storage = SessionStorage(max_age=60)
        assert storage.expired is False
        storage._created -= 66
        assert storage.expired is True
