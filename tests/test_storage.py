"""
Tests for the persistent KeyValueStore.
"""

import json
from pathlib import Path
from unittest import mock

import pytest

from src.common.storage import KEY_PLAYLIST, KeyValueStore


class TestKeyValueStore:
    """Tests for KeyValueStore."""

    def test_missing_file_starts_empty(self, temp_store_path):
        """Test a store without a backing file."""
        store = KeyValueStore(temp_store_path)
        assert store.get('screenId') is None
        assert 'screenId' not in store

    def test_set_persists(self, temp_store_path):
        """Test values survive a new store instance."""
        store = KeyValueStore(temp_store_path)
        store.set(KEY_PLAYLIST, '{"items": []}')

        reopened = KeyValueStore(temp_store_path)
        assert reopened.get(KEY_PLAYLIST) == '{"items": []}'
        assert not Path(temp_store_path).with_name('.store.json.tmp').exists()

    def test_values_stored_as_strings(self, temp_store_path):
        """Test non-string values are stringified."""
        store = KeyValueStore(temp_store_path)
        store.set('screenId', 42)
        assert store.get('screenId') == '42'

    def test_remove(self, temp_store_path):
        """Test removing a key."""
        store = KeyValueStore(temp_store_path)
        store.set('screenToken', 'abc')
        store.remove('screenToken')
        store.remove('screenToken')

        assert KeyValueStore(temp_store_path).get('screenToken') is None

    def test_corrupt_file_ignored(self, temp_store_path):
        """Test an unreadable file yields an empty store."""
        Path(temp_store_path).write_text('not json')
        store = KeyValueStore(temp_store_path)
        assert store.get('screenId') is None

    def test_non_object_file_ignored(self, temp_store_path):
        """Test a JSON file that is not an object is ignored."""
        Path(temp_store_path).write_text(json.dumps(['a', 'b']))
        assert KeyValueStore(temp_store_path).get('a') is None

    def test_failed_write_keeps_old_value(self, temp_store_path):
        """Test a write error leaves memory and disk unchanged."""
        store = KeyValueStore(temp_store_path)
        store.set('screenId', 'old')

        with mock.patch.object(store, '_save_json', side_effect=OSError("read-only")):
            with pytest.raises(OSError):
                store.set('screenId', 'new')

        assert store.get('screenId') == 'old'

    def test_reload(self, temp_store_path):
        """Test reload picks up changes made by another writer."""
        store = KeyValueStore(temp_store_path)
        KeyValueStore(temp_store_path).set('screenId', 'paired-elsewhere')

        assert store.get('screenId') is None
        store.reload()
        assert store.get('screenId') == 'paired-elsewhere'
