"""
Tests for the GalleryStore module.

This test suite verifies:
- GalleryEntry validation
- put / list_all in insertion order
- Idempotent registration by source reference
- Persistence across store instances
- Dimension enforcement
- Concurrent registration of the same source
- StorageError on unusable databases

Run with: pytest tests/test_gallery_store.py -v
"""

import os
import shutil
import sqlite3
import sys
import tempfile
import threading

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from facematch.descriptor import Descriptor
from facematch.errors import DimensionMismatch, StorageError
from facematch.gallery_store import GalleryEntry, GalleryStore


def make_descriptor(seed: int, dim: int = 128) -> Descriptor:
    return Descriptor(np.random.default_rng(seed).normal(size=dim))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test databases."""
    temp = tempfile.mkdtemp()
    yield temp
    shutil.rmtree(temp)


@pytest.fixture
def store(temp_dir):
    s = GalleryStore(os.path.join(temp_dir, "gallery.sqlite"), dimension=128)
    yield s
    s.close()


class TestGalleryEntry:
    """Tests for the GalleryEntry dataclass."""

    def test_create_valid_entry(self):
        entry = GalleryEntry("alice", make_descriptor(0), "images/alice.jpg")
        assert entry.identity == "alice"
        assert entry.source == "images/alice.jpg"
        assert entry.descriptor.dimension == 128

    @pytest.mark.parametrize("identity", ["", "   "])
    def test_empty_identity_rejected(self, identity):
        with pytest.raises(ValueError):
            GalleryEntry(identity, make_descriptor(0), "a.jpg")

    def test_empty_source_rejected(self):
        with pytest.raises(ValueError):
            GalleryEntry("alice", make_descriptor(0), "")

    def test_raw_array_rejected(self):
        with pytest.raises(TypeError):
            GalleryEntry("alice", np.zeros(128), "a.jpg")

    def test_to_dict_omits_descriptor_by_default(self):
        entry = GalleryEntry("alice", make_descriptor(0, dim=4), "a.jpg")
        assert entry.to_dict() == {"identity": "alice", "source": "a.jpg", "dimension": 4}
        assert len(entry.to_dict(include_descriptor=True)["descriptor"]) == 4


class TestGalleryStore:
    """Tests for the GalleryStore class."""

    def test_empty_gallery(self, store):
        assert store.list_all() == []
        assert store.identities() == []
        assert store.get_stats()["total_entries"] == 0

    def test_put_and_list(self, store):
        """Test that stored entries come back in insertion order."""
        store.put(GalleryEntry("bob", make_descriptor(1), "bob.jpg"))
        store.put(GalleryEntry("alice", make_descriptor(2), "alice.jpg"))
        store.put(GalleryEntry("bob", make_descriptor(3), "bob2.jpg"))

        entries = store.list_all()
        assert [e.source for e in entries] == ["bob.jpg", "alice.jpg", "bob2.jpg"]
        assert entries[0].descriptor == make_descriptor(1)

    def test_put_returns_true_for_new_entry(self, store):
        assert store.put(GalleryEntry("alice", make_descriptor(1), "alice.jpg")) is True

    def test_put_is_idempotent(self, store):
        """Registering the same source twice leaves exactly one entry."""
        entry = GalleryEntry("alice", make_descriptor(1), "alice.jpg")
        assert store.put(entry) is True
        assert store.put(entry) is False
        assert len(store.list_all()) == 1

    def test_duplicate_source_keeps_original(self, store):
        """A second registration of a source never overwrites the first."""
        store.put(GalleryEntry("alice", make_descriptor(1), "shared.jpg"))
        assert store.put(GalleryEntry("mallory", make_descriptor(2), "shared.jpg")) is False

        entries = store.list_all()
        assert len(entries) == 1
        assert entries[0].identity == "alice"
        assert entries[0].descriptor == make_descriptor(1)

    def test_several_entries_per_identity(self, store):
        store.put(GalleryEntry("alice", make_descriptor(1), "alice1.jpg"))
        store.put(GalleryEntry("alice", make_descriptor(2), "alice2.jpg"))
        store.put(GalleryEntry("bob", make_descriptor(3), "bob.jpg"))

        assert store.identities() == ["alice", "bob"]
        stats = store.get_stats()
        assert stats["total_entries"] == 3
        assert stats["total_identities"] == 2
        assert stats["dimension"] == 128

    def test_exists(self, store):
        store.put(GalleryEntry("alice", make_descriptor(1), "alice.jpg"))
        assert store.exists("alice.jpg")
        assert not store.exists("bob.jpg")

    def test_dimension_enforced(self, store):
        with pytest.raises(DimensionMismatch):
            store.put(GalleryEntry("alice", make_descriptor(1, dim=512), "alice.jpg"))
        assert store.list_all() == []

    def test_any_dimension_without_fixed_dimension(self, temp_dir):
        with GalleryStore(os.path.join(temp_dir, "free.sqlite")) as free:
            assert free.put(GalleryEntry("a", make_descriptor(1, dim=4), "a.jpg"))
            assert free.list_all()[0].descriptor.dimension == 4

    def test_persistence_across_instances(self, temp_dir):
        """Entries survive closing and reopening the database."""
        path = os.path.join(temp_dir, "persist.sqlite")
        with GalleryStore(path, dimension=128) as first:
            first.put(GalleryEntry("alice", make_descriptor(7), "alice.jpg"))

        with GalleryStore(path, dimension=128) as second:
            entries = second.list_all()
            assert len(entries) == 1
            assert entries[0].identity == "alice"
            assert entries[0].descriptor == make_descriptor(7)

    def test_descriptor_blob_layout(self, temp_dir):
        """The descriptor column holds N little-endian float32 values."""
        path = os.path.join(temp_dir, "layout.sqlite")
        descriptor = Descriptor([1.0, 2.0, 3.0])
        with GalleryStore(path) as s:
            s.put(GalleryEntry("alice", descriptor, "alice.jpg"))

        conn = sqlite3.connect(path)
        blob, dim = conn.execute("SELECT descriptor, dimension FROM faces").fetchone()
        conn.close()
        assert bytes(blob) == descriptor.to_bytes()
        assert dim == 3

    def test_rows_without_descriptor_are_skipped(self, temp_dir):
        path = os.path.join(temp_dir, "nulls.sqlite")
        with GalleryStore(path) as s:
            s.put(GalleryEntry("alice", Descriptor([1.0, 2.0]), "alice.jpg"))

        conn = sqlite3.connect(path)
        conn.execute("INSERT INTO faces (identity, source_reference) VALUES ('ghost', 'ghost.jpg')")
        conn.commit()
        conn.close()

        with GalleryStore(path) as s:
            assert [e.identity for e in s.list_all()] == ["alice"]

    def test_corrupt_blob_raises_storage_error(self, temp_dir):
        path = os.path.join(temp_dir, "corrupt.sqlite")
        with GalleryStore(path) as s:
            s.put(GalleryEntry("alice", Descriptor([1.0, 2.0]), "alice.jpg"))

        conn = sqlite3.connect(path)
        conn.execute("UPDATE faces SET descriptor = x'0102'")
        conn.commit()
        conn.close()

        with GalleryStore(path) as s:
            with pytest.raises(StorageError):
                s.list_all()

    def test_unusable_database_raises_storage_error(self, temp_dir):
        """A directory in place of the database file cannot be opened."""
        path = os.path.join(temp_dir, "is_a_dir")
        os.makedirs(path)
        with pytest.raises(StorageError):
            GalleryStore(path)

    def test_concurrent_put_same_source(self, store):
        """Concurrent registrations of one source produce one entry."""
        results = []

        def worker(seed):
            results.append(store.put(GalleryEntry("alice", make_descriptor(seed), "same.jpg")))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(store.list_all()) == 1

    def test_in_memory_database(self):
        with GalleryStore(":memory:", dimension=4) as s:
            s.put(GalleryEntry("alice", Descriptor([1.0, 0.0, 0.0, 0.0]), "a"))
            assert len(s.list_all()) == 1
