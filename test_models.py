"""
Unit tests for the in-memory user store.
"""
import pytest
from datetime import datetime, timedelta, timezone
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from models import User, UserStore, apply_update
from schemas import UserUpdate


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return UserStore(clock=clock)


class TestCreate:
    """Tests for UserStore.create."""

    def test_create_assigns_next_id(self, store):
        """Test that a new user gets the next id and can be read back."""
        user = store.create("x@y.com", "A", "B")
        assert user.id == "3"
        assert user.created_at == user.updated_at
        assert store.find_by_id("3") == user
        assert len(store) == 3

    def test_create_on_empty_store(self, clock):
        """Test that the first user of an empty store gets id "1"."""
        store = UserStore(users=[], clock=clock)
        assert store.create("x@y.com", "A", "B").id == "1"

    def test_id_collision_after_delete(self, store):
        """Test the known duplicate id after a deletion."""
        # Id basé sur la taille : comportement connu, conservé
        store.delete("1")
        user = store.create("x@y.com", "A", "B")
        assert user.id == "2"
        assert [u.id for u in store.find_all()] == ["2", "2"]
        assert store.find_by_id("2").email == "jane.smith@example.com"


class TestFind:
    """Tests for UserStore.find_all and find_by_id."""

    def test_find_all_keeps_insertion_order(self, store):
        """Test that listing follows insertion order."""
        store.create("c@example.com", "C", "C")
        assert [u.id for u in store.find_all()] == ["1", "2", "3"]

    def test_find_missing(self, store):
        """Test that an unknown id yields None."""
        assert store.find_by_id("nope") is None

    def test_returned_records_are_copies(self, store):
        """Test that callers cannot mutate stored records."""
        user = store.find_by_id("1")
        user.first_name = "Mallory"
        assert store.find_by_id("1").first_name == "John"
        store.find_all().clear()
        assert len(store) == 2


class TestUpdate:
    """Tests for UserStore.update and apply_update."""

    def test_update_merges_provided_fields(self, store):
        """Test that only provided fields change and updated_at moves forward."""
        before = store.find_by_id("1")
        after = store.update("1", UserUpdate(first_name="Johnny"))
        assert after.first_name == "Johnny"
        assert after.last_name == before.last_name
        assert after.email == before.email
        assert after.created_at == before.created_at
        assert after.updated_at > before.updated_at

    def test_empty_update_only_refreshes_timestamp(self, store):
        """Test that an empty update only touches updated_at."""
        before = store.find_by_id("2")
        after = store.update("2", UserUpdate())
        assert after.model_dump(exclude={"updated_at"}) == before.model_dump(exclude={"updated_at"})
        assert after.updated_at >= before.updated_at

    def test_update_missing(self, store):
        """Test that updating an unknown id yields None."""
        assert store.update("99", UserUpdate(email="a@b.com")) is None

    def test_updated_at_never_moves_backwards(self):
        """Test that a clock going backwards keeps updated_at."""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        user = User(id="1", email="a@b.com", first_name="A", last_name="B", created_at=now, updated_at=now)
        updated = apply_update(user, UserUpdate(), now - timedelta(days=1))
        assert updated.updated_at == now


class TestDelete:
    """Tests for UserStore.delete."""

    def test_delete_removes_record(self, store):
        """Test that a deleted user is gone from every lookup."""
        assert store.delete("1") is True
        assert store.find_by_id("1") is None
        assert "1" not in [u.id for u in store.find_all()]

    def test_delete_missing(self, store):
        """Test that deleting an unknown id yields False and changes nothing."""
        assert store.delete("99") is False
        assert len(store) == 2


class TestValidation:
    """Tests for how UserUpdate feeds the store."""

    def test_null_fields_are_ignored(self, store):
        """Test that explicit nulls leave stored fields untouched."""
        changes = UserUpdate.model_validate({"email": None, "lastName": "Roe"})
        updated = store.update("1", changes)
        assert updated.email == "john.doe@example.com"
        assert updated.last_name == "Roe"
