"""Tests for the whitelist table and repository."""

import pytest

from database import (
    DuplicateEntryError,
    EntryNotFoundError,
    WhitelistRepository,
    create_db_engine,
    init_db,
    session_factory,
)


class TestWhitelistRepository:
    """CRUD behaviour of WhitelistRepository."""

    def test_add_and_list_in_insertion_order(self, repository):
        repository.add("10.0.0.9", "last octet high")
        repository.add("10.0.0.1")
        repository.add("2001:db8::/32", "v6 range", created_by="alice")

        entries = repository.all()

        assert [e.ip_or_cidr for e in entries] == ["10.0.0.9", "10.0.0.1", "2001:db8::/32"]
        assert entries[2].comment == "v6 range"
        assert entries[2].created_by == "alice"
        assert entries[1].comment is None

    def test_timestamps_set(self, repository):
        entry = repository.add("10.0.0.1")
        assert entry.created_at is not None
        assert entry.updated_at is not None

    def test_duplicate_rejected(self, repository):
        repository.add("10.0.0.1")
        with pytest.raises(DuplicateEntryError):
            repository.add("10.0.0.1", "again")
        assert repository.count() == 1

    def test_get(self, repository):
        repository.add("10.0.0.1", "office")
        assert repository.get("10.0.0.1").comment == "office"
        assert repository.get("10.0.0.2") is None

    def test_update_comment_only(self, repository):
        repository.add("10.0.0.1", "office")
        entry = repository.update("10.0.0.1", comment="new office")
        assert entry.ip_or_cidr == "10.0.0.1"
        assert repository.get("10.0.0.1").comment == "new office"

    def test_update_address_keeps_comment(self, repository):
        repository.add("10.0.0.1", "office")
        repository.update("10.0.0.1", new_ip_or_cidr="10.0.0.0/24")
        assert repository.get("10.0.0.1") is None
        assert repository.get("10.0.0.0/24").comment == "office"

    def test_update_clears_comment_with_none(self, repository):
        repository.add("10.0.0.1", "office")
        repository.update("10.0.0.1", comment=None)
        assert repository.get("10.0.0.1").comment is None

    def test_update_missing(self, repository):
        with pytest.raises(EntryNotFoundError):
            repository.update("10.0.0.1", comment="x")

    def test_update_to_existing_address(self, repository):
        repository.add("10.0.0.1")
        repository.add("10.0.0.2")
        with pytest.raises(DuplicateEntryError):
            repository.update("10.0.0.2", new_ip_or_cidr="10.0.0.1")
        assert repository.get("10.0.0.2") is not None

    def test_remove(self, repository):
        repository.add("10.0.0.1")
        repository.remove("10.0.0.1")
        assert repository.count() == 0

    def test_remove_missing(self, repository):
        with pytest.raises(EntryNotFoundError):
            repository.remove("10.0.0.1")


class TestEngine:

    def test_file_database_creates_directory(self, tmp_path):
        db_file = tmp_path / "nested" / "dir" / "sbcguard.db"
        engine = create_db_engine(f"sqlite:///{db_file}")
        init_db(engine)
        repo = WhitelistRepository(session_factory(engine))

        repo.add("10.0.0.1")

        assert db_file.exists()
        assert [e.ip_or_cidr for e in WhitelistRepository(session_factory(engine)).all()] == ["10.0.0.1"]
        engine.dispose()

    def test_init_db_is_repeatable(self, engine):
        init_db(engine)
        repo = WhitelistRepository(session_factory(engine))
        repo.add("10.0.0.1")
        init_db(engine)
        assert repo.count() == 1
