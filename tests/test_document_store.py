"""Tests for the JSON document store.

Covers the on-disk layout, id allocation, the lock around each
read-modify-write and failure handling for unreadable files.
"""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from chirpy.storage.document import DocumentStore, parse_timestamp
from chirpy.storage.errors import ConstraintViolation, StoreIOError


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "database" / "database.json"


@pytest.fixture
def store(db_path):
    return DocumentStore(db_path)


class TestDocumentLayout:
    def test_creates_empty_skeleton(self, store, db_path):
        data = json.loads(db_path.read_text())

        assert data["chirps"] == {}
        assert data["users"] == {}
        assert data["refresh_tokens"] == {}
        assert data["sequences"] == {"chirps": 1, "users": 1}

    def test_user_record_shape(self, store, db_path):
        store.create_user("a@example.com", "hash")
        data = json.loads(db_path.read_text())

        assert data["users"]["1"] == {
            "id": 1,
            "email": "a@example.com",
            "password": "hash",
            "is_chirpy_red": False,
        }

    def test_refresh_token_record_shape(self, store, db_path):
        expires = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        store.save_refresh_token("tok", 1, expires)
        data = json.loads(db_path.read_text())

        record = data["refresh_tokens"]["tok"]
        assert record["token"] == "tok"
        assert record["user_id"] == 1
        assert parse_timestamp(record["expires_at"]) == expires

    def test_existing_file_is_kept(self, store, db_path):
        store.create_user("a@example.com", "hash")
        reopened = DocumentStore(db_path)

        assert reopened.get_user_by_email("a@example.com").id == 1

    def test_parse_timestamp_accepts_zulu_nanoseconds(self):
        parsed = parse_timestamp("2024-05-01T10:00:00.123456789Z")

        assert parsed == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "text, micros",
        [
            ("2024-05-01T10:00:00.5Z", 500000),
            ("2024-05-01T10:00:00.12Z", 120000),
            ("2024-05-01T10:00:00.1234+00:00", 123400),
            ("2024-05-01T10:00:00.12345Z", 123450),
            ("2024-05-01T10:00:00Z", 0),
        ],
    )
    def test_parse_timestamp_pads_short_fractions(self, text, micros):
        assert parse_timestamp(text) == datetime(2024, 5, 1, 10, 0, 0, micros, tzinfo=timezone.utc)


class TestUsers:
    def test_ids_start_at_one(self, store):
        first = store.create_user("a@example.com", "h1")
        second = store.create_user("b@example.com", "h2")

        assert (first.id, second.id) == (1, 2)

    def test_duplicate_email_rejected(self, store):
        store.create_user("a@example.com", "h1")

        with pytest.raises(ConstraintViolation):
            store.create_user("a@example.com", "h2")
        assert len(store.list_users()) == 1

    def test_email_lookup_is_case_sensitive(self, store):
        store.create_user("a@example.com", "h1")

        assert store.get_user_by_email("A@example.com") is None
        assert store.get_user_by_email("a@example.com") is not None

    def test_update_user(self, store):
        user = store.create_user("a@example.com", "h1")
        updated = store.update_user(user.id, "new@example.com", "h2")

        assert updated.email == "new@example.com"
        assert store.get_user(user.id).password_hash == "h2"

    def test_update_missing_user_returns_none(self, store):
        assert store.update_user(99, "x@example.com", "h") is None

    def test_update_to_taken_email_rejected(self, store):
        store.create_user("a@example.com", "h1")
        other = store.create_user("b@example.com", "h2")

        with pytest.raises(ConstraintViolation):
            store.update_user(other.id, "a@example.com", "h3")

    def test_set_upgraded(self, store):
        user = store.create_user("a@example.com", "h1")

        assert store.set_upgraded(user.id).is_chirpy_red is True
        assert store.get_user(user.id).is_chirpy_red is True
        assert store.set_upgraded(404) is None


class TestChirps:
    def test_ids_never_reused_after_delete(self, store, db_path):
        """Deleting the newest chirp must not hand its id out again."""
        store.create_chirp("one", 1)
        second = store.create_chirp("two", 1)
        assert store.delete_chirp(second.id) is True

        third = store.create_chirp("three", 1)

        assert third.id == 3
        assert json.loads(db_path.read_text())["sequences"]["chirps"] == 4

    def test_list_filters_by_author(self, store):
        store.create_chirp("one", 1)
        store.create_chirp("two", 2)
        store.create_chirp("three", 1)

        assert [c.body for c in store.list_chirps()] == ["one", "two", "three"]
        assert [c.body for c in store.list_chirps(author_id=1)] == ["one", "three"]

    def test_delete_missing_chirp(self, store):
        assert store.delete_chirp(12) is False
        assert store.get_chirp(12) is None


class TestRefreshTokens:
    def test_save_get_delete(self, store):
        expires = datetime.now(timezone.utc) + timedelta(days=60)
        store.save_refresh_token("tok", 3, expires)

        record = store.get_refresh_token("tok")
        assert record.user_id == 3
        assert store.delete_refresh_token("tok") is True
        assert store.get_refresh_token("tok") is None

    def test_delete_is_idempotent(self, store):
        assert store.delete_refresh_token("never-issued") is False
        assert store.delete_refresh_token("never-issued") is False


class TestLegacyDocuments:
    def test_sequences_derived_from_existing_ids(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text(
            json.dumps(
                {
                    "chirps": {"4": {"id": 4, "body": "old", "author_id": 1}},
                    "users": {
                        "1": {"id": 1, "email": "a@example.com", "password": "h", "is_chirpy_red": False}
                    },
                }
            )
        )
        store = DocumentStore(db_path)

        assert store.create_chirp("new", 1).id == 5
        assert store.create_user("b@example.com", "h").id == 2
        assert store.get_refresh_token("anything") is None


class TestFailures:
    def test_corrupt_file_raises_store_io_error(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text("{not json")
        store = DocumentStore(db_path)

        with pytest.raises(StoreIOError):
            store.list_users()

    def test_non_object_document_rejected(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text("[]")
        store = DocumentStore(db_path)

        with pytest.raises(StoreIOError):
            store.create_user("a@example.com", "h")

    def test_non_numeric_id_rejected(self, db_path):
        """A record keyed by something other than a decimal id is a store error."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text(json.dumps({"chirps": {"abc": {"id": 1, "body": "x", "author_id": 1}}}))
        store = DocumentStore(db_path)

        with pytest.raises(StoreIOError):
            store.list_chirps()

    def test_record_missing_field_rejected(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text(json.dumps({"users": {"1": {"id": 1, "password": "h"}}}))
        store = DocumentStore(db_path)

        with pytest.raises(StoreIOError):
            store.list_users()
        with pytest.raises(StoreIOError):
            store.get_user_by_email("a@example.com")

    def test_malformed_refresh_expiry_rejected(self, store):
        with store.transaction() as doc:
            doc["refresh_tokens"]["tok"] = {"token": "tok", "user_id": 1, "expires_at": "soon"}

        with pytest.raises(StoreIOError):
            store.get_refresh_token("tok")

    def test_failed_mutation_writes_nothing(self, store, db_path):
        before = db_path.read_text()

        with pytest.raises(RuntimeError):
            with store.transaction() as doc:
                doc["users"]["1"] = {"id": 1}
                raise RuntimeError("boom")

        assert db_path.read_text() == before

    def test_no_temp_files_left_behind(self, store, db_path):
        store.create_user("a@example.com", "h")

        assert [p.name for p in db_path.parent.iterdir()] == ["database.json"]


class TestConcurrency:
    def test_parallel_writes_are_not_lost(self, store):
        """Many threads creating chirps at once get unique ids and all survive."""
        workers = 8
        per_worker = 10
        errors = []

        def worker(author_id):
            try:
                for i in range(per_worker):
                    store.create_chirp(f"chirp {author_id}-{i}", author_id)
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(1, workers + 1)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        chirps = store.list_chirps()
        assert len(chirps) == workers * per_worker
        assert sorted(c.id for c in chirps) == list(range(1, workers * per_worker + 1))

    def test_parallel_token_saves_and_deletes(self, store):
        expires = datetime.now(timezone.utc) + timedelta(days=1)
        tokens = [f"tok-{i}" for i in range(40)]

        def save(token):
            store.save_refresh_token(token, 1, expires)

        threads = [threading.Thread(target=save, args=(t,)) for t in tokens]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert all(store.get_refresh_token(t) for t in tokens)

        threads = [
            threading.Thread(target=store.delete_refresh_token, args=(t,)) for t in tokens[::2]
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        remaining = [t for t in tokens if store.get_refresh_token(t)]
        assert remaining == tokens[1::2]
