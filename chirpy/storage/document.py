from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from chirpy.logging import get_logger
from chirpy.storage.errors import ConstraintViolation, StoreIOError
from chirpy.storage.models import Chirp, RefreshToken, User

logger = get_logger(__name__)

_COLLECTIONS = ("chirps", "users", "refresh_tokens")
_SEQUENCED = ("chirps", "users")
# RFC3339 fractions may carry 1 to 9 digits; fromisoformat on 3.10 wants 3 or 6
_FRACTION_RE = re.compile(r"\.(\d+)")


_Record = TypeVar("_Record")


def _decoder(fn: Callable[[dict], _Record]) -> Callable[[dict], _Record]:
    """Turn a malformed stored record into ``StoreIOError``."""

    def decode(data: dict) -> _Record:
        try:
            return fn(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("document_record_invalid", decoder=fn.__name__, error=repr(exc))
            raise StoreIOError("database file has a malformed record") from exc

    decode.__name__ = fn.__name__
    return decode


def _empty_document() -> Dict[str, Any]:
    doc: Dict[str, Any] = {name: {} for name in _COLLECTIONS}
    doc["sequences"] = {name: 1 for name in _SEQUENCED}
    return doc


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _microseconds(match: "re.Match[str]") -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: str) -> datetime:
    text = _FRACTION_RE.sub(_microseconds, value.strip(), count=1)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DocumentStore:
    """Whole-document JSON store guarded by a single lock.

    Every mutation loads the file, changes the decoded dict and writes the
    whole document back while the lock is held, so concurrent requests are
    serialized per operation. Ids come from the durable ``sequences`` map
    and are never reused after a delete.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)
        self._data_lock = threading.RLock()
        with self._data_lock:
            self._ensure_document()
        logger.info("document_store_initialized", path=str(self.path))

    # -- transaction plumbing -------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Hold the lock across load, mutate and write.

        Nothing is written when the body raises.
        """
        with self._data_lock:
            doc = self._load()
            yield doc
            self._write(doc)

    def snapshot(self) -> Dict[str, Any]:
        with self._data_lock:
            return self._load()

    def _ensure_document(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("document_dir_create_failed", path=str(self.path.parent), error=str(exc))
            raise StoreIOError("unable to create database directory") from exc
        if not self.path.exists():
            self._write(_empty_document())
            logger.info("document_created", path=str(self.path))

    def _load(self) -> Dict[str, Any]:
        # Use try-except instead of exists() to avoid TOCTOU race condition
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return _empty_document()
        except OSError as exc:
            logger.error("document_read_failed", path=str(self.path), error=str(exc))
            raise StoreIOError("unable to read database") from exc
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            logger.error("document_decode_failed", path=str(self.path), error=str(exc))
            raise StoreIOError("database file is not valid JSON") from exc
        if not isinstance(data, dict):
            logger.error("document_shape_invalid", path=str(self.path))
            raise StoreIOError("database file is not a JSON object")
        return self._normalize(data)

    def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for name in _COLLECTIONS:
            if not isinstance(data.get(name), dict):
                data[name] = {}
        sequences = data.get("sequences")
        if not isinstance(sequences, dict):
            sequences = {}
        for name in _SEQUENCED:
            # Files written before sequences existed derive the next id from their contents
            try:
                floor = max((int(key) for key in data[name]), default=0) + 1
                sequences[name] = max(int(sequences.get(name) or 0), floor)
            except (TypeError, ValueError) as exc:
                logger.error("document_ids_invalid", path=str(self.path), collection=name, error=str(exc))
                raise StoreIOError(f"database {name} ids are not numeric") from exc
        data["sequences"] = sequences
        return data

    def _write(self, doc: Dict[str, Any]) -> None:
        payload = json.dumps(doc, indent=2, sort_keys=True)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
            logger.error("document_write_failed", path=str(self.path), error=str(exc))
            raise StoreIOError("unable to write database") from exc

    @staticmethod
    def _allocate_id(doc: Dict[str, Any], collection: str) -> int:
        next_id = doc["sequences"][collection]
        doc["sequences"][collection] = next_id + 1
        return next_id

    # -- serialization --------------------------------------------------------

    @staticmethod
    def _serialize_user(user: User) -> dict:
        return {
            "id": user.id,
            "email": user.email,
            "password": user.password_hash,
            "is_chirpy_red": user.is_chirpy_red,
        }

    @staticmethod
    @_decoder
    def _deserialize_user(data: dict) -> User:
        return User(
            id=int(data["id"]),
            email=data["email"],
            password_hash=data.get("password", ""),
            is_chirpy_red=bool(data.get("is_chirpy_red", False)),
        )

    @staticmethod
    def _serialize_chirp(chirp: Chirp) -> dict:
        return {"id": chirp.id, "body": chirp.body, "author_id": chirp.author_id}

    @staticmethod
    @_decoder
    def _deserialize_chirp(data: dict) -> Chirp:
        return Chirp(id=int(data["id"]), body=data["body"], author_id=int(data["author_id"]))

    @staticmethod
    def _serialize_refresh_token(record: RefreshToken) -> dict:
        return {
            "token": record.token,
            "user_id": record.user_id,
            "expires_at": format_timestamp(record.expires_at),
        }

    @staticmethod
    @_decoder
    def _deserialize_refresh_token(data: dict) -> RefreshToken:
        return RefreshToken(
            token=data["token"],
            user_id=int(data["user_id"]),
            expires_at=parse_timestamp(data["expires_at"]),
        )

    # -- users ----------------------------------------------------------------

    def create_user(self, email: str, password_hash: str) -> User:
        with self.transaction() as doc:
            if any(self._deserialize_user(u).email == email for u in doc["users"].values()):
                raise ConstraintViolation("email already registered", {"field": "email"})
            user = User(id=self._allocate_id(doc, "users"), email=email, password_hash=password_hash)
            doc["users"][str(user.id)] = self._serialize_user(user)
        logger.info("user_created", user_id=user.id)
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        data = self.snapshot()["users"].get(str(user_id))
        return self._deserialize_user(data) if data else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self.list_users():
            if user.email == email:
                return user
        return None

    def list_users(self) -> List[User]:
        users = [self._deserialize_user(u) for u in self.snapshot()["users"].values()]
        return sorted(users, key=lambda u: u.id)

    def update_user(self, user_id: int, email: str, password_hash: str) -> Optional[User]:
        with self.transaction() as doc:
            data = doc["users"].get(str(user_id))
            if data is None:
                return None
            others = (self._deserialize_user(u) for u in doc["users"].values())
            if any(u.email == email and u.id != user_id for u in others):
                raise ConstraintViolation("email already registered", {"field": "email"})
            user = self._deserialize_user(data)
            user.email = email
            user.password_hash = password_hash
            doc["users"][str(user_id)] = self._serialize_user(user)
        return user

    def set_upgraded(self, user_id: int) -> Optional[User]:
        with self.transaction() as doc:
            data = doc["users"].get(str(user_id))
            if data is None:
                return None
            user = self._deserialize_user(data)
            user.is_chirpy_red = True
            doc["users"][str(user_id)] = self._serialize_user(user)
        logger.info("user_upgraded", user_id=user_id)
        return user

    # -- chirps ---------------------------------------------------------------

    def create_chirp(self, body: str, author_id: int) -> Chirp:
        with self.transaction() as doc:
            chirp = Chirp(id=self._allocate_id(doc, "chirps"), body=body, author_id=author_id)
            doc["chirps"][str(chirp.id)] = self._serialize_chirp(chirp)
        return chirp

    def list_chirps(self, author_id: Optional[int] = None) -> List[Chirp]:
        chirps = [self._deserialize_chirp(c) for c in self.snapshot()["chirps"].values()]
        if author_id is not None:
            chirps = [c for c in chirps if c.author_id == author_id]
        return sorted(chirps, key=lambda c: c.id)

    def get_chirp(self, chirp_id: int) -> Optional[Chirp]:
        data = self.snapshot()["chirps"].get(str(chirp_id))
        return self._deserialize_chirp(data) if data else None

    def delete_chirp(self, chirp_id: int) -> bool:
        with self.transaction() as doc:
            removed = doc["chirps"].pop(str(chirp_id), None)
        return removed is not None

    # -- refresh tokens -------------------------------------------------------

    def save_refresh_token(self, token: str, user_id: int, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        with self.transaction() as doc:
            doc["refresh_tokens"][token] = self._serialize_refresh_token(record)
        return record

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        data = self.snapshot()["refresh_tokens"].get(token)
        return self._deserialize_refresh_token(data) if data else None

    def delete_refresh_token(self, token: str) -> bool:
        """Remove a refresh token record. Deleting an absent token is not an error."""
        with self.transaction() as doc:
            removed = doc["refresh_tokens"].pop(token, None)
        return removed is not None
