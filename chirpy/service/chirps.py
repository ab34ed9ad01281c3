from __future__ import annotations

from typing import List, Optional, Protocol

from chirpy.logging import get_logger
from chirpy.service.errors import ForbiddenError, NotFoundError, ValidationError
from chirpy.storage.models import Chirp

logger = get_logger(__name__)

MAX_CHIRP_LENGTH = 140
PROFANE_WORDS = frozenset({"kerfuffle", "sharbert", "fornax"})
CENSORED = "****"


class ChirpStore(Protocol):
    def create_chirp(self, body: str, author_id: int) -> Chirp: ...

    def list_chirps(self, author_id: Optional[int] = None) -> List[Chirp]: ...

    def get_chirp(self, chirp_id: int) -> Optional[Chirp]: ...

    def delete_chirp(self, chirp_id: int) -> bool: ...


def clean_body(text: str) -> str:
    """Replace profane words with asterisks.

    Words are split on single spaces, so punctuation attached to a word
    keeps it from matching.
    """
    words = text.split(" ")
    return " ".join(CENSORED if word.lower() in PROFANE_WORDS else word for word in words)


class ChirpService:
    def __init__(self, store: ChirpStore) -> None:
        self.store = store

    def validate(self, body: str) -> str:
        if len(body) > MAX_CHIRP_LENGTH:
            raise ValidationError("Chirp is too long", detail={"max_length": MAX_CHIRP_LENGTH})
        return clean_body(body)

    def create(self, body: str, author_id: int) -> Chirp:
        chirp = self.store.create_chirp(self.validate(body), author_id)
        logger.info("chirp_created", chirp_id=chirp.id, author_id=author_id)
        return chirp

    def list(self, author_id: Optional[int] = None) -> List[Chirp]:
        return self.store.list_chirps(author_id)

    def get(self, chirp_id: int) -> Chirp:
        chirp = self.store.get_chirp(chirp_id)
        if chirp is None:
            raise NotFoundError("chirp not found", detail={"chirp_id": chirp_id})
        return chirp

    def delete(self, chirp_id: int, user_id: int) -> None:
        chirp = self.get(chirp_id)
        if chirp.author_id != user_id:
            logger.warning("chirp_delete_forbidden", chirp_id=chirp_id, user_id=user_id)
            raise ForbiddenError("only the author can delete a chirp")
        self.store.delete_chirp(chirp_id)
        logger.info("chirp_deleted", chirp_id=chirp_id, author_id=user_id)
