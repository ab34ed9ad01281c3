from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    id: int
    email: str
    password_hash: str
    is_chirpy_red: bool = False

    def public_view(self) -> dict:
        """Fields safe to return to clients; never includes the hash."""
        return {"id": self.id, "email": self.email, "is_chirpy_red": self.is_chirpy_red}


@dataclass
class Chirp:
    id: int
    body: str
    author_id: int


@dataclass
class RefreshToken:
    token: str
    user_id: int
    expires_at: datetime
