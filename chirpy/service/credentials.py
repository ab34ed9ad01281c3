from __future__ import annotations

import bcrypt

from chirpy.logging import get_logger
from chirpy.service.errors import ValidationError

logger = get_logger(__name__)

# Deliberately cheap; existing password hashes were produced at this cost.
BCRYPT_ROUNDS = 4


def hash_password(plain: str) -> str:
    encoded = plain.encode("utf-8")
    # bcrypt only reads the first 72 bytes; newer releases reject longer input
    if len(encoded) > 72:
        raise ValidationError("password must be at most 72 bytes")
    digest = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return digest.decode("utf-8")


def verify_password(stored_hash: str, candidate: str) -> bool:
    """Check ``candidate`` against a bcrypt hash.

    Returns False on mismatch. A hash (or candidate) bcrypt rejects is logged and
    also reported as a mismatch.
    """
    if not stored_hash:
        logger.warning("password_hash_missing")
        return False
    try:
        return bcrypt.checkpw(candidate.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError as exc:
        logger.warning("password_verification_failed", error=str(exc))
        return False
