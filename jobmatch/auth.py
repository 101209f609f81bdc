"""Personal access tokens for the ingest API."""
import hashlib
import logging
import secrets
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from jobmatch.database import Database

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "jm_"
BEARER_PREFIX = "Bearer "


def hash_token(plain: str) -> str:
    """SHA-256 hex digest of a plain token; only the hash is stored."""
    return hashlib.sha256(plain.encode('utf-8')).hexdigest()


def generate_token() -> str:
    """New random token: prefix plus 64 hex characters."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(32)}"


class TokenValidator:
    """Resolves bearer tokens to user IDs."""

    def __init__(self, db: Database):
        self.db = db

    def issue(self, user_id: str, name: str) -> Tuple[str, str]:
        """Create a token for a user.

        Args:
            user_id: Owner of the token
            name: Label shown when listing tokens

        Returns:
            Tuple of (token ID, plain token); the plain token cannot be recovered later
        """
        plain = generate_token()
        model = self.db.add_token(user_id, name, hash_token(plain))
        logger.info(f"Issued token '{name}' for user {user_id}")
        return model.id, plain

    def lookup(self, authorization: Optional[str]) -> Optional[Tuple[str, str]]:
        """Find the active token behind an Authorization header.

        Returns:
            Tuple of (token ID, user ID), or None if missing, malformed or revoked
        """
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            return None

        plain = authorization[len(BEARER_PREFIX):].strip()
        if not plain:
            return None

        token = self.db.find_active_token(hash_token(plain))
        if token is None:
            return None
        return token.id, token.user_id

    def validate(self, authorization: Optional[str]) -> Optional[str]:
        """Resolve an Authorization header to a user ID.

        Args:
            authorization: Raw header value, expected as "Bearer <token>"

        Returns:
            The token owner's user ID, or None
        """
        found = self.lookup(authorization)
        if found is None:
            return None
        token_id, user_id = found
        self.mark_used(token_id)
        return user_id

    def mark_used(self, token_id: str) -> None:
        """Stamp last_used_at; failures only cost telemetry and are ignored."""
        try:
            self.db.touch_token(token_id)
        except SQLAlchemyError as e:
            logger.debug(f"Could not update last_used_at for token {token_id}: {str(e)}")
