"""Encrypted OAuth token storage.

Access and refresh tokens are encrypted with Fernet (AES-128-CBC + HMAC,
random IV per call), so encrypting the same token twice yields different
ciphertexts that both decrypt to the original.

Record updates open their own short-lived session, which lets concurrent
per-integration tasks persist rotated tokens without sharing a session.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.analytics import AuthTokenDetails
from models.integration import Integration

logger = logging.getLogger(__name__)


class TokenStoreError(Exception):
    """Token storage is misconfigured."""


class TokenDecryptionError(TokenStoreError):
    """Ciphertext could not be decrypted with the configured key."""


class TokenStore:
    """Encrypts/decrypts tokens and persists rotated credentials."""

    def __init__(
        self,
        encryption_key: Optional[str],
        session_factory: async_sessionmaker[AsyncSession],
        allow_ephemeral_key: bool = False,
    ):
        if not encryption_key:
            if not allow_ephemeral_key:
                raise TokenStoreError(
                    "TOKEN_ENCRYPTION_KEY is required. Generate one with: "
                    "python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
                )
            # Tokens encrypted with this key are unreadable after a restart
            logger.warning("TOKEN_ENCRYPTION_KEY missing. Using a temporary key.")
            encryption_key = Fernet.generate_key().decode()

        try:
            self._fernet = Fernet(encryption_key.encode())
        except ValueError as e:
            raise TokenStoreError(f"Invalid TOKEN_ENCRYPTION_KEY: {e}") from e
        self._session_factory = session_factory

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plain text token."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an encrypted token."""
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise TokenDecryptionError("Stored token could not be decrypted") from e

    async def save_rotated_tokens(self, integration_id: str, tokens: AuthTokenDetails) -> datetime:
        """Persist refreshed credentials and clear ``refresh_needed``.

        Returns the new expiry timestamp.
        """
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=tokens.expires_in)
        values = {
            "token": self.encrypt(tokens.access_token),
            "token_expires_at": expires_at,
            "refresh_needed": False,
            "updated_at": now,
        }
        if tokens.refresh_token:
            values["refresh_token"] = self.encrypt(tokens.refresh_token)

        async with self._session_factory() as db:
            await db.execute(
                update(Integration).where(Integration.id == integration_id).values(**values)
            )
            await db.commit()

        logger.info(f"Stored refreshed token for integration {integration_id}")
        return expires_at

    async def mark_refresh_needed(self, integration_id: str) -> None:
        """Flag an integration whose credentials can no longer be refreshed."""
        async with self._session_factory() as db:
            await db.execute(
                update(Integration)
                .where(Integration.id == integration_id)
                .values(refresh_needed=True, updated_at=datetime.now(timezone.utc))
            )
            await db.commit()

        logger.warning(f"Integration {integration_id} marked as needing re-authentication")
