"""Token repository for the Basecamp OAuth credential

Durable single-record persistence of {access token, refresh token,
last-refreshed timestamp}.

SECURITY:
- Tokens encrypted with Fernet (symmetric encryption)
- Encryption key must be set via CLIENTWATCH_ENCRYPTION_KEY (or passed in)
- The record lives at the fixed singleton id 1; every write is one UPSERT,
  so a reader never observes a half-written credential
"""

from __future__ import annotations

import json
import os
from datetime import datetime

from cryptography.fernet import Fernet, InvalidToken

from clientwatch.exceptions import CredentialEncryptionError
from clientwatch.infrastructure.database import retry_on_db_lock
from clientwatch.observability.logging import get_logger
from clientwatch.storage import BaseRepository
from clientwatch.storage.models import Credential, parse_stored_timestamp, utc_now

logger = get_logger(__name__)

TOKEN_RECORD_ID = 1


class TokenRepository(BaseRepository):
    """
    Repository for the encrypted singleton OAuth credential

    Stores the access and refresh tokens as one encrypted JSON blob plus a
    plaintext updated_at used for staleness checks.
    """

    def __init__(self, encryption_key: str | None = None):
        self._cipher = self._get_cipher(encryption_key)

    def _get_cipher(self, encryption_key: str | None) -> Fernet:
        """
        Get Fernet cipher for encryption/decryption

        Raises:
            ValueError: If no key is given and CLIENTWATCH_ENCRYPTION_KEY is not set
        """
        key = encryption_key or os.getenv("CLIENTWATCH_ENCRYPTION_KEY")

        if not key:
            raise ValueError(
                "CLIENTWATCH_ENCRYPTION_KEY environment variable must be set. "
                "Generate one with: python -c "
                "'from cryptography.fernet import Fernet; "
                "print(Fernet.generate_key().decode())'"
            )

        try:
            return Fernet(key.encode())
        except Exception as e:
            raise ValueError(f"Invalid encryption key format: {e}") from e

    def _encrypt(self, payload: dict[str, str]) -> str:
        try:
            return self._cipher.encrypt(json.dumps(payload).encode()).decode()
        except Exception as e:
            logger.error("Failed to encrypt token: %s", e)
            raise CredentialEncryptionError(f"Encryption failed: {e}") from e

    def _decrypt(self, encrypted: str) -> dict[str, str]:
        try:
            return json.loads(self._cipher.decrypt(encrypted.encode()).decode())
        except (InvalidToken, ValueError) as e:
            logger.error("Failed to decrypt token: %s", e)
            raise CredentialEncryptionError(f"Decryption failed: {e}") from e

    @retry_on_db_lock()
    def save_tokens(
        self,
        access_token: str,
        refresh_token: str,
        updated_at: datetime | None = None,
    ) -> Credential:
        """
        Insert or replace the credential record

        Args:
            access_token: New access token
            refresh_token: Refresh token to keep (new or carried over)
            updated_at: Timestamp to record (default: now, UTC)

        Returns:
            The Credential as written

        Raises:
            CredentialEncryptionError: If encryption fails

        Side Effects:
            - Upserts row id=1 in the tokens table (single atomic statement)
        """
        credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            updated_at=updated_at or utc_now(),
        )
        encrypted = self._encrypt(
            {"access_token": credential.access_token, "refresh_token": credential.refresh_token}
        )

        self.write(
            """
            INSERT INTO tokens (id, encrypted_token_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                encrypted_token_json = excluded.encrypted_token_json,
                updated_at = excluded.updated_at
            """,
            (TOKEN_RECORD_ID, encrypted, credential.updated_at.isoformat()),
        )
        logger.info("Saved OAuth credential (updated_at=%s)", credential.updated_at.isoformat())
        return credential

    def get_tokens(self) -> Credential | None:
        """
        Load the stored credential

        Returns:
            Credential or None if authorization never completed

        Raises:
            CredentialEncryptionError: If decryption fails
        """
        row = self.fetch_one(
            "SELECT encrypted_token_json, updated_at FROM tokens WHERE id = ?",
            (TOKEN_RECORD_ID,),
        )
        if not row:
            return None

        payload = self._decrypt(row["encrypted_token_json"])
        return Credential(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            updated_at=row["updated_at"],
        )

    def get_updated_at(self) -> datetime | None:
        """Timestamp of the last write, without decrypting the tokens."""
        row = self.fetch_one("SELECT updated_at FROM tokens WHERE id = ?", (TOKEN_RECORD_ID,))
        if not row:
            return None
        return parse_stored_timestamp(row["updated_at"])
