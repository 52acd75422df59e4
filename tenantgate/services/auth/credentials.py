from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import base64
import binascii
import hashlib
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tenantgate.core.config import get_settings


_BACKUP_AAD = b"tenantgate.impersonation-backup.v1"
_NONCE_BYTES = 12


@dataclass
class CredentialJar:
    """Request-scoped holder for the session credential and its backup.

    The HTTP layer loads it from cookies and writes back only the slots a
    service touched. Nothing in here is ever persisted to the store.
    """

    session_token: str | None = None
    impersonation_backup: str | None = None
    session_max_age: int | None = None
    backup_max_age: int | None = None
    # Set when the session credential arrived in the Authorization header.
    from_bearer: bool = False
    changed: set[str] = field(default_factory=set)

    def set_session(self, token: str, *, max_age: int) -> None:
        self.session_token = token
        self.session_max_age = max_age
        self.changed.add("session")

    def set_backup(self, sealed: str, *, max_age: int) -> None:
        self.impersonation_backup = sealed
        self.backup_max_age = max_age
        self.changed.add("backup")

    def clear_backup(self) -> None:
        self.impersonation_backup = None
        self.backup_max_age = None
        self.changed.add("backup")


def _backup_key() -> bytes:
    # Derive a dedicated AES-256 key so the signing secret is never used directly.
    secret = get_settings().session_secret.encode("utf-8")
    return hashlib.sha256(secret + b":impersonation-backup").digest()


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


@dataclass(frozen=True)
class OpenedBackup:
    token: str
    # Operator context to put back on stop; None when the swap never wrote one.
    restore_context: dict[str, Any] | None = None


def seal_credential(
    raw_token: str,
    *,
    expires_at: datetime,
    restore_context: dict[str, Any] | None = None,
) -> str:
    # Encrypt the original credential together with its own absolute expiry.
    body: dict[str, Any] = {"token": raw_token, "exp": int(expires_at.timestamp())}
    if restore_context is not None:
        body["ctx"] = restore_context
    payload = json.dumps(body, separators=(",", ":")).encode("utf-8")
    nonce = os.urandom(_NONCE_BYTES)
    cipher_text = AESGCM(_backup_key()).encrypt(nonce, payload, _BACKUP_AAD)
    return _b64url_encode(nonce + cipher_text)


def open_backup(sealed: str | None, *, now: datetime | None = None) -> OpenedBackup | None:
    # None when the backup is missing, tampered or expired.
    if not sealed:
        return None
    try:
        raw = _b64url_decode(sealed)
        nonce, cipher_text = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
        plaintext = AESGCM(_backup_key()).decrypt(nonce, cipher_text, _BACKUP_AAD)
        payload = json.loads(plaintext)
    except (InvalidTag, ValueError, binascii.Error):
        return None
    current = now or datetime.now(timezone.utc)
    if int(payload.get("exp", 0)) <= int(current.timestamp()):
        return None
    token = payload.get("token")
    if not isinstance(token, str) or not token:
        return None
    restore_context = payload.get("ctx")
    return OpenedBackup(
        token=token,
        restore_context=restore_context if isinstance(restore_context, dict) else None,
    )


def open_credential(sealed: str | None, *, now: datetime | None = None) -> str | None:
    backup = open_backup(sealed, now=now)
    return backup.token if backup else None
