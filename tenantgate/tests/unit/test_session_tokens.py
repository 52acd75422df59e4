from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from tenantgate.core.errors import Unauthorized
from tenantgate.services.auth.credentials import (
    CredentialJar,
    OpenedBackup,
    open_backup,
    open_credential,
    seal_credential,
)
from tenantgate.services.auth.session_tokens import issue_session_token, verify_session_token


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_issued_token_round_trips_claims() -> None:
    token, issued = issue_session_token(
        account_id="acct-1",
        role="tenant_admin",
        ttl=timedelta(minutes=60),
        tenant_id="tenant-1",
        impersonating=True,
        original_account_id="acct-op",
        now=NOW,
    )
    claims = verify_session_token(token, now=NOW + timedelta(minutes=5))
    assert claims == issued
    assert claims.expires_at == NOW + timedelta(minutes=60)
    assert claims.customer_id is None


def test_expired_and_missing_tokens_are_unauthorized() -> None:
    token, _ = issue_session_token(
        account_id="acct-1", role="platform_operator", ttl=timedelta(minutes=1), now=NOW
    )
    with pytest.raises(Unauthorized):
        verify_session_token(token, now=NOW + timedelta(minutes=2))
    with pytest.raises(Unauthorized):
        verify_session_token(None)
    with pytest.raises(Unauthorized):
        verify_session_token("not-a-token")


def test_token_signed_with_another_secret_is_rejected() -> None:
    forged = jwt.encode(
        {"iss": "tenantgate", "sub": "acct-1", "role": "platform_operator", "iat": 0, "exp": 4102444800},
        "some-other-secret",
        algorithm="HS256",
    )
    with pytest.raises(Unauthorized):
        verify_session_token(forged)


def test_sealed_credential_opens_until_expiry() -> None:
    expires_at = NOW + timedelta(minutes=60)
    sealed = seal_credential("original-token", expires_at=expires_at)
    assert "original-token" not in sealed
    assert open_credential(sealed, now=NOW) == "original-token"
    assert open_credential(sealed, now=expires_at) is None


def test_sealed_backup_carries_context_to_restore() -> None:
    expires_at = NOW + timedelta(minutes=60)
    context = {"scope": "tenant", "tenant_id": "tenant-1", "customer_id": None}
    sealed = seal_credential("original-token", expires_at=expires_at, restore_context=context)
    assert open_backup(sealed, now=NOW) == OpenedBackup(token="original-token", restore_context=context)
    plain = seal_credential("original-token", expires_at=expires_at)
    assert open_backup(plain, now=NOW) == OpenedBackup(token="original-token")


def test_garbage_backup_opens_to_none() -> None:
    assert open_credential(None) is None
    assert open_credential("") is None
    assert open_credential("!!not-base64!!") is None
    assert open_credential("AAAA") is None


def test_credential_jar_tracks_changed_slots() -> None:
    jar = CredentialJar()
    jar.set_session("token", max_age=60)
    assert jar.changed == {"session"}
    jar.set_backup("sealed", max_age=30)
    jar.clear_backup()
    assert jar.impersonation_backup is None
    assert jar.changed == {"session", "backup"}
