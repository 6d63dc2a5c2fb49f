"""
Tests for the Google OAuth client.

The google-auth-oauthlib Flow and google-auth Credentials are patched at
the network boundary (fetch_token and refresh), so the error mapping and
expiry handling run for real.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, PropertyMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from calsync.domain import CredentialStatus, Provider
from calsync.errors import (
    AuthorizationFailed,
    RemoteCallFailed,
    TokenRefreshRejected,
)
from calsync.repos.google.oauth import GoogleOAuthClient
from calsync.tokens import TokenLifecycleManager
from calsync.tests.factories import NOW, fixed_clock, minimal_credential


@pytest.fixture
def client() -> GoogleOAuthClient:
    return GoogleOAuthClient(
        client_id="client-id",
        client_secret="secret",
        redirect_uri="http://localhost/callback",
    )


def issued_credentials(token="access", refresh_token="refresh", expiry=None):
    creds = MagicMock()
    creds.token = token
    creds.refresh_token = refresh_token
    creds.expiry = expiry
    return creds


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_url_asks_for_offline_access_and_carries_state(self, client):
        url = await client.authorization_url("user-1")

        query = parse_qs(urlparse(url).query)
        assert query["state"] == ["user-1"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["client_id"] == ["client-id"]

    @pytest.mark.asyncio
    async def test_exchange_converts_naive_expiry_to_utc(self, client):
        creds = issued_credentials(expiry=datetime(2024, 3, 4, 13, 0))

        with patch.object(Flow, "fetch_token") as fetch_token, patch.object(
            Flow, "credentials", new_callable=PropertyMock, return_value=creds
        ):
            grant = await client.exchange_code("code-1")

        fetch_token.assert_called_once_with(code="code-1")
        assert grant.access_token == "access"
        assert grant.refresh_token == "refresh"
        assert grant.expiry == NOW + timedelta(hours=1)
        assert grant.expiry.tzinfo == timezone.utc

    @pytest.mark.asyncio
    async def test_failed_exchange_becomes_authorization_failed(self, client):
        with patch.object(
            Flow,
            "fetch_token",
            side_effect=ValueError("(invalid_grant) Bad Request"),
        ):
            with pytest.raises(AuthorizationFailed) as exc_info:
                await client.exchange_code("bad-code")

        assert "invalid_grant" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_exchange_without_token_is_rejected(self, client):
        with patch.object(Flow, "fetch_token"), patch.object(
            Flow,
            "credentials",
            new_callable=PropertyMock,
            return_value=issued_credentials(token=None),
        ):
            with pytest.raises(AuthorizationFailed):
                await client.exchange_code("code-1")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_returns_new_token_with_utc_expiry(self, client):
        def refresh(self, request):
            self.token = "new-access"
            self.expiry = datetime(2024, 3, 4, 13, 0)

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=refresh
        ):
            grant = await client.refresh("refresh-token")

        assert grant.access_token == "new-access"
        assert grant.refresh_token == "refresh-token"
        assert grant.expiry == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_invalid_grant_is_rejected(self, client):
        with patch.object(
            Credentials,
            "refresh",
            side_effect=RefreshError(
                "invalid_grant: Token has been expired or revoked."
            ),
        ):
            with pytest.raises(TokenRefreshRejected):
                await client.refresh("refresh-token")

    @pytest.mark.asyncio
    async def test_retryable_refresh_error_is_a_remote_failure(self, client):
        with patch.object(
            Credentials,
            "refresh",
            side_effect=RefreshError("503 backendError", retryable=True),
        ):
            with pytest.raises(RemoteCallFailed) as exc_info:
                await client.refresh("refresh-token")

        assert exc_info.value.provider == Provider.GOOGLE

    @pytest.mark.asyncio
    async def test_transport_error_is_a_remote_failure(self, client):
        with patch.object(
            Credentials,
            "refresh",
            side_effect=TransportError("connection reset"),
        ):
            with pytest.raises(RemoteCallFailed):
                await client.refresh("refresh-token")


class TestRefreshOutcomeThroughTokenManager:
    @pytest.mark.asyncio
    async def test_backend_outage_leaves_credential_expired(
        self, client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW - timedelta(minutes=1))
        )
        manager = TokenLifecycleManager(
            Provider.GOOGLE, client, credential_repo, clock=fixed_clock()
        )

        with patch.object(
            Credentials,
            "refresh",
            side_effect=RefreshError("503 backendError", retryable=True),
        ):
            token = await manager.get_valid_token("user-1")

        assert token is None
        record = await credential_repo.get_credential(
            "user-1", Provider.GOOGLE
        )
        assert record.status == CredentialStatus.EXPIRED
        assert record.refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_revoked_grant_marks_credential_revoked(
        self, client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW - timedelta(minutes=1))
        )
        manager = TokenLifecycleManager(
            Provider.GOOGLE, client, credential_repo, clock=fixed_clock()
        )

        with patch.object(
            Credentials, "refresh", side_effect=RefreshError("invalid_grant")
        ):
            await manager.get_valid_token("user-1")

        record = await credential_repo.get_credential(
            "user-1", Provider.GOOGLE
        )
        assert record.status == CredentialStatus.REVOKED
