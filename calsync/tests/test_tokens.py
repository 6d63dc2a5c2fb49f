"""
Tests for TokenLifecycleManager.

The OAuth client is an AsyncMock; credentials live in an in-memory store
so the persisted state after each call can be asserted directly.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from calsync.domain import (
    CredentialStatus,
    Provider,
    TokenGrant,
    TokenResolutionKind,
)
from calsync.errors import (
    AuthorizationFailed,
    RemoteCallFailed,
    TokenRefreshRejected,
)
from calsync.repositories import OAuthClientRepository
from calsync.tokens import DEFAULT_TOKEN_LIFETIME, TokenLifecycleManager
from calsync.tests.factories import NOW, fixed_clock, minimal_credential


@pytest.fixture
def oauth_client() -> AsyncMock:
    client = AsyncMock(spec=OAuthClientRepository)
    client.provider = Provider.GOOGLE
    return client


@pytest.fixture
def manager(oauth_client, credential_repo) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        Provider.GOOGLE, oauth_client, credential_repo, clock=fixed_clock()
    )


class TestTokenRefreshBoundary:
    @pytest.mark.asyncio
    async def test_unexpired_token_is_returned_without_refresh(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW + timedelta(seconds=1))
        )

        token = await manager.get_valid_token("user-1")

        assert token == "access-token"
        oauth_client.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_token_at_expiry_triggers_exactly_one_refresh(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(minimal_credential(expiry=NOW))
        oauth_client.refresh.return_value = TokenGrant(
            access_token="new-token", expiry=NOW + timedelta(hours=1)
        )

        token = await manager.get_valid_token("user-1")

        assert token == "new-token"
        oauth_client.refresh.assert_called_once_with("refresh-token")

    @pytest.mark.asyncio
    async def test_scenario_expired_ten_minutes_ago(
        self, manager, oauth_client, credential_repo
    ):
        """Refresh once, then reuse the new token without refreshing again."""
        credential_repo.put(
            minimal_credential(expiry=NOW - timedelta(minutes=10))
        )
        oauth_client.refresh.return_value = TokenGrant(
            access_token="fresh-token", expiry=NOW + timedelta(hours=1)
        )

        first = await manager.get_valid_token("user-1")
        second = await manager.get_valid_token("user-1")

        assert first == "fresh-token"
        assert second == "fresh-token"
        assert oauth_client.refresh.call_count == 1
        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.expiry == NOW + timedelta(hours=1)
        assert record.status == CredentialStatus.VALID


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(minimal_credential(expiry=NOW))
        oauth_client.refresh.return_value = TokenGrant(
            access_token="new-token", refresh_token=None, expiry=None
        )

        await manager.refresh("user-1")

        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.refresh_token == "refresh-token"
        assert record.expiry == NOW + DEFAULT_TOKEN_LIFETIME

    @pytest.mark.asyncio
    async def test_refresh_stores_rotated_refresh_token(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(minimal_credential(expiry=NOW))
        oauth_client.refresh.return_value = TokenGrant(
            access_token="new-token",
            refresh_token="rotated",
            expiry=NOW + timedelta(hours=1),
        )

        await manager.refresh("user-1")

        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.refresh_token == "rotated"

    @pytest.mark.asyncio
    async def test_rejected_refresh_marks_revoked_and_keeps_tokens(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(minimal_credential(expiry=NOW))
        oauth_client.refresh.side_effect = TokenRefreshRejected(
            Provider.GOOGLE, "invalid_grant"
        )

        resolution = await manager.resolve_token("user-1")

        assert resolution.kind == TokenResolutionKind.REFRESH_FAILED
        assert resolution.access_token is None
        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.status == CredentialStatus.REVOKED
        assert record.access_token == "access-token"
        assert record.refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_revoked_credential_is_not_refreshed_again(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW, status=CredentialStatus.REVOKED)
        )

        resolution = await manager.resolve_token("user-1")

        assert resolution.kind == TokenResolutionKind.REFRESH_FAILED
        oauth_client.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_transient_refresh_failure_marks_expired(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(minimal_credential(expiry=NOW))
        oauth_client.refresh.side_effect = RemoteCallFailed(
            Provider.GOOGLE, "refresh", "connection reset"
        )

        token = await manager.get_valid_token("user-1")

        assert token is None
        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.status == CredentialStatus.EXPIRED
        assert record.access_token == "access-token"

    @pytest.mark.asyncio
    async def test_expired_status_is_retried_on_next_call(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW, status=CredentialStatus.EXPIRED)
        )
        oauth_client.refresh.return_value = TokenGrant(
            access_token="new-token", expiry=NOW + timedelta(hours=1)
        )

        token = await manager.get_valid_token("user-1")

        assert token == "new-token"
        record = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert record.status == CredentialStatus.VALID

    @pytest.mark.asyncio
    async def test_missing_refresh_token_fails_without_network(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(expiry=NOW, refresh_token=None)
        )

        assert await manager.get_valid_token("user-1") is None
        oauth_client.refresh.assert_not_called()


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_no_credential_is_not_connected(self, manager, oauth_client):
        resolution = await manager.resolve_token("nobody")

        assert resolution.kind == TokenResolutionKind.NOT_CONNECTED
        oauth_client.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_authorization_url_uses_user_id_as_state(
        self, manager, oauth_client
    ):
        oauth_client.authorization_url.return_value = "https://auth/url"

        url = await manager.get_authorization_url("user-1")

        assert url == "https://auth/url"
        oauth_client.authorization_url.assert_called_once_with(state="user-1")

    @pytest.mark.asyncio
    async def test_complete_authorization_stores_valid_credential(
        self, manager, oauth_client, credential_repo
    ):
        oauth_client.exchange_code.return_value = TokenGrant(
            access_token="a", refresh_token="r", expiry=None
        )

        record = await manager.complete_authorization("code", "user-1")

        assert record.expiry == NOW + DEFAULT_TOKEN_LIFETIME
        stored = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert stored.access_token == "a"
        assert stored.refresh_token == "r"
        assert stored.status == CredentialStatus.VALID

    @pytest.mark.asyncio
    async def test_reconsent_without_refresh_token_keeps_stored_one(
        self, manager, oauth_client, credential_repo
    ):
        credential_repo.put(
            minimal_credential(
                refresh_token="original", status=CredentialStatus.REVOKED
            )
        )
        oauth_client.exchange_code.return_value = TokenGrant(
            access_token="a2", expiry=NOW + timedelta(hours=1)
        )

        await manager.complete_authorization("code", "user-1")

        stored = credential_repo.records[("user-1", Provider.GOOGLE)]
        assert stored.refresh_token == "original"
        assert stored.status == CredentialStatus.VALID

    @pytest.mark.asyncio
    async def test_rejected_code_raises_and_stores_nothing(
        self, manager, oauth_client, credential_repo
    ):
        oauth_client.exchange_code.side_effect = AuthorizationFailed(
            Provider.GOOGLE, "invalid_grant"
        )

        with pytest.raises(AuthorizationFailed):
            await manager.complete_authorization("bad", "user-1")
        assert credential_repo.records == {}

    @pytest.mark.asyncio
    async def test_disconnect_clears_credential(
        self, manager, credential_repo
    ):
        credential_repo.put(minimal_credential())

        await manager.disconnect("user-1")

        status = await manager.connection_status("user-1")
        assert status.connected is False
