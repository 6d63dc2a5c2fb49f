"""
OAuth credential lifecycle for a single calendar provider.

Guarantees that every outbound call is made with a currently valid access
token. Expired tokens are refreshed on demand, exactly once per request;
tokens that are still valid are returned without any network round-trip.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .domain import (
    ConnectionStatus,
    CredentialRecord,
    CredentialStatus,
    Provider,
    TokenResolution,
    TokenResolutionKind,
)
from .errors import AuthorizationFailed, RemoteCallFailed, TokenRefreshRejected
from .repositories import CredentialRepository, OAuthClientRepository
from .validation import (
    ensure_credential_repository,
    ensure_oauth_client_repository,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenLifecycleManager:
    """
    Owns credential mutation for one provider.

    State per (user, provider):
        Unauthenticated -> Authorized   (complete_authorization)
        Authorized -> Expired           (time passes)
        Expired -> Authorized           (successful refresh)
        Expired -> Revoked              (provider rejects the refresh token)

    Revoked credentials are kept (tokens untouched) so that the caller can
    tell "reauthorization required" apart from "not connected".
    """

    def __init__(
        self,
        provider: Provider,
        oauth_client: OAuthClientRepository,
        credential_repo: CredentialRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.provider = provider
        self.oauth_client = ensure_oauth_client_repository(oauth_client)
        self.credential_repo = ensure_credential_repository(credential_repo)
        self._clock = clock or utc_now

    async def get_authorization_url(self, user_id: str) -> str:
        """Build the provider authorization URL with user_id as state."""
        return await self.oauth_client.authorization_url(state=user_id)

    async def complete_authorization(
        self, code: str, user_id: str
    ) -> CredentialRecord:
        """
        Exchange an authorization code and store the resulting credential.

        Raises:
            AuthorizationFailed: if the provider rejects the code or returns
                no access token.
        """
        logger.info(
            "Completing authorization",
            extra={"provider": self.provider.value, "user_id": user_id},
        )
        grant = await self.oauth_client.exchange_code(code)
        if not grant.access_token:
            raise AuthorizationFailed(
                self.provider, "token endpoint returned no access token"
            )

        refresh_token = grant.refresh_token
        if refresh_token is None:
            # Providers may omit the refresh token on re-consent
            existing = await self.credential_repo.get_credential(
                user_id, self.provider
            )
            if existing is not None:
                refresh_token = existing.refresh_token

        expiry = grant.expiry or self._clock() + DEFAULT_TOKEN_LIFETIME
        await self.credential_repo.set_credential(
            user_id, self.provider, grant.access_token, refresh_token, expiry
        )
        logger.info(
            "Authorization stored",
            extra={
                "provider": self.provider.value,
                "user_id": user_id,
                "has_refresh_token": refresh_token is not None,
                "expiry": expiry.isoformat(),
            },
        )
        return CredentialRecord(
            user_id=user_id,
            provider=self.provider,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expiry=expiry,
            status=CredentialStatus.VALID,
        )

    async def get_valid_token(self, user_id: str) -> Optional[str]:
        """Return an access token valid for immediate use, or None."""
        resolution = await self.resolve_token(user_id)
        return resolution.access_token

    async def resolve_token(self, user_id: str) -> TokenResolution:
        """
        Resolve a usable access token and say why when there is none.

        A stored token that has not reached its expiry is returned as-is.
        Otherwise exactly one refresh attempt is made.
        """
        record = await self.credential_repo.get_credential(
            user_id, self.provider
        )
        if record is None or not record.access_token:
            return TokenResolution(kind=TokenResolutionKind.NOT_CONNECTED)

        if record.status == CredentialStatus.REVOKED:
            logger.info(
                "Credential revoked, reauthorization required",
                extra={"provider": self.provider.value, "user_id": user_id},
            )
            return TokenResolution(kind=TokenResolutionKind.REFRESH_FAILED)

        if not record.is_expired(self._clock()):
            return TokenResolution(
                kind=TokenResolutionKind.VALID,
                access_token=record.access_token,
            )

        token = await self.refresh(user_id)
        if token is None:
            return TokenResolution(kind=TokenResolutionKind.REFRESH_FAILED)
        return TokenResolution(
            kind=TokenResolutionKind.VALID, access_token=token
        )

    async def refresh(self, user_id: str) -> Optional[str]:
        """
        Exchange the stored refresh token for a new access token.

        Makes a single attempt. On failure the stored tokens are left
        untouched; only the credential status records what happened.
        """
        record = await self.credential_repo.get_credential(
            user_id, self.provider
        )
        if record is None or not record.refresh_token:
            logger.warning(
                "No refresh token stored",
                extra={"provider": self.provider.value, "user_id": user_id},
            )
            return None

        try:
            grant = await self.oauth_client.refresh(record.refresh_token)
        except TokenRefreshRejected as e:
            logger.warning(
                "Refresh token rejected",
                extra={
                    "provider": self.provider.value,
                    "user_id": user_id,
                    "error_kind": "refresh_rejected",
                    "error": str(e),
                },
            )
            await self.credential_repo.set_status(
                user_id, self.provider, CredentialStatus.REVOKED
            )
            return None
        except RemoteCallFailed as e:
            logger.warning(
                "Token refresh failed",
                extra={
                    "provider": self.provider.value,
                    "user_id": user_id,
                    "error_kind": "remote_call_failed",
                    "error": str(e),
                },
            )
            await self.credential_repo.set_status(
                user_id, self.provider, CredentialStatus.EXPIRED
            )
            return None

        refresh_token = grant.refresh_token or record.refresh_token
        expiry = grant.expiry or self._clock() + DEFAULT_TOKEN_LIFETIME
        await self.credential_repo.set_credential(
            user_id, self.provider, grant.access_token, refresh_token, expiry
        )
        logger.info(
            "Access token refreshed",
            extra={
                "provider": self.provider.value,
                "user_id": user_id,
                "refresh_token_rotated": grant.refresh_token is not None
                and grant.refresh_token != record.refresh_token,
                "expiry": expiry.isoformat(),
            },
        )
        return grant.access_token

    async def disconnect(self, user_id: str) -> None:
        await self.credential_repo.clear_credential(user_id, self.provider)
        logger.info(
            "Provider disconnected",
            extra={"provider": self.provider.value, "user_id": user_id},
        )

    async def connection_status(self, user_id: str) -> ConnectionStatus:
        record = await self.credential_repo.get_credential(
            user_id, self.provider
        )
        if record is None:
            return ConnectionStatus(provider=self.provider, connected=False)
        return ConnectionStatus(
            provider=self.provider,
            connected=bool(record.access_token),
            status=record.status,
            expiry=record.expiry,
        )
