"""
Google OAuth 2.0 web-server flow for Calendar access.
"""

import asyncio
import logging
from datetime import timezone
from typing import Any, Dict, List, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from calsync.domain import Provider, TokenGrant
from calsync.errors import (
    AuthorizationFailed,
    RemoteCallFailed,
    TokenRefreshRejected,
)
from calsync.repositories import OAuthClientRepository

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"


class GoogleOAuthClient(OAuthClientRepository):
    """
    Authorization-code grant against Google's OAuth server.

    A fresh Flow is built per call since the authorization redirect and
    the callback are handled by different requests.
    """

    provider = Provider.GOOGLE

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Optional[List[str]] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or list(SCOPES)

    def _client_config(self) -> Dict[str, Any]:
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }

    def _flow(self, state: Optional[str] = None) -> Flow:
        # The code verifier cannot survive between the redirect and the
        # callback, so PKCE is left off for this confidential client.
        return Flow.from_client_config(
            self._client_config(),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    async def authorization_url(self, state: str) -> str:
        url, _ = self._flow(state=state).authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",
        )
        return url

    async def exchange_code(self, code: str) -> TokenGrant:
        flow = self._flow()
        try:
            await asyncio.to_thread(flow.fetch_token, code=code)
        except Exception as e:
            logger.error(
                f"Google code exchange failed: {type(e).__name__}: {e}",
                extra={"error_type": type(e).__name__},
            )
            raise AuthorizationFailed(self.provider, str(e)) from e

        creds = flow.credentials
        if not creds.token:
            raise AuthorizationFailed(self.provider, "no access token issued")
        return TokenGrant(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            # google-auth reports expiry as naive UTC
            expiry=(
                creds.expiry.replace(tzinfo=timezone.utc)
                if creds.expiry
                else None
            ),
        )

    async def refresh(self, refresh_token: str) -> TokenGrant:
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes,
        )
        try:
            await asyncio.to_thread(creds.refresh, Request())
        except RefreshError as e:
            # 5xx and backend errors arrive as retryable RefreshErrors once
            # google-auth gives up; only a rejected grant revokes
            if getattr(e, "retryable", False):
                raise RemoteCallFailed(self.provider, "refresh", str(e)) from e
            raise TokenRefreshRejected(self.provider, str(e)) from e
        except TransportError as e:
            raise RemoteCallFailed(self.provider, "refresh", str(e)) from e

        if not creds.token:
            raise RemoteCallFailed(
                self.provider, "refresh", "no access token issued"
            )
        return TokenGrant(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expiry=(
                creds.expiry.replace(tzinfo=timezone.utc)
                if creds.expiry
                else None
            ),
        )
