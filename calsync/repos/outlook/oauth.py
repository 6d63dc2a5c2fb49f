"""
Microsoft identity platform OAuth client for Outlook calendar access.

Uses the confidential-client authorization-code and refresh-token grants
against the v2.0 endpoints.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from calsync.domain import Provider, TokenGrant
from calsync.errors import (
    AuthorizationFailed,
    RemoteCallFailed,
    TokenRefreshRejected,
)
from calsync.repositories import OAuthClientRepository

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
SCOPES = [
    "offline_access",
    "https://graph.microsoft.com/Calendars.ReadWrite",
]


class OutlookOAuthClient(OAuthClientRepository):
    """Talks to login.microsoftonline.com for one tenant."""

    provider = Provider.OUTLOOK

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        tenant_id: str = "common",
        scopes: Optional[List[str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.tenant_id = tenant_id
        self.scopes = scopes or list(SCOPES)
        self._http_client = http_client
        self._timeout = timeout

    @property
    def authority(self) -> str:
        return AUTHORITY.format(tenant=self.tenant_id)

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authority}/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        try:
            data = await self._token_request(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                }
            )
        except _TokenEndpointError as e:
            raise AuthorizationFailed(self.provider, e.description) from e
        except httpx.HTTPError as e:
            raise AuthorizationFailed(self.provider, str(e)) from e
        return self._grant_from_response(data)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        try:
            data = await self._token_request(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                }
            )
        except _TokenEndpointError as e:
            if e.error in ("invalid_grant", "interaction_required"):
                raise TokenRefreshRejected(self.provider, e.description) from e
            raise RemoteCallFailed(
                self.provider, "refresh", e.description, e.status_code
            ) from e
        except httpx.HTTPError as e:
            raise RemoteCallFailed(self.provider, "refresh", str(e)) from e
        if not data.get("access_token"):
            raise RemoteCallFailed(
                self.provider, "refresh", "no access token issued"
            )
        return self._grant_from_response(data)

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": " ".join(self.scopes),
            **form,
        }
        response = await self._client().post(
            f"{self.authority}/token", data=payload
        )
        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error", "")
            description = body.get("error_description") or response.text
            logger.warning(
                "Microsoft token endpoint returned an error",
                extra={
                    "grant_type": form.get("grant_type"),
                    "status_code": response.status_code,
                    "error": error,
                },
            )
            raise _TokenEndpointError(response.status_code, error, description)
        return response.json()

    def _grant_from_response(self, data: Dict[str, Any]) -> TokenGrant:
        access_token = data.get("access_token")
        if not access_token:
            raise AuthorizationFailed(
                self.provider, "token endpoint returned no access token"
            )
        expires_in = data.get("expires_in")
        expiry = (
            datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            if expires_in
            else None
        )
        return TokenGrant(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expiry=expiry,
        )


class _TokenEndpointError(Exception):
    def __init__(self, status_code: int, error: str, description: str):
        super().__init__(description)
        self.status_code = status_code
        self.error = error
        self.description = description
