"""
OAuth client that issues tokens locally, paired with the mock calendar.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from calsync.domain import Provider, TokenGrant
from calsync.errors import AuthorizationFailed, TokenRefreshRejected
from calsync.repositories import OAuthClientRepository

logger = logging.getLogger(__name__)


class MockOAuthClient(OAuthClientRepository):
    """
    Accepts any code except "invalid". Refresh tokens it issued stay valid
    until ``revoke`` is called.
    """

    def __init__(
        self,
        provider: Provider = Provider.GOOGLE,
        lifetime: timedelta = timedelta(hours=1),
        rotate_refresh_tokens: bool = False,
    ):
        self.provider = provider
        self.lifetime = lifetime
        self.rotate_refresh_tokens = rotate_refresh_tokens
        self._refresh_tokens: Set[str] = set()
        self.issued_access_tokens: Set[str] = set()
        self.refresh_calls = 0

    def _issue(self, refresh_token: Optional[str]) -> TokenGrant:
        access_token = f"mock-access-{uuid.uuid4().hex[:8]}"
        self.issued_access_tokens.add(access_token)
        if refresh_token is not None:
            self._refresh_tokens.add(refresh_token)
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=datetime.now(timezone.utc) + self.lifetime,
        )

    def revoke(self) -> None:
        self._refresh_tokens.clear()

    async def authorization_url(self, state: str) -> str:
        return f"https://auth.example.invalid/{self.provider.value}?state={state}"

    async def exchange_code(self, code: str) -> TokenGrant:
        if code == "invalid":
            raise AuthorizationFailed(self.provider, "invalid_grant")
        return self._issue(f"mock-refresh-{uuid.uuid4().hex[:8]}")

    async def refresh(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls += 1
        if refresh_token not in self._refresh_tokens:
            raise TokenRefreshRejected(self.provider, "invalid_grant")
        if self.rotate_refresh_tokens:
            self._refresh_tokens.discard(refresh_token)
            return self._issue(f"mock-refresh-{uuid.uuid4().hex[:8]}")
        return self._issue(None)
