"""
Discord OAuth2 client
Authorization URL, code exchange and profile lookup over httpx.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import structlog

from app.core.errors import InvalidStateError, UpstreamFailureError
from app.core.simple_config import settings
from app.services.identity_merge import ExternalIdentity

logger = structlog.get_logger()

OAUTH_SCOPES = ("identify", "email")


@dataclass(frozen=True)
class DiscordProfile:
    id: str
    username: str
    global_name: Optional[str] = None
    email: Optional[str] = None
    verified: bool = False
    avatar: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DiscordProfile":
        return cls(
            id=str(payload["id"]),
            username=payload.get("username") or "",
            global_name=payload.get("global_name"),
            email=payload.get("email"),
            verified=bool(payload.get("verified")),
            avatar=payload.get("avatar"),
        )

    @property
    def avatar_url(self) -> Optional[str]:
        if not self.avatar:
            return None
        return f"{settings.DISCORD_CDN_BASE_URL}/avatars/{self.id}/{self.avatar}.png"

    def to_identity(self) -> ExternalIdentity:
        # Unverified emails must not be used to link to an existing account
        return ExternalIdentity(
            external_id=self.id,
            username=self.username or self.global_name,
            email=self.email if self.verified and self.email else None,
            avatar_url=self.avatar_url,
        )


class DiscordOAuthClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        api_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.DISCORD_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.DISCORD_CLIENT_SECRET
        self.redirect_uri = redirect_uri or settings.DISCORD_REDIRECT_URI
        self.api_base_url = (api_base_url or settings.DISCORD_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.DISCORD_HTTP_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise InvalidStateError("Discord login is not configured")

    def authorization_url(self, state: str) -> str:
        self._ensure_configured()
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": " ".join(OAUTH_SCOPES),
                "state": state,
                "prompt": "none",
            }
        )
        return f"{self.api_base_url}/oauth2/authorize?{query}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for an access token"""
        self._ensure_configured()
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    "/oauth2/token",
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Discord token exchange rejected", status_code=e.response.status_code)
            raise UpstreamFailureError("Discord authentication failed")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Discord token exchange failed", error=str(e))
            raise UpstreamFailureError("Discord authentication failed")

        token = payload.get("access_token")
        if not token:
            logger.error("Discord token response without access token")
            raise UpstreamFailureError("Discord authentication failed")
        return token

    async def fetch_profile(self, access_token: str) -> DiscordProfile:
        try:
            async with self._client() as client:
                response = await client.get(
                    "/users/@me",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                profile = DiscordProfile.from_payload(response.json())
        except httpx.HTTPStatusError as e:
            logger.error("Discord profile request rejected", status_code=e.response.status_code)
            raise UpstreamFailureError("Discord authentication failed")
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("Discord profile request failed", error=str(e))
            raise UpstreamFailureError("Discord authentication failed")

        logger.debug("Discord profile fetched", discord_id=profile.id)
        return profile

    async def resolve_identity(self, code: str) -> ExternalIdentity:
        token = await self.exchange_code(code)
        profile = await self.fetch_profile(token)
        return profile.to_identity()


discord_oauth_client = DiscordOAuthClient()
