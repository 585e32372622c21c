# discord_client.py
import os
import httpx
import logging
from typing import Dict, Any, Optional
from urllib.parse import urlencode

from errors import UpstreamError

logger = logging.getLogger("discord_client")

DISCORD_CLIENT_ID = os.getenv("DISCORD_CLIENT_ID", "YOUR_CLIENT_ID")
DISCORD_CLIENT_SECRET = os.getenv("DISCORD_CLIENT_SECRET", "YOUR_CLIENT_SECRET")
DISCORD_REDIRECT_URI = os.getenv(
    "DISCORD_REDIRECT_URI", "https://treasure-hunt-frontend-livid.vercel.app/discord/callback"
)

DISCORD_AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
DISCORD_TOKEN_URL = "https://discord.com/api/oauth2/token"
DISCORD_USER_URL = "https://discord.com/api/users/@me"
DISCORD_SCOPES = "identify"

_PLACEHOLDERS = {"YOUR_CLIENT_ID", "YOUR_CLIENT_SECRET", ""}


class DiscordClient:
    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.client_id = DISCORD_CLIENT_ID
        self.client_secret = DISCORD_CLIENT_SECRET
        self.redirect_uri = DISCORD_REDIRECT_URI
        self._http_client = http_client
        self._configured = (
            self.client_id not in _PLACEHOLDERS and self.client_secret not in _PLACEHOLDERS
        )

    @property
    def is_configured(self) -> bool:
        return self._configured

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": DISCORD_SCOPES,
            "state": state,
        }
        return f"{DISCORD_AUTHORIZE_URL}?{urlencode(params)}"

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            if self._http_client is not None:
                r = await self._http_client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=15.0) as client:
                    r = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Network error talking to Discord: {exc}") from exc

        if r.status_code >= 400:
            # body may echo the code back, only the status is logged
            logger.warning("Discord %s %s returned HTTP %s", method, url, r.status_code)
            raise UpstreamError(f"Discord returned HTTP {r.status_code}")
        try:
            data = r.json()
        except ValueError as exc:
            raise UpstreamError("Discord returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise UpstreamError("Discord returned an unexpected response")
        return data

    async def exchange_code(self, code: str) -> str:
        data = await self._request(
            "POST",
            DISCORD_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        access_token = data.get("access_token")
        if not access_token:
            raise UpstreamError("Failed to obtain access token")
        return access_token

    async def fetch_user(self, access_token: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            DISCORD_USER_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def fetch_identity(self, access_token: str) -> str:
        """
        Resolve the display identity of the token's owner.
        Prefers the global display name and falls back to the account username.
        """
        user = await self.fetch_user(access_token)
        for field in ("global_name", "username"):
            value = user.get(field)
            if isinstance(value, str) and value.strip():
                return value
        raise UpstreamError("Discord user has neither a display name nor a username")
