"""OAuth HTTP client - authorization URLs, token exchange and userinfo.

One generic adapter serves every provider; the per-provider differences
live in OAuthProviderConfig.
"""

from typing import Any
from urllib.parse import urlencode

import httpx

from app.core.account_linking import OAuthProfile
from app.core.config import OAuthCredentials
from app.core.oauth import OAuthProfileError, get_provider_config

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0


def _json_object(resp: httpx.Response, what: str) -> dict[str, Any]:
    try:
        result = resp.json()
    except ValueError as exc:
        msg = f"{what} is not valid JSON"
        raise OAuthProfileError(msg) from exc
    if not isinstance(result, dict):
        msg = f"{what} is not a JSON object"
        raise OAuthProfileError(msg)
    return result


class OAuthProviderAdapter:
    """Talks to one OAuth provider on behalf of the callback flow.

    Args:
        provider: Provider name ("google", "discord", "twitch").
        credentials: Client id/secret and callback URL for the provider.
        transport: Optional httpx transport (tests pass httpx.MockTransport).

    Raises:
        ValueError: If the provider is not supported.
    """

    def __init__(
        self,
        provider: str,
        credentials: OAuthCredentials,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider
        self.config = get_provider_config(provider)
        self._credentials = credentials
        self._transport = transport

    def authorization_url(self, state: str, code_challenge: str | None) -> str:
        """Build the provider authorization redirect URL.

        Args:
            state: CSRF state parameter.
            code_challenge: PKCE S256 challenge. Ignored for providers
                without PKCE support.

        Returns:
            Absolute URL to redirect the browser to.
        """
        params: dict[str, str] = {
            "client_id": self._credentials.client_id,
            "redirect_uri": self._credentials.callback_url,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        if self.config.supports_pkce and code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        params.update(self.config.extra_auth_params)
        return f"{self.config.authorization_url}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=_OAUTH_HTTP_TIMEOUT,
        )

    async def _exchange_for_access_token(
        self,
        client: httpx.AsyncClient,
        code: str,
        code_verifier: str | None,
    ) -> str:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._credentials.callback_url,
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
        }
        if self.config.supports_pkce and code_verifier:
            data["code_verifier"] = code_verifier

        resp = await client.post(
            self.config.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        result = _json_object(resp, f"{self.provider} token response")
        access_token = result.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            msg = f"{self.provider} token response has no access_token"
            raise OAuthProfileError(msg)
        return access_token

    async def _fetch_userinfo(
        self, client: httpx.AsyncClient, access_token: str
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        if self.config.userinfo_requires_client_id:
            headers["Client-Id"] = self._credentials.client_id

        resp = await client.get(self.config.userinfo_url, headers=headers)
        resp.raise_for_status()
        return _json_object(resp, f"{self.provider} userinfo")

    async def exchange_code(
        self, code: str, code_verifier: str | None
    ) -> OAuthProfile:
        """Exchange an authorization code for the user's profile.

        Args:
            code: Authorization code from the callback.
            code_verifier: PKCE verifier stored in the state cookie.

        Returns:
            Normalized OAuthProfile.

        Raises:
            httpx.HTTPError: If the token or userinfo request fails.
            OAuthProfileError: If a response payload is unusable.
        """
        async with self._client() as client:
            access_token = await self._exchange_for_access_token(
                client, code, code_verifier
            )
            userinfo = await self._fetch_userinfo(client, access_token)
        return self.config.profile_parser(userinfo)
