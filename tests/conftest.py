"""Pytest configuration and fixtures for SetBuilder tests."""

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from setbuilder.schemas.oauth import OAuthConfig

TOKEN_URL = "https://api.soundcloud.test/oauth2/token"  # nosec B105
AUTHORIZE_URL = "https://secure.soundcloud.test/connect"
API_BASE = "https://api.soundcloud.test"


@pytest.fixture
def oauth_config() -> OAuthConfig:
    return OAuthConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="setbuilder://callback",
        scopes=("non-expiring",),
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
    )


def token_response(
    access_token: str = "token-1", expires_in: int = 3600, status_code: int = 200
) -> httpx.Response:
    """A token-endpoint response."""
    return httpx.Response(
        status_code,
        json={"access_token": access_token, "expires_in": expires_in, "token_type": "bearer"},
    )


class TokenEndpoint:
    """Fake token endpoint that counts requests and hands out numbered tokens.

    ``responses`` (if set) are returned in order instead of fresh tokens.
    """

    def __init__(self, expires_in: int = 3600, delay: float = 0.0) -> None:
        self.expires_in = expires_in
        self.delay = delay
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def form(self, index: int = -1) -> dict[str, str]:
        """The decoded form body of a recorded request."""
        body = self.requests[index].content.decode()
        return dict(httpx.QueryParams(body).multi_items())

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.responses:
            return self.responses.pop(0)
        return token_response(f"token-{self.calls}", self.expires_in)


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


def mock_client(handler: Callable) -> httpx.AsyncClient:
    """An AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(status_code: int, payload: object) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode())
