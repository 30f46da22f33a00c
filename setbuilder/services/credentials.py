"""OAuth credential providers for the SoundCloud API.

Two grants sit behind one ``CredentialProvider`` interface:

- ``ClientCredentialsProvider``: app-level token, no user interaction. This is
  what catalog search uses.
- ``AuthorizationCodeProvider``: user token via authorization code + PKCE.
  The interactive consent step (browser / web view) is delegated to a
  ``ConsentHandler`` supplied by the caller.

Both share the token-endpoint exchange and its response classification, and
each keeps its token in a ``TokenCache`` (its own, unless one is injected).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Protocol
from urllib.parse import parse_qs, urlparse

import httpx
from pydantic import ValidationError

from setbuilder.core.config import Settings, get_settings
from setbuilder.core.time import utcnow
from setbuilder.schemas.oauth import OAuthConfig, Token, TokenErrorResponse, TokenResponse
from setbuilder.services.errors import (
    AuthorizationCancelledError,
    CatalogError,
    DecodingFailureError,
    InvalidCallbackError,
    InvalidClientCredentialsError,
    InvalidRequestConfigurationError,
    NetworkFailureError,
    TokenAcquisitionError,
    describe_http_error,
)
from setbuilder.services.pkce import CHALLENGE_METHOD, PKCEPair, generate_pkce_pair, generate_state
from setbuilder.services.token_cache import DEFAULT_EXPIRY_MARGIN_SECONDS, TokenCache

logger = logging.getLogger(__name__)

# HTTP timeout for token endpoint calls
HTTP_TIMEOUT = 15.0

INVALID_CLIENT = "invalid_client"


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"


class AuthorizationState(str, Enum):
    IDLE = "idle"
    AWAITING_USER_CONSENT = "awaiting_user_consent"
    EXCHANGING_CODE = "exchanging_code"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class ConsentHandler(Protocol):
    """Interactive consent step of the authorization-code flow.

    Shows ``authorize_url`` to the user and resolves with the callback URL
    (scheme ``callback_scheme``) the provider redirected to. Returns None or
    raises ``AuthorizationCancelledError`` if the user dismisses the step;
    any other exception is treated as a transport failure.
    """

    async def __call__(self, authorize_url: str, callback_scheme: str) -> str | None: ...


@dataclass(frozen=True)
class AuthorizationRequest:
    """One authorization attempt: the URL to open and the secrets it depends on."""

    url: str
    state: str
    callback_scheme: str
    pkce: PKCEPair = field(repr=False)


def parse_callback(callback_url: str) -> dict[str, str]:
    """Parse a callback URL into {"code", "state", "error"} (missing keys omitted)."""
    qs = parse_qs(urlparse(callback_url.strip()).query)
    out: dict[str, str] = {}
    for key in ("code", "state", "error"):
        if qs.get(key):
            out[key] = qs[key][0]
    return out


def _parse_error_body(response: httpx.Response) -> TokenErrorResponse | None:
    try:
        return TokenErrorResponse.model_validate_json(response.content)
    except ValidationError:
        return None


class CredentialProvider(ABC):
    """Source of bearer tokens for one OAuth grant."""

    def __init__(
        self,
        config: OAuthConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: TokenCache | None = None,
        timeout: float = HTTP_TIMEOUT,
        expiry_margin_seconds: float = DEFAULT_EXPIRY_MARGIN_SECONDS,
    ) -> None:
        self.config = config
        self.cache = cache if cache is not None else TokenCache(expiry_margin_seconds)
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    @property
    @abstractmethod
    def grant_type(self) -> GrantType:
        """The OAuth grant this provider performs."""

    @abstractmethod
    async def _acquire_token(self) -> Token:
        """Run the grant once and return the new token."""

    async def get_token(self) -> Token:
        """Return a usable token, acquiring one if the cache has none.

        Concurrent callers share a single acquisition.
        """
        return await self.cache.get_or_fetch(self._acquire_token)

    def invalidate(self, token: Token | None = None) -> bool:
        """Drop the cached token (e.g. after the API rejected it)."""
        return self.cache.invalidate(token)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _request_token(self, form: dict[str, str]) -> Token:
        """POST a form to the token endpoint and classify the response."""
        data = {"grant_type": self.grant_type.value, **form}
        try:
            response = await self._http().post(
                self.config.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            logger.error("Token URL is invalid: %s", self.config.token_url)
            raise InvalidRequestConfigurationError(f"Invalid token URL configuration: {e}") from e
        except httpx.RequestError as e:
            logger.error("Token request failed: %s", describe_http_error(e))
            raise NetworkFailureError(e) from e

        logger.debug("Token response status: %d", response.status_code)
        return self._token_from_response(response)

    def _is_token_status(self, status_code: int) -> bool:
        """Whether ``status_code`` carries a token payload for this grant."""
        return 200 <= status_code < 300

    def _token_from_response(self, response: httpx.Response) -> Token:
        if self._is_token_status(response.status_code):
            try:
                payload = TokenResponse.model_validate_json(response.content)
            except ValidationError as e:
                logger.error("Token response was not a valid token payload")
                raise DecodingFailureError(e) from e

            logger.info(
                "Acquired %s token (expires in %ds)", self.grant_type.value, payload.expires_in
            )
            return Token(
                value=payload.access_token,
                expires_at=utcnow() + timedelta(seconds=payload.expires_in),
                token_type=payload.token_type,
                scope=payload.scope,
            )

        if response.status_code == 401:
            error = _parse_error_body(response)
            if error is not None and error.reason == INVALID_CLIENT:
                logger.error("Token endpoint rejected the client credentials: %s", error.detail)
                raise InvalidClientCredentialsError(
                    "Invalid client credentials. Please check your client ID and secret."
                )

        logger.error("Token request failed: HTTP %d", response.status_code)
        raise TokenAcquisitionError(response.status_code, response.text)

    async def aclose(self) -> None:
        """Cancel pending token work and close the HTTP client if we own it."""
        await self.cache.aclose()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> CredentialProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class ClientCredentialsProvider(CredentialProvider):
    """App-level tokens from the client-credentials grant."""

    @property
    def grant_type(self) -> GrantType:
        return GrantType.CLIENT_CREDENTIALS

    def _is_token_status(self, status_code: int) -> bool:
        return status_code == 200

    async def _acquire_token(self) -> Token:
        logger.info("Requesting client-credentials token")
        return await self._request_token(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            }
        )


class AuthorizationCodeProvider(CredentialProvider):
    """User tokens from the authorization-code grant with PKCE.

    ``state`` follows IDLE -> AWAITING_USER_CONSENT -> EXCHANGING_CODE ->
    AUTHENTICATED or FAILED. Failures are never retried automatically.
    """

    def __init__(self, config: OAuthConfig, consent: ConsentHandler, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self._consent = consent
        self.state = AuthorizationState.IDLE
        self._pending: AuthorizationRequest | None = None

    @property
    def grant_type(self) -> GrantType:
        return GrantType.AUTHORIZATION_CODE

    @property
    def callback_scheme(self) -> str:
        return urlparse(self.config.redirect_uri).scheme

    @property
    def pending(self) -> AuthorizationRequest | None:
        """The attempt awaiting consent or exchange, if any."""
        return self._pending

    def build_authorize_url(self, pkce: PKCEPair, state: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "code_challenge": pkce.challenge,
            "code_challenge_method": CHALLENGE_METHOD,
            "state": state,
        }
        if self.config.scope:
            params["scope"] = self.config.scope
        return str(httpx.URL(self.config.authorize_url, params=params))

    def begin(self) -> AuthorizationRequest:
        """Start an attempt: fresh PKCE pair and state, authorization URL built."""
        pkce = generate_pkce_pair()
        state = generate_state()
        request = AuthorizationRequest(
            url=self.build_authorize_url(pkce, state),
            state=state,
            callback_scheme=self.callback_scheme,
            pkce=pkce,
        )
        self._pending = request
        self.state = AuthorizationState.AWAITING_USER_CONSENT
        return request

    async def authenticate(self) -> Token:
        """Run one full attempt: consent, then code exchange.

        The PKCE pair is discarded afterwards whether the attempt succeeded
        or not.
        """
        request = self.begin()
        try:
            code = await self._await_consent(request)
            self.state = AuthorizationState.EXCHANGING_CODE
            token = await self._request_token(
                {
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "redirect_uri": self.config.redirect_uri,
                    "code": code,
                    "code_verifier": request.pkce.verifier,
                }
            )
        except BaseException:
            self.state = AuthorizationState.FAILED
            raise
        finally:
            self._pending = None

        self.state = AuthorizationState.AUTHENTICATED
        return token

    async def _acquire_token(self) -> Token:
        return await self.authenticate()

    async def _await_consent(self, request: AuthorizationRequest) -> str:
        """Hand the URL to the consent handler and return the authorization code."""
        try:
            callback_url = await self._consent(request.url, request.callback_scheme)
        except CatalogError:
            raise
        except Exception as e:
            logger.error("Consent step failed: %s", describe_http_error(e))
            raise NetworkFailureError(e) from e

        if callback_url is None:
            logger.info("Authorization cancelled by user")
            raise AuthorizationCancelledError()

        params = parse_callback(callback_url)
        error = params.get("error")
        if error == "access_denied":
            logger.info("User denied access")
            raise AuthorizationCancelledError("User denied access")
        if error:
            raise InvalidCallbackError(f"Authorization failed: {error}")
        if params.get("state") != request.state:
            raise InvalidCallbackError("State mismatch in callback URL")
        code = params.get("code")
        if not code:
            raise InvalidCallbackError("Invalid callback URL")
        return code


def create_credential_provider(
    grant: GrantType,
    settings: Settings | None = None,
    *,
    consent: ConsentHandler | None = None,
    http_client: httpx.AsyncClient | None = None,
    cache: TokenCache | None = None,
) -> CredentialProvider:
    """Build the provider for ``grant`` from settings."""
    settings = settings or get_settings()
    kwargs = {
        "http_client": http_client,
        "cache": cache,
        "timeout": settings.http_timeout,
        "expiry_margin_seconds": settings.token_expiry_margin_seconds,
    }
    if grant is GrantType.CLIENT_CREDENTIALS:
        return ClientCredentialsProvider(settings.oauth_config(), **kwargs)
    if consent is None:
        raise ValueError("The authorization-code grant needs a consent handler")
    return AuthorizationCodeProvider(settings.oauth_config(), consent, **kwargs)
