"""OAuth credential schemas: app configuration, tokens and token-endpoint payloads."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class OAuthConfig:
    """App credentials and endpoints for the SoundCloud OAuth API."""

    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    scopes: tuple[str, ...]
    authorize_url: str
    token_url: str

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


@dataclass(frozen=True)
class Token:
    """A bearer credential and the instant it stops being accepted."""

    value: str = field(repr=False)
    expires_at: datetime
    token_type: str = "bearer"
    scope: str | None = None

    def is_usable(self, now: datetime, margin: timedelta = timedelta(0)) -> bool:
        """True while ``now`` is before the expiry instant minus ``margin``."""
        return now < self.expires_at - margin


class TokenResponse(BaseModel):
    """Successful token-endpoint payload."""

    access_token: str = Field(..., min_length=1)
    expires_in: int
    token_type: str = "bearer"
    scope: str | None = None
    refresh_token: str | None = None


class TokenErrorResponse(BaseModel):
    """Token-endpoint error payload.

    SoundCloud sends ``code``/``message``/``error_code``; standard OAuth
    servers send ``error``/``error_description``.
    """

    code: int | None = None
    message: str | None = None
    error_code: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def reason(self) -> str | None:
        return self.error_code or self.error

    @property
    def detail(self) -> str:
        return self.message or self.error_description or "no details provided"
