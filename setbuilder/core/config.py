import logging
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from setbuilder.schemas.oauth import OAuthConfig

# Look for .env in project root (parent of setbuilder/)
_env_file = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, extra="ignore")

    # SoundCloud app credentials (register at https://soundcloud.com/you/apps)
    soundcloud_client_id: str = ""
    soundcloud_client_secret: str = ""
    soundcloud_redirect_uri: str = "setbuilder://callback"
    # Comma- or space-separated
    soundcloud_scopes: str = "non-expiring"

    # Endpoints
    soundcloud_authorize_url: str = "https://secure.soundcloud.com/connect"
    soundcloud_token_url: str = "https://api.soundcloud.com/oauth2/token"  # nosec B105
    soundcloud_api_base: str = "https://api.soundcloud.com"

    # Search
    search_limit: int = 50

    # HTTP timeout for SoundCloud calls (seconds)
    http_timeout: float = 15.0

    # Tokens are treated as expired this many seconds before the server says so
    token_expiry_margin_seconds: float = 300.0

    log_level: str = "INFO"

    def oauth_config(self) -> OAuthConfig:
        """Build the credential configuration handed to credential providers."""
        return OAuthConfig(
            client_id=self.soundcloud_client_id.strip(),
            client_secret=self.soundcloud_client_secret.strip(),
            redirect_uri=self.soundcloud_redirect_uri.strip(),
            scopes=tuple(self.soundcloud_scopes.replace(",", " ").split()),
            authorize_url=self.soundcloud_authorize_url,
            token_url=self.soundcloud_token_url,
        )


def validate_settings(settings: Settings) -> None:
    """Log warnings for settings that will make catalog calls fail."""
    if not settings.soundcloud_client_id or not settings.soundcloud_client_secret:
        logging.warning(
            "SOUNDCLOUD_CLIENT_ID and SOUNDCLOUD_CLIENT_SECRET not set - catalog search will not work"
        )

    if settings.search_limit <= 0:
        logging.warning("SEARCH_LIMIT must be positive, got %d", settings.search_limit)

    if settings.token_expiry_margin_seconds < 0:
        logging.warning(
            "TOKEN_EXPIRY_MARGIN_SECONDS is negative (%s) - tokens may be used after expiry",
            settings.token_expiry_margin_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    validate_settings(settings)
    return settings
