from setbuilder.schemas.catalog import ALL_GENRES, GENRES, SearchQuery, SoundCloudTrack, Track
from setbuilder.schemas.oauth import OAuthConfig, Token, TokenErrorResponse, TokenResponse
from setbuilder.schemas.setlist import SetList

__all__ = [
    "ALL_GENRES",
    "GENRES",
    "OAuthConfig",
    "SearchQuery",
    "SetList",
    "SoundCloudTrack",
    "Token",
    "TokenErrorResponse",
    "TokenResponse",
    "Track",
]
