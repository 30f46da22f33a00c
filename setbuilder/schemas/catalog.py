"""Catalog search schemas."""

from typing import Any

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, field_validator, model_validator

# Genre sentinel meaning "no genre filter"
ALL_GENRES = "All"

# Genre stored on tracks the catalog has no genre for
UNKNOWN_GENRE = "Unknown"

GENRES = [ALL_GENRES, "House", "Hip-Hop", "Drum & Bass", "Techno", "Pop"]


class SearchQuery(BaseModel):
    """Tempo/genre filter for a catalog search.

    A tempo range of 0-0 means no tempo filter. Inverted bounds are swapped.
    """

    model_config = ConfigDict(frozen=True)

    min_bpm: float = Field(0.0, ge=0)
    max_bpm: float = Field(0.0, ge=0)
    genre: str = ALL_GENRES

    @model_validator(mode="before")
    @classmethod
    def _order_tempo_bounds(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        low = data.get("min_bpm", 0.0)
        high = data.get("max_bpm", 0.0)
        try:
            inverted = float(low) > float(high)
        except (TypeError, ValueError):
            # Field validation reports the bad value
            return data
        if inverted:
            return {**data, "min_bpm": high, "max_bpm": low}
        return data

    @field_validator("genre")
    @classmethod
    def _blank_genre_is_all(cls, value: str) -> str:
        value = value.strip()
        return value or ALL_GENRES

    @model_validator(mode="after")
    def _both_bounds_or_neither(self) -> "SearchQuery":
        if self.min_bpm == 0 and self.max_bpm > 0:
            raise ValueError("BPM bounds must both be positive, or both 0 for no tempo filter")
        return self

    @property
    def has_tempo_filter(self) -> bool:
        return self.min_bpm > 0

    @property
    def has_genre_filter(self) -> bool:
        return self.genre != ALL_GENRES


class Track(BaseModel):
    """A catalog track usable in a setlist."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    artist: str
    bpm: float
    genre: str = UNKNOWN_GENRE
    artwork_url: str | None = None
    duration: int
    url: AnyUrl | None = None


class SoundCloudUser(BaseModel):
    username: str


class SoundCloudTrack(BaseModel):
    """Track record as returned by GET /tracks."""

    id: int
    title: str
    user: SoundCloudUser
    genre: str | None = None
    bpm: float | None = None
    duration: int
    artwork_url: str | None = None
    permalink_url: str
