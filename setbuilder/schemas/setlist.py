"""Setlist schemas."""

import uuid

from pydantic import BaseModel, ConfigDict, Field

from setbuilder.schemas.catalog import ALL_GENRES, Track


class SetList(BaseModel):
    """A titled list of tracks built for a genre and BPM range.

    Edits return a new SetList; track ids are unique within a list.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    genre: str = ALL_GENRES
    min_bpm: float = 0.0
    max_bpm: float = 0.0
    tracks: tuple[Track, ...] = ()
    is_custom: bool = False

    def has_track(self, track_id: str) -> bool:
        return any(t.id == track_id for t in self.tracks)

    def with_track(self, track: Track) -> "SetList":
        """Return a copy with ``track`` appended, unless it is already present."""
        if self.has_track(track.id):
            return self
        return self.model_copy(update={"tracks": (*self.tracks, track)})

    def without_track(self, track_id: str) -> "SetList":
        """Return a copy with every track matching ``track_id`` removed."""
        return self.model_copy(
            update={"tracks": tuple(t for t in self.tracks if t.id != track_id)}
        )

    @property
    def total_duration(self) -> int:
        return sum(t.duration for t in self.tracks)
