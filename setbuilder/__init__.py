"""SetBuilder catalog core: SoundCloud credentials and tempo/genre track search."""

__version__ = "0.1.0"
