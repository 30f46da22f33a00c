"""Script to search the SoundCloud catalog by genre and BPM range."""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from setbuilder.core.config import Settings, get_settings
from setbuilder.schemas.catalog import ALL_GENRES, GENRES, SearchQuery, Track
from setbuilder.services.catalog import create_search_client
from setbuilder.services.errors import CatalogError


def format_track(track: Track) -> str:
    """One line per track: BPM, artist, title, genre, length (SoundCloud durations are ms)."""
    minutes, seconds = divmod(track.duration // 1000, 60)
    return f"{track.bpm:6.1f} BPM  {track.artist} - {track.title} [{track.genre}] {minutes}:{seconds:02d}"


async def run(settings: Settings, query: SearchQuery) -> int:
    async with create_search_client(settings) as client:
        try:
            tracks = await client.search(query)
        except CatalogError as e:
            print(f"Search failed: {e}", file=sys.stderr)
            return 1

    if not tracks:
        print("No tracks found.")
    for track in tracks:
        print(format_track(track))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Search SoundCloud tracks by genre and BPM")
    parser.add_argument(
        "--genre",
        default=ALL_GENRES,
        help=f"Genre to filter on ({', '.join(GENRES)} or any custom genre)",
    )
    parser.add_argument("--min-bpm", type=float, default=0.0, help="Lower BPM bound (0 = any)")
    parser.add_argument("--max-bpm", type=float, default=0.0, help="Upper BPM bound (0 = any)")
    parser.add_argument("--limit", type=int, help="Maximum number of results to request")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.limit is not None:
        settings = settings.model_copy(update={"search_limit": args.limit})
    logging.basicConfig(level=settings.log_level.upper())

    try:
        query = SearchQuery(min_bpm=args.min_bpm, max_bpm=args.max_bpm, genre=args.genre)
    except ValidationError as e:
        parser.error(f"invalid search filter: {e.errors()[0]['msg']}")

    return asyncio.run(run(settings, query))


if __name__ == "__main__":
    sys.exit(main())
