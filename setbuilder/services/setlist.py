"""Build setlists from catalog searches."""

import logging

from setbuilder.schemas.catalog import ALL_GENRES, SearchQuery
from setbuilder.schemas.setlist import SetList
from setbuilder.services.catalog import CatalogSearchClient

logger = logging.getLogger(__name__)


async def build_setlist(
    client: CatalogSearchClient,
    title: str,
    genre: str = ALL_GENRES,
    min_bpm: float = 0.0,
    max_bpm: float = 0.0,
    is_custom: bool = False,
) -> SetList:
    """Search for tracks matching genre/BPM range and wrap them in a SetList.

    The range is normalized (inverted bounds swapped) before searching, and
    the SetList records the normalized values. Search errors propagate.
    """
    query = SearchQuery(min_bpm=min_bpm, max_bpm=max_bpm, genre=genre)
    tracks = await client.search(query)

    setlist = SetList(
        title=title.strip(),
        genre=query.genre,
        min_bpm=query.min_bpm,
        max_bpm=query.max_bpm,
        is_custom=is_custom,
    )
    for track in tracks:
        setlist = setlist.with_track(track)

    logger.info("Built setlist %r with %d tracks", setlist.title, len(setlist.tracks))
    return setlist
