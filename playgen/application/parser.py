import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from playgen.domain.entities import Album, Artist, Track
from playgen.domain.queue import Queue
from playgen.domain.settings import GroupingMode, OrderingMode, PlaylistSettings


logger = logging.getLogger(__name__)

_ORDER_BY_POPULARITY = re.compile(r"^#(?:SORT|ORDER)\s+BY\s+POPULARITY", re.IGNORECASE)
_ORDER_BY_PLAYCOUNT = re.compile(r"^#(?:SORT|ORDER)\s+BY\s+LAST.?FM", re.IGNORECASE)
_GROUP_BY = re.compile(r"^#GROUP\s+BY\s+(ENTRY|ARTIST|ALBUM)", re.IGNORECASE)
_UNIQUE = re.compile(r"^#UNIQUE", re.IGNORECASE)
_COMMENT = re.compile(r"^(?:##|#EXTM3U\b)", re.IGNORECASE)
_ALBUM = re.compile(r"^#ALBUM([0-9]*)\s+(\S.*)$", re.IGNORECASE)
_ARTIST = re.compile(r"^#(?:ARTIST|TOP)([0-9]*)\s+(\S.*)$", re.IGNORECASE)
_EXTINF = re.compile(r"^#EXTINF\b", re.IGNORECASE)
# `#EXTINF:<duration>[ attributes],<title>`
_EXTINF_TITLE = re.compile(r"^#EXTINF:\s*-?[0-9]+(?:\.[0-9]+)?[^,]*,(.*)$", re.IGNORECASE)


@dataclass
class ParsedPlaylist:
    """Entries and settings read from a playlist description."""

    entries: Queue = field(default_factory=Queue)
    settings: PlaylistSettings = field(default_factory=PlaylistSettings)


class PlaylistParser:
    """Parses newline-separated playlist text.

    Plain lines are track queries (`Title - Artist`, a Spotify URI or an open.spotify.com
    link). Lines starting with `#` are directives:

        #ORDER BY POPULARITY        sort by Spotify popularity
        #ORDER BY LAST.FM           sort by Last.fm play count (also `#SORT BY ...`)
        #GROUP BY ENTRY|ARTIST|ALBUM
        #UNIQUE                     remove duplicates (the default)
        #ALBUM[N] <query>           tracks of an album, optionally the first N
        #ARTIST[N] <query>          every album of an artist, or its top N tracks
        #TOP[N] <query>             same as #ARTIST
        #EXTINF:<secs>,<title>      M3U track annotation
        ## ...                      comment

    Directives that do not match their grammar fall back to the most permissive reading.
    """

    def parse(self, text: str) -> ParsedPlaylist:
        """Parse playlist text into entries and settings.

        Args:
            text: Playlist description, one entry or directive per line

        Returns:
            ParsedPlaylist with the entries in input order
        """
        result = ParsedPlaylist()
        text = (text or "").strip()
        if not text:
            return result

        lines = [line.strip() for line in text.splitlines()]
        index = 0
        while index < len(lines):
            line = lines[index]
            index += 1

            if _ORDER_BY_POPULARITY.match(line):
                result.settings.ordering = OrderingMode.POPULARITY
            elif _ORDER_BY_PLAYCOUNT.match(line):
                result.settings.ordering = OrderingMode.PLAYCOUNT
            elif _GROUP_BY.match(line):
                mode = _GROUP_BY.match(line).group(1).lower()
                if result.settings.grouping is not GroupingMode.NONE:
                    logger.debug(f"Grouping directive '{line}' replaces {result.settings.grouping.value}")
                result.settings.grouping = GroupingMode(mode)
            elif _UNIQUE.match(line):
                result.settings.deduplicate = True
            elif _COMMENT.match(line):
                continue
            elif _ALBUM.match(line):
                match = _ALBUM.match(line)
                result.entries.add(Album(match.group(2), limit=self._parse_limit(match.group(1), line)))
            elif _ARTIST.match(line):
                match = _ARTIST.match(line)
                result.entries.add(Artist(match.group(2), limit=self._parse_limit(match.group(1), line)))
            elif _EXTINF.match(line):
                match = _EXTINF_TITLE.match(line)
                if not match or not match.group(1).strip():
                    logger.debug(f"Ignoring malformed annotation line '{line}'")
                    continue
                result.entries.add(Track(match.group(1)))
                # The next line restates the track as a path or URI
                if index < len(lines) and not lines[index].startswith("#"):
                    index += 1
            elif line:
                if line.startswith("#"):
                    logger.debug(f"Unrecognized directive '{line}', treating it as a track")
                result.entries.add(Track(line))

        return result

    @staticmethod
    def _parse_limit(suffix: str, line: str) -> Optional[int]:
        if not suffix:
            return None
        limit = int(suffix)
        if limit <= 0:
            logger.debug(f"Ignoring non-positive limit in '{line}'")
            return None
        return limit
