"""Structural validators for catalog responses.

The catalog returns different JSON shapes for search, lookup, listing and
top-track endpoints. None of them carries a reliable type tag, so every check
here inspects the presence of nested fields instead.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

Response = Dict[str, Any]

UNKNOWN_ID = ""


class CatalogKind(str, Enum):
    """Kinds of catalog objects that can be searched for or looked up."""

    TRACK = "track"
    ALBUM = "album"
    ARTIST = "artist"
    ARTIST_ALBUMS = "artist_albums"
    ARTIST_TOP_TRACKS = "artist_top_tracks"


_URI_PATTERN = r"^spotify:{kind}:([A-Za-z0-9]+)"
_LINK_PATTERN = r"^https?://open\.spotify\.com/(?:intl-[a-z]+/)?{kind}/([A-Za-z0-9]+)"


def _items(response: Any, key: str) -> List[Any]:
    if not isinstance(response, dict):
        return []
    container = response.get(key)
    if not isinstance(container, dict):
        return []
    items = container.get("items")
    return items if isinstance(items, list) else []


def first_search_item(response: Any, key: str) -> Optional[Response]:
    """Return the first hit of a search response under `key` (e.g. 'tracks')."""
    items = _items(response, key)
    if items and isinstance(items[0], dict):
        return items[0]
    return None


def is_search_response(response: Any, key: str) -> bool:
    """Whether `response` is a search result whose top hit has an ID."""
    item = first_search_item(response, key)
    return bool(item and item.get("id"))


def is_track_search_response(response: Any) -> bool:
    item = first_search_item(response, "tracks")
    return bool(item and item.get("uri"))


def is_album_search_response(response: Any) -> bool:
    return is_search_response(response, "albums")


def is_artist_search_response(response: Any) -> bool:
    return is_search_response(response, "artists")


def is_full_track_response(response: Any) -> bool:
    """A full track object carries popularity, a simplified one does not."""
    return isinstance(response, dict) and bool(response.get("id")) and "popularity" in response


def is_simple_track_response(response: Any) -> bool:
    return isinstance(response, dict) and bool(response.get("id") or response.get("uri"))


def is_album_response(response: Any) -> bool:
    """Album lookup or album listing item: an object with its own ID."""
    return isinstance(response, dict) and bool(response.get("id")) and "albums" not in response


def has_tracklist(response: Any) -> bool:
    """Album detail response carrying `tracks.items`."""
    if not is_album_response(response):
        return False
    tracks = response.get("tracks")
    return isinstance(tracks, dict) and isinstance(tracks.get("items"), list)


def is_albums_listing_response(response: Any) -> bool:
    return isinstance(response, dict) and isinstance(response.get("items"), list)


def is_top_tracks_response(response: Any) -> bool:
    return isinstance(response, dict) and isinstance(response.get("tracks"), list)


def is_playcount_response(response: Any) -> bool:
    if not isinstance(response, dict):
        return False
    track = response.get("track")
    return isinstance(track, dict) and track.get("playcount") is not None


def id_from_text(text: str, kind: CatalogKind) -> Optional[str]:
    """Extract an ID from a `spotify:<kind>:<id>` URI or an open.spotify.com permalink."""
    for pattern in (_URI_PATTERN, _LINK_PATTERN):
        match = re.match(pattern.format(kind=kind.value), text.strip(), re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def is_catalog_reference(text: str, kind: CatalogKind) -> bool:
    return id_from_text(text, kind) is not None
