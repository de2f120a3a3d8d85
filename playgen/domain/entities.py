from __future__ import annotations

import logging
from typing import Any, Generic, List, Optional, TypeVar, Union

from .errors import MalformedResponse, NotFound, ResolutionError
from .queue import Queue
from .responses import (
    UNKNOWN_ID,
    CatalogKind,
    Response,
    first_search_item,
    has_tracklist,
    id_from_text,
    is_album_response,
    is_album_search_response,
    is_albums_listing_response,
    is_artist_search_response,
    is_catalog_reference,
    is_full_track_response,
    is_playcount_response,
    is_simple_track_response,
    is_top_tracks_response,
    is_track_search_response,
)

logger = logging.getLogger(__name__)

V = TypeVar("V")


class WriteOnce(Generic[V]):
    """Optional slot for a fetched response that may be written at most once."""

    __slots__ = ("_name", "_value")

    def __init__(self, name: str) -> None:
        self._name = name
        self._value: Optional[V] = None

    @property
    def value(self) -> Optional[V]:
        return self._value

    def is_set(self) -> bool:
        return self._value is not None

    def set(self, value: V) -> V:
        if value is None:
            raise ValueError(f"Cannot attach an empty {self._name} response")
        if self._value is not None:
            raise AttributeError(f"{self._name} response is already attached")
        self._value = value
        return value


class Entry:
    """Base class for resolvable playlist entries (Track, Album, Artist)."""

    kind: CatalogKind

    def __init__(self, entry: str, limit: Optional[int] = None) -> None:
        self._entry = entry.strip()
        self.limit: Optional[int] = None
        self.set_limit(limit)

    @property
    def entry(self) -> str:
        """The trimmed text this entry was created from."""
        return self._entry

    def set_limit(self, limit: Optional[int]) -> None:
        """Cap the number of expanded results. Non-positive or non-integer values are ignored."""
        if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
            self.limit = limit

    async def dispatch(self, catalog) -> Union["Track", Queue[Any]]:
        raise NotImplementedError

    def id(self) -> str:
        raise NotImplementedError

    def to_display_string(self) -> str:
        return self._entry

    def __str__(self) -> str:
        return self.to_display_string()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._entry!r})"


class Track(Entry):
    """A single track.

    Holds at most one full response (with popularity and album) and at most one
    simplified response (search hit or tracklist item). Dispatching a track that only
    has a simplified response upgrades it to a full one.
    """

    kind = CatalogKind.TRACK

    def __init__(self, entry: str, response: Optional[Response] = None) -> None:
        super().__init__(entry)
        self._full: WriteOnce[Response] = WriteOnce("full track")
        self._simple: WriteOnce[Response] = WriteOnce("simplified track")
        self._playcount: WriteOnce[Response] = WriteOnce("playcount")

        if is_full_track_response(response):
            self._full.set(response)
        elif is_simple_track_response(response):
            self._simple.set(response)

    @property
    def response(self) -> Optional[Response]:
        return self._full.value or self._simple.value

    @property
    def full_response(self) -> Optional[Response]:
        return self._full.value

    @property
    def simple_response(self) -> Optional[Response]:
        return self._simple.value

    async def dispatch(self, catalog) -> "Track":
        if self._full.is_set():
            return self
        if self._simple.is_set() or is_catalog_reference(self.entry, CatalogKind.TRACK):
            return await self.fetch_track(catalog)
        return await self.search_for_track(catalog, self.entry)

    async def fetch_track(self, catalog) -> "Track":
        """Fetch and attach the full track object."""
        track_id = self.id()
        if track_id == UNKNOWN_ID:
            raise NotFound(f"No track ID available for '{self.entry}'")
        response = await catalog.fetch_by_id(CatalogKind.TRACK, track_id)
        if not is_full_track_response(response):
            raise MalformedResponse(f"Unexpected track response for {track_id}", response)
        self._full.set(response)
        return self

    async def search_for_track(self, catalog, query: str) -> "Track":
        response = await catalog.search(CatalogKind.TRACK, query)
        if not is_track_search_response(response):
            raise NotFound(f"Could not find track '{query}'")
        self._simple.set(first_search_item(response, "tracks"))
        return self

    async def refresh(self, catalog) -> "Track":
        """Make sure the full response is present; keep the track as-is if that fails."""
        try:
            return await self.dispatch(catalog)
        except ResolutionError as e:
            logger.warning(f"Could not refresh track '{self}': {e}")
            return self

    async def fetch_playcount(self, service) -> "Track":
        """Fetch and attach play-count metadata from the secondary service."""
        if self._playcount.is_set():
            return self
        response = await service.fetch_playcount(self.artist(), self.title())
        if not is_playcount_response(response):
            raise MalformedResponse(f"Unexpected playcount response for '{self}'", response)
        self._playcount.set(response)
        return self

    def id(self) -> str:
        for response in (self._full.value, self._simple.value):
            if not response:
                continue
            if response.get("id"):
                return response["id"]
            from_uri = id_from_text(response.get("uri") or "", CatalogKind.TRACK)
            if from_uri:
                return from_uri
        return id_from_text(self.entry, CatalogKind.TRACK) or UNKNOWN_ID

    def uri(self) -> str:
        """Spotify URI, or the empty string if the track has no known ID."""
        response = self.response
        if response and response.get("uri"):
            return response["uri"]
        track_id = self.id()
        return f"spotify:track:{track_id}" if track_id != UNKNOWN_ID else ""

    def title(self) -> str:
        response = self.response
        return (response.get("name") or "") if response else ""

    def artist(self) -> str:
        """Main artist, or the empty string."""
        names = self._artist_names()
        return names[0] if names else ""

    def artists(self) -> str:
        return ", ".join(self._artist_names())

    def _artist_names(self) -> List[str]:
        response = self.response
        if not response:
            return []
        artists = response.get("artists") or []
        return [a["name"].strip() for a in artists if isinstance(a, dict) and a.get("name")]

    def album(self) -> str:
        """Album name; only full responses carry it."""
        response = self._full.value
        album = response.get("album") if response else None
        if isinstance(album, dict) and album.get("name"):
            return album["name"]
        return ""

    def popularity(self) -> Optional[int]:
        response = self._full.value
        if response is None:
            return None
        return response.get("popularity")

    def playcount(self) -> Optional[int]:
        response = self._playcount.value
        if response is None:
            return None
        try:
            return int(response["track"]["playcount"])
        except (KeyError, TypeError, ValueError):
            return None

    def name(self) -> str:
        """`Title - Artist`, `Title` if there is no artist, or empty."""
        title = self.title()
        if not title:
            return ""
        artist = self.artist()
        return f"{title} - {artist}" if artist else title

    def to_display_string(self) -> str:
        return self.name() or self.entry

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Track):
            return NotImplemented
        return self.to_display_string().lower() == other.to_display_string().lower()

    # Equality follows the display string, which changes as responses are attached.
    __hash__ = None


class Album(Entry):
    """An album entry; resolves to a queue of its tracks."""

    kind = CatalogKind.ALBUM

    def __init__(self, entry: str, response: Optional[Response] = None,
                 limit: Optional[int] = None) -> None:
        super().__init__(entry, limit)
        self._search: WriteOnce[Response] = WriteOnce("album search")
        self._album: WriteOnce[Response] = WriteOnce("album")
        self._detail: WriteOnce[Response] = WriteOnce("album detail")

        if is_album_search_response(response):
            self._search.set(response)
        elif is_album_response(response):
            self._album.set(response)

    async def dispatch(self, catalog) -> Queue[Track]:
        cached = self._search.is_set() or self._album.is_set()
        if not cached and not is_catalog_reference(self.entry, CatalogKind.ALBUM):
            await self.search_for_album(catalog, self.entry)
        response = await self.fetch_album(catalog)
        return self.create_queue(response)

    async def search_for_album(self, catalog, query: str) -> Response:
        response = await catalog.search(CatalogKind.ALBUM, query)
        if not is_album_search_response(response):
            raise NotFound(f"Could not find album '{query}'")
        return self._search.set(response)

    async def fetch_album(self, catalog) -> Response:
        """Return the album detail (with tracklist), fetching it if necessary."""
        if self._detail.is_set():
            return self._detail.value
        if has_tracklist(self._album.value):
            return self._detail.set(self._album.value)

        album_id = self.id()
        if album_id == UNKNOWN_ID:
            raise NotFound(f"No album ID available for '{self.entry}'")
        response = await catalog.fetch_by_id(CatalogKind.ALBUM, album_id)
        if not has_tracklist(response):
            raise MalformedResponse(f"Unexpected album response for {album_id}", response)
        return self._detail.set(response)

    def create_queue(self, response: Response) -> Queue[Track]:
        tracks = Queue(
            Track(self.entry, item)
            for item in response["tracks"]["items"]
            if isinstance(item, dict)
        )
        if self.limit:
            tracks = tracks.slice(0, self.limit)
        return tracks

    def id(self) -> str:
        for response in (self._detail.value, self._album.value):
            if response and response.get("id"):
                return response["id"]
        hit = first_search_item(self._search.value, "albums")
        if hit and hit.get("id"):
            return hit["id"]
        return id_from_text(self.entry, CatalogKind.ALBUM) or UNKNOWN_ID

    def to_display_string(self) -> str:
        response = self._detail.value or self._album.value or first_search_item(
            self._search.value, "albums")
        if response and response.get("name"):
            artists = response.get("artists") or []
            if artists and isinstance(artists[0], dict) and artists[0].get("name"):
                return f"{response['name']} - {artists[0]['name']}"
            return response["name"]
        return self.entry


class Artist(Entry):
    """An artist entry.

    With a limit, resolves to the artist's top tracks. Without one, resolves every album
    of the artist and returns the resulting queue of track queues for the caller to
    flatten.
    """

    kind = CatalogKind.ARTIST

    def __init__(self, entry: str, limit: Optional[int] = None) -> None:
        super().__init__(entry, limit)
        self._search: WriteOnce[Response] = WriteOnce("artist search")
        self._albums: WriteOnce[Response] = WriteOnce("artist albums")
        self._top_tracks: WriteOnce[Response] = WriteOnce("top tracks")

    async def dispatch(self, catalog) -> Queue[Any]:
        if not self._search.is_set() and not is_catalog_reference(self.entry, CatalogKind.ARTIST):
            await self.search_for_artist(catalog, self.entry)
        if self.limit:
            response = await self.fetch_top_tracks(catalog)
        else:
            response = await self.fetch_albums(catalog)
        return await self.create_queue(response, catalog)

    async def search_for_artist(self, catalog, query: str) -> Response:
        response = await catalog.search(CatalogKind.ARTIST, query)
        if not is_artist_search_response(response):
            raise NotFound(f"Could not find artist '{query}'")
        return self._search.set(response)

    async def fetch_albums(self, catalog) -> Response:
        if self._albums.is_set():
            return self._albums.value
        response = await catalog.fetch_by_id(CatalogKind.ARTIST_ALBUMS, self._require_id())
        if not is_albums_listing_response(response):
            raise MalformedResponse(f"Unexpected albums response for '{self.entry}'", response)
        return self._albums.set(response)

    async def fetch_top_tracks(self, catalog) -> Response:
        if self._top_tracks.is_set():
            return self._top_tracks.value
        response = await catalog.fetch_by_id(CatalogKind.ARTIST_TOP_TRACKS, self._require_id())
        if not is_top_tracks_response(response):
            raise MalformedResponse(f"Unexpected top tracks response for '{self.entry}'", response)
        return self._top_tracks.set(response)

    async def create_queue(self, response: Response, catalog) -> Queue[Any]:
        if is_top_tracks_response(response):
            tracks = Queue(
                Track(self.entry, item) for item in response["tracks"] if isinstance(item, dict)
            )
            if self.limit:
                tracks = tracks.slice(0, self.limit)
            return tracks

        albums = Queue(
            Album(self.entry, item) for item in response["items"] if isinstance(item, dict)
        )
        logger.debug(f"Resolving {len(albums)} albums of '{self.entry}'")
        return await albums.dispatch(catalog)

    def _require_id(self) -> str:
        artist_id = self.id()
        if artist_id == UNKNOWN_ID:
            raise NotFound(f"No artist ID available for '{self.entry}'")
        return artist_id

    def id(self) -> str:
        hit = first_search_item(self._search.value, "artists")
        if hit and hit.get("id"):
            return hit["id"]
        return id_from_text(self.entry, CatalogKind.ARTIST) or UNKNOWN_ID

    def to_display_string(self) -> str:
        hit = first_search_item(self._search.value, "artists")
        if hit and hit.get("name"):
            return hit["name"]
        return self.entry
