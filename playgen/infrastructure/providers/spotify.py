import asyncio
import logging
import os
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials
from urllib3.exceptions import ReadTimeoutError

from playgen.domain.errors import MalformedResponse, NotFound, RateLimited, TransportFailure
from playgen.domain.ports import CatalogService
from playgen.domain.responses import UNKNOWN_ID, CatalogKind, Response
from playgen.infrastructure.pacing import RequestPacer

logger = logging.getLogger(__name__)

_SEARCHABLE_KINDS = (CatalogKind.TRACK, CatalogKind.ALBUM, CatalogKind.ARTIST)


class SpotifyCatalog(CatalogService):
    """Spotify Web API catalog.

    Uses app-only (client credentials) authentication, so only public catalog data is
    available. spotipy is synchronous; each call runs in a worker thread after the
    shared pacer has released it.
    """

    def __init__(self,
                 client_id: Optional[str] = None,
                 client_secret: Optional[str] = None,
                 pacer: Optional[RequestPacer] = None,
                 market: str = 'US',
                 search_limit: int = 20,
                 album_groups: str = 'album',
                 max_pages: int = 20,
                 client: Optional[Any] = None):
        """Initialize Spotify catalog.

        Args:
            client_id: Spotify client ID (defaults to SPOTIFY_CLIENT_ID)
            client_secret: Spotify client secret (defaults to SPOTIFY_CLIENT_SECRET)
            pacer: Shared request pacer
            market: Market used for search, lookups and top tracks
            search_limit: Number of search hits requested per query
            album_groups: Album groups included in artist album listings
            max_pages: Upper bound on pages followed for tracklists and album listings
            client: Preconfigured spotipy client (used by tests)
        """
        self.pacer = pacer or RequestPacer()
        self.market = market
        self.search_limit = search_limit
        self.album_groups = album_groups
        self.max_pages = max_pages

        if client is None:
            auth_manager = SpotifyClientCredentials(
                client_id=client_id or os.getenv('SPOTIFY_CLIENT_ID'),
                client_secret=client_secret or os.getenv('SPOTIFY_CLIENT_SECRET'),
            )
            # Retries are disabled; failed requests surface immediately
            client = spotipy.Spotify(
                auth_manager=auth_manager,
                requests_timeout=15,
                retries=0,
                status_retries=0,
            )
        self._client = client

    async def fetch_by_id(self, kind: CatalogKind, id: str) -> Response:
        """Look up a catalog object or artist relation by ID.

        Args:
            kind: What to fetch
            id: Spotify ID (not URI)

        Returns:
            The Spotify JSON payload; album tracklists and artist album listings
            are merged across pages
        """
        if not id or id == UNKNOWN_ID:
            raise NotFound(f"No {kind.value} ID to look up")

        if kind is CatalogKind.TRACK:
            return await self._call('track', self._client.track, id, market=self.market)

        if kind is CatalogKind.ALBUM:
            album = await self._call('album', self._client.album, id, market=self.market)
            tracks = album.get('tracks')
            if isinstance(tracks, dict):
                tracks['items'] = await self._collect_pages('album tracks', tracks)
                tracks['next'] = None
            return album

        if kind is CatalogKind.ARTIST:
            return await self._call('artist', self._client.artist, id)

        if kind is CatalogKind.ARTIST_ALBUMS:
            listing = await self._call(
                'artist albums', self._client.artist_albums, id,
                include_groups=self.album_groups, country=self.market, limit=50,
            )
            listing['items'] = await self._collect_pages('artist albums', listing)
            listing['next'] = None
            return listing

        if kind is CatalogKind.ARTIST_TOP_TRACKS:
            return await self._call(
                'artist top tracks', self._client.artist_top_tracks, id, country=self.market,
            )

        raise ValueError(f"Unsupported catalog kind: {kind}")

    async def search(self, kind: CatalogKind, text: str) -> Response:
        """Search the catalog for `text` restricted to `kind`."""
        if kind not in _SEARCHABLE_KINDS:
            raise ValueError(f"Cannot search for {kind.value}")
        query = (text or '').strip()
        if not query:
            raise NotFound("Empty search query")

        logger.debug(f"Searching {kind.value}: {query} (market={self.market}, limit={self.search_limit})")
        return await self._call(
            f'{kind.value} search', self._client.search,
            q=query, type=kind.value, limit=self.search_limit, market=self.market,
        )

    async def _collect_pages(self, operation: str, page: Dict[str, Any]) -> List[Any]:
        items = list(page.get('items') or [])
        pages = 1
        while page.get('next') and pages < self.max_pages:
            page = await self._call(operation, self._client.next, page)
            items.extend(page.get('items') or [])
            pages += 1
        if page.get('next'):
            logger.warning(f"Stopped following {operation} after {pages} pages")
        return items

    async def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> Response:
        await self.pacer.wait()
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except SpotifyException as e:
            raise self._map_error(e, operation) from e
        except (ReadTimeoutError, requests.RequestException) as e:
            logger.warning(f"Transport error during {operation}: {e}")
            raise TransportFailure(f"{operation} failed: {e}") from e

        if not isinstance(result, dict):
            raise MalformedResponse(f"Unexpected {operation} payload: {type(result).__name__}", result)
        return result

    def _map_error(self, error: SpotifyException, operation: str) -> Exception:
        """Translate a spotipy error into a domain error."""
        status = getattr(error, 'http_status', None)
        message = getattr(error, 'msg', None) or str(error)

        if status == 404:
            return NotFound(f"{operation}: {message}")
        if status == 400 and 'invalid' in message.lower():
            # Spotify answers malformed IDs with 400 "invalid id"
            return NotFound(f"{operation}: {message}")
        if status == 429:
            headers = getattr(error, 'headers', None) or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                retry_after = 1
            logger.warning(f"Rate limited during {operation}, retry after {retry_after}s")
            return RateLimited(retry_after_ms=retry_after * 1000)

        logger.error(f"Spotify error during {operation}: {status} {message}")
        return TransportFailure(f"{operation} failed with status {status}: {message}")
