import asyncio
import logging
import os
from typing import Any, Dict, Optional

import requests

from playgen.domain.errors import MalformedResponse, NotFound, TransportFailure
from playgen.domain.ports import PlaycountService
from playgen.domain.responses import Response
from playgen.infrastructure.pacing import RequestPacer

logger = logging.getLogger(__name__)

LASTFM_API_URL = 'https://ws.audioscrobbler.com/2.0/'

# Last.fm error code for unknown tracks/artists
_ERROR_NOT_FOUND = 6


class LastfmPlaycountService(PlaycountService):
    """Play counts from the Last.fm `track.getInfo` method."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 pacer: Optional[RequestPacer] = None,
                 session: Optional[requests.Session] = None,
                 timeout_sec: int = 15):
        self.api_key = api_key or os.getenv('LASTFM_API_KEY')
        if not self.api_key:
            raise ValueError("Last.fm API key is required")
        self.pacer = pacer or RequestPacer()
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    async def fetch_playcount(self, artist: str, title: str) -> Response:
        """Fetch track info for `artist` / `title`.

        Args:
            artist: Main artist name
            title: Track title

        Returns:
            The Last.fm JSON payload; `track.playcount` holds the play count
        """
        if not artist or not title:
            raise NotFound(f"Need artist and title to look up play count, got '{artist}' / '{title}'")

        params = {
            'method': 'track.getInfo',
            'api_key': self.api_key,
            'artist': artist,
            'track': title,
            'autocorrect': 1,
            'format': 'json',
        }

        await self.pacer.wait()
        try:
            response = await asyncio.to_thread(
                self._session.get, LASTFM_API_URL, params=params, timeout=self.timeout_sec
            )
        except requests.RequestException as e:
            logger.warning(f"Last.fm request failed for '{title} - {artist}': {e}")
            raise TransportFailure(f"Last.fm request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            if response.status_code != 200:
                raise TransportFailure(f"Last.fm request failed ({response.status_code})") from e
            raise MalformedResponse("Last.fm returned invalid JSON") from e

        if isinstance(body, dict) and 'error' in body:
            return self._raise_api_error(body, artist, title)
        if response.status_code != 200:
            raise TransportFailure(f"Last.fm request failed ({response.status_code})")
        if not isinstance(body, dict):
            raise MalformedResponse("Last.fm returned an unexpected payload", body)
        return body

    def _raise_api_error(self, body: Dict[str, Any], artist: str, title: str):
        code = body.get('error')
        message = body.get('message', 'unknown error')
        if code == _ERROR_NOT_FOUND:
            raise NotFound(f"Last.fm has no track '{title} - {artist}'")
        logger.error(f"Last.fm error {code}: {message}")
        raise TransportFailure(f"Last.fm error {code}: {message}")
