from __future__ import annotations

from typing import Protocol

from .responses import CatalogKind, Response


class CatalogService(Protocol):
    """Port defining the read-only contract of the music catalog.

    Implementations return the provider's JSON payloads unchanged; callers validate the
    shape structurally. Failures surface as NotFound, TransportFailure or MalformedResponse.
    """

    async def fetch_by_id(self, kind: CatalogKind, id: str) -> Response:
        """Look up a single object (or an artist relation) by catalog ID."""

    async def search(self, kind: CatalogKind, text: str) -> Response:
        """Run a free-text search restricted to `kind`."""


class PlaycountService(Protocol):
    """Port for the secondary metadata service that knows play counts."""

    async def fetch_playcount(self, artist: str, title: str) -> Response:
        """Return track info including `track.playcount`."""


class TextSource(Protocol):
    """Produces raw playlist text from some external source (e.g. a web page)."""

    async def fetch_text(self) -> str:
        """Return newline-separated playlist entries."""


class Pacer(Protocol):
    """Spaces out outgoing requests."""

    async def wait(self) -> None:
        """Block until the next request may be issued."""
