import asyncio
import logging
import re
import unicodedata
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from playgen.domain.errors import NotFound, TransportFailure
from playgen.domain.ports import TextSource
from playgen.infrastructure.pacing import RequestPacer

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; playgen/1.0)'


def to_ascii(text: str) -> str:
    """Fold accented characters to their ASCII base and drop the rest."""
    normalized = unicodedata.normalize('NFKD', text)
    return normalized.encode('ascii', 'ignore').decode('ascii')


def trim(text: Optional[str]) -> str:
    """Collapse whitespace and fold to ASCII."""
    text = (text or '').strip()
    text = re.sub(r'\s+', ' ', text)
    return to_ascii(text)


def cleanup(text: Optional[str]) -> str:
    """Reduce free text to something that looks like a track line.

    Drops everything after the first closing bracket or parenthesis, removes
    bracketed and parenthesised segments, squeezes runs of dashes and dots and
    removes remaining punctuation.
    """
    text = text or ''
    text = re.sub(r'\].*', ']', text)
    text = re.sub(r'\).*', ')', text)
    text = re.sub(r'\[[^\]]*\]', '', text)
    text = re.sub(r'\([^)]*\)', '', text)
    text = re.sub(r'-+', '-', text)
    text = re.sub(r'\.+', '.', text)
    text = re.sub(r"[^-'.\w\s]", '', text)
    return trim(text)


def site_domain(uri: str) -> str:
    """Return the registrable domain of `uri` (`www.last.fm` -> `last.fm`)."""
    host = (urlparse(uri).hostname or '').lower()
    labels = host.split('.')
    return '.'.join(labels[-2:]) if len(labels) > 2 else host


class WebScraper(TextSource):
    """Turns a web page into playlist text.

    The page's host selects a scraping method. Each method extracts the meaning of
    the page and writes it as parser input: `Artist - Title` lines for tracks,
    `#ALBUM Artist - Album` for albums and `#TOP Artist` for artists.
    """

    def __init__(self,
                 uri: str,
                 session: Optional[requests.Session] = None,
                 pacer: Optional[RequestPacer] = None,
                 timeout_sec: int = 15,
                 max_pages: int = 20):
        self.uri = uri
        self.pacer = pacer or RequestPacer()
        self.timeout_sec = timeout_sec
        self.max_pages = max_pages
        self._session = session or requests.Session()

    async def fetch_text(self) -> str:
        """Scrape the page and return playlist text."""
        domain = site_domain(self.uri)
        scrapers = {
            'last.fm': self.lastfm,
            'pitchfork.com': self.pitchfork,
            'rateyourmusic.com': self.rateyourmusic,
            'reddit.com': self.reddit,
            'youtube.com': self.youtube,
        }
        scrape = scrapers.get(domain, self.webpage)

        logger.info(f"Scraping {self.uri} with {scrape.__name__}")
        lines = await scrape(self.uri)
        lines = [line for line in lines if line]
        logger.info(f"Scraped {len(lines)} lines from {self.uri}")
        return '\n'.join(lines)

    async def fetch_page(self, uri: str) -> BeautifulSoup:
        """GET `uri` and parse it as HTML."""
        await self.pacer.wait()
        try:
            response = await asyncio.to_thread(
                self._session.get, uri,
                headers={'User-Agent': USER_AGENT}, timeout=self.timeout_sec,
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch {uri}: {e}")
            raise TransportFailure(f"Failed to fetch {uri}: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"Page not found: {uri}")
        if response.status_code != 200:
            raise TransportFailure(f"Failed to fetch {uri} ({response.status_code})")

        return BeautifulSoup(response.text, 'html.parser')

    async def lastfm(self, uri: str) -> List[str]:
        """Last.fm charts and library pages."""
        soup = await self.fetch_page(uri)
        cells = soup.select('td.chartlist-name')

        if re.search(r'/\+tracks', uri, re.IGNORECASE):
            # tracks by a single artist
            header = soup.select_one('header a.library-header-crumb') or soup.select_one('h1.header-title')
            artist = trim(header.get_text()) if header else ''
            return [f"{artist} - {trim(cell.get_text())}" for cell in cells]
        if re.search(r'/\+similar', uri, re.IGNORECASE):
            return [f"#TOP {trim(h.get_text())}" for h in soup.select('h3.big-artist-list-title')]
        if re.search(r'/artists', uri, re.IGNORECASE):
            return [f"#TOP {trim(cell.get_text())}" for cell in cells]
        if re.search(r'/albums', uri, re.IGNORECASE):
            return [f"#ALBUM {trim(cell.get_text())}" for cell in cells]
        # tracks by various artists
        return [trim(cell.get_text()) for cell in cells]

    async def pitchfork(self, uri: str) -> List[str]:
        """Pitchfork album lists, following pagination."""
        lines = []
        page_uri = uri
        for _ in range(self.max_pages):
            soup = await self.fetch_page(page_uri)
            for work in soup.select('div.artist-work'):
                artist = work.select_one('ul.artist-list li')
                title = work.select_one('h2.work-title')
                lines.append(
                    f"#ALBUM {trim(artist.get_text() if artist else '')} - "
                    f"{trim(title.get_text() if title else '')}"
                )

            active = soup.select_one('.fts-pagination__list-item--active')
            next_item = active.find_next_sibling() if active else None
            link = next_item.find('a') if next_item else None
            if not link or not link.get('href'):
                break
            page_uri = urljoin(uri, link['href'])
        else:
            logger.warning(f"Stopped following {uri} after {self.max_pages} pages")
        return lines

    async def rateyourmusic(self, uri: str) -> List[str]:
        """Rate Your Music charts."""
        soup = await self.fetch_page(uri)
        lines = []
        for details in soup.select('div.chart_details'):
            artist = details.select_one('a.artist')
            album = details.select_one('a.album')
            lines.append(
                f"#ALBUM {trim(artist.get_text() if artist else '')} - "
                f"{trim(album.get_text() if album else '')}"
            )
        return lines

    async def reddit(self, uri: str) -> List[str]:
        """Reddit post listings and comment threads."""
        soup = await self.fetch_page(uri)
        if not re.search(r'/comments/', uri, re.IGNORECASE):
            return [cleanup(link.get_text()) for link in soup.select('a.title')]

        lines = []
        for comment in soup.select('div.usertext-body div.md, div.commentarea div.md'):
            lines.extend(self._guess_tracks(comment))
        return lines

    def _guess_tracks(self, comment) -> List[str]:
        # Links in a comment are most likely links to songs
        links = comment.find_all('a')
        if links:
            return [cleanup(link.get_text()) for link in links]

        # Otherwise the song is the first sentence, or the first line
        body = comment.get_text()
        sentences = body.split('.')
        if len(sentences) > 1:
            return [cleanup(sentences[0])]
        lines = body.split('\n')
        if len(lines) > 1:
            return [cleanup(lines[0])]
        return [cleanup(body)]

    async def youtube(self, uri: str) -> List[str]:
        """YouTube playlists."""
        soup = await self.fetch_page(uri)
        titles = soup.select('div.playlist-video-description h4, a.pl-video-title-link')
        return [cleanup(title.get_text()) for title in titles]

    async def webpage(self, uri: str) -> List[str]:
        """Any other page: every link text is a candidate track."""
        soup = await self.fetch_page(uri)
        return [cleanup(link.get_text()) for link in soup.find_all('a')]
