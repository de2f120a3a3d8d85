import asyncio
from unittest.mock import Mock

import pytest
import requests

from playgen.application.parser import PlaylistParser
from playgen.domain.entities import Album, Artist, Track
from playgen.domain.errors import NotFound, TransportFailure
from playgen.infrastructure.pacing import RequestPacer
from playgen.infrastructure.scraping.scraper import WebScraper, cleanup, site_domain, to_ascii, trim


def _page(html, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.text = html
    return response


class TestTextCleanup:
    """Tests for scraped text normalisation."""

    def test_trim_collapses_whitespace(self):
        assert trim("  The   Beatles \n\t ") == "The Beatles"
        assert trim(None) == ""

    def test_to_ascii(self):
        assert to_ascii("Björk - Jóga") == "Bjork - Joga"
        assert trim("Sigur Rós") == "Sigur Ros"

    def test_cleanup_removes_brackets_and_trailing_text(self):
        assert cleanup("Radiohead - Reckoner (Official Video) great song") == "Radiohead - Reckoner"
        assert cleanup("Kendrick Lamar - DNA [Hip-Hop] 2017") == "Kendrick Lamar - DNA"

    def test_cleanup_squeezes_dashes_and_dots(self):
        assert cleanup("Artist -- Title...") == "Artist - Title."

    def test_cleanup_strips_punctuation(self):
        assert cleanup("Guns N' Roses - Sweet Child O' Mine!!") == "Guns N' Roses - Sweet Child O' Mine"


class TestSiteDomain:

    def test_strips_subdomains(self):
        assert site_domain("https://www.last.fm/user/x") == "last.fm"
        assert site_domain("https://old.reddit.com/r/music") == "reddit.com"
        assert site_domain("http://pitchfork.com/features/lists") == "pitchfork.com"


class TestWebScraper:
    """Tests for page scraping."""

    def setup_method(self):
        self.session = Mock()
        self.pacer = RequestPacer(delay_ms=0)

    def _scrape(self, uri, *pages):
        self.session.get.side_effect = [_page(html) for html in pages]
        scraper = WebScraper(uri, session=self.session, pacer=self.pacer)
        return asyncio.run(scraper.fetch_text())

    def test_lastfm_artist_tracks(self):
        html = """
        <header><a class="library-header-crumb">The Beatles</a></header>
        <table>
          <tr><td class="chartlist-name"><a>Help!</a></td></tr>
          <tr><td class="chartlist-name"><a> Yesterday </a></td></tr>
        </table>
        """

        text = self._scrape("https://www.last.fm/user/someone/library/music/The+Beatles/+tracks", html)

        assert text == "The Beatles - Help!\nThe Beatles - Yesterday"

    def test_lastfm_artist_tracks_header_fallback(self):
        html = """
        <h1 class="header-title">Queen</h1>
        <td class="chartlist-name">Bohemian Rhapsody</td>
        """

        text = self._scrape("https://www.last.fm/music/Queen/+tracks", html)

        assert text == "Queen - Bohemian Rhapsody"

    def test_lastfm_similar_artists(self):
        html = '<h3 class="big-artist-list-title">The Kinks</h3><h3 class="big-artist-list-title">The Who</h3>'

        text = self._scrape("https://www.last.fm/music/The+Beatles/+similar", html)

        assert text == "#TOP The Kinks\n#TOP The Who"

    def test_lastfm_artist_and_album_charts(self):
        artists = self._scrape("https://www.last.fm/user/x/library/artists",
                               '<td class="chartlist-name">Queen</td>')
        albums = self._scrape("https://www.last.fm/user/x/library/albums",
                              '<td class="chartlist-name">Queen - Jazz</td>')

        assert artists == "#TOP Queen"
        assert albums == "#ALBUM Queen - Jazz"

    def test_lastfm_track_chart(self):
        text = self._scrape("https://www.last.fm/user/x/library",
                            '<td class="chartlist-name">Queen - Bicycle Race</td>')

        assert text == "Queen - Bicycle Race"

    def test_pitchfork_follows_pagination(self):
        first = """
        <div class="artist-work"><ul class="artist-list"><li>Radiohead</li><li>Other</li></ul>
          <h2 class="work-title">Kid A</h2></div>
        <ul>
          <li class="fts-pagination__list-item--active"><a href="?page=1">1</a></li>
          <li><a href="?page=2">2</a></li>
        </ul>
        """
        second = """
        <div class="artist-work"><ul class="artist-list"><li>Björk</li></ul>
          <h2 class="work-title">Vespertine</h2></div>
        <ul>
          <li><a href="?page=1">1</a></li>
          <li class="fts-pagination__list-item--active"><a href="?page=2">2</a></li>
        </ul>
        """

        text = self._scrape("https://pitchfork.com/features/lists-and-guides/best-albums/", first, second)

        assert text == "#ALBUM Radiohead - Kid A\n#ALBUM Bjork - Vespertine"
        second_uri = self.session.get.call_args_list[1][0][0]
        assert second_uri == "https://pitchfork.com/features/lists-and-guides/best-albums/?page=2"

    def test_rateyourmusic_chart(self):
        html = """
        <div class="chart_details"><a class="artist">Slowdive</a><a class="album">Souvlaki</a></div>
        <div class="chart_details"><a class="artist">Ride</a><a class="album">Nowhere</a></div>
        """

        text = self._scrape("https://rateyourmusic.com/charts/top/album/1993", html)

        assert text == "#ALBUM Slowdive - Souvlaki\n#ALBUM Ride - Nowhere"

    def test_reddit_listing(self):
        html = """
        <a class="title">Daft Punk - Digital Love [Electronic] (2001)</a>
        <a class="title">Air - La Femme d'Argent</a>
        """

        text = self._scrape("https://www.reddit.com/r/listentothis/", html)

        assert text == "Daft Punk - Digital Love\nAir - La Femme d'Argent"

    def test_reddit_comment_heuristics(self):
        html = """
        <div class="commentarea">
          <div class="md"><p><a href="x">Blur - Tender</a> and <a href="y">Pulp - Babies</a></p></div>
          <div class="md"><p>Suede - Animal Nitrate. What a tune</p></div>
          <div class="md"><p>Oasis - Slide Away
          love this one</p></div>
          <div class="md"><p>Elastica - Connection</p></div>
        </div>
        """

        text = self._scrape("https://www.reddit.com/r/music/comments/abc/best_britpop/", html)

        assert text.splitlines() == [
            "Blur - Tender",
            "Pulp - Babies",
            "Suede - Animal Nitrate",
            "Oasis - Slide Away",
            "Elastica - Connection",
        ]

    def test_youtube_playlist(self):
        html = '<a class="pl-video-title-link">  Queen - Killer Queen (Official Video) </a>'

        text = self._scrape("https://www.youtube.com/playlist?list=PL123", html)

        assert text == "Queen - Killer Queen"

    def test_generic_page_uses_links(self):
        html = '<p>My list: <a>Beck - Loser</a> <a>!!!</a> <a>Pavement - Cut Your Hair</a></p>'

        text = self._scrape("https://example.org/blog/post", html)

        assert text == "Beck - Loser\nPavement - Cut Your Hair"

    def test_output_parses_into_entries(self):
        html = '<h3 class="big-artist-list-title">The Kinks</h3>'
        text = self._scrape("https://www.last.fm/music/The+Beatles/+similar", html)
        text += "\n#ALBUM Queen - Jazz\nQueen - Bicycle Race"

        entries = PlaylistParser().parse(text).entries.to_list()

        assert [type(e) for e in entries] == [Artist, Album, Track]

    def test_missing_page_is_not_found(self):
        self.session.get.return_value = _page("", status_code=404)
        scraper = WebScraper("https://example.org/gone", session=self.session, pacer=self.pacer)

        with pytest.raises(NotFound):
            asyncio.run(scraper.fetch_text())

    def test_server_error_is_transport_failure(self):
        self.session.get.return_value = _page("", status_code=500)
        scraper = WebScraper("https://example.org/", session=self.session, pacer=self.pacer)

        with pytest.raises(TransportFailure):
            asyncio.run(scraper.fetch_text())

    def test_connection_error_is_transport_failure(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        scraper = WebScraper("https://example.org/", session=self.session, pacer=self.pacer)

        with pytest.raises(TransportFailure):
            asyncio.run(scraper.fetch_text())
