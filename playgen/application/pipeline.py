import logging
import uuid
from typing import Any, Callable, Optional, Union

from playgen.application.parser import ParsedPlaylist, PlaylistParser
from playgen.crosscutting.logging import (
    CorrelationContext,
    log_entry_dropped,
    log_run_complete,
    log_run_start,
    log_stage,
)
from playgen.crosscutting.reporting import DispatchReport
from playgen.domain.entities import Track
from playgen.domain.ports import CatalogService, PlaycountService
from playgen.domain.queue import Queue
from playgen.domain.settings import GroupingMode, OrderingMode, PlaylistSettings


logger = logging.getLogger(__name__)


def descending_missing_last(value_fn: Callable[[Track], Optional[int]]) -> Callable[[Track, Track], int]:
    """Build a comparator ordering by `value_fn` descending, unknown values last."""
    def compare(a: Track, b: Track) -> int:
        x, y = value_fn(a), value_fn(b)
        if x is None and y is None:
            return 0
        if x is None:
            return 1
        if y is None:
            return -1
        return (y > x) - (y < x)
    return compare


class PlaylistPipeline:
    """Turns a playlist description into a list of Spotify track URIs.

    Stages run strictly one after another, and every stage awaits its remote calls
    one at a time:

        fetch tracks -> dedup -> order -> group -> serialize

    Entries that cannot be resolved are dropped and logged; the optional report
    records why. Enrichment (refreshing track details, fetching play counts) never
    removes tracks.
    """

    def __init__(self,
                 playlist: Union[str, ParsedPlaylist],
                 catalog: CatalogService,
                 playcount_service: Optional[PlaycountService] = None,
                 report: Optional[DispatchReport] = None,
                 run_id: Optional[str] = None):
        """Initialize pipeline.

        Args:
            playlist: Playlist text, or an already parsed playlist
            catalog: Catalog used to resolve entries
            playcount_service: Play-count source for `#ORDER BY LAST.FM`
            report: Optional report receiving per-entry outcomes
            run_id: Correlation ID for logs (defaults to the report's run ID)
        """
        if isinstance(playlist, ParsedPlaylist):
            parsed = playlist
        else:
            parsed = PlaylistParser().parse(playlist)

        self.entries: Queue[Any] = parsed.entries
        self.settings: PlaylistSettings = parsed.settings
        self.catalog = catalog
        self.playcount_service = playcount_service
        self.report = report
        self.dropped_count = 0

        if run_id is None:
            run_id = report.header.run_id if report else uuid.uuid4().hex[:12]
        self.run_id = run_id

        if report:
            report.header.ordering = self.settings.ordering.value
            report.header.grouping = self.settings.grouping.value
            report.header.deduplicate = self.settings.deduplicate

    async def dispatch(self) -> str:
        """Run every stage and return the newline-separated URI list."""
        with CorrelationContext(run_id=self.run_id):
            log_run_start(logger, self.run_id, self.entries.size(),
                          ordering=self.settings.ordering.value,
                          grouping=self.settings.grouping.value,
                          deduplicate=self.settings.deduplicate)
            entry_count = self.entries.size()

            await self.fetch_tracks()
            resolved_count = self.entries.size()
            if self.settings.deduplicate:
                self.dedup()
            await self.order()
            await self.group()
            result = self.serialize()

            output_count = len(result.splitlines())
            if self.report:
                self.report.finish(output_count)
            log_run_complete(logger, self.run_id, output_count, self.dropped_count,
                             entry_count=entry_count,
                             resolved_track_count=resolved_count)
            return result

    async def fetch_tracks(self) -> Queue[Track]:
        """Resolve every entry and flatten the results into a queue of tracks."""
        with CorrelationContext(stage='fetch'):
            resolved = await self.entries.dispatch(
                self.catalog,
                on_failure=self._on_entry_failure,
                on_success=self.report.record_success if self.report else None,
            )
            self.entries = resolved.flatten()
            log_stage(logger, 'fetch', self.entries.size())
            return self.entries

    def dedup(self) -> Queue[Track]:
        """Remove tracks with the same title and artist, keeping the first."""
        with CorrelationContext(stage='dedup'):
            before = self.entries.size()
            self.entries.dedup()
            log_stage(logger, 'dedup', self.entries.size(), removed=before - self.entries.size())
            return self.entries

    async def order(self) -> Queue[Track]:
        """Apply the ordering directive, if any."""
        if self.settings.ordering is OrderingMode.POPULARITY:
            return await self.order_by_popularity()
        if self.settings.ordering is OrderingMode.PLAYCOUNT:
            return await self.order_by_playcount()
        return self.entries

    async def order_by_popularity(self) -> Queue[Track]:
        await self.refresh_tracks()
        with CorrelationContext(stage='order'):
            self.entries.sort(descending_missing_last(lambda track: track.popularity()))
            log_stage(logger, 'order', self.entries.size(), ordering='popularity')
        return self.entries

    async def order_by_playcount(self) -> Queue[Track]:
        if self.playcount_service is None:
            logger.warning("No play-count service configured, skipping ordering by play count")
            return self.entries
        await self.fetch_playcounts()
        with CorrelationContext(stage='order'):
            self.entries.sort(descending_missing_last(lambda track: track.playcount()))
            log_stage(logger, 'order', self.entries.size(), ordering='playcount')
        return self.entries

    async def refresh_tracks(self) -> Queue[Track]:
        """Make sure every track carries its full catalog response."""
        with CorrelationContext(stage='refresh'):
            # Results are discarded; tracks are updated in place
            await self.entries.resolve_all(lambda track: track.refresh(self.catalog))
            log_stage(logger, 'refresh', self.entries.size())
        return self.entries

    async def fetch_playcounts(self) -> Queue[Track]:
        """Attach play counts; tracks without one stay in the queue."""
        with CorrelationContext(stage='playcount'):
            await self.entries.resolve_all(
                lambda track: track.fetch_playcount(self.playcount_service),
                on_failure=self._on_playcount_failure,
            )
            known = sum(1 for track in self.entries if track.playcount() is not None)
            log_stage(logger, 'playcount', self.entries.size(), with_playcount=known)
        return self.entries

    async def group(self) -> Queue[Track]:
        """Apply the grouping directive, if any."""
        grouping = self.settings.grouping
        if grouping is GroupingMode.ENTRY:
            return self.group_by_entry()
        if grouping is GroupingMode.ARTIST:
            return self.group_by_artist()
        if grouping is GroupingMode.ALBUM:
            return await self.group_by_album()
        return self.entries

    def group_by_entry(self) -> Queue[Track]:
        return self._group('entry', lambda track: track.entry.lower())

    def group_by_artist(self) -> Queue[Track]:
        return self._group('artist', lambda track: track.artist().lower())

    async def group_by_album(self) -> Queue[Track]:
        # Album names are only present in full track responses
        await self.refresh_tracks()
        return self._group('album', lambda track: track.album().lower())

    def _group(self, name: str, key_fn: Callable[[Track], str]) -> Queue[Track]:
        with CorrelationContext(stage='group'):
            self.entries.group(key_fn)
            log_stage(logger, 'group', self.entries.size(), grouping=name)
        return self.entries

    def serialize(self) -> str:
        """Newline-separated URIs of every track that has one."""
        uris = [track.uri() for track in self.entries if track.uri()]
        return '\n'.join(uris)

    def _on_entry_failure(self, entry: Any, error: Exception) -> None:
        self.dropped_count += 1
        log_entry_dropped(logger, str(entry), error)
        if self.report:
            self.report.record_failure(entry, error)

    def _on_playcount_failure(self, track: Track, error: Exception) -> None:
        # The track keeps its place and sorts after those with a known play count
        logger.info(f"No play count for '{track}': {type(error).__name__}: {error}")
