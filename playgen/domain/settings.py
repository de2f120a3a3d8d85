from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OrderingMode(str, Enum):
    """How resolved tracks are ordered."""

    NONE = "none"
    POPULARITY = "popularity"
    PLAYCOUNT = "playcount"


class GroupingMode(str, Enum):
    """Which track attribute resolved tracks are grouped by."""

    NONE = "none"
    ENTRY = "entry"
    ARTIST = "artist"
    ALBUM = "album"


@dataclass
class PlaylistSettings:
    """Global playlist options collected from directive lines."""

    ordering: OrderingMode = OrderingMode.NONE
    grouping: GroupingMode = GroupingMode.NONE
    deduplicate: bool = True
