from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import InvalidReference


_TRACK_ID_PATTERN = re.compile(r"[A-Za-z0-9]+")


@dataclass(frozen=True)
class TrackReference:
    """Validated catalog identifier of a single track."""

    id: str

    def __post_init__(self):
        if not isinstance(self.id, str) or not _TRACK_ID_PATTERN.fullmatch(self.id):
            raise InvalidReference(f"invalid track reference: {self.id!r}")

    @classmethod
    def parse(cls, value: str) -> "TrackReference":
        return cls(id=value)

    @property
    def uri(self) -> str:
        return f"spotify:track:{self.id}"


@dataclass(frozen=True)
class Playlist:
    """Domain entity representing a catalog playlist."""

    id: str
    name: str
    owner_id: str = ""
    public: bool = True
    collaborative: bool = False


@dataclass(frozen=True)
class PlaylistItem:
    """Entry of a playlist. track_id is None when the item has no catalog id."""

    track_id: Optional[str] = None


@dataclass(frozen=True)
class PlaylistSnapshot:
    """Point-in-time ordered track ids of a playlist, valid for one sync only."""

    playlist_id: str
    track_ids: Tuple[str, ...] = ()

    def __contains__(self, track_id: str) -> bool:
        return track_id in self.track_ids

    def __len__(self) -> int:
        return len(self.track_ids)


@dataclass(frozen=True)
class SyncRequest:
    owner_key: str
    candidates: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChatMessage:
    chat_id: int
    text: str


class SyncStatus(Enum):
    ADDED = "added"
    NO_NEW_ITEMS = "no_new_items"
    ERROR = "error"


class ErrorKind(Enum):
    INVALID_REFERENCE = "invalid_reference"
    RESOLUTION_FAILURE = "resolution_failure"
    SNAPSHOT_FAILURE = "snapshot_failure"
    APPLY_FAILURE = "apply_failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one synchronization run.

    Exactly one of the factory constructors below should be used. ``message``
    on error results is for display only; callers branch on ``error_kind``.
    """

    status: SyncStatus
    count: int = 0
    playlist_locator: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    had_references: bool = True

    @classmethod
    def added(cls, count: int, playlist_locator: str) -> "SyncResult":
        return cls(status=SyncStatus.ADDED, count=count, playlist_locator=playlist_locator)

    @classmethod
    def no_new_items(cls, had_references: bool = True) -> "SyncResult":
        return cls(status=SyncStatus.NO_NEW_ITEMS, had_references=had_references)

    @classmethod
    def error(cls, kind: ErrorKind, message: str) -> "SyncResult":
        return cls(status=SyncStatus.ERROR, error_kind=kind, message=message)

    @property
    def is_added(self) -> bool:
        return self.status is SyncStatus.ADDED

    @property
    def is_error(self) -> bool:
        return self.status is SyncStatus.ERROR
