import logging
from typing import Iterable, List

from playlistbot.domain.entities import Playlist, PlaylistSnapshot, TrackReference
from playlistbot.domain.errors import SnapshotFailure, UpstreamError
from playlistbot.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)

UNIDENTIFIED_TRACKS_MESSAGE = "could not determine track ids"


class ContentSnapshotter:
    """Reads the complete, current set of track ids of a playlist."""

    def __init__(self, catalog: MusicCatalog):
        self.catalog = catalog

    def snapshot(self, playlist: Playlist) -> PlaylistSnapshot:
        """Fetch every entry of the playlist.

        Fails closed: one entry without a track id makes the whole snapshot
        unusable for deduplication.

        Raises:
            SnapshotFailure: if the fetch failed or any entry has no track id
        """
        try:
            items = self.catalog.list_playlist_items(playlist.id)
        except UpstreamError as e:
            raise SnapshotFailure(f"could not fetch playlist items: {e}") from e

        track_ids = []
        for position, item in enumerate(items):
            if not item.track_id:
                logger.warning(f"Playlist {playlist.id} entry {position} has no track id")
                raise SnapshotFailure(UNIDENTIFIED_TRACKS_MESSAGE)
            track_ids.append(item.track_id)

        return PlaylistSnapshot(playlist_id=playlist.id, track_ids=tuple(track_ids))


def compute_delta(candidates: Iterable[TrackReference], snapshot: PlaylistSnapshot) -> List[TrackReference]:
    """Return candidates absent from the snapshot, in order, each id at most once."""
    present = set(snapshot.track_ids)
    delta = []
    for candidate in candidates:
        if candidate.id in present:
            continue
        present.add(candidate.id)
        delta.append(candidate)
    return delta
