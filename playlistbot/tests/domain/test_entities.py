import pytest

from playlistbot.domain.entities import (
    ErrorKind, PlaylistSnapshot, SyncResult, SyncStatus, TrackReference,
)
from playlistbot.domain.errors import InvalidReference


def test_track_reference_accepts_alphanumeric_ids():
    ref = TrackReference.parse("42i30whtcm9lGWx30x8t2R")

    assert ref.id == "42i30whtcm9lGWx30x8t2R"
    assert ref.uri == "spotify:track:42i30whtcm9lGWx30x8t2R"


@pytest.mark.parametrize("value", ["", "abc-def", "spotify:track:abc", "abc def", None])
def test_track_reference_rejects_malformed_ids(value):
    with pytest.raises(InvalidReference):
        TrackReference.parse(value)


def test_snapshot_membership_and_length():
    snapshot = PlaylistSnapshot(playlist_id="pl1", track_ids=("a", "b"))

    assert "a" in snapshot
    assert "c" not in snapshot
    assert len(snapshot) == 2


def test_sync_result_constructors():
    added = SyncResult.added(2, "https://open.spotify.com/playlist/pl1")
    nothing = SyncResult.no_new_items()
    failed = SyncResult.error(ErrorKind.APPLY_FAILURE, "could not add tracks")

    assert added.is_added and added.count == 2
    assert nothing.status is SyncStatus.NO_NEW_ITEMS and nothing.had_references
    assert failed.is_error and failed.error_kind is ErrorKind.APPLY_FAILURE
    assert failed.message == "could not add tracks"
