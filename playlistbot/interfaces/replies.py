from typing import Optional

from playlistbot.domain.entities import SyncResult, SyncStatus


def render_reply(result: SyncResult) -> Optional[str]:
    """Render a sync result as a single chat reply.

    Returns None for messages that contained no track reference at all.
    """
    if result.status is SyncStatus.ADDED:
        noun = "track" if result.count == 1 else "tracks"
        return f"Added {result.count} {noun} to playlist! {result.playlist_locator}"
    if result.status is SyncStatus.NO_NEW_ITEMS:
        if not result.had_references:
            return None
        return "All tracks are already in the playlist."
    return f"Could not update playlist: {result.message}"
