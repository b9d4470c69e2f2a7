from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence

from .entities import ChatMessage, Playlist, PlaylistItem


class MusicCatalog(Protocol):
    """Port defining the minimal contract for the music catalog.

    Implementations map provider payloads into domain entities and provider
    failures into ``UpstreamError`` subclasses. Pagination is internal.
    """

    def list_owned_playlists(self) -> List[Playlist]:
        """Return all playlists owned by the authenticated account."""

    def current_account_id(self) -> str:
        """Return the id of the authenticated account."""

    def create_playlist(self, account_id: str, name: str, public: bool, collaborative: bool) -> Playlist:
        """Create a playlist owned by account_id."""

    def list_playlist_items(self, playlist_id: str) -> List[PlaylistItem]:
        """Return every entry of the playlist, in order."""

    def add_items_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> str:
        """Append all track_ids in one atomic call. Returns the new snapshot id."""

    def playlist_locator(self, playlist_id: str) -> str:
        """Return a shareable URL for the playlist."""


class ChatTransport(Protocol):
    """Port for the chat side: message delivery and replies."""

    def fetch_messages(self) -> Iterable[ChatMessage]:
        """Return the next batch of incoming text messages (may block)."""

    def send_reply(self, chat_id: int, text: str) -> None:
        """Send a text reply to the chat."""
