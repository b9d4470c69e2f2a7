import logging

from playlistbot.domain.entities import Playlist
from playlistbot.domain.errors import ResolutionFailure, UpstreamError
from playlistbot.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)


class OwnerResolver:
    """Resolves an owner key to its playlist, creating the playlist on first use."""

    def __init__(self, catalog: MusicCatalog):
        self.catalog = catalog

    def resolve(self, owner_key: str) -> Playlist:
        """Return the owned playlist named owner_key, creating it if absent.

        Args:
            owner_key: Playlist name derived from the chat id

        Returns:
            Playlist handle

        Raises:
            ResolutionFailure: if listing or creating the playlist failed
        """
        try:
            playlists = self.catalog.list_owned_playlists()
        except UpstreamError as e:
            raise ResolutionFailure(f"could not list playlists: {e}") from e

        for playlist in playlists:
            # Case-sensitive: "telegram-1" and "Telegram-1" are different owners
            if playlist.name == owner_key:
                logger.debug(f"Found existing playlist {playlist.id} for {owner_key}")
                return playlist

        logger.info(f"Creating new playlist: {owner_key}")
        try:
            account_id = self.catalog.current_account_id()
            return self.catalog.create_playlist(account_id, owner_key, public=True, collaborative=False)
        except UpstreamError as e:
            raise ResolutionFailure(f"could not create playlist: {e}") from e
