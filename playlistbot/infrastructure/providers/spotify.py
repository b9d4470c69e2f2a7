import time
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError
from urllib3.exceptions import ReadTimeoutError

from playlistbot.crosscutting.config import ConfigError, Settings, TokenStore, get_spotify_scope_string
from playlistbot.domain.entities import Playlist, PlaylistItem
from playlistbot.domain.errors import (
    ApplyFailure, RateLimited, ResolutionFailure, SnapshotFailure, UpstreamError,
)
from playlistbot.domain.ports import MusicCatalog

logger = logging.getLogger(__name__)

PLAYLIST_PAGE_LIMIT = 50
ITEMS_PAGE_LIMIT = 100
# Spotify accepts at most this many items per add request
MAX_ADD_BATCH = 100
PLAYLIST_URL_TEMPLATE = "https://open.spotify.com/playlist/{playlist_id}"
# Stored access tokens this close to expiry are refreshed instead of reused
TOKEN_EXPIRY_MARGIN_SEC = 60


def track_id_from_item(item: Dict[str, Any]) -> Optional[str]:
    """Return the bare track id of a playlist item, or None if it has none.

    Local files, removed tracks and podcast episodes yield None.
    """
    track = item.get('track') if item else None
    if not track or track.get('is_local'):
        return None
    if track.get('type', 'track') != 'track':
        return None
    track_id = track.get('id')
    if track_id:
        return track_id
    uri = track.get('uri') or ''
    if uri.startswith('spotify:track:'):
        return uri[len('spotify:track:'):] or None
    return None


class SpotifyCatalog(MusicCatalog):
    """Spotify Web API implementation of the music catalog port.

    Not safe for concurrent use: token refresh mutates client state. Access it
    through ``AccessGuard`` only.
    """

    def __init__(self,
                 access_token: Optional[str] = None,
                 refresh_token: Optional[str] = None,
                 client_id: Optional[str] = None,
                 client_secret: Optional[str] = None,
                 redirect_uri: str = 'http://localhost:8888/callback',
                 requests_timeout: int = 15,
                 token_store: Optional[TokenStore] = None,
                 client: Optional[spotipy.Spotify] = None):
        """Initialize the Spotify catalog.

        Args:
            access_token: Spotify access token
            refresh_token: Spotify refresh token, used when access_token is missing or expires
            client_id: Spotify client ID for token refresh
            client_secret: Spotify client secret for token refresh
            redirect_uri: Redirect URI registered for the Spotify app
            requests_timeout: Per-request timeout in seconds
            token_store: Where refreshed tokens are persisted
            client: Preconfigured spotipy client
        """
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.requests_timeout = requests_timeout
        self.token_store = token_store
        self.expires_at: Optional[int] = None

        # Token refresh tracking
        self._last_refresh_attempt = 0.0
        self._refresh_cooldown = 5  # seconds between refresh attempts
        self._account_id: Optional[str] = None

        if token_store is not None:
            self._load_stored_tokens()

        if client is not None:
            self._client = client
        elif self.access_token:
            self._client = self._build_client(self.access_token)
        elif self.refresh_token:
            if not self._refresh_access_token():
                raise ConfigError("Could not obtain a Spotify access token from the refresh token")
        else:
            raise ConfigError("No access tokens configured. Set RSPOTIFY_ACCESS_TOKEN or RSPOTIFY_REFRESH_TOKEN")

    def _load_stored_tokens(self) -> None:
        """Prefer tokens saved by an earlier refresh over the configured ones.

        A rotated refresh token always wins. A stored access token is only used
        while it is still valid.
        """
        try:
            stored = self.token_store.get_spotify_tokens() or {}
        except ConfigError as e:
            logger.warning(f"Ignoring tokens file: {e}")
            return

        if stored.get('refresh_token'):
            self.refresh_token = stored['refresh_token']
        expires_at = stored.get('expires_at')
        if stored.get('access_token') and expires_at and expires_at > time.time() + TOKEN_EXPIRY_MARGIN_SEC:
            self.access_token = stored['access_token']
            self.expires_at = expires_at
            logger.debug("Using stored Spotify access token")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpotifyCatalog":
        settings.require_spotify()
        return cls(
            access_token=settings.spotify_access_token,
            refresh_token=settings.spotify_refresh_token,
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            redirect_uri=settings.spotify_redirect_uri,
            requests_timeout=settings.request_timeout_sec,
            token_store=TokenStore(settings.tokens_file),
        )

    def _build_client(self, access_token: str) -> spotipy.Spotify:
        return spotipy.Spotify(
            auth=access_token,
            requests_timeout=self.requests_timeout,
            retries=0,
            status_retries=0,
        )

    def _refresh_access_token(self) -> bool:
        """Refresh Spotify access token.

        Returns:
            True if token was refreshed successfully, False otherwise
        """
        current_time = time.time()

        # Prevent too frequent refresh attempts
        if current_time - self._last_refresh_attempt < self._refresh_cooldown:
            return False

        self._last_refresh_attempt = current_time

        if not self.refresh_token:
            logger.warning("Cannot refresh token: no refresh token configured")
            return False
        if not self.client_id or not self.client_secret:
            logger.warning("Cannot refresh token: missing client credentials")
            return False

        try:
            logger.info("Refreshing Spotify access token...")

            oauth_manager = SpotifyOAuth(
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=self.redirect_uri,
                scope=get_spotify_scope_string(),
                open_browser=False,
            )
            token_info = oauth_manager.refresh_access_token(self.refresh_token)
        except (SpotifyException, SpotifyOauthError, requests.RequestException) as e:
            logger.error(f"Failed to refresh Spotify token: {e}")
            return False

        if not token_info or 'access_token' not in token_info:
            logger.error("Failed to refresh token: invalid response")
            return False

        self.access_token = token_info['access_token']
        if token_info.get('refresh_token'):
            self.refresh_token = token_info['refresh_token']
        self.expires_at = token_info.get('expires_at')
        self._client = self._build_client(self.access_token)

        if self.token_store is not None:
            try:
                self.token_store.save_spotify_tokens(self.access_token, self.refresh_token, self.expires_at)
            except ConfigError as e:
                logger.warning(f"Failed to update tokens file: {e}")

        logger.info("Spotify access token refreshed successfully")
        return True

    def _call(self, operation: str, error_cls: Type[UpstreamError], func: Callable[[], Any]) -> Any:
        """Run one Spotify request, refreshing the token once on 401.

        Raises:
            RateLimited: on HTTP 429
            error_cls: on any other failure
        """
        refreshed = False
        while True:
            try:
                return func()
            except SpotifyException as e:
                if e.http_status == 401 and not refreshed:
                    logger.warning(f"Spotify token expired during {operation}, attempting refresh...")
                    refreshed = True
                    if self._refresh_access_token():
                        continue
                    logger.error("Failed to refresh token, operation cannot continue")
                if e.http_status == 429:
                    headers = e.headers or {}
                    retry_after = int(headers.get('Retry-After', 1))
                    raise RateLimited(retry_after_ms=retry_after * 1000,
                                      message=f"rate limited during {operation}") from e
                logger.error(f"Spotify {operation} failed: {e}")
                raise error_cls(f"{operation} failed with HTTP {e.http_status}: {e.msg}") from e
            except (ReadTimeoutError, requests.Timeout) as e:
                logger.warning(f"Read timeout during {operation}")
                raise error_cls(f"{operation} timed out") from e
            except requests.RequestException as e:
                logger.error(f"Spotify {operation} failed: {e}")
                raise error_cls(f"{operation} failed: {e}") from e

    def current_account_id(self) -> str:
        """Return the id of the authenticated account, fetched once per instance."""
        if self._account_id is None:
            user = self._call("get current user", ResolutionFailure, lambda: self._client.current_user())
            self._account_id = user['id']
        return self._account_id

    def list_owned_playlists(self) -> List[Playlist]:
        """List playlists owned by the current user.

        Returns:
            List of owned playlists
        """
        account_id = self.current_account_id()
        playlists = []
        offset = 0

        while True:
            page = self._call(
                "list playlists", ResolutionFailure,
                lambda: self._client.current_user_playlists(limit=PLAYLIST_PAGE_LIMIT, offset=offset),
            )
            if not page or 'items' not in page:
                break

            for playlist in page['items']:
                if not playlist:
                    continue
                owner_id = (playlist.get('owner') or {}).get('id', '')
                if owner_id != account_id:
                    continue
                playlists.append(Playlist(
                    id=playlist['id'],
                    name=playlist.get('name', ''),
                    owner_id=owner_id,
                    public=bool(playlist.get('public')),
                    collaborative=bool(playlist.get('collaborative')),
                ))

            if len(page['items']) < PLAYLIST_PAGE_LIMIT or not page.get('next'):
                break
            offset += PLAYLIST_PAGE_LIMIT

        return playlists

    def create_playlist(self, account_id: str, name: str, public: bool, collaborative: bool) -> Playlist:
        result = self._call(
            "create playlist", ResolutionFailure,
            lambda: self._client.user_playlist_create(account_id, name, public=public, collaborative=collaborative),
        )
        logger.info(f"Created playlist {result['id']} ({name})")
        return Playlist(
            id=result['id'],
            name=result.get('name', name),
            owner_id=(result.get('owner') or {}).get('id', account_id),
            public=public,
            collaborative=collaborative,
        )

    def list_playlist_items(self, playlist_id: str) -> List[PlaylistItem]:
        """List every entry in a playlist.

        Args:
            playlist_id: Playlist ID

        Returns:
            Playlist items in order; entries without a catalog track id have track_id None
        """
        items = []
        offset = 0

        while True:
            page = self._call(
                "list playlist items", SnapshotFailure,
                lambda: self._client.playlist_items(
                    playlist_id,
                    limit=ITEMS_PAGE_LIMIT,
                    offset=offset,
                    fields='items(track(id,uri,type,is_local)),next',
                    additional_types=('track', 'episode'),
                ),
            )
            if not page or 'items' not in page:
                break

            items.extend(PlaylistItem(track_id=track_id_from_item(item)) for item in page['items'])

            if len(page['items']) < ITEMS_PAGE_LIMIT or not page.get('next'):
                break
            offset += ITEMS_PAGE_LIMIT

        return items

    def add_items_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> str:
        """Append all tracks in a single request.

        Returns:
            Snapshot id of the playlist after the change, or '' if the response omitted it

        Raises:
            ApplyFailure: if the batch is empty, too large, or rejected
        """
        if not track_ids:
            raise ApplyFailure("no tracks to add")
        if len(track_ids) > MAX_ADD_BATCH:
            raise ApplyFailure(f"cannot add {len(track_ids)} tracks in one request (max {MAX_ADD_BATCH})")

        uris = [f"spotify:track:{track_id}" for track_id in track_ids]
        result = self._call(
            "add tracks", ApplyFailure,
            lambda: self._client.playlist_add_items(playlist_id, uris),
        )
        if not result or 'snapshot_id' not in result:
            logger.warning(f"Added {len(uris)} track(s) to {playlist_id} but the response had no snapshot id")
            return ''
        return result['snapshot_id']

    def playlist_locator(self, playlist_id: str) -> str:
        return PLAYLIST_URL_TEMPLATE.format(playlist_id=playlist_id)
