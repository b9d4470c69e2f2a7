import hashlib
import os
import json
from dataclasses import dataclass
from typing import Dict, Any, Mapping, Optional
from pathlib import Path


SPOTIFY_SCOPES = [
    'playlist-read-private',      # Find the chat playlist among owned playlists
    'playlist-read-collaborative',
    'playlist-modify-public',     # Create/append public chat playlists
    'playlist-modify-private',
]


LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


class ConfigError(Exception):
    """Configuration error."""
    pass


def get_spotify_scope_string() -> str:
    """Get Spotify scopes as space-separated string."""
    return ' '.join(SPOTIFY_SCOPES)


class TokenStore:
    """Persists refreshed Spotify tokens as JSON."""

    def __init__(self, tokens_file: Optional[str] = None):
        if tokens_file:
            self.tokens_file = Path(tokens_file)
        else:
            self.tokens_file = Path.home() / '.playlistbot' / 'tokens.json'

    def load_tokens(self) -> Dict[str, Any]:
        """Load tokens from the tokens file."""
        if not self.tokens_file.exists():
            return {}

        try:
            with open(self.tokens_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load tokens from {self.tokens_file}: {e}")

    def save_tokens(self, tokens: Dict[str, Any]) -> None:
        """Merge tokens into the tokens file."""
        try:
            existing_tokens = self.load_tokens()
            existing_tokens.update(tokens)

            self.tokens_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.tokens_file, 'w') as f:
                json.dump(existing_tokens, f, indent=2, ensure_ascii=False)

        except (IOError, OSError) as e:
            raise ConfigError(f"Failed to save tokens to {self.tokens_file}: {e}")

    def get_spotify_tokens(self) -> Optional[Dict[str, str]]:
        return self.load_tokens().get('spotify')

    def save_spotify_tokens(self, access_token: str, refresh_token: Optional[str],
                            expires_at: Optional[int] = None) -> None:
        entry = {'access_token': access_token}
        if refresh_token:
            entry['refresh_token'] = refresh_token
        if expires_at:
            entry['expires_at'] = expires_at
        self.save_tokens({'spotify': entry})


@dataclass
class Settings:
    """Runtime settings for the bot, read from the environment."""

    telegram_token: Optional[str] = None
    spotify_access_token: Optional[str] = None
    spotify_refresh_token: Optional[str] = None
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_redirect_uri: str = 'http://localhost:8888/callback'
    poll_timeout_sec: int = 30
    request_timeout_sec: int = 15
    guard_timeout_sec: Optional[float] = 60.0
    workers: int = 4
    webhook_secret: Optional[str] = None
    tokens_file: Optional[str] = None
    log_level: str = 'INFO'

    def require_telegram(self) -> str:
        if not self.telegram_token:
            raise ConfigError("TELOXIDE_TOKEN (or TELEGRAM_BOT_TOKEN) not found in environment")
        return self.telegram_token

    def webhook_path_secret(self) -> str:
        """Secret used in the webhook URL path.

        Falls back to a digest of the bot token so the token itself never
        appears in request paths or access logs.
        """
        if self.webhook_secret:
            return self.webhook_secret
        return hashlib.sha256(self.require_telegram().encode('utf-8')).hexdigest()

    def require_spotify(self) -> None:
        """Check that one of the two Spotify credential modes is configured."""
        if self.spotify_access_token:
            return
        if self.spotify_refresh_token:
            if not self.spotify_client_id:
                raise ConfigError("RSPOTIFY_CLIENT_ID not found in environment")
            if not self.spotify_client_secret:
                raise ConfigError("RSPOTIFY_CLIENT_SECRET not found in environment")
            return
        raise ConfigError(
            "No access tokens configured. Set RSPOTIFY_ACCESS_TOKEN or RSPOTIFY_REFRESH_TOKEN"
        )

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'has_telegram_token': bool(self.telegram_token),
            'has_spotify_access_token': bool(self.spotify_access_token),
            'has_spotify_refresh_token': bool(self.spotify_refresh_token),
            'has_spotify_client': bool(self.spotify_client_id and self.spotify_client_secret),
            'poll_timeout_sec': self.poll_timeout_sec,
            'request_timeout_sec': self.request_timeout_sec,
            'guard_timeout_sec': self.guard_timeout_sec,
            'workers': self.workers,
            'spotify_scopes': SPOTIFY_SCOPES,
        }


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from environment variables.

    Empty values are treated as unset. A guard timeout of 0 disables the
    timeout entirely.
    """
    env = os.environ if environ is None else environ

    def get(key: str) -> Optional[str]:
        value = env.get(key)
        return value.strip().strip('"') if value and value.strip() else None

    guard_timeout = _int_setting(env, 'PLAYLISTBOT_GUARD_TIMEOUT', 60)
    workers = _int_setting(env, 'PLAYLISTBOT_WORKERS', 4)
    if workers < 1:
        raise ConfigError("PLAYLISTBOT_WORKERS must be at least 1")
    log_level = (get('PLAYLISTBOT_LOG_LEVEL') or 'INFO').upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"PLAYLISTBOT_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

    return Settings(
        telegram_token=get('TELOXIDE_TOKEN') or get('TELEGRAM_BOT_TOKEN'),
        spotify_access_token=get('RSPOTIFY_ACCESS_TOKEN'),
        spotify_refresh_token=get('RSPOTIFY_REFRESH_TOKEN'),
        spotify_client_id=get('RSPOTIFY_CLIENT_ID'),
        spotify_client_secret=get('RSPOTIFY_CLIENT_SECRET'),
        spotify_redirect_uri=get('RSPOTIFY_REDIRECT_URI') or 'http://localhost:8888/callback',
        poll_timeout_sec=_int_setting(env, 'PLAYLISTBOT_POLL_TIMEOUT', 30),
        request_timeout_sec=_int_setting(env, 'PLAYLISTBOT_REQUEST_TIMEOUT', 15),
        guard_timeout_sec=float(guard_timeout) if guard_timeout else None,
        workers=workers,
        webhook_secret=get('PLAYLISTBOT_WEBHOOK_SECRET'),
        tokens_file=get('PLAYLISTBOT_TOKENS_FILE'),
        log_level=log_level,
    )
