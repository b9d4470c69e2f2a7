import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_token_env():
    """Ensure bot and Spotify tokens do not leak across tests.
    A developer .env may set these variables; clear before each test and
    restore afterwards so tests explicitly setting them remain deterministic.
    """
    keys = [
        'TELOXIDE_TOKEN', 'TELEGRAM_BOT_TOKEN',
        'RSPOTIFY_ACCESS_TOKEN', 'RSPOTIFY_REFRESH_TOKEN',
        'RSPOTIFY_CLIENT_ID', 'RSPOTIFY_CLIENT_SECRET',
        'PLAYLISTBOT_WEBHOOK_SECRET', 'PLAYLISTBOT_GUARD_TIMEOUT', 'PLAYLISTBOT_WORKERS',
        'PLAYLISTBOT_LOG_LEVEL', 'PLAYLISTBOT_TOKENS_FILE',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
