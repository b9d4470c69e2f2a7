from __future__ import annotations

import re
from typing import List


TRACK_URL_PATTERN = re.compile(r"https://open.spotify.com/track/([A-Za-z0-9]+)")
OWNER_KEY_PREFIX = "telegram-"


def extract_track_ids(text: str) -> List[str]:
    """Return track ids of every track URL in text, in order of appearance.

    Duplicates are kept. Text without a track URL yields an empty list.
    """
    if not text:
        return []
    return [match.group(1) for match in TRACK_URL_PATTERN.finditer(text)]


def owner_key(chat_id: int) -> str:
    return f"{OWNER_KEY_PREFIX}{int(chat_id)}"
