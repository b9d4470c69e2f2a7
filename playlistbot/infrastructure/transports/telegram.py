import logging
from typing import Any, Dict, List, Optional

import requests

from playlistbot.domain.entities import ChatMessage
from playlistbot.domain.ports import ChatTransport

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramError(Exception):
    """Telegram Bot API call failed."""


def parse_update(update: Dict[str, Any]) -> Optional[ChatMessage]:
    """Map a Bot API update to a ChatMessage.

    Only plain text messages (and captions of media messages) are used. Edited
    messages, channel posts without text, and other update kinds yield None.
    """
    message = update.get('message') or update.get('channel_post')
    if not message:
        return None
    chat = message.get('chat') or {}
    if 'id' not in chat:
        return None
    text = message.get('text') or message.get('caption')
    if not text:
        return None
    return ChatMessage(chat_id=int(chat['id']), text=text)


class TelegramTransport(ChatTransport):
    """Telegram Bot API client using long polling."""

    def __init__(self, token: str, poll_timeout: int = 30, request_timeout: int = 15,
                 session: Optional[requests.Session] = None, api_url: str = TELEGRAM_API_URL):
        self.token = token
        self.poll_timeout = poll_timeout
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.base_url = f"{api_url}/bot{token}"
        self.offset: Optional[int] = None

    def _request(self, method: str, payload: Dict[str, Any], timeout: float) -> Any:
        try:
            response = self.session.post(f"{self.base_url}/{method}", json=payload, timeout=timeout)
        except requests.RequestException as e:
            raise TelegramError(f"{method} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TelegramError(f"{method} returned invalid JSON (HTTP {response.status_code})") from e

        if not data.get('ok'):
            raise TelegramError(f"{method} failed: {data.get('description', response.status_code)}")
        return data.get('result')

    def get_updates(self) -> List[Dict[str, Any]]:
        """Fetch pending updates and advance the offset past them."""
        payload: Dict[str, Any] = {
            'timeout': self.poll_timeout,
            'allowed_updates': ['message', 'channel_post'],
        }
        if self.offset is not None:
            payload['offset'] = self.offset

        result = self._request('getUpdates', payload, timeout=self.poll_timeout + self.request_timeout) or []
        updates = [update for update in result if isinstance(update, dict)]
        # Only well-formed update ids advance the offset
        update_ids = [update['update_id'] for update in updates if isinstance(update.get('update_id'), int)]
        if update_ids:
            self.offset = max(update_ids) + 1
        return updates

    def fetch_messages(self) -> List[ChatMessage]:
        messages = []
        for update in self.get_updates():
            message = parse_update(update)
            if message is None:
                logger.debug(f"Skipping update {update.get('update_id')} without text")
                continue
            messages.append(message)
        return messages

    def send_reply(self, chat_id: int, text: str) -> None:
        self._request('sendMessage', {'chat_id': chat_id, 'text': text}, timeout=self.request_timeout)

    def set_webhook(self, url: str) -> None:
        self._request('setWebhook', {'url': url, 'allowed_updates': ['message', 'channel_post']},
                      timeout=self.request_timeout)
        logger.info("Webhook registered")

    def delete_webhook(self) -> None:
        self._request('deleteWebhook', {}, timeout=self.request_timeout)
