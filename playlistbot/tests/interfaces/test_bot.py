from unittest.mock import Mock

from playlistbot.application.guard import AccessGuard
from playlistbot.application.sync import SyncOrchestrator
from playlistbot.domain.entities import ChatMessage, SyncStatus
from playlistbot.infrastructure.transports.telegram import TelegramError
from playlistbot.interfaces.bot import BotRunner
from playlistbot.tests.fakes import FakeCatalog


URL = "https://open.spotify.com/track/42i30whtcm9lGWx30x8t2R"


class TestBotRunner:
    """Tests for message handling and reply dispatch."""

    def setup_method(self):
        self.catalog = FakeCatalog()
        self.transport = Mock()
        self.runner = BotRunner(self.transport, SyncOrchestrator(AccessGuard(self.catalog)), workers=2)

    def teardown_method(self):
        self.runner.shutdown()

    def test_added_message_gets_reply(self):
        result = self.runner.handle_message(ChatMessage(chat_id=123, text=URL))

        assert result.status is SyncStatus.ADDED
        chat_id, text = self.transport.send_reply.call_args[0]
        assert chat_id == 123
        assert text.startswith("Added 1 track to playlist!")

    def test_message_without_links_gets_no_reply(self):
        result = self.runner.handle_message(ChatMessage(chat_id=123, text="good morning"))

        assert result.status is SyncStatus.NO_NEW_ITEMS
        self.transport.send_reply.assert_not_called()
        assert self.catalog.calls == []

    def test_reply_failure_does_not_change_result(self):
        self.transport.send_reply.side_effect = TelegramError("sendMessage failed")

        result = self.runner.handle_message(ChatMessage(chat_id=1, text=URL))

        assert result.status is SyncStatus.ADDED

    def test_poll_once_dispatches_every_message(self):
        self.transport.fetch_messages.return_value = [
            ChatMessage(chat_id=1, text=URL),
            ChatMessage(chat_id=2, text=URL),
        ]

        futures = self.runner.poll_once()
        for future in futures:
            future.result(timeout=5)

        assert self.transport.send_reply.call_count == 2
        assert self.catalog.playlist_named("telegram-1") is not None
        assert self.catalog.playlist_named("telegram-2") is not None

    def test_run_forever_survives_polling_errors(self):
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) == 1:
                raise TelegramError("getUpdates request failed")
            self.runner.stop()
            return []

        self.transport.fetch_messages.side_effect = fetch
        self.runner.error_backoff_sec = 0

        self.runner.run_forever()

        assert len(calls) == 2

    def test_run_forever_survives_unexpected_errors(self):
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) == 1:
                raise KeyError("update_id")
            self.runner.stop()
            return []

        self.transport.fetch_messages.side_effect = fetch
        self.runner.error_backoff_sec = 0

        self.runner.run_forever()

        assert len(calls) == 2
