from unittest.mock import Mock, patch

import pytest

from playlistbot.application.guard import AccessGuard
from playlistbot.interfaces.cli import CLI
from playlistbot.tests.fakes import FakeCatalog


URL = "https://open.spotify.com/track/42i30whtcm9lGWx30x8t2R"


class TestCLI:
    """Tests for CLI commands."""

    def setup_method(self):
        self.cli = CLI()
        self.catalog = FakeCatalog()

    def test_no_command_prints_help_and_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            self.cli.run([])

        assert exc_info.value.code == 1

    def test_sync_command_prints_reply(self, capsys):
        with patch.object(CLI, '_create_guard', return_value=AccessGuard(self.catalog)), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            self.cli.run(['sync', '--chat-id', '123', '--text', URL])

        out = capsys.readouterr().out
        assert "Added 1 track to playlist!" in out
        assert self.catalog.playlist_named("telegram-123") is not None

    def test_sync_command_without_links(self, capsys):
        with patch.object(CLI, '_create_guard', return_value=AccessGuard(self.catalog)), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            self.cli.run(['sync', '--chat-id', '1', '--text', 'nothing'])

        assert "No track references found." in capsys.readouterr().out

    def test_sync_command_error_exit_code(self):
        self.catalog.add_playlist("telegram-1", [None])

        with patch.object(CLI, '_create_guard', return_value=AccessGuard(self.catalog)), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            with pytest.raises(SystemExit) as exc_info:
                self.cli.run(['sync', '--chat-id', '1', '--text', URL])

        assert exc_info.value.code == 1

    def test_playlists_command_lists_owned(self, capsys):
        self.catalog.add_playlist("telegram-1")
        self.catalog.add_playlist("telegram-2")

        with patch.object(CLI, '_create_guard', return_value=AccessGuard(self.catalog)), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            self.cli.run(['playlists'])

        out = capsys.readouterr().out
        assert "Owned playlists (2):" in out
        assert "telegram-2" in out

    def test_missing_spotify_credentials_exit_code(self, capsys):
        with patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            with pytest.raises(SystemExit) as exc_info:
                self.cli.run(['sync', '--chat-id', '1', '--text', URL])

        assert exc_info.value.code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_run_command_requires_bot_token(self):
        with patch.object(CLI, '_create_guard', return_value=AccessGuard(self.catalog)), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            with pytest.raises(SystemExit) as exc_info:
                self.cli.run(['run'])

        assert exc_info.value.code == 2

    def test_run_command_polls_until_stopped(self):
        runner = Mock()
        with patch.object(CLI, '_create_runner', return_value=runner), \
                patch.object(CLI, '_setup_signal_handlers'), \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            self.cli.run(['run'])

        runner.transport.delete_webhook.assert_called_once()
        runner.run_forever.assert_called_once()
        runner.shutdown.assert_called_once_with(wait=True)

    def test_unknown_log_level_is_configuration_error(self, capsys):
        with patch.dict('os.environ', {'PLAYLISTBOT_LOG_LEVEL': 'verbose'}), \
                patch('playlistbot.interfaces.cli.load_dotenv'):
            with pytest.raises(SystemExit) as exc_info:
                self.cli.run(['check-config'])

        assert exc_info.value.code == 2
        assert "PLAYLISTBOT_LOG_LEVEL" in capsys.readouterr().err

    def test_serve_registers_webhook_without_bot_token_in_path(self):
        runner = Mock()
        with patch.dict('os.environ', {'TELOXIDE_TOKEN': '123456:bot-token'}), \
                patch.object(CLI, '_create_runner', return_value=runner), \
                patch('playlistbot.interfaces.http.HTTPServer') as mock_server, \
                patch('playlistbot.interfaces.cli.load_dotenv'), \
                patch('playlistbot.interfaces.cli.setup_logging'):
            self.cli.run(['serve', '--webhook-url', 'https://bot.example.com/'])

        webhook_url = runner.transport.set_webhook.call_args[0][0]
        assert webhook_url.startswith('https://bot.example.com/telegram/')
        assert 'bot-token' not in webhook_url
        assert mock_server.call_args[0][1] == webhook_url.rsplit('/', 1)[1]
        mock_server.return_value.run.assert_called_once()
