import argparse
import json
import logging
import signal
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from playlistbot.application.guard import AccessGuard
from playlistbot.application.sync import SyncOrchestrator
from playlistbot.crosscutting.config import ConfigError, Settings, load_settings
from playlistbot.crosscutting.logging import setup_logging
from playlistbot.domain.errors import UpstreamError
from playlistbot.infrastructure.providers.spotify import SpotifyCatalog
from playlistbot.infrastructure.transports.telegram import TelegramError, TelegramTransport
from playlistbot.interfaces.bot import BotRunner
from playlistbot.interfaces.replies import render_reply


logger = logging.getLogger(__name__)


class CLI:
    """Command Line Interface for playlistbot."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._start_time = None
        self._runner: Optional[BotRunner] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default=None,
            help='Set logging level (default: PLAYLISTBOT_LOG_LEVEL or INFO)'
        )
        common.add_argument(
            '--plain-logs',
            action='store_true',
            help='Write human-readable logs instead of JSON'
        )
        common.add_argument(
            '--env-file',
            default=None,
            help='Load environment variables from this file (default: ./.env)'
        )

        parser = argparse.ArgumentParser(
            prog='playlistbot',
            description='Collect Spotify tracks posted in Telegram chats into per-chat playlists'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        subparsers.add_parser('run', parents=[common], help='Run the bot with long polling')

        serve_parser = subparsers.add_parser('serve', parents=[common], help='Run the bot behind a webhook')
        serve_parser.add_argument('--host', default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
        serve_parser.add_argument('--port', type=int, default=8080, help='Bind port (default: 8080)')
        serve_parser.add_argument(
            '--webhook-url',
            default=None,
            help='Public base URL; when given, the webhook is registered with Telegram'
        )

        sync_parser = subparsers.add_parser('sync', parents=[common], help='Synchronize one message')
        sync_parser.add_argument('--chat-id', type=int, required=True, help='Chat the message came from')
        sync_parser.add_argument('--text', required=True, help='Message text')

        subparsers.add_parser('playlists', parents=[common], help='List playlists owned by the account')
        subparsers.add_parser('check-config', parents=[common], help='Show configuration summary')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            if self._runner is not None:
                self._runner.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Clean up resources on exit."""
        if self._runner is not None:
            self._runner.shutdown(wait=True)
            self._runner = None
        if self._start_time:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")

    def _create_catalog(self, settings: Settings) -> SpotifyCatalog:
        return SpotifyCatalog.from_settings(settings)

    def _create_transport(self, settings: Settings) -> TelegramTransport:
        return TelegramTransport(
            settings.require_telegram(),
            poll_timeout=settings.poll_timeout_sec,
            request_timeout=settings.request_timeout_sec,
        )

    def _create_guard(self, settings: Settings) -> AccessGuard:
        return AccessGuard(self._create_catalog(settings), timeout_sec=settings.guard_timeout_sec)

    def _create_runner(self, settings: Settings) -> BotRunner:
        transport = self._create_transport(settings)
        orchestrator = SyncOrchestrator(self._create_guard(settings))
        return BotRunner(transport, orchestrator, workers=settings.workers)

    def _run_polling(self, settings: Settings) -> None:
        self._runner = self._create_runner(settings)
        self._setup_signal_handlers()
        self._runner.transport.delete_webhook()
        self._runner.run_forever()

    def _run_webhook(self, args: argparse.Namespace, settings: Settings) -> None:
        from playlistbot.interfaces.http import HTTPServer

        self._runner = self._create_runner(settings)
        secret = settings.webhook_path_secret()
        if args.webhook_url:
            self._runner.transport.set_webhook(f"{args.webhook_url.rstrip('/')}/telegram/{secret}")
        server = HTTPServer(self._runner, secret, host=args.host, port=args.port)
        server.run()

    def _sync_message(self, args: argparse.Namespace, settings: Settings) -> int:
        orchestrator = SyncOrchestrator(self._create_guard(settings))
        result = orchestrator.synchronize_chat(args.chat_id, args.text)
        reply = render_reply(result)
        print(reply if reply is not None else "No track references found.")
        return 1 if result.is_error else 0

    def _list_playlists(self, settings: Settings) -> None:
        guard = self._create_guard(settings)
        with guard.session() as catalog:
            playlists = catalog.list_owned_playlists()
            print(f"Owned playlists ({len(playlists)}):")
            for playlist in playlists:
                print(f"  {playlist.name}  {catalog.playlist_locator(playlist.id)}")

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI."""
        self._start_time = time.time()
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            sys.exit(1)

        load_dotenv(args.env_file)
        exit_code = 0
        try:
            settings = load_settings()
            setup_logging(args.log_level or settings.log_level, structured=not args.plain_logs)

            if args.command == 'run':
                self._run_polling(settings)
            elif args.command == 'serve':
                self._run_webhook(args, settings)
            elif args.command == 'sync':
                exit_code = self._sync_message(args, settings)
            elif args.command == 'playlists':
                self._list_playlists(settings)
            elif args.command == 'check-config':
                print(json.dumps(settings.summary(), indent=2))
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            print(f"Configuration error: {e}", file=sys.stderr)
            exit_code = 2
        except UpstreamError as e:
            logger.error(f"Spotify request failed: {e}")
            print(f"Spotify request failed: {e}", file=sys.stderr)
            exit_code = 1
        except TelegramError as e:
            logger.error(f"Telegram request failed: {e}")
            exit_code = 1
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            exit_code = 130
        finally:
            self._cleanup_resources()

        if exit_code:
            sys.exit(exit_code)


def main():
    """Main entry point."""
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
