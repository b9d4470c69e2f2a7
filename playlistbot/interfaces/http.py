import hmac
import logging
import os
from datetime import datetime

from flask import Flask, jsonify, request

from playlistbot.infrastructure.transports.telegram import parse_update
from playlistbot.interfaces.bot import BotRunner


class HTTPServer:
    """Webhook server: receives Telegram updates and exposes a health check."""

    def __init__(self, runner: BotRunner, webhook_token: str,
                 host: str = 'localhost', port: int = 8080, debug: bool = False):
        """Initialize HTTP server."""
        self.runner = runner
        self.webhook_token = webhook_token
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/telegram/<token>', methods=['POST'])
        def telegram_webhook(token):
            """Receive one Telegram update."""
            if not hmac.compare_digest(token, self.webhook_token):
                return jsonify({'error': 'Forbidden'}), 403

            update = request.get_json(silent=True)
            if not isinstance(update, dict):
                return jsonify({'error': 'Invalid update payload'}), 400

            message = parse_update(update)
            if message is None:
                self.logger.debug(f"Ignoring update {update.get('update_id')} without text")
                return jsonify({'ok': True, 'queued': False}), 200

            self.runner.submit(message)
            return jsonify({'ok': True, 'queued': True}), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'playlistbot webhook',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'webhook': '/telegram/<token>'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting webhook server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug,
            threaded=True
        )
