import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List

from playlistbot.application.sync import SyncOrchestrator
from playlistbot.crosscutting.logging import CorrelationContext
from playlistbot.domain.entities import ChatMessage, SyncResult
from playlistbot.domain.ports import ChatTransport
from playlistbot.infrastructure.transports.telegram import TelegramError
from playlistbot.interfaces.replies import render_reply


logger = logging.getLogger(__name__)


class BotRunner:
    """Feeds chat messages to the orchestrator and replies with the outcome.

    Every message is handled on its own worker thread; the orchestrator's
    access guard serializes the catalog work.
    """

    def __init__(self, transport: ChatTransport, orchestrator: SyncOrchestrator,
                 workers: int = 4, error_backoff_sec: float = 5.0):
        self.transport = transport
        self.orchestrator = orchestrator
        self.error_backoff_sec = error_backoff_sec
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='playlistbot')
        self._stop = threading.Event()

    def handle_message(self, message: ChatMessage) -> SyncResult:
        """Synchronize one message and send the rendered reply, if any."""
        result = self.orchestrator.synchronize_chat(message.chat_id, message.text)

        reply = render_reply(result)
        if reply is None:
            return result

        with CorrelationContext(chat_id=str(message.chat_id)):
            try:
                self.transport.send_reply(message.chat_id, reply)
                logger.debug("Sent reply successfully")
            except TelegramError as e:
                logger.error(f"Failed to send reply: {e}")
        return result

    def _handle_safely(self, message: ChatMessage) -> None:
        try:
            self.handle_message(message)
        except Exception:
            logger.exception(f"Unhandled error for message from chat {message.chat_id}")

    def submit(self, message: ChatMessage) -> Future:
        return self._executor.submit(self._handle_safely, message)

    def poll_once(self) -> List[Future]:
        """Fetch one batch of messages and dispatch them to workers."""
        return [self.submit(message) for message in self.transport.fetch_messages()]

    def run_forever(self) -> None:
        """Long-poll the transport until stop() is called."""
        logger.info("Starting bot...")
        while not self._stop.is_set():
            try:
                self.poll_once()
            except TelegramError as e:
                logger.error(f"Polling failed: {e}")
                self._stop.wait(self.error_backoff_sec)
            except Exception:
                logger.exception("Unexpected error while polling")
                self._stop.wait(self.error_backoff_sec)
        logger.info("Bot stopped")

    def stop(self) -> None:
        self._stop.set()

    def shutdown(self, wait: bool = True) -> None:
        self.stop()
        self._executor.shutdown(wait=wait)
