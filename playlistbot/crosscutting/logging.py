import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
chat_id_var: ContextVar[Optional[str]] = ContextVar('chat_id', default=None)
owner_key_var: ContextVar[Optional[str]] = ContextVar('owner_key', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Spotify access tokens
            r'(?i)(rspotify_access_token|access_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{50,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Telegram bot tokens embedded in API URLs
            r'(?i)(/bot)(\d{5,}:[a-zA-Z0-9\-_]{20,})',
            # Webhook path secrets in request lines
            r'(/telegram/)([^\s/?"]{8,})',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                # Keep first 4 and last 4 characters, mask the rest
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                if prefix.startswith('/'):
                    return f"{prefix}{masked_secret}"
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                  else self.mask_secrets(item) if isinstance(item, str)
                                  else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        for field_name, var in (('chatId', chat_id_var), ('ownerKey', owner_key_var),
                                ('playlistId', playlist_id_var), ('stage', stage_var)):
            value = var.get()
            if value:
                log_entry[field_name] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)


class MaskingFormatter(logging.Formatter):
    """Plain-text formatter that masks secrets like the JSON formatter does."""

    def __init__(self, fmt: Optional[str] = None):
        super().__init__(fmt)
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        return self.masker.mask_secrets(super().format(record))


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, chat_id: Optional[str] = None,
                 owner_key: Optional[str] = None,
                 playlist_id: Optional[str] = None,
                 stage: Optional[str] = None):
        self._values = {
            chat_id_var: chat_id,
            owner_key_var: owner_key,
            playlist_id_var: playlist_id,
            stage_var: stage,
        }
        self._tokens = []

    def __enter__(self):
        """Set correlation context."""
        for var, value in self._values.items():
            if value is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def set_stage(stage: str) -> None:
    """Update the stage field for the enclosing CorrelationContext."""
    stage_var.set(stage)


def setup_logging(level: str = 'INFO',
                 log_file: Optional[str] = None,
                 structured: bool = True) -> logging.Logger:
    """Setup structured logging for the playlistbot logger tree."""
    logger = logging.getLogger('playlistbot')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = MaskingFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Flask request lines carry the webhook path
    request_logger = logging.getLogger('werkzeug')
    request_logger.setLevel(logger.level)
    request_logger.handlers.clear()
    for handler in logger.handlers:
        request_logger.addHandler(handler)
    request_logger.propagate = False

    return logger


def get_logger(name: str = 'playlistbot') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                   fields: Optional[Dict[str, Any]] = None, **kwargs):
    """Log message with additional fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return
    record = logger.makeRecord(
        logger.name, levelno,
        '', 0, message, (), None
    )

    if fields:
        record.fields = fields
    if kwargs:
        if not hasattr(record, 'fields'):
            record.fields = {}
        record.fields.update(kwargs)

    logger.handle(record)


def log_sync_result(logger: logging.Logger, owner_key: str, result) -> None:
    """Log the outcome of one synchronization run."""
    fields = {'owner_key': owner_key, 'status': result.status.value}
    if result.is_added:
        fields['count'] = result.count
        fields['playlist_url'] = result.playlist_locator
        log_with_fields(logger, 'INFO', 'Tracks added to playlist', fields)
    elif result.is_error:
        fields['error_kind'] = result.error_kind.value
        fields['reason'] = result.message
        log_with_fields(logger, 'ERROR', 'Synchronization failed', fields)
    else:
        log_with_fields(logger, 'INFO', 'No new tracks', fields)
