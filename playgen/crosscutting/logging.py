import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation; they follow the running task across awaits
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
entry_var: ContextVar[Optional[str]] = ContextVar('entry', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Spotify client credentials
            r'(?i)(spotify_client_secret|client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Last.fm API key, also as it appears in request URLs
            r'(?i)(lastfm_api_key|api_key)[\s]*[:=][\s]*["\']?([a-fA-F0-9]{20,})["\']?',
            # Bearer tokens from client-credentials exchange
            r'(?i)(authorization|bearer)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{50,})["\']?',
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
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary values."""
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
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        run_id = run_id_var.get()
        entry = entry_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if run_id:
            log_entry['runId'] = run_id
        if entry:
            log_entry['entry'] = entry
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)

    def mask_secrets(self, text: str) -> str:
        """Mask secrets in text."""
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, run_id: Optional[str] = None,
                 entry: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self.run_id = run_id
        self.entry = entry
        self.stage = stage
        self._tokens = {}

    def __enter__(self):
        """Set correlation context."""
        if self.run_id is not None:
            self._tokens['run_id'] = run_id_var.set(self.run_id)
        if self.entry is not None:
            self._tokens['entry'] = entry_var.set(self.entry)
        if self.stage is not None:
            self._tokens['stage'] = stage_var.set(self.stage)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        if 'run_id' in self._tokens:
            run_id_var.reset(self._tokens['run_id'])
        if 'entry' in self._tokens:
            entry_var.reset(self._tokens['entry'])
        if 'stage' in self._tokens:
            stage_var.reset(self._tokens['stage'])
        self._tokens = {}


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  run_id: Optional[str] = None) -> logging.Logger:
    """Setup structured logging on the `playgen` logger hierarchy."""
    logger = logging.getLogger('playgen')
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    formatter = StructuredFormatter()

    # Log to stderr; stdout carries the generated playlist
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if run_id:
        run_id_var.set(run_id)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None,
                    exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, '', 0, message, (), None
    )
    if exc_info and sys.exc_info()[0] is not None:
        record.exc_info = sys.exc_info()

    if fields:
        record.fields = dict(fields)
    if kwargs:
        if not hasattr(record, 'fields'):
            record.fields = {}
        record.fields.update(kwargs)

    logger.handle(record)


# Convenience functions for common logging patterns
def log_run_start(logger: logging.Logger, run_id: str, entry_count: int, **kwargs):
    """Log the start of a playlist run."""
    with CorrelationContext(run_id=run_id, stage='start'):
        log_with_fields(logger, 'INFO', 'Playlist run started', {
            'entry_count': entry_count,
            **kwargs
        })


def log_stage(logger: logging.Logger, stage: str, track_count: int, **kwargs):
    """Log completion of a pipeline stage."""
    with CorrelationContext(stage=stage):
        log_with_fields(logger, 'INFO', f'Stage {stage} completed', {
            'track_count': track_count,
            **kwargs
        })


def log_entry_dropped(logger: logging.Logger, entry: str, error: Exception, **kwargs):
    """Log an entry that could not be resolved and was left out."""
    with CorrelationContext(entry=entry):
        log_with_fields(logger, 'WARNING', 'Entry dropped', {
            'error_type': type(error).__name__,
            'error_message': str(error),
            **kwargs
        })


def log_run_complete(logger: logging.Logger, run_id: str,
                     output_count: int, dropped_count: int, **kwargs):
    """Log completion of a playlist run."""
    with CorrelationContext(run_id=run_id, stage='complete'):
        log_with_fields(logger, 'INFO', 'Playlist run completed', {
            'output_count': output_count,
            'dropped_count': dropped_count,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)
