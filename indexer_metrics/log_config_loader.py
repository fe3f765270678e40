from collections.abc import Callable
from datetime import UTC, datetime
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

LOG_CONFIG_PATH = Path(__file__).parent / 'log_config.json'

NOISY_LOGGERS = ('uvicorn.access', 'uvicorn.error', 'redis', 'asyncio')


def load_log_config(config_path: Path = LOG_CONFIG_PATH) -> dict[str, Any]:
    try:
        data = orjson.loads(config_path.read_bytes())
    except FileNotFoundError as e:
        raise RuntimeError(f'Log config file not found: {config_path}') from e
    except orjson.JSONDecodeError as e:
        raise RuntimeError(f'Invalid JSON in log config file {config_path}: {e}') from e
    if not isinstance(data, dict):
        raise RuntimeError(
            f'Expected JSON object in {config_path}, got {type(data).__name__}'
        )
    data['standard_fields'] = frozenset(data.get('standard_fields') or ())
    return data


DEFAULT_LOG_CONFIG: dict[str, Any] = load_log_config()


class ServiceFormatter(logging.Formatter):
    """Stamps every record with the service identity and its ``extra=`` fields.

    Timestamps are UTC ISO-8601 with millisecond precision.
    """

    def __init__(self, service_name: str, version: str) -> None:
        super().__init__()
        self.service_name = service_name
        self.version = version
        self.standard_fields: frozenset[str] = DEFAULT_LOG_CONFIG['standard_fields']

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return stamp.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    def extras(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.standard_fields and not key.startswith('_')
        }


class JsonFormatter(ServiceFormatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'service': self.service_name,
            'version': self.version,
            'logger': record.name,
            'message': record.getMessage(),
            **self.extras(record),
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode('utf-8')


class TextFormatter(ServiceFormatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record),
            f'[{record.levelname:<8}]',
            f'{record.name}:',
            record.getMessage(),
            *(f'[{k}={v}]' for k, v in self.extras(record).items()),
        ]
        line = ' '.join(parts)
        if record.exc_info:
            line += f'\n{self.formatException(record.exc_info)}'
        return line


FORMATTERS: dict[str, Callable[[str, str], ServiceFormatter]] = {
    'json': JsonFormatter,
    'text': TextFormatter,
}


def create_formatter(
    log_format: str, service_name: str, version: str
) -> ServiceFormatter:
    factory = FORMATTERS.get(log_format.lower(), TextFormatter)
    return factory(service_name, version)


def setup_logging(service_name: str, level: str, log_format: str, version: str) -> None:
    """Route every logger through a single stdout handler."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(create_formatter(log_format, service_name, version))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(log_level, logging.WARNING))
