"""
Logging configuration.

- Development: human-readable colored format
- Production: JSON lines (LOG_JSON=True)
- Log level: LOG_LEVEL config value
"""
import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    EXTRA_FIELDS = ('method', 'path', 'status', 'user_id', 'quotation_id', 'quotation_no')

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry['exception'] = self.formatException(record.exc_info)
        for key in self.EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        ts = datetime.now().strftime('%H:%M:%S')
        base = f'{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}'
        if record.exc_info and record.exc_info[0] is not None:
            base += '\n' + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get('TESTING', False)
    use_json = app.config.get('LOG_JSON', False)

    level_name = str(app.config.get('LOG_LEVEL') or ('DEBUG' if app.debug else 'INFO'))
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app may run more than once per process (tests)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ('urllib3', 'werkzeug', 'sqlalchemy.engine'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info('Logging configured: level=%s format=%s',
                        level_name, 'JSON' if use_json else 'readable')
