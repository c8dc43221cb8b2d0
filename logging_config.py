import json
import logging
import os
from logging.handlers import RotatingFileHandler

# Create logs directory if it doesn't exist
LOG_DIR = os.environ.get('LOG_DIR', 'logs')
if not os.path.exists(LOG_DIR):
    try:
        os.makedirs(LOG_DIR)
    except OSError:
        LOG_DIR = '.'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class JsonFormatter(logging.Formatter):
    """Outputs log records as single-line JSON objects."""

    def format(self, record):
        log_entry = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "filename": record.filename,
            "lineno": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def _rotating_handler(filename, level, max_bytes, backup_count, formatter):
    try:
        handler = RotatingFileHandler(
            os.path.join(LOG_DIR, filename),
            maxBytes=max_bytes,
            backupCount=backup_count
        )
    except OSError:
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

console_handler = logging.StreamHandler()
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(formatter)

# 5MB x 5 for the full log, 2MB x 3 for errors only
file_handler = _rotating_handler('budget_reports.log', logging.DEBUG, 5 * 1024 * 1024, 5, formatter)
error_handler = _rotating_handler('errors.log', logging.ERROR, 2 * 1024 * 1024, 3, formatter)

handlers = [h for h in (console_handler, file_handler, error_handler) if h is not None]

root_logger = logging.getLogger()
root_logger.setLevel(logging.DEBUG)
for _handler in handlers:
    root_logger.addHandler(_handler)

logger = logging.getLogger('budget_reports')
logger.setLevel(logging.DEBUG)

# Reduce noise from third-party libraries
logging.getLogger('urllib3').setLevel(logging.WARNING)
logging.getLogger('werkzeug').setLevel(logging.WARNING)
logging.getLogger('alembic').setLevel(logging.WARNING)

if os.environ.get('LOG_FORMAT', 'text').lower() == 'json':
    json_formatter = JsonFormatter()
    for _handler in handlers:
        _handler.setFormatter(json_formatter)

logger.info("Budget reports logging initialized")
