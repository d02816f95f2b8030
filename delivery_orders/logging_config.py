import logging
import logging.handlers
import sys
from pathlib import Path

from pythonjsonlogger import jsonlogger


class OrderJsonFormatter(jsonlogger.JsonFormatter):
    """Adds the standard fields every order log line carries."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = record.created
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno


def setup_logging(log_level: str = 'INFO', log_dir: str | None = 'logs', json_files: bool = True) -> None:
    """
    Configure application-wide logging.

    Console output is always human readable. When log_dir is given, rotating
    files are written there: app.log with everything, error.log with errors only.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)
        file_formatter = (
            OrderJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s')
            if json_files
            else console_formatter
        )

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / 'app.log',
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)

        error_handler = logging.handlers.RotatingFileHandler(
            log_path / 'error.log',
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8',
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)

        root_logger.addHandler(file_handler)
        root_logger.addHandler(error_handler)

    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    root_logger.info('Logging configured', extra={'log_level': log_level, 'log_dir': log_dir})


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
