import logging
import logging.config
import sys
import threading
from typing import Optional

# Loggers that emit one record per inbound datagram at DEBUG
PACKET_LOGGERS = ("moisture_manager.core.gateway",)

# Thread name prefix -> short component tag shown in every record
THREAD_COMPONENTS = (
    ("telemetry-gateway", "gateway"),
    ("provision", "flash"),
    ("MainThread", "main"),
)


class ComponentFilter(logging.Filter):
    """Tag records with the component whose thread emitted them."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = "other"
        for prefix, component in THREAD_COMPONENTS:
            if record.threadName.startswith(prefix):
                record.component = component
                break
        return True


def setup_logging(
        level: str = "INFO",
        log_file: Optional[str] = None,
        *,
        packet_debug: bool = False,
        max_bytes: int = 5_000_000,
        backup_count: int = 3,
        force: bool = False,
):
    """
    Configure root logger:
      - Console output tagged with the emitting component (gateway, flash, main)
      - Optional rotating file output with logger name, module and line
      - Per-packet DEBUG records from the gateway are held at INFO unless
        ``packet_debug`` is set
      - Idempotent unless ``force`` is given
    """
    lvl = level.upper()
    numeric_level = logging.getLevelName(lvl)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")

    root = logging.getLogger()
    if root.handlers and not force:
        return

    datefmt = "%Y-%m-%d %H:%M:%S"

    formatters = {
        'console': {
            'format': '%(asctime)s [%(component)-7s] %(levelname)-8s %(message)s',
            'datefmt': datefmt,
        },
        'file': {
            'format': (
                '%(asctime)s [%(component)s/%(threadName)s] %(name)s '
                '%(levelname)s %(module)s:%(lineno)d %(message)s'
            ),
            'datefmt': datefmt,
        },
    }

    filters = {
        'component': {'()': ComponentFilter},
    }

    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': numeric_level,
            'formatter': 'console',
            'filters': ['component'],
            'stream': 'ext://sys.stdout',
        },
    }
    root_handlers = ['console']

    if log_file:
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': numeric_level,
            'formatter': 'file',
            'filters': ['component'],
            'filename': log_file,
            'maxBytes': max_bytes,
            'backupCount': backup_count,
            'encoding': 'utf-8',
        }
        root_handlers.append('file')

    packet_level = numeric_level if packet_debug else max(numeric_level, logging.INFO)
    loggers = {name: {'level': packet_level} for name in PACKET_LOGGERS}

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': formatters,
        'filters': filters,
        'handlers': handlers,
        'loggers': loggers,
        'root': {
            'level': numeric_level,
            'handlers': root_handlers,
        },
    }
    logging.config.dictConfig(config)

    # Uncaught exceptions, including those on the gateway/provisioning threads
    def _handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        root.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    def _handle_thread_exception(args):
        root.error(f"Uncaught exception in thread {args.thread.name if args.thread else '?'}",
                   exc_info=(args.exc_type, args.exc_value, args.exc_traceback))

    sys.excepthook = _handle_exception
    threading.excepthook = _handle_thread_exception
