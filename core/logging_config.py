"""
Logging setup for the ledger funnel.

Library modules only call get_logger(); the application installs handlers
once through setup_logging(LOGGING_CONFIG). Console output is colored in
development and one JSON object per line in production. Every handler runs
records through SecretRedactionFilter so funded seeds never reach a log.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from security import redact_secrets

# Libraries whose INFO chatter drowns out the funnel
QUIET_LOGGERS = ("websockets", "aiohttp", "asyncio")

LOG_FILES = {
    "main": "ledger_funnel.log",
    "errors": "errors.log",
}


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    context = getattr(record, "extra_data", None)
    return context if isinstance(context, dict) else {}


class SecretRedactionFilter(logging.Filter):
    """Masks seed-shaped tokens in the message and in attached context"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg, record.args = redacted, None

        context = _record_context(record)
        if context:
            record.extra_data = {
                key: redact_secrets(value) if isinstance(value, str) else value
                for key, value in context.items()
            }
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, context fields merged at the top level"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_context(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Short colored lines for a terminal"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[92m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[95m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"[{clock}] [{color}{record.levelname}{self.RESET}] [{record.name}] {record.getMessage()}"

        context = _record_context(record)
        if context:
            line += " (" + " ".join(f"{key}={value}" for key, value in context.items()) + ")"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class LoggingConfig:
    """Builds and installs the root handlers from a LOGGING_CONFIG dict"""

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: str = "./logs",
                 enable_file_logging: bool = False,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        """
        Args:
            log_level: Name of the root level
            log_dir: Directory for ledger_funnel.log and errors.log
            enable_file_logging: Write rotating log files
            enable_console_logging: Write to stdout
            structured_logging: JSON lines instead of colored text
            max_log_size_mb: Rotation size of each file
            backup_count: Rotated files kept per log
        """
        self.log_level = logging.getLevelName(log_level.upper())
        if not isinstance(self.log_level, int):
            raise ValueError(f"Unknown log level: {log_level}")

        self.log_dir = Path(log_dir)
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_bytes = max_log_size_mb * 1024 * 1024
        self.backup_count = backup_count

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "LoggingConfig":
        known = ("log_level", "log_dir", "enable_file_logging", "enable_console_logging",
                 "structured_logging", "max_log_size_mb", "backup_count")
        return cls(**{key: config[key] for key in known if key in config})

    def _formatter(self) -> logging.Formatter:
        if self.structured_logging:
            return StructuredFormatter()
        return logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                                 datefmt="%Y-%m-%d %H:%M:%S")

    def _file_handler(self, filename: str, level: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(self._formatter())
        return handler

    def build_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []

        if self.enable_console_logging:
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(self.log_level)
            console.setFormatter(StructuredFormatter() if self.structured_logging else ColoredConsoleFormatter())
            handlers.append(console)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(self._file_handler(LOG_FILES["main"], self.log_level))
            handlers.append(self._file_handler(LOG_FILES["errors"], logging.ERROR))

        redaction = SecretRedactionFilter()
        for handler in handlers:
            handler.addFilter(redaction)
        return handlers

    def install(self, root: Optional[logging.Logger] = None) -> None:
        """Replace the root handlers with freshly built ones"""
        root = root or logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        root.setLevel(self.log_level)
        for handler in self.build_handlers():
            root.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        log_with_context(logging.getLogger(__name__), logging.DEBUG, "Logging configured",
                         level=logging.getLevelName(self.log_level),
                         files=str(self.log_dir) if self.enable_file_logging else None,
                         structured=self.structured_logging)


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> LoggingConfig:
    """
    Install handlers on the root logger.

    Args:
        config_dict: LOGGING_CONFIG-shaped settings; missing keys use defaults

    Returns:
        The applied LoggingConfig
    """
    config = LoggingConfig.from_dict(config_dict or {})
    config.install()
    return config


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; handlers come from setup_logging()"""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """
    Log a message with structured context.

    The context lands in record.extra_data, which both formatters print.
    """
    logger.log(level, message, extra={"extra_data": context})


def log_performance(logger: logging.Logger, operation: str, duration_ms: float, **context) -> None:
    log_with_context(logger, logging.DEBUG, f"{operation} took {duration_ms:.1f}ms",
                     operation=operation, duration_ms=round(duration_ms, 2), **context)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, level: int = logging.ERROR, **context) -> None:
    log_with_context(logger, level, f"{operation} failed: {error}",
                     operation=operation, error_type=type(error).__name__, **context)
