"""The logging configuration module."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

# Attributes every LogRecord carries; anything else was passed through ``extra``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Custom dimensions set through ``with_context`` are emitted under
    ``custom_dimensions`` so billing events can be traced by gateway event id
    and school id in any log backend.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON.

        Args:
        ----
            record (logging.LogRecord): The log record to format

        Returns:
        -------
            str: JSON-formatted log message

        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        dimensions = getattr(record, "custom_dimensions", None)
        if dimensions:
            log_entry["custom_dimensions"] = dimensions

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key == "custom_dimensions":
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class _ContextualLogger(logging.LoggerAdapter):
    """LoggerAdapter carrying a message prefix and structured dimensions."""

    def __init__(
        self,
        logger: logging.Logger,
        prefix: str = "",
        dimensions: Optional[dict] = None,
    ) -> None:
        """Initialize the contextual logger.

        Args:
        ----
            logger (logging.Logger): Base logger instance
            prefix (str): Prefix for every message
            dimensions (Optional[dict]): Dimensions attached to every record

        """
        super().__init__(logger, {})
        self.prefix = prefix
        self.dimensions = dict(dimensions or {})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """Prefix the message and merge dimensions into ``extra``."""
        if self.prefix:
            msg = f"{self.prefix}{msg}"

        extra = kwargs.setdefault("extra", {})
        if self.dimensions:
            extra["custom_dimensions"] = {**extra.get("custom_dimensions", {}), **self.dimensions}

        return msg, kwargs

    def with_context(self, **dimensions: str | int | float | bool | None) -> "_ContextualLogger":
        """Return a logger with extra dimensions; None values are dropped."""
        added = {key: value for key, value in dimensions.items() if value is not None}
        return _ContextualLogger(self.logger, self.prefix, {**self.dimensions, **added})


class LoggerConfigurator:
    """Configures loggers with support for dimensions and prefixes.

    The base context is injected into endpoints at the dependency injection level
    (see ``schoolbilling.api.deps.get_context``) and into the webhook processor for
    every gateway event it handles.

    These dimensions describe where a log line came from, such as request_id,
    requester_id, school_id, gateway_event_id or gateway_event_type.

    Configuration:
    -------------
    Uses settings from schoolbilling.core.config:
    - Text format when LOCAL_DEVELOPMENT=True, JSON format otherwise
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Example:
    -------
    ```python
    logger = LoggerConfigurator.configure_logger(__name__, prefix="[webhook] ")
    logger.with_context(gateway_event_id="evt_123", school_id="...").info("Renewed")
    ```

    """

    @staticmethod
    def configure_logger(
        name: str,
        prefix: str = "",
        dimensions: Optional[dict] = None,
    ) -> _ContextualLogger:
        """Configure and return a logger with the given name and initial context.

        Args:
        ----
            name (str): Logger name (typically __name__)
            prefix (str): Initial prefix for log messages
            dimensions (Optional[dict]): Initial custom dimensions

        Returns:
        -------
            _ContextualLogger: Configured logger with context support

        """
        logger = logging.getLogger(name)

        # Import settings here to avoid circular imports
        from schoolbilling.core.config import settings

        logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

        if not getattr(logger, "_schoolbilling_configured", False):
            logger.handlers.clear()
            stream_handler = logging.StreamHandler(sys.stdout)
            if settings.LOCAL_DEVELOPMENT:
                stream_handler.setFormatter(
                    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
                )
            else:
                stream_handler.setFormatter(JSONFormatter())
            logger.addHandler(stream_handler)
            logger.propagate = False
            logger._schoolbilling_configured = True

        return _ContextualLogger(logger, prefix, dimensions)


ContextualLogger = _ContextualLogger

# Default logger instance
logger = LoggerConfigurator.configure_logger(__name__)
