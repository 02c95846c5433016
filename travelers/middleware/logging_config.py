"""
Structured logging for the traveler service.

Records about a traveler or binder carry their ids through ``extra=``:

    logger.info("Traveler status changed id=%s", tid,
                extra={"traveler_id": tid, "from_status": 1, "to_status": 1.5})

- Development: one coloured line per record, with the traveler / binder ids
  and any status transition appended as ``[traveler=... 1 -> 1.5]``
- Production: one JSON object per record, context keys as top-level fields
- LOG_LEVEL env variable overrides the level (DEBUG in dev, INFO in prod)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Keys the services pass through ``extra=``
CONTEXT_KEYS = (
    "traveler_id",
    "binder_id",
    "from_status",
    "to_status",
    "changed_fields",
)


def context_fields(record: logging.LogRecord) -> dict:
    """The traveler / binder context attached to ``record``, without unset keys."""
    fields = {}
    for key in CONTEXT_KEYS:
        val = getattr(record, key, None)
        if val is not None:
            fields[key] = val
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        log_entry.update(context_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    @staticmethod
    def context_suffix(fields: dict) -> str:
        """Render context as `` [traveler=ab12 binder=cd34 1 -> 1.5]``."""
        parts = []
        if "traveler_id" in fields:
            parts.append(f"traveler={fields['traveler_id']}")
        if "binder_id" in fields:
            parts.append(f"binder={fields['binder_id']}")
        if "from_status" in fields or "to_status" in fields:
            parts.append(f"{fields.get('from_status', '?')} -> {fields.get('to_status', '?')}")
        if "changed_fields" in fields:
            parts.append("changed=" + ",".join(fields["changed_fields"]))
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        suffix = self.context_suffix(context_fields(record))
        base = (
            f"{color}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """Install the service's stderr handler on the root logger.

    Testing and development get ReadableFormatter, production JSONFormatter.
    Calling it again (one call per create_app) replaces only the handler it
    installed earlier.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        if getattr(h, "_travelers_handler", False):
            root.removeHandler(h)
    handler = logging.StreamHandler(sys.stderr)
    handler._travelers_handler = True
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    # SQL echo and request lines drown out the cascade logs
    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
