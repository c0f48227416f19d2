"""Logging setup for the reconciler.

Log lines go to stderr so that tables and exported data written to stdout
stay clean. ``--verbose`` and ``ONTOP_LOG_LEVEL`` pick the level;
``ONTOP_LOG_JSON=true`` switches to one JSON object per line.

Security Impact:
    - Modules log identifiers and counts, never names or dates of birth
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict


class StructuredFormatter(logging.Formatter):
    """Renders each record as a single JSON line.

    ``extra={"platform": ...}`` on an import warning is carried through as a
    top-level ``platform`` key, and an ``extra_fields`` dict is merged in.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if hasattr(record, "platform"):
            log_data["platform"] = record.platform

        return json.dumps(log_data)


def setup_logging(use_json: bool = False, log_level: str = "INFO") -> None:
    """Point the root logger at stderr.

    Calling it again swaps the handler it installed before; handlers that
    other code attached (pytest's capture, for one) are left in place.

    Parameters:
        use_json: Emit JSON lines instead of plain text
        log_level: Level name; unknown names fall back to INFO
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for existing in list(root_logger.handlers):
        if getattr(existing, "_ontop_handler", False):
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler._ontop_handler = True

    if use_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
