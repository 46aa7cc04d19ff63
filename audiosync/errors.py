"""Structured error logging — JSON to errors.log, plus wire-level exceptions."""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR

logger = logging.getLogger(__name__)


class MalformedRequest(ValueError):
    """Wire input that cannot be turned into a command (bad JSON, wrong shape)."""


def record_error(
    stage: str,
    raw: str = "",
    peer: Optional[str] = None,
    payload: Optional[dict] = None,
):
    """Append one JSON line to errors.log and log the failure."""
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "peer": peer,
        "payload": payload,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry)
    logger.error("Error at %s: %s", stage, raw)


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
