"""
Logging configuration for the KYC/KYB Compliance Lifecycle Engine.

Two channels: module loggers obtained through get_logger(__name__) for
operational messages, and the "kycb.audit" logger that records every
lifecycle state change (verification, match, case, action, EDD, report)
in one greppable shape via log_transition().
"""

import logging
import sys
from typing import Any, Optional, TextIO

from config import get_config


AUDIT_LOGGER_NAME = "kycb.audit"

_loggers: dict[str, logging.Logger] = {}
_initialized: bool = False


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
    audit_level: Optional[str] = None,
):
    """
    Initialize the logging system.

    Args:
        level: Log level for operational loggers (DEBUG, INFO, WARNING, ERROR)
        format_string: Format for log records (default from config)
        stream: Output stream (defaults to sys.stderr)
        audit_level: Level of the transition audit logger; defaults to level
    """
    global _initialized

    config = get_config()
    numeric_level = config.get_log_level() if level is None else getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or config.log_format))
    root.addHandler(handler)

    # The audit channel can be kept at INFO while the rest is quieter
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    audit.setLevel(getattr(logging, audit_level.upper(), numeric_level) if audit_level else numeric_level)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module, initializing logging on first use."""
    if not _initialized:
        setup_logging()

    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return _loggers[name]


def log_transition(
    entity_type: str,
    entity_id: Any,
    from_state: Optional[str],
    to_state: str,
    **context: Any,
):
    """
    Record a lifecycle state change on the audit logger.

    Creation is logged with from_state None (rendered NEW); context values
    that are None are omitted.
    """
    extra = " ".join(f"{k}={v}" for k, v in sorted(context.items()) if v is not None)
    get_logger(AUDIT_LOGGER_NAME).info(
        "transition %s=%s %s->%s%s",
        entity_type, entity_id, from_state or "NEW", to_state,
        f" {extra}" if extra else "",
    )
