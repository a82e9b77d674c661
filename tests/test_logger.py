"""Tests for logging setup and the transition audit channel."""

import io
import logging

from logger import AUDIT_LOGGER_NAME, get_logger, log_transition, setup_logging


def test_transition_line_shape():
    stream = io.StringIO()
    setup_logging(level="INFO", format_string="%(name)s %(message)s", stream=stream)

    log_transition("ComplianceCase", 7, "OPEN", "IN_REVIEW", agent="officer", reason=None)
    log_transition("AmlMatch", 3, None, "PENDING", screening=1)

    lines = stream.getvalue().splitlines()
    assert lines == [
        "kycb.audit transition ComplianceCase=7 OPEN->IN_REVIEW agent=officer",
        "kycb.audit transition AmlMatch=3 NEW->PENDING screening=1",
    ]


def test_audit_level_independent_of_root():
    stream = io.StringIO()
    setup_logging(level="WARNING", format_string="%(message)s", stream=stream, audit_level="INFO")

    get_logger("engine").info("hidden")
    log_transition("RegulatoryReporting", 1, "DRAFT", "SUBMITTED")

    assert stream.getvalue().splitlines() == ["transition RegulatoryReporting=1 DRAFT->SUBMITTED"]
    assert logging.getLogger(AUDIT_LOGGER_NAME).level == logging.INFO
