from __future__ import annotations

import json
import logging

from imagine import logging_conf


def _record(msg: str, *args: object, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("imagine.test", logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_includes_job_context() -> None:
    formatter = logging_conf.JsonLogFormatter()
    logging_conf.set_job_context("job-1", 2)
    try:
        payload = json.loads(formatter.format(_record("attempt %d failed", 2)))
    finally:
        logging_conf.set_job_context(None, None)

    assert payload["message"] == "attempt 2 failed"
    assert payload["job_id"] == "job-1"
    assert payload["attempt"] == 2
    assert payload["level"] == "INFO"
    assert "extra" not in payload


def test_formatter_keeps_extra_fields() -> None:
    payload = json.loads(
        logging_conf.JsonLogFormatter().format(_record("generated", model="mj", n=4))
    )

    assert payload["extra"] == {"model": "mj", "n": 4}


def test_set_attempt_keeps_job_id() -> None:
    logging_conf.set_job_context("job-9", None)
    try:
        logging_conf.set_attempt(3)
        context = logging_conf.get_log_context()
    finally:
        logging_conf.set_job_context(None, None)

    assert context["job_id"] == "job-9"
    assert context["attempt"] == 3
