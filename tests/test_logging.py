import json
import logging

from paciente_api.logging_utils import (
    JSONLogFormatter,
    RequestContextFilter,
    bind_request_id,
    reset_request_id,
)


def _record(msg="patient %s", args=("created",)):
    return logging.LogRecord("paciente_api.test", logging.INFO, __file__, 1, msg, args, None)


def test_formatter_includes_context_and_extra():
    record = _record()
    record.request_id = "req-1"
    record.patient_id = 7

    entry = json.loads(JSONLogFormatter().format(record))

    assert entry["message"] == "patient created"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "paciente_api.test"
    assert entry["request_id"] == "req-1"
    assert entry["patient_id"] == 7
    assert "args" not in entry


def test_filter_stamps_bound_request_id():
    token = bind_request_id("req-2")
    try:
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert record.request_id == "req-2"
    finally:
        reset_request_id(token)

    record = _record()
    RequestContextFilter().filter(record)
    assert record.request_id is None
