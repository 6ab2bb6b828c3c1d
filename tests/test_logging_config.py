import logging

import pytest

from crm.core.logging_config import (
    TRACE_LEVEL,
    LogLevelFilter,
    log_timing,
    parse_allowed_levels,
    resolve_level,
)


def test_parse_allowed_levels_defaults():
    assert parse_allowed_levels(None) == {
        TRACE_LEVEL,
        logging.INFO,
        logging.WARNING,
        logging.ERROR,
    }


def test_parse_allowed_levels_ignores_unknown_names():
    assert parse_allowed_levels(" error, bogus ,Info") == {logging.ERROR, logging.INFO}


@pytest.mark.parametrize(
    "name, expected",
    [("trace", TRACE_LEVEL), ("DEBUG", logging.DEBUG), (None, logging.INFO), ("nope", logging.INFO)],
)
def test_resolve_level(name, expected):
    assert resolve_level(name) == expected


def test_level_filter():
    level_filter = LogLevelFilter({logging.ERROR})
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert level_filter.filter(record) is False
    record.levelno = logging.ERROR
    assert level_filter.filter(record) is True


class _Store:
    @log_timing("TOKEN_STORE")
    def put(self, token):
        return "stored"

    @log_timing("TOKEN_STORE")
    def fail(self, token):
        raise RuntimeError("boom")


def test_log_timing_never_logs_arguments(caplog):
    caplog.set_level(TRACE_LEVEL)

    assert _Store().put("secret-token-value") == "stored"

    assert "TOKEN_STORE | _Store.put" in caplog.text
    assert "secret-token-value" not in caplog.text


def test_log_timing_reraises_and_logs_error(caplog):
    caplog.set_level(TRACE_LEVEL)

    with pytest.raises(RuntimeError):
        _Store().fail("secret-token-value")

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert errors and "boom" in errors[0].getMessage()
    assert "secret-token-value" not in caplog.text
