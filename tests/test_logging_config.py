import json
import logging

import pytest

from cronmetrics.config import LoggingConfig
from cronmetrics.logging_config import JsonFormatter, setup_logging, trace_id_var


def make_record(msg="hello", **extra):
    record = logging.LogRecord("cronmetrics.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    entry = json.loads(JsonFormatter().format(make_record(component="store", job_id=7)))
    assert entry["level"] == "INFO"
    assert entry["logger"] == "cronmetrics.test"
    assert entry["msg"] == "hello"
    assert entry["component"] == "store"
    assert entry["job_id"] == 7
    assert entry["timestamp"].endswith("Z")


def test_json_formatter_trace_id():
    token = trace_id_var.set("trace-abc")
    try:
        entry = json.loads(JsonFormatter().format(make_record()))
    finally:
        trace_id_var.reset(token)
    assert entry["trace_id"] == "trace-abc"
    assert entry["component"] == "api"


@pytest.fixture
def restore_logging():
    yield
    for name in ("cronmetrics", "uvicorn", "uvicorn.access", None):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.WARNING if name is None else logging.NOTSET)


def test_setup_logging_levels(tmp_path, restore_logging):
    log_file = tmp_path / "cronmetrics.log"
    config = setup_logging(LoggingConfig(level="warning", format="text", output=str(log_file)))
    assert config["loggers"]["cronmetrics"]["level"] == "WARNING"
    assert config["handlers"]["console"]["filename"] == str(log_file)

    logging.getLogger("cronmetrics.test").warning("written")
    logging.getLogger("cronmetrics.test").info("dropped")
    for handler in logging.getLogger("cronmetrics").handlers:
        handler.flush()
    content = log_file.read_text()
    assert "written" in content
    assert "dropped" not in content
