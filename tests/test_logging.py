"""JSON log output, LogContext scoping and the engine's log events."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from workflow_kernel.domain.types import ScreeningStatus
from workflow_kernel.exceptions import InvalidStateError, RegressingProgressError
from workflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


class JsonSink:
    """StreamHandler target whose lines decode back into dicts."""

    def __init__(self):
        self.buffer = StringIO()
        self.handler = logging.StreamHandler(self.buffer)
        self.handler.setFormatter(StructuredFormatter())

    def records(self) -> list[dict]:
        return [json.loads(raw) for raw in self.buffer.getvalue().splitlines() if raw]

    def first(self) -> dict:
        return self.records()[0]

    def named(self, message: str) -> dict:
        return next(r for r in self.records() if r["message"] == message)


@pytest.fixture
def sink():
    reset_logging()
    LogContext.clear()
    sink = JsonSink()
    yield sink
    LogContext.clear()
    reset_logging()


@pytest.fixture
def info_sink(sink):
    configure_logging(handler=sink.handler)
    return sink


class TestFormatter:
    def test_base_fields(self, info_sink):
        get_logger("probe").info("hello")

        line = info_sink.first()
        assert line["message"] == "hello"
        assert line["level"] == "INFO"
        assert line["logger"] == "workflow_kernel.probe"
        assert line["ts"].endswith("+00:00")

    def test_extras_become_top_level_keys(self, info_sink):
        get_logger("probe").info("saved", extra={"progress_percent": 40, "event": "save"})

        line = info_sink.first()
        assert (line["progress_percent"], line["event"]) == (40, "save")

    def test_context_merged_into_every_line(self, info_sink):
        LogContext.set(correlation_id="abc-123", producer="ingestion")
        log = get_logger("probe")
        log.info("one")
        log.info("two")

        for line in info_sink.records():
            assert line["correlation_id"] == "abc-123"
            assert line["producer"] == "ingestion"

    def test_workflow_error_attributes_flattened(self, info_sink):
        try:
            raise RegressingProgressError("scr-1", 50, 40)
        except RegressingProgressError:
            get_logger("probe").error("progress_error", exc_info=True)

        line = info_sink.first()
        assert line["exc_type"] == "RegressingProgressError"
        assert line["exc_code"] == "REGRESSING_PROGRESS"
        assert (line["exc_current"], line["exc_requested"]) == (50, 40)
        assert "RegressingProgressError" in line["traceback"]

    def test_uuid_and_enum_values_serialized(self, info_sink):
        screening_id = uuid4()
        get_logger("probe").info(
            "values", extra={"screening_id": screening_id, "status": ScreeningStatus.COMPLETED},
        )

        line = info_sink.first()
        assert line["screening_id"] == str(screening_id)
        assert line["status"] == "completed"

    def test_level_threshold(self, info_sink):
        log = get_logger("probe")
        log.debug("hidden")
        log.info("shown")
        log.warning("also_shown")

        assert [r["message"] for r in info_sink.records()] == ["shown", "also_shown"]


class TestLogContext:
    def setup_method(self):
        LogContext.clear()

    def teardown_method(self):
        LogContext.clear()

    def test_set_accumulates(self):
        LogContext.set(correlation_id="c")
        LogContext.set(entity_id="e")
        assert LogContext.get_all() == {"correlation_id": "c", "entity_id": "e"}

    def test_none_values_skipped(self):
        LogContext.set(correlation_id="c", actor_id=None)
        assert LogContext.get_all() == {"correlation_id": "c"}

    def test_bind_is_scoped(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", actor_id="a-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "actor_id": "a-1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(producer="case"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unrecognised_fields_dropped(self):
        with LogContext.bind(trace_id="t"):
            assert LogContext.get_all() == {}


class TestConfiguration:
    def test_second_configure_call_has_no_effect(self, sink):
        configure_logging(handler=sink.handler)
        configure_logging(handler=JsonSink().handler)

        assert logging.getLogger("workflow_kernel").handlers == [sink.handler]

    def test_logger_namespace(self):
        assert get_logger("services.screening").name == "workflow_kernel.services.screening"


class TestEngineEvents:
    def test_transition_carries_operation_context(self, sink, engine, test_actor_id):
        configure_logging(handler=sink.handler, level=logging.DEBUG)
        screening = engine.start_screening("child-1", "asq-3")

        line = sink.named("screening_transition")
        assert line["screening_id"] == str(screening.screening_id)
        assert line["to_state"] == "in_progress"
        assert line["actor_id"] == str(test_actor_id)
        assert line["producer"] == "screening"
        assert line["correlation_id"]

    def test_rejected_transition_is_a_warning(self, info_sink, engine):
        screening = engine.start_screening("child-1", "asq-3")
        engine.complete_screening(screening.screening_id)
        with pytest.raises(InvalidStateError):
            engine.abandon_screening(screening.screening_id)

        line = info_sink.named("transition_rejected")
        assert line["level"] == "WARNING"
        assert line["error_code"] == "INVALID_STATE"
        assert line["event"] == "abandon"
