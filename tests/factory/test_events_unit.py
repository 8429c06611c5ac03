"""Unit tests for pipeline events and emitters."""

import asyncio
import logging

import pytest

from src.factory.events import EventType, LoggingEventEmitter, PipelineEvent
from src.factory.state import PipelineStage


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TestPipelineEvent:
    def test_to_log_dict(self):
        event = PipelineEvent(
            event_type=EventType.STAGE_SKIPPED,
            stage=PipelineStage.TEST,
            details={"reason": "--skip-tests"},
        )

        data = event.to_log_dict()

        assert data["event_type"] == "stage_skipped"
        assert data["stage"] == "test"
        assert data["reason"] == "--skip-tests"
        assert "timestamp" in data

    def test_run_level_event_has_no_stage(self):
        data = PipelineEvent(event_type=EventType.RUN_COMPLETED).to_log_dict()

        assert data["stage"] is None


class TestLoggingEventEmitter:
    @pytest.mark.parametrize(
        "event_type, level",
        [
            (EventType.STAGE_STARTED, logging.INFO),
            (EventType.STAGE_FAILED, logging.ERROR),
            (EventType.RUN_ABORTED, logging.ERROR),
            (EventType.RUN_INTERRUPTED, logging.WARNING),
        ],
    )
    def test_log_levels(self, caplog, event_type, level):
        emitter = LoggingEventEmitter("factory.test.events")

        with caplog.at_level(logging.DEBUG, logger="factory.test.events"):
            run_async(emitter.emit(PipelineEvent(event_type=event_type)))

        assert caplog.records[-1].levelno == level
        assert event_type.value in caplog.records[-1].getMessage()

    def test_details_attached_as_extra(self, caplog):
        emitter = LoggingEventEmitter("factory.test.events")
        event = PipelineEvent(
            event_type=EventType.STAGE_COMPLETED,
            stage=PipelineStage.REVIEW,
            details={"iteration": 2},
        )

        with caplog.at_level(logging.INFO, logger="factory.test.events"):
            run_async(emitter.emit(event))

        record = caplog.records[-1]
        assert record.iteration == 2
        assert "(review)" in record.getMessage()
