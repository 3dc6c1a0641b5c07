"""Tests for fetch run logging and timing."""

import logging

from graphfetch.errors import FetchError
from graphfetch.models import MessageDetail
from graphfetch.utils import FetchLogger, OperationTimer, timed_operation
from graphfetch.utils.fetch_logger import FetchLogContext


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestOperationTimer:
    """Tests for the stopwatch."""

    def test_running_then_stopped(self):
        clock = FakeClock()
        timer = OperationTimer(clock=clock)

        clock.now = 101.5
        assert timer.seconds == 1.5

        assert timer.stop() == 1.5
        clock.now = 200.0
        assert timer.seconds == 1.5

    def test_stop_is_idempotent(self):
        clock = FakeClock()
        timer = OperationTimer(clock=clock)
        clock.now = 102.0
        timer.stop()
        clock.now = 105.0

        assert timer.stop() == 2.0

    def test_timed_operation_logs_duration(self, caplog):
        log = logging.getLogger("graphfetch.test")

        with caplog.at_level(logging.DEBUG, logger="graphfetch.test"):
            with timed_operation("fan_out", log) as timer:
                pass

        record = caplog.records[-1]
        assert record.operation == "fan_out"
        assert record.duration_seconds == round(timer.seconds, 3)
        assert timer.seconds >= 0


class TestFetchLogger:
    """Tests for structured fetch event records."""

    def test_context_fields_skip_unset(self):
        ctx = FetchLogContext(run_id="r1", step="fetch", identifier="42")

        assert ctx.fields() == {
            "run_id": "r1",
            "step": "fetch",
            "identifier": "42",
            "status": "started",
            "retry_count": 0,
        }
        assert ctx.summary() == "fetch 42 started"

    def test_records_carry_run_fields(self, caplog):
        fetch_logger = FetchLogger("run-7")

        with caplog.at_level(logging.DEBUG, logger="graphfetch.run"):
            fetch_logger.on_throttled("1", attempt=1, delay=3)
            fetch_logger.on_success(MessageDetail(identifier="1", subject="Hi"))
            fetch_logger.on_failure("2", FetchError("2", "Not found", status_code=404))

        throttled, success, failure = caplog.records
        assert throttled.levelno == logging.WARNING
        assert throttled.delay_seconds == 3
        assert success.run_id == "run-7"
        assert success.retry_count == 1
        assert success.getMessage() == "fetch 1 success retries=1"
        assert failure.status_code == 404
        assert failure.error == "Not found"

    def test_metrics(self):
        fetch_logger = FetchLogger("run-8")
        fetch_logger.on_start("1")
        fetch_logger.on_response("1", 429)
        fetch_logger.on_throttled("1", attempt=1, delay=2)
        fetch_logger.on_response("1", 200)
        fetch_logger.on_success(MessageDetail(identifier="1", subject="Hi"))

        assert fetch_logger.get_metrics() == {
            "run_id": "run-8",
            "started": 1,
            "responses": 2,
            "retry_count": 1,
            "succeeded": 1,
            "failed": 0,
        }
