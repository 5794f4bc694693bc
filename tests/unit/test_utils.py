"""Unit tests for cancellation, status collection, ids and logging helpers."""

import json
import logging
import threading
import time

import pytest

from template_agent.exceptions import OperationCancelled
from template_agent.utils.cancellation import CancellationToken, raise_if_cancelled
from template_agent.utils.ids import SequentialIdAllocator, uuid_allocator
from template_agent.utils.logging_config import JsonFormatter, pipeline_stage_logger
from template_agent.utils.status import StatusLog, null_status


class TestCancellationToken:
    def test_fresh_token_is_not_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        assert token.cancelled is False

    def test_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        with pytest.raises(OperationCancelled, match="first"):
            token.raise_if_cancelled()

    def test_wait_returns_after_timeout(self):
        token = CancellationToken()
        start = time.monotonic()
        token.wait(0.05)
        assert time.monotonic() - start >= 0.04

    def test_wait_aborts_when_cancelled_from_another_thread(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()

        start = time.monotonic()
        with pytest.raises(OperationCancelled):
            token.wait(5)
        assert time.monotonic() - start < 2

    def test_module_helper_accepts_none(self):
        raise_if_cancelled(None)


class TestStatusLog:
    def test_lines_from_many_threads_are_all_kept(self):
        status = StatusLog()

        def worker(n):
            for i in range(50):
                status(f"worker {n} line {i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = status.lines
        assert len(lines) == 400
        worker_three = [line for line in lines if line.startswith("worker 3 ")]
        assert worker_three == [f"worker 3 line {i}" for i in range(50)]

    def test_echo_receives_lines(self):
        seen = []
        status = StatusLog(echo=seen.append)
        status("Batch 1/1: Tafel")
        assert seen == ["Batch 1/1: Tafel"]

    def test_failing_echo_does_not_raise(self):
        def broken(message):
            raise OSError("closed")

        status = StatusLog(echo=broken)
        status("still recorded")

        assert status.lines == ["still recorded"]

    def test_clear(self):
        status = StatusLog()
        status("x")
        status.clear()
        assert status.lines == []

    def test_null_status(self):
        assert null_status("ignored") is None


class TestIdAllocators:
    def test_sequential_counts_per_prefix(self):
        allocate = SequentialIdAllocator()
        assert [allocate("M"), allocate("M"), allocate("T"), allocate("ENV")] == [
            "M1",
            "M2",
            "T1",
            "ENV1",
        ]

    def test_sequential_is_unique_across_threads(self):
        allocate = SequentialIdAllocator()
        ids = []
        lock = threading.Lock()

        def worker():
            for _ in range(100):
                new_id = allocate("M")
                with lock:
                    ids.append(new_id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(ids)) == 400

    def test_uuid_allocator(self):
        first, second = uuid_allocator("S"), uuid_allocator("S")
        assert first.startswith("S")
        assert len(first) == 13
        assert first != second


class TestLogging:
    def test_json_formatter_includes_extra(self):
        record = logging.LogRecord(
            "template_agent.test", logging.INFO, __file__, 1, "hello %s", ("WLO",), None
        )
        record.stage = "wlo_enrichment"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "hello WLO"
        assert data["level"] == "INFO"
        assert data["extra"] == {"stage": "wlo_enrichment"}

    def test_stage_logger_records_completion(self, caplog):
        with caplog.at_level(logging.INFO, logger="template_agent.demo"):
            with pipeline_stage_logger("demo", kind="material") as log:
                log.info("inside")

        statuses = [getattr(r, "status", None) for r in caplog.records]
        assert statuses[0] == "started"
        assert statuses[-1] == "completed"
        assert caplog.records[-1].kind == "material"

    def test_stage_logger_marks_cancellation(self, caplog):
        with caplog.at_level(logging.INFO, logger="template_agent.demo"):
            with pytest.raises(OperationCancelled):
                with pipeline_stage_logger("demo"):
                    raise OperationCancelled()

        assert caplog.records[-1].status == "cancelled"
        assert caplog.records[-1].levelno == logging.WARNING

    def test_stage_logger_reraises_failures(self, caplog):
        with caplog.at_level(logging.INFO, logger="template_agent.demo"):
            with pytest.raises(ValueError):
                with pipeline_stage_logger("demo"):
                    raise ValueError("boom")

        assert caplog.records[-1].status == "failed"
        assert caplog.records[-1].error == "boom"
