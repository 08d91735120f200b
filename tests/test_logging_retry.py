"""Tests for run-scoped logging context and retry policies."""

import json
import logging
import threading

import pytest
import requests

from sequence_engine.core.error_recovery import (
    api_call_retry,
    execute_with_retry,
    storage_write_retry,
)
from sequence_engine.core.exceptions import RunStateError, StorageError
from sequence_engine.core.logging import (
    RunContextFilter,
    StructuredFormatter,
    clear_logging_context,
    get_logging_context,
    set_logging_context,
)


def _record(message="hello", **extra_fields):
    record = logging.LogRecord("sequence_engine.core.runner", logging.INFO, __file__, 1, message, None, None)
    if extra_fields:
        record.extra_fields = extra_fields
    return record


class TestLoggingContext:

    def teardown_method(self):
        clear_logging_context()

    def test_context_is_isolated_per_thread(self):
        set_logging_context(run_id="run-main")
        seen = {}

        def worker():
            set_logging_context(run_id="run-worker", node_id="n1")
            seen.update(get_logging_context())

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen == {"run_id": "run-worker", "node_id": "n1"}
        assert get_logging_context() == {"run_id": "run-main"}

    def test_structured_record_lifts_run_fields(self):
        set_logging_context(run_id="run-1", workflow_id="wf-1")
        record = _record(node_id="n1", attempt=2)

        RunContextFilter().filter(record)
        entry = json.loads(StructuredFormatter().format(record))

        assert entry["run_id"] == "run-1"
        assert entry["workflow_id"] == "wf-1"
        assert entry["node_id"] == "n1"
        assert entry["context"] == {"attempt": 2}
        assert entry["message"] == "hello"

    def test_clear_drops_fields(self):
        set_logging_context(run_id="run-1")
        clear_logging_context()
        assert get_logging_context() == {}


class TestRetry:

    def test_recoverable_storage_error_is_retried(self):
        delays = []
        calls = []

        def write():
            calls.append(1)
            if len(calls) < 3:
                raise StorageError("database is locked", operation="transition")
            return "ok"

        assert execute_with_retry(write, storage_write_retry(sleep=delays.append)) == "ok"
        assert len(calls) == 3
        assert len(delays) == 2
        assert all(0 < delay <= 1.0 for delay in delays)

    def test_gives_up_after_max_attempts(self):
        calls = []

        def write():
            calls.append(1)
            raise StorageError("database is locked", operation="transition")

        with pytest.raises(StorageError):
            execute_with_retry(write, storage_write_retry(sleep=lambda _: None))
        assert len(calls) == 3

    def test_refused_transition_is_not_retried(self):
        calls = []

        def transition():
            calls.append(1)
            raise RunStateError("Run run-1 is already SUCCEEDED")

        with pytest.raises(RunStateError):
            execute_with_retry(transition, storage_write_retry(sleep=lambda _: None))
        assert calls == [1]

    def test_api_call_retry_counts_extra_attempts(self):
        calls = []

        def call():
            calls.append(1)
            raise requests.ConnectionError("refused")

        with pytest.raises(requests.ConnectionError):
            execute_with_retry(call, api_call_retry(2, sleep=lambda _: None))
        assert len(calls) == 3

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            api_call_retry(-1)
