"""Unit tests for the worker retry helpers."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from pixelqueue.core.exceptions import MessageFormatError, QueueError, StoreError, ValidationError
from pixelqueue.workers.base import backoff_delay, call_with_retry, with_retry


def test_backoff_doubles_and_caps() -> None:
    assert [backoff_delay(n, 0.5) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]
    assert [backoff_delay(n, 1.0, max_delay=3.0) for n in range(4)] == [1.0, 2.0, 3.0, 3.0]


def test_retries_until_success() -> None:
    func = Mock(side_effect=[StoreError("locked"), StoreError("locked"), "ok"])
    sleeps = []

    assert call_with_retry(func, max_retries=3, retry_delay=0.1, sleep=sleeps.append) == "ok"
    assert func.call_count == 3
    assert sleeps == [0.1, 0.2]


def test_gives_up_after_max_retries() -> None:
    func = Mock(side_effect=QueueError("down"))

    with pytest.raises(QueueError):
        call_with_retry(func, max_retries=2, retry_delay=0, sleep=lambda _: None)
    assert func.call_count == 3


def test_non_retryable_subclass_raises_immediately() -> None:
    func = Mock(side_effect=MessageFormatError("garbage"))

    with pytest.raises(MessageFormatError):
        call_with_retry(func, max_retries=5, sleep=lambda _: None)
    assert func.call_count == 1


def test_unlisted_exceptions_are_not_retried() -> None:
    func = Mock(side_effect=ValidationError("bad"))

    with pytest.raises(ValidationError):
        call_with_retry(func, max_retries=5, sleep=lambda _: None)
    assert func.call_count == 1


def test_decorator_passes_arguments_through() -> None:
    attempts = []

    @with_retry(max_retries=2, retry_delay=0)
    def connect(host, port=6379):
        attempts.append((host, port))
        if len(attempts) < 2:
            raise QueueError("refused")
        return f"{host}:{port}"

    assert connect("redis", port=6380) == "redis:6380"
    assert attempts == [("redis", 6380), ("redis", 6380)]
