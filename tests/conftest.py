"""Shared fixtures: in-memory Redis double, temp SQLite store, temp storage."""

from __future__ import annotations

import fnmatch
import io
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import pytest
from PIL import Image
from redis.exceptions import ConnectionError as RedisConnectionError

from pixelqueue.core.config import Settings
from pixelqueue.core.container import Container
from pixelqueue.models.job import Job


class FakeRedis:
    """
    Just enough of the redis-py list API for the dispatch queue.

    Blocking pops return immediately when the list is empty and call
    ``on_empty`` so tests can stop a consumer loop.
    """

    def __init__(self):
        self.lists: Dict[str, deque] = {}
        self.down = False
        self.on_empty: Optional[Callable[[], None]] = None
        self.closed = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("Connection refused")

    def _list(self, name: str) -> deque:
        return self.lists.setdefault(name, deque())

    def _empty(self):
        if self.on_empty:
            self.on_empty()
        return None

    def rpush(self, name, *values):
        self._check()
        self._list(name).extend(values)
        return len(self._list(name))

    def blpop(self, keys, timeout=0):
        self._check()
        for key in keys:
            if self.lists.get(key):
                return key, self.lists[key].popleft()
        return self._empty()

    def lmove(self, first, second, src="LEFT", dest="RIGHT"):
        self._check()
        source = self.lists.get(first)
        if not source:
            return None
        value = source.popleft() if src == "LEFT" else source.pop()
        target = self._list(second)
        if dest == "LEFT":
            target.appendleft(value)
        else:
            target.append(value)
        return value

    def blmove(self, first, second, timeout, src="LEFT", dest="RIGHT"):
        value = self.lmove(first, second, src, dest)
        if value is None:
            return self._empty()
        return value

    def lrem(self, name, count, value):
        self._check()
        items = self.lists.get(name)
        if not items:
            return 0
        try:
            items.remove(value)
        except ValueError:
            return 0
        return 1

    def lrange(self, name, start, end):
        self._check()
        items = list(self.lists.get(name, ()))
        return items[start:] if end == -1 else items[start:end + 1]

    def llen(self, name):
        self._check()
        return len(self.lists.get(name, ()))

    def scan_iter(self, match=None):
        self._check()
        for key in list(self.lists):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def ping(self):
        self._check()
        return True

    def info(self, section=None):
        self._check()
        return {"redis_version": "7.2.0-fake"}

    def close(self):
        self.closed = True


def make_image_bytes(size=(400, 300), fmt="PNG", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def age_job(container: Container, job_id: str, seconds: int) -> None:
    """Pretend a job's last transition happened ``seconds`` ago."""
    then = datetime.utcnow() - timedelta(seconds=seconds)
    with container.database.session_scope() as session:
        job = session.get(Job, job_id)
        job.created_at = then
        job.updated_at = then


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'jobs.db'}",
        LOCAL_STORAGE_PATH=str(tmp_path / "storage"),
        QUEUE_NAME="test_queue",
        QUEUE_POLL_TIMEOUT=1,
        QUEUE_RETRY_BASE_DELAY=0.01,
        QUEUE_RETRY_MAX_DELAY=0.05,
        STORE_RETRY_DELAY=0.0,
    )


@pytest.fixture()
def container(settings, fake_redis) -> Container:
    c = Container.build(settings, redis_client=fake_redis)
    yield c
    c.close()


@pytest.fixture()
def png_bytes() -> bytes:
    return make_image_bytes()
