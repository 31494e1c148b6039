"""
Dispatch Queue
FIFO hand-off from the submission API to workers, backed by a Redis list.

Baseline mode: RPUSH / BLPOP. Pop is destructive and unacknowledged, so a
worker that dies between pop and finalize loses the message; the job record
then stays QUEUED or PROCESSING and shows up in ``JobStore.list_stale``.

Reliable mode (``reliable=True``): BLMOVE into a per-worker processing list,
``ack`` after the job is finalized, ``recover`` on worker start puts anything
left over back at the head of the queue. Delivery becomes at-least-once.
"""

import logging
import threading
import time
from typing import Callable, Optional, Set

from redis import Redis
from redis.exceptions import RedisError

from pixelqueue.core.exceptions import MessageFormatError, QueueError
from pixelqueue.schemas.queue import QueueMessage
from pixelqueue.workers.base import backoff_delay

logger = logging.getLogger(__name__)


class DispatchQueue:
    """
    Redis-list job queue.

    Features:
    - Non-blocking push
    - Blocking pop with bounded-backoff reconnects
    - Optional ack/recover for at-least-once delivery
    """

    def __init__(
        self,
        redis: Redis,
        name: str = "image_processing_queue",
        *,
        reliable: bool = False,
        worker_name: str = "worker-main",
        poll_timeout: int = 5,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.redis = redis
        self.name = name
        self.reliable = reliable
        self.worker_name = worker_name
        self.poll_timeout = poll_timeout
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._sleep = sleep

    @property
    def processing_name(self) -> str:
        """Processing list holding this worker's un-acked messages."""
        return f"{self.name}:processing:{self.worker_name}"

    @property
    def processing_pattern(self) -> str:
        return f"{self.name}:processing:*"

    def push(self, message: QueueMessage) -> None:
        """
        Append a message. Never waits for a consumer.

        Raises:
            QueueError: Redis unavailable
        """
        try:
            self.redis.rpush(self.name, message.to_wire())
        except RedisError as e:
            logger.error(f"Error pushing job {message.job_id} to queue {self.name}: {e}")
            raise QueueError(f"Failed to queue job {message.job_id}: {e}") from e

        logger.info(f"Enqueued job: {message.job_id} (action: {message.action})")

    def pop(self, stop_event: Optional[threading.Event] = None) -> Optional[QueueMessage]:
        """
        Block until a message is available and remove it.

        Connection errors are retried forever with exponential backoff capped
        at ``retry_max_delay``; they never reach the caller. Malformed
        messages are logged and dropped.

        Returns:
            The next message, or None once ``stop_event`` is set
        """
        attempt = 0

        while not (stop_event and stop_event.is_set()):
            try:
                raw = self._blocking_pop()
            except RedisError as e:
                delay = backoff_delay(attempt, self.retry_base_delay, self.retry_max_delay)
                attempt += 1
                logger.warning(f"Error receiving task: {e}. Retrying in {delay:.1f}s (attempt {attempt})")
                self._sleep(delay)
                continue

            attempt = 0
            if raw is None:
                continue

            try:
                return QueueMessage.from_wire(raw)
            except MessageFormatError as e:
                logger.error(f"Discarding message: {e}")
                if self.reliable:
                    self._remove_in_flight(raw)

        return None

    def _blocking_pop(self) -> Optional[str]:
        if self.reliable:
            return self.redis.blmove(
                self.name, self.processing_name, self.poll_timeout, "LEFT", "RIGHT"
            )
        item = self.redis.blpop([self.name], timeout=self.poll_timeout)
        return item[1] if item else None

    def ack(self, message: QueueMessage) -> None:
        """Drop a finalized message from the processing list (reliable mode only)."""
        if not self.reliable:
            return
        self._remove_in_flight(message.raw)

    def _remove_in_flight(self, raw: str) -> None:
        try:
            self.redis.lrem(self.processing_name, 1, raw)
        except RedisError as e:
            # The message will be redelivered by recover(); the store rejects duplicates
            logger.warning(f"Failed to ack message on {self.processing_name}: {e}")

    def recover(self) -> int:
        """
        Return this worker's un-acked messages to the head of the queue.

        Called on worker start, before the first pop.

        Returns:
            Number of messages moved back
        """
        if not self.reliable:
            return 0

        moved = 0
        try:
            # RIGHT -> LEFT keeps their original relative order at the head
            while self.redis.lmove(self.processing_name, self.name, "RIGHT", "LEFT") is not None:
                moved += 1
        except RedisError as e:
            raise QueueError(f"Failed to recover in-flight messages: {e}") from e

        if moved:
            logger.warning(f"[RECOVER] Returned {moved} un-acked message(s) from {self.processing_name}")
        return moved

    def depth(self) -> int:
        """Number of messages waiting in the queue."""
        try:
            return int(self.redis.llen(self.name))
        except RedisError as e:
            raise QueueError(f"Failed to read queue depth: {e}") from e

    def pending_job_ids(self) -> Set[str]:
        """Job ids referenced by queued or in-flight messages."""
        try:
            keys = [self.name]
            if self.reliable:
                keys.extend(self.redis.scan_iter(match=self.processing_pattern))
            raw_messages = []
            for key in keys:
                raw_messages.extend(self.redis.lrange(key, 0, -1))
        except RedisError as e:
            raise QueueError(f"Failed to read queue contents: {e}") from e

        job_ids = set()
        for raw in raw_messages:
            try:
                job_ids.add(QueueMessage.from_wire(raw).job_id)
            except MessageFormatError:
                continue
        return job_ids


__all__ = ["DispatchQueue"]
