"""
Component Container
Builds every long-lived client and service once per process.

Lifecycle: build at startup, share the handles read-only, close on shutdown.
The API keeps its container on ``app.state``; each worker process builds its
own.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from redis import Redis

from pixelqueue.core.config import Settings
from pixelqueue.core.database import Database
from pixelqueue.core.redis import RedisManager
from pixelqueue.services.job_store import JobStore
from pixelqueue.services.retrieval import RetrievalService
from pixelqueue.services.storage import StorageService
from pixelqueue.services.submission import SubmissionService
from pixelqueue.services.transforms import TransformRegistry, default_registry
from pixelqueue.workers.queue import DispatchQueue

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    database: Database
    redis: RedisManager
    storage: StorageService
    registry: TransformRegistry
    job_store: JobStore
    queue: DispatchQueue
    submission: SubmissionService
    retrieval: RetrievalService

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        redis_client: Optional[Redis] = None,
        registry: Optional[TransformRegistry] = None,
        worker_name: str = "worker-main",
    ) -> "Container":
        """
        Wire up all components from settings.

        Args:
            settings: Application settings
            redis_client: Pre-built Redis client (tests)
            registry: Custom transform registry (defaults to the built-ins)
            worker_name: Names this process's processing list in reliable mode
        """
        database = Database(settings.DATABASE_URL)
        database.init_db()

        redis_manager = RedisManager(
            settings.REDIS_URL, client=redis_client, poll_timeout=settings.QUEUE_POLL_TIMEOUT
        )
        storage = StorageService(settings.LOCAL_STORAGE_PATH)
        registry = registry or default_registry()
        job_store = JobStore(database)

        queue = DispatchQueue(
            redis_manager.get_connection(),
            settings.QUEUE_NAME,
            reliable=settings.QUEUE_RELIABLE,
            worker_name=worker_name,
            poll_timeout=settings.QUEUE_POLL_TIMEOUT,
            retry_base_delay=settings.QUEUE_RETRY_BASE_DELAY,
            retry_max_delay=settings.QUEUE_RETRY_MAX_DELAY,
        )

        submission = SubmissionService(
            job_store, queue, storage, registry, max_upload_bytes=settings.MAX_UPLOAD_BYTES
        )
        retrieval = RetrievalService(job_store, storage)

        logger.info(f"Components ready (queue: {settings.QUEUE_NAME}, reliable: {settings.QUEUE_RELIABLE})")
        return cls(
            settings=settings,
            database=database,
            redis=redis_manager,
            storage=storage,
            registry=registry,
            job_store=job_store,
            queue=queue,
            submission=submission,
            retrieval=retrieval,
        )

    def close(self) -> None:
        """Release connections. Safe to call more than once."""
        self.redis.close()
        self.database.dispose()
