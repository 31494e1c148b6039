# Workers package - dispatch queue and job processing loop

from pixelqueue.workers.base import (
    backoff_delay,
    call_with_retry,
    with_retry,
)
from pixelqueue.workers.queue import DispatchQueue
from pixelqueue.workers.pipeline import WorkerPipeline
from pixelqueue.workers.sweeper import OrphanSweeper

__all__ = [
    # Base
    "backoff_delay",
    "call_with_retry",
    "with_retry",
    # Queue
    "DispatchQueue",
    # Processing
    "WorkerPipeline",
    "OrphanSweeper",
]
