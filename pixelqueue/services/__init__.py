# Services package - job store, storage, transforms, submission and retrieval
from pixelqueue.services.job_store import JobStore
from pixelqueue.services.storage import StorageService
from pixelqueue.services.transforms import TransformRegistry, Transform, default_registry
from pixelqueue.services.submission import SubmissionService
from pixelqueue.services.retrieval import RetrievalService, Artifact

__all__ = [
    "JobStore",
    "StorageService",
    "TransformRegistry",
    "Transform",
    "default_registry",
    "SubmissionService",
    "RetrievalService",
    "Artifact",
]
