"""
Queue Message Schema
The reference a worker needs to process a job without reading the store first.

Serialized as a JSON object with named fields, so any character is safe
inside ``params``. The job store record, not this message, is authoritative.
"""

from typing import Optional
from pydantic import BaseModel, Field, PrivateAttr, ValidationError as PydanticValidationError

from pixelqueue.core.exceptions import MessageFormatError


class QueueMessage(BaseModel):
    """Message pushed to the dispatch queue for each submitted job."""
    job_id: str = Field(..., min_length=1)
    input_path: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    params: str = ""

    # Exact wire text as popped; needed to ack in reliable mode
    _raw: Optional[str] = PrivateAttr(default=None)

    def to_wire(self) -> str:
        """Serialize to the JSON string stored in Redis."""
        return self.model_dump_json()

    @classmethod
    def from_wire(cls, raw) -> "QueueMessage":
        """Parse a popped message, raising MessageFormatError if malformed."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            message = cls.model_validate_json(raw)
        except PydanticValidationError as e:
            raise MessageFormatError(f"Malformed queue message: {raw!r} ({e.error_count()} errors)") from e
        message._raw = raw
        return message

    @property
    def raw(self) -> str:
        return self._raw if self._raw is not None else self.to_wire()
