"""SQLModel data models of the message store."""

from msgstore_gc.models.attachment import AttachmentMetadata
from msgstore_gc.models.message import (
    ContentMode,
    MessageContent,
    MessageMetadata,
    MessageState,
    MessageType,
)

__all__ = [
    "AttachmentMetadata",
    "ContentMode",
    "MessageContent",
    "MessageMetadata",
    "MessageState",
    "MessageType",
]
