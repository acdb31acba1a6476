"""Message envelope data models.

One envelope is stored as three rows sharing the same id:
- MessageMetadata: envelope header (type, conversation link)
- MessageContent: payload and its outcome classification (mode)
- MessageState: delivery/processing state

Rows are written by the messaging gateway. This project only deletes them.
"""

from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class MessageType(str, Enum):
    """Direction of an envelope within a conversation."""

    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"


class ContentMode(str, Enum):
    """Outcome classification of a message payload."""

    MESSAGE = "MESSAGE"  # Final business answer
    REJECT = "REJECT"  # Rejected by the recipient
    ERROR = "ERROR"  # Processing error
    STATUS = "STATUS"  # Intermediate progress update


class MessageMetadata(SQLModel, table=True):
    """Envelope header."""

    __tablename__ = "message_metadata"

    id: str = Field(primary_key=True)
    message_type: str

    # RESPONSE rows: id of the REQUEST they answer (not enforced by the store)
    reference_id: Optional[str] = Field(default=None)


class MessageContent(SQLModel, table=True):
    """Envelope payload, 1:1 with MessageMetadata by id."""

    __tablename__ = "message_content"

    id: str = Field(primary_key=True)
    mode: str
    content: Optional[str] = Field(default=None)


class MessageState(SQLModel, table=True):
    """Envelope processing state, 1:1 with MessageMetadata by id."""

    __tablename__ = "message_state"

    id: str = Field(primary_key=True)
    state: str = Field(default="")
