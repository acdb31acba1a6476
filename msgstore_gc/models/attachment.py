"""Attachment metadata data model."""

from sqlmodel import Field, SQLModel


class AttachmentMetadata(SQLModel, table=True):
    """File attached to an envelope (many attachments per envelope)."""

    __tablename__ = "attachment_metadata"

    id: str = Field(primary_key=True)

    # Same id space as MessageMetadata.id, for requests and responses alike
    message_metadata_id: str
    file_name: str = Field(default="")
