"""Pydantic schemas for conversations, messages and WebSocket events.

Persisted shapes:
    - Message: a stored message with its canonical id and timestamp
    - Conversation: the per-pair thread returned by fetch

Input shapes:
    - MessageDraft: what the Delivery Engine hands to the store
    - *Event models: inbound WebSocket payloads, validated per ``type``
"""
import time
import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MessageKind(str, Enum):
    """Type of a stored message.

    Attributes:
        TEXT: Plain text message.
        FILE: File attachment, optionally with a caption in ``body``.
    """
    TEXT = "text"
    FILE = "file"


class FileDescriptor(BaseModel):
    """Reference to an uploaded file. Upload storage itself lives elsewhere."""
    url: str = Field(..., min_length=1, description="Download URL")
    name: str = Field(default="", description="Original filename")
    size: int = Field(default=0, ge=0, description="File size in bytes")


class MessageDraft(BaseModel):
    """A message before it is persisted.

    ``id`` and ``timestamp`` are optional; the store assigns them when absent.
    A draft that carries an id already stored for the same conversation is
    treated as a re-delivery of that message.
    """
    sender: str = Field(..., description="Identity of the sender")
    body: Optional[str] = Field(default=None, description="Text content or caption")
    file: Optional[FileDescriptor] = Field(default=None, description="Attached file")
    id: Optional[str] = Field(default=None, description="Client-supplied message id")
    timestamp: Optional[float] = Field(default=None, description="Seconds since epoch")

    @property
    def has_content(self) -> bool:
        return bool(self.body and self.body.strip()) or self.file is not None

    @property
    def kind(self) -> MessageKind:
        return MessageKind.FILE if self.file is not None else MessageKind.TEXT


class Message(BaseModel):
    """A persisted message, as broadcast to clients and returned by fetch."""
    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique message ID"
    )
    sender: str = Field(..., description="Identity of the sender")
    body: Optional[str] = Field(default=None, description="Text content or caption")
    file: Optional[FileDescriptor] = Field(default=None, description="Attached file")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="Message type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Timestamp in seconds since epoch"
    )


class Conversation(BaseModel):
    """The message thread between two identities.

    A pair that never exchanged a message is returned as a placeholder with
    no messages and ``lastActivity`` set to None.
    """
    participants: List[str] = Field(..., description="Sorted participant pair")
    roomKey: str = Field(..., description="Pairwise room key")
    messages: List[Message] = Field(default_factory=list)
    lastActivity: Optional[float] = Field(default=None, description="Last append time")


# =============================================================================
# Inbound WebSocket events
# =============================================================================


class AnnouncePresenceEvent(BaseModel):
    identity: str = ""
    displayName: str = ""


class JoinConversationEvent(BaseModel):
    identityA: str = Field(..., min_length=1)
    identityB: str = Field(..., min_length=1)


class SendMessageEvent(BaseModel):
    sender: str = ""
    recipient: str = ""
    body: Optional[str] = None
    fileDescriptor: Optional[FileDescriptor] = None
    messageId: Optional[str] = None


class DeleteMessageEvent(BaseModel):
    messageId: str = Field(..., min_length=1)
    requesterIdentity: str = Field(..., min_length=1)
