"""Notification delivery schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class NotificationStatus(str, Enum):
    """Notification delivery status."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    DROPPED = "DROPPED"  # Outbound queue was full


class NotificationRecord(BaseModel):
    """Delivery record of one published message."""

    record_id: str = Field(..., description="Unique record ID")
    channel: str = Field(..., description="Delivery channel")
    status: NotificationStatus = Field(..., description="Delivery status")
    preview: str = Field(default="", description="First line of the message")
    created_at: datetime = Field(..., description="Publish time")
    sent_at: datetime | None = Field(default=None, description="Delivery time")
    error: str | None = Field(default=None, description="Failure reason")


class DispatcherStats(BaseModel):
    """Counters of the notification dispatcher."""

    channel: str
    queued: int = 0
    sent: int = 0
    failed: int = 0
    dropped: int = 0
    queue_size: int = 0
    max_queue_size: int = 0
