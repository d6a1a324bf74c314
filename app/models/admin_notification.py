from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AdminNotification(Document):
    title: str
    message: str
    type: str
    priority: str = "normal"  # normal, high, critical
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "admin_notifications"
        indexes = [[("type", 1), ("created_at", -1)]]
