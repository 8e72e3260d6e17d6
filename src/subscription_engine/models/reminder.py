# Файл: subscription_engine/models/reminder.py

from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ReminderCreate(BaseModel):
    object_client_id: int
    remind_at: datetime
    message: str = Field(..., max_length=4000)

    @field_validator("message")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class ReminderInDB(BaseModel):
    id: int
    object_client_id: int
    user_id: int
    remind_at: datetime
    message: str
    is_sent: bool
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
