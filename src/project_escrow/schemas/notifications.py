"""Pydantic schemas for the notification inbox and device registration."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    title: str
    message: str
    escrow_project_id: uuid.UUID | None
    read: bool
    read_at: datetime | None
    created_at: datetime


class RegisterDeviceRequest(BaseModel):
    """Push token of one device. Unknown platforms are stored as web."""

    token: str = Field(..., max_length=512)
    platform: str | None = Field(
        default=None, description="android, ios, web, windows or mac", examples=["android"]
    )


class UnregisterDeviceRequest(BaseModel):
    token: str = Field(..., max_length=512)


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    platform: str
    created_at: datetime
    updated_at: datetime
