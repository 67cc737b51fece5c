"""Pydantic API schemas."""

from project_escrow.schemas.escrow import (
    AcceptOfferRequest,
    CreateOfferRequest,
    HealthResponse,
    Milestone,
    ProgressUpdateRequest,
    ProjectResponse,
    ProjectStatusResponse,
    RateRequest,
    TransactionResponse,
)
from project_escrow.schemas.notifications import (
    DeviceResponse,
    NotificationResponse,
    RegisterDeviceRequest,
    UnregisterDeviceRequest,
)

__all__ = [
    "AcceptOfferRequest",
    "CreateOfferRequest",
    "HealthResponse",
    "Milestone",
    "ProgressUpdateRequest",
    "ProjectResponse",
    "ProjectStatusResponse",
    "RateRequest",
    "TransactionResponse",
    "DeviceResponse",
    "NotificationResponse",
    "RegisterDeviceRequest",
    "UnregisterDeviceRequest",
]
