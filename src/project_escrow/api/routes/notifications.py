"""Notification inbox and push device routes.

Routes:
    GET    /api/v1/notifications                         Latest 50, newest first
    POST   /api/v1/notifications/{id}/read               Mark one read
    POST   /api/v1/notifications/devices                 Register a push token
    POST   /api/v1/notifications/devices/unregister      Drop a push token
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from project_escrow.api.deps import get_db_session
from project_escrow.api.identity import get_current_actor
from project_escrow.domain.actor import Actor
from project_escrow.schemas.notifications import (
    DeviceResponse,
    NotificationResponse,
    RegisterDeviceRequest,
    UnregisterDeviceRequest,
)
from project_escrow.services.notification_service import NotificationInboxService

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationResponse], summary="List my notifications")
async def list_notifications(
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[NotificationResponse]:
    notifications = await NotificationInboxService(session).list_notifications(actor)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post(
    "/devices",
    response_model=DeviceResponse,
    status_code=201,
    summary="Register a device for push notifications",
)
async def register_device(
    request: RegisterDeviceRequest,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> DeviceResponse:
    device = await NotificationInboxService(session).register_device(
        actor, request.token, request.platform
    )
    await session.commit()
    return DeviceResponse.model_validate(device)


@router.post("/devices/unregister", status_code=204, summary="Unregister a push device")
async def unregister_device(
    request: UnregisterDeviceRequest,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> None:
    await NotificationInboxService(session).unregister_device(actor, request.token)
    await session.commit()


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification read",
)
async def mark_read(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_db_session),
) -> NotificationResponse:
    notification = await NotificationInboxService(session).mark_read(actor, notification_id)
    await session.commit()
    return NotificationResponse.model_validate(notification)
