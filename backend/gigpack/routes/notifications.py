"""The caller's notification inbox."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import SupabaseSession, require_roles
from ..database import get_session
from ..services import notifications
from ..services.gig_pack import NotFoundError

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[schemas.NotificationRead])
async def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> list[schemas.NotificationRead]:
    return await notifications.list_notifications(
        session, current_session.user.id, unread_only=unread_only, limit=limit
    )


@router.get("/unread-count", response_model=schemas.NotificationCountRead)
async def unread_count(
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.NotificationCountRead:
    count = await notifications.count_unread(session, current_session.user.id)
    return schemas.NotificationCountRead(count=count)


@router.post("/read-all", response_model=schemas.NotificationCountRead)
async def mark_all_read(
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.NotificationCountRead:
    count = await notifications.mark_all_read(session, current_session.user.id)
    return schemas.NotificationCountRead(count=count)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_notifications(
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> Response:
    await notifications.clear_notifications(session, current_session.user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{notification_id}/read", response_model=schemas.NotificationRead)
async def mark_notification_read(
    notification_id: str,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.NotificationRead:
    try:
        notification_uuid = uuid.UUID(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid notification id") from exc

    try:
        return await notifications.mark_notification_read(
            session, current_session.user.id, notification_uuid
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> Response:
    try:
        notification_uuid = uuid.UUID(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid notification id") from exc

    try:
        await notifications.delete_notification(
            session, current_session.user.id, notification_uuid
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
