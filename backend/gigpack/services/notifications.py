"""Notification inbox and invitation responses for musicians."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from .gig_pack import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

_RESPONDABLE_STATUSES = (
    models.InvitationStatus.invited,
    models.InvitationStatus.accepted,
    models.InvitationStatus.declined,
)


def _to_read(notification: models.Notification) -> schemas.NotificationRead:
    return schemas.NotificationRead(
        id=notification.id,
        type=notification.type.value,
        title=notification.title,
        message=notification.message,
        link=notification.link,
        gig_id=notification.gig_id,
        gig_role_id=notification.gig_role_id,
        is_read=notification.is_read,
        created_at=notification.created_at,
        read_at=notification.read_at,
    )


async def list_notifications(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[schemas.NotificationRead]:
    query = select(models.Notification).where(models.Notification.user_id == user_id)
    if unread_only:
        query = query.where(models.Notification.is_read.is_(False))
    result = await session.execute(
        query.order_by(models.Notification.created_at.desc()).limit(limit)
    )
    return [_to_read(notification) for notification in result.scalars()]


async def mark_notification_read(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> schemas.NotificationRead:
    notification = await session.get(models.Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await session.commit()

    return _to_read(notification)


async def count_unread(session: AsyncSession, user_id: uuid.UUID) -> int:
    count = await session.scalar(
        select(func.count())
        .select_from(models.Notification)
        .where(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
    )
    return count or 0


async def mark_all_read(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Mark every unread notification of ``user_id`` as read; returns how many changed."""

    result = await session.execute(
        update(models.Notification)
        .where(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    await session.commit()
    return result.rowcount


async def delete_notification(
    session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> None:
    notification = await session.get(models.Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")

    await session.delete(notification)
    await session.commit()


async def clear_notifications(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        delete(models.Notification).where(models.Notification.user_id == user_id)
    )
    await session.commit()
    logger.info("Cleared %d notifications for user_id=%s", result.rowcount, user_id)
    return result.rowcount


async def respond_to_invitation(
    session: AsyncSession,
    user_id: uuid.UUID,
    gig_role_id: uuid.UUID,
    response: schemas.InvitationResponse,
) -> schemas.GigRoleStatusRead:
    """Record the linked musician's answer to a gig invitation.

    Raises:
        NotFoundError: If the role does not exist or is not linked to ``user_id``.
        ConflictError: If no invitation was ever sent for the role.
    """

    result = await session.execute(
        select(models.GigRole).where(models.GigRole.id == gig_role_id).with_for_update()
    )
    role = result.scalar_one_or_none()
    if role is None or role.musician_id != user_id:
        raise NotFoundError("Invitation not found")
    if role.invitation_status not in _RESPONDABLE_STATUSES:
        raise ConflictError("Invitation has not been sent")

    new_status = models.InvitationStatus(response.status)
    if role.invitation_status != new_status:
        role.invitation_status = new_status
        role.responded_at = datetime.now(timezone.utc)
        await session.commit()
        logger.info(
            "Gig role %s invitation %s by user_id=%s", role.id, new_status.value, user_id
        )

    return schemas.GigRoleStatusRead(
        gig_role_id=role.id,
        gig_id=role.gig_id,
        invitation_status=role.invitation_status.value,
        responded_at=role.responded_at,
    )
