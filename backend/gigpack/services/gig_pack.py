"""Gig pack persistence: the atomic save transaction and the read models.

A gig pack is a gig header plus its schedule, materials, packing checklist,
setlist and lineup. ``save_gig_pack`` reconciles all of them against the
submitted document inside one transaction. Each stage is wrapped so that a
failure is reported with the name of the stage that raised it, and any
failure rolls the whole save back.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional, Sequence, TypeVar

from fastapi import status
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models, schemas
from ..utils import generate_share_slug
from . import merge
from .locks import GIG_LOCKS, GigLockRegistry

logger = logging.getLogger(__name__)

STAGE_HEADER = "header"
STAGE_SCHEDULE = "schedule"
STAGE_MATERIALS = "materials"
STAGE_PACKING = "packing"
STAGE_SETLIST = "setlist"
STAGE_ROLES = "roles"
STAGE_SHARES = "shares"

_FOREIGN_KEY_VIOLATION = "23503"
_UNIQUE_VIOLATION = "23505"

# Header columns that every save overwrites, including with null.
_OVERWRITTEN_HEADER_FIELDS = (
    "call_time",
    "on_stage_time",
    "venue_name",
    "venue_address",
    "venue_maps_url",
    "hero_image_url",
    "band_logo_url",
    "gig_type",
    "theme",
    "poster_skin",
    "accent_color",
    "dress_code",
    "backline_notes",
    "parking_notes",
    "setlist",
    "internal_notes",
    "payment_notes",
)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

ItemT = TypeVar("ItemT")


class GigPackError(RuntimeError):
    """Base error for gig pack operations, optionally tagged with a save stage."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"Gig save failed ({self.stage}): {self.message}"
        return self.message


class UnauthenticatedError(GigPackError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(GigPackError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidReferenceError(GigPackError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(GigPackError):
    status_code = status.HTTP_409_CONFLICT


class StageFailureError(GigPackError):
    pass


def _integrity_error(stage: str, exc: IntegrityError) -> GigPackError:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    detail = str(orig if orig is not None else exc)
    lowered = detail.lower()
    if code == _FOREIGN_KEY_VIOLATION or "foreign key" in lowered:
        return InvalidReferenceError(f"Invalid reference: {detail}", stage=stage)
    if code == _UNIQUE_VIOLATION or "unique" in lowered:
        return ConflictError(f"Duplicate key violation: {detail}", stage=stage)
    return StageFailureError(detail, stage=stage)


@asynccontextmanager
async def _stage(name: str) -> AsyncIterator[None]:
    try:
        yield
    except GigPackError as exc:
        if exc.stage is None:
            exc.stage = name
        raise
    except IntegrityError as exc:
        raise _integrity_error(name, exc) from exc
    except Exception as exc:
        raise StageFailureError(str(exc), stage=name) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def save_gig_pack(
    session: AsyncSession,
    caller_id: Optional[uuid.UUID],
    request: schemas.SaveGigPackRequest,
    *,
    locks: GigLockRegistry = GIG_LOCKS,
) -> schemas.SaveGigPackResponse:
    """Atomically reconcile a gig and its child collections with ``request``.

    Saves that name the same gig id run one after another; saves of different
    gigs do not wait on each other.

    Raises:
        UnauthenticatedError: If there is no caller.
        NotFoundError: If the edited gig is missing or not managed by the caller.
        InvalidReferenceError: On a dangling project or contact reference.
        ConflictError: On a unique violation or an id owned by another gig.
        StageFailureError: On any other failure, tagged with its stage.
    """

    if caller_id is None:
        raise UnauthenticatedError("User not authenticated")

    if request.gig_id is None:
        return await _run_save(session, caller_id, request)

    async with locks.hold(request.gig_id):
        return await _run_save(session, caller_id, request)


async def _run_save(
    session: AsyncSession,
    caller_id: uuid.UUID,
    request: schemas.SaveGigPackRequest,
) -> schemas.SaveGigPackResponse:
    try:
        async with _stage(STAGE_HEADER):
            gig = await _upsert_header(session, caller_id, request)

        async with _stage(STAGE_SCHEDULE):
            await _merge_rows(
                session, models.GigScheduleItem, gig.id, request.schedule, _schedule_values
            )

        async with _stage(STAGE_MATERIALS):
            await _merge_rows(
                session, models.GigMaterial, gig.id, request.materials, _material_values
            )

        async with _stage(STAGE_PACKING):
            await _merge_rows(
                session, models.GigPackingItem, gig.id, request.packing, _packing_values
            )

        async with _stage(STAGE_SETLIST):
            await _merge_setlist(session, gig.id, request.setlist)

        async with _stage(STAGE_ROLES):
            await _reconcile_roles(session, caller_id, gig, request.roles)

        async with _stage(STAGE_SHARES):
            public_slug = await _resolve_share(session, caller_id, gig, request.share_token)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Saved gig pack %s (editing=%s, roles=%d, user_id=%s)",
        gig.id,
        request.editing,
        len(request.roles),
        caller_id,
    )
    return schemas.SaveGigPackResponse(id=gig.id, public_slug=public_slug)


async def _require_project(
    session: AsyncSession, caller_id: uuid.UUID, project_id: uuid.UUID
) -> models.Project:
    project = await session.get(models.Project, project_id)
    if project is None or project.owner_id != caller_id:
        raise InvalidReferenceError("Invalid project reference")
    return project


async def _upsert_header(
    session: AsyncSession,
    caller_id: uuid.UUID,
    request: schemas.SaveGigPackRequest,
) -> models.Gig:
    header = request.gig
    provided = header.model_fields_set

    if request.editing:
        result = await session.execute(
            select(models.Gig)
            .where(models.Gig.id == request.gig_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        gig = result.scalar_one_or_none()
        if gig is None or not gig.is_managed_by(caller_id):
            raise NotFoundError(f"Gig not found or access denied (id: {request.gig_id})")

        if header.title is not None:
            gig.title = header.title
        if header.date is not None:
            gig.date = header.date
        if header.band_name is not None:
            gig.band_name = header.band_name
        if header.status is not None:
            gig.status = models.GigStatus(header.status)
        if "notes" in provided:
            gig.notes = header.notes
        if "project_id" in provided:
            gig.project = (
                await _require_project(session, caller_id, header.project_id)
                if header.project_id is not None
                else None
            )
        for field_name in _OVERWRITTEN_HEADER_FIELDS:
            setattr(gig, field_name, getattr(header, field_name))
        gig.updated_at = _utcnow()
    else:
        project = None
        if header.project_id is not None:
            project = await _require_project(session, caller_id, header.project_id)
        gig = models.Gig(
            id=uuid.uuid4(),
            owner_id=caller_id,
            project=project,
            title=header.title,
            date=header.date or _utcnow(),
            status=models.GigStatus(header.status or models.GigStatus.confirmed.value),
            band_name=header.band_name,
            notes=header.notes,
            **{field_name: getattr(header, field_name) for field_name in _OVERWRITTEN_HEADER_FIELDS},
        )
        session.add(gig)

    await session.flush()
    return gig


def _schedule_values(item: schemas.ScheduleItemInput) -> dict[str, Any]:
    return {"time": item.time, "label": item.label}


def _material_values(item: schemas.MaterialInput) -> dict[str, Any]:
    return {"label": item.label, "url": item.url, "kind": models.MaterialKind(item.kind)}


def _packing_values(item: schemas.PackingItemInput) -> dict[str, Any]:
    return {"label": item.label}


def _section_values(item: schemas.SetlistSectionInput) -> dict[str, Any]:
    return {"name": item.name}


def _song_values(song: schemas.SetlistSongInput) -> dict[str, Any]:
    return {
        "title": song.title,
        "artist": song.artist,
        "key": song.key,
        "tempo": song.tempo,
        "notes": song.notes,
        "reference_url": song.reference_url,
    }


async def _ensure_unclaimed(session: AsyncSession, model: type, item_id: uuid.UUID) -> None:
    claimed = await session.scalar(select(model.id).where(model.id == item_id))
    if claimed is not None:
        raise ConflictError(f"{model.__tablename__} item {item_id} belongs to another gig")


async def _merge_rows(
    session: AsyncSession,
    model: type,
    gig_id: uuid.UUID,
    items: Sequence[ItemT],
    values_for: Callable[[ItemT], dict[str, Any]],
) -> list[Any]:
    """Smart-merge one child collection of ``gig_id``; returns rows in submission order."""

    result = await session.execute(select(model).where(model.gig_id == gig_id))
    existing = {row.id: row for row in result.scalars()}
    plan = merge.plan_merge(existing, items, key=lambda item: item.id)

    if plan.to_delete:
        await session.execute(delete(model).where(model.id.in_(list(plan.to_delete))))

    rows: list[Any] = [None] * len(items)
    for position, item in plan.to_update:
        row = existing[item.id]
        for attr, value in values_for(item).items():
            setattr(row, attr, value)
        row.sort_order = position
        rows[position] = row

    for position, item in plan.to_insert:
        if item.id is not None:
            await _ensure_unclaimed(session, model, item.id)
        row = model(
            id=item.id or uuid.uuid4(),
            gig_id=gig_id,
            sort_order=position,
            **values_for(item),
        )
        session.add(row)
        rows[position] = row

    await session.flush()
    return rows


async def _merge_setlist(
    session: AsyncSession,
    gig_id: uuid.UUID,
    sections: Sequence[schemas.SetlistSectionInput],
) -> None:
    section_rows = await _merge_rows(
        session, models.SetlistSection, gig_id, sections, _section_values
    )

    result = await session.execute(
        select(models.SetlistItem)
        .join(models.SetlistSection)
        .where(models.SetlistSection.gig_id == gig_id)
    )
    existing = {song.id: song for song in result.scalars()}

    submitted = [
        (section_row.id, position, song)
        for section_row, section in zip(section_rows, sections)
        for position, song in enumerate(section.songs)
    ]
    plan = merge.plan_merge(existing, submitted, key=lambda entry: entry[2].id)

    if plan.to_delete:
        await session.execute(
            delete(models.SetlistItem).where(models.SetlistItem.id.in_(list(plan.to_delete)))
        )

    for _, (section_id, position, song) in plan.to_update:
        row = existing[song.id]
        row.section_id = section_id
        row.sort_order = position
        for attr, value in _song_values(song).items():
            setattr(row, attr, value)

    for _, (section_id, position, song) in plan.to_insert:
        if song.id is not None:
            await _ensure_unclaimed(session, models.SetlistItem, song.id)
        session.add(
            models.SetlistItem(
                id=song.id or uuid.uuid4(),
                section_id=section_id,
                sort_order=position,
                **_song_values(song),
            )
        )

    await session.flush()


async def _reconcile_roles(
    session: AsyncSession,
    caller_id: uuid.UUID,
    gig: models.Gig,
    entries: Sequence[schemas.RoleInput],
) -> None:
    result = await session.execute(select(models.GigRole).where(models.GigRole.gig_id == gig.id))
    rows = {row.id: row for row in result.scalars()}
    plan = merge.plan_roles(
        [
            merge.ExistingRole(
                id=row.id,
                role_name=row.role_name,
                musician_name=row.musician_name,
                musician_id=row.musician_id,
            )
            for row in rows.values()
        ],
        entries,
    )

    if plan.to_delete:
        # notifications.gig_role_id cascades with the role.
        await session.execute(
            delete(models.GigRole).where(models.GigRole.id.in_(list(plan.to_delete)))
        )

    for role_id in plan.unknown_ids:
        logger.warning("Ignoring gig role %s that does not belong to gig %s", role_id, gig.id)

    for entry in plan.duplicates:
        logger.debug(
            "Skipping duplicate lineup entry for gig %s (role=%s, user_id=%s)",
            gig.id,
            entry.role,
            entry.linked_account_id,
        )

    for role_id, entry in plan.to_update:
        row = rows[role_id]
        row.role_name = entry.role
        row.musician_name = entry.name
        row.notes = entry.notes

    inserted: list[models.GigRole] = []
    for entry in plan.to_insert:
        account_id = entry.linked_account_id
        row = models.GigRole(
            id=uuid.uuid4(),
            gig_id=gig.id,
            role_name=entry.role,
            musician_name=entry.name,
            musician_id=account_id,
            contact_id=entry.contact_id,
            notes=entry.notes,
            invitation_status=(
                models.InvitationStatus.invited
                if account_id is not None
                else models.InvitationStatus.pending
            ),
        )
        session.add(row)
        inserted.append(row)

    for position, slot in enumerate(plan.ordering):
        row = rows[slot] if isinstance(slot, uuid.UUID) else inserted[slot]
        row.sort_order = position

    await session.flush()
    await _notify_new_collaborators(session, caller_id, gig, inserted)


async def _notify_new_collaborators(
    session: AsyncSession,
    caller_id: uuid.UUID,
    gig: models.Gig,
    new_roles: Sequence[models.GigRole],
) -> None:
    recipients = [
        role
        for role in new_roles
        if role.musician_id is not None and role.musician_id != caller_id
    ]
    if not recipients:
        return

    rows: dict[uuid.UUID, dict[str, Any]] = {}
    for role in recipients:
        rows.setdefault(
            role.musician_id,
            {
                "id": uuid.uuid4(),
                "user_id": role.musician_id,
                "type": models.NotificationType.invitation_received,
                "title": f"Invitation: {gig.title or 'New Gig'}",
                "message": f"You've been invited as {role.role_name}",
                "link": f"/gigs/{gig.id}/pack",
                "gig_id": gig.id,
                "gig_role_id": role.id,
                "is_read": False,
            },
        )

    # One invitation per (user, gig): an existing row wins.
    insert = _DIALECT_INSERTS[session.get_bind().dialect.name]
    await session.execute(
        insert(models.Notification)
        .values(list(rows.values()))
        .on_conflict_do_nothing(
            index_elements=["user_id", "gig_id", "type"],
            index_where=models.Notification.gig_id.is_not(None),
        )
    )


async def upsert_share(
    session: AsyncSession,
    gig: models.Gig,
    token: str,
    *,
    caller_id: uuid.UUID,
) -> models.GigShare:
    """Attach ``token`` to ``gig``: insert it, or reactivate and repoint it.

    Raises:
        ConflictError: If the token is attached to a gig the caller does not manage.
    """

    share = await session.get(models.GigShare, token)
    if share is None:
        share = models.GigShare(token=token, gig_id=gig.id, is_active=True)
        session.add(share)
    else:
        if share.gig_id != gig.id:
            current = await session.get(models.Gig, share.gig_id)
            if current is not None and not current.is_managed_by(caller_id):
                raise ConflictError("Share token is already in use")
        share.gig_id = gig.id
        share.is_active = True

    await session.flush()
    return share


async def _resolve_share(
    session: AsyncSession,
    caller_id: uuid.UUID,
    gig: models.Gig,
    token: Optional[str],
) -> str:
    if token:
        await upsert_share(session, gig, token, caller_id=caller_id)
        return token

    existing = await session.scalar(
        select(models.GigShare.token)
        .where(models.GigShare.gig_id == gig.id, models.GigShare.is_active.is_(True))
        .order_by(models.GigShare.created_at)
        .limit(1)
    )
    if existing is not None:
        return existing

    share = await upsert_share(session, gig, generate_share_slug(gig.title), caller_id=caller_id)
    return share.token


def _gig_pack_options() -> tuple[Any, ...]:
    return (
        selectinload(models.Gig.schedule_items),
        selectinload(models.Gig.materials),
        selectinload(models.Gig.packing_items),
        selectinload(models.Gig.setlist_sections).selectinload(models.SetlistSection.items),
        selectinload(models.Gig.roles),
        selectinload(models.Gig.shares),
    )


async def _load_gig(session: AsyncSession, gig_id: uuid.UUID) -> Optional[models.Gig]:
    result = await session.execute(
        select(models.Gig)
        .options(*_gig_pack_options())
        .where(models.Gig.id == gig_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _active_slug(gig: models.Gig) -> Optional[str]:
    active = sorted(
        (share for share in gig.shares if share.is_active),
        key=lambda share: share.created_at,
    )
    return active[0].token if active else None


def _base_fields(gig: models.Gig) -> dict[str, Any]:
    return {
        "id": gig.id,
        "title": gig.title,
        "status": gig.status.value,
        "date": gig.date,
        "band_name": gig.band_name,
        "call_time": gig.call_time,
        "on_stage_time": gig.on_stage_time,
        "venue_name": gig.venue_name,
        "venue_address": gig.venue_address,
        "venue_maps_url": gig.venue_maps_url,
        "hero_image_url": gig.hero_image_url,
        "band_logo_url": gig.band_logo_url,
        "gig_type": gig.gig_type,
        "theme": gig.theme,
        "poster_skin": gig.poster_skin,
        "accent_color": gig.accent_color,
        "dress_code": gig.dress_code,
        "backline_notes": gig.backline_notes,
        "parking_notes": gig.parking_notes,
        "setlist": gig.setlist,
        "notes": gig.notes,
        "is_archived": gig.status == models.GigStatus.cancelled,
        "created_at": gig.created_at,
        "updated_at": gig.updated_at,
        "schedule": [
            schemas.ScheduleItemRead(id=item.id, time=item.time, label=item.label)
            for item in gig.schedule_items
        ],
        "materials": [
            schemas.MaterialRead(id=item.id, label=item.label, url=item.url, kind=item.kind.value)
            for item in gig.materials
        ],
        "packing_checklist": [
            schemas.PackingItemRead(id=item.id, label=item.label) for item in gig.packing_items
        ],
        "setlist_structured": [
            schemas.SetlistSectionRead(
                id=section.id,
                name=section.name,
                songs=[
                    schemas.SetlistSongRead(
                        id=song.id,
                        title=song.title,
                        artist=song.artist,
                        key=song.key,
                        tempo=song.tempo,
                        notes=song.notes,
                        reference_url=song.reference_url,
                    )
                    for song in section.items
                ],
            )
            for section in gig.setlist_sections
        ],
    }


async def get_gig_pack(
    session: AsyncSession, caller_id: uuid.UUID, gig_id: uuid.UUID
) -> schemas.GigPackRead:
    """Return the full gig pack for a manager or a linked musician of the gig."""

    gig = await _load_gig(session, gig_id)
    if gig is None:
        raise NotFoundError("Gig not found")
    if not gig.is_managed_by(caller_id) and all(
        role.musician_id != caller_id for role in gig.roles
    ):
        raise NotFoundError("Gig not found")

    return schemas.GigPackRead(
        **_base_fields(gig),
        owner_id=gig.owner_id,
        project_id=gig.project_id,
        internal_notes=gig.internal_notes,
        payment_notes=gig.payment_notes,
        public_slug=_active_slug(gig),
        lineup=[
            schemas.LineupMemberRead(
                gig_role_id=role.id,
                role=role.role_name,
                name=role.musician_name,
                notes=role.notes,
                invitation_status=role.invitation_status.value,
                user_id=role.musician_id,
                contact_id=role.contact_id,
                agreed_fee=role.agreed_fee,
                currency=role.currency,
                payment_method=role.payment_method,
                expected_payment_date=role.expected_payment_date,
                is_paid=role.is_paid,
            )
            for role in gig.roles
        ],
    )


async def get_public_gig_pack(session: AsyncSession, slug: str) -> schemas.PublicGigPackRead:
    """Return the shareable view of a gig through an active, unexpired share slug."""

    share = await session.scalar(
        select(models.GigShare).where(
            models.GigShare.token == slug, models.GigShare.is_active.is_(True)
        )
    )
    if share is None:
        raise NotFoundError("Gig pack not found")
    if share.expires_at is not None and _as_utc(share.expires_at) < _utcnow():
        raise NotFoundError("Gig pack not found")

    gig = await _load_gig(session, share.gig_id)
    if gig is None:
        raise NotFoundError("Gig pack not found")

    return schemas.PublicGigPackRead(
        **_base_fields(gig),
        public_slug=slug,
        lineup=[
            schemas.PublicLineupMemberRead(
                role=role.role_name,
                name=role.musician_name,
                notes=role.notes,
                invitation_status=role.invitation_status.value,
            )
            for role in gig.roles
        ],
    )


async def delete_gig(
    session: AsyncSession,
    caller_id: uuid.UUID,
    gig_id: uuid.UUID,
    *,
    locks: GigLockRegistry = GIG_LOCKS,
) -> None:
    """Delete a gig; the database cascades to its children, shares and notifications."""

    async with locks.hold(gig_id):
        gig = await session.get(models.Gig, gig_id, populate_existing=True)
        if gig is None or not gig.is_managed_by(caller_id):
            raise NotFoundError("Gig not found")
        await session.delete(gig)
        await session.commit()

    logger.info("Deleted gig %s (user_id=%s)", gig_id, caller_id)
