"""Endpoints for saving, loading and deleting gig packs."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import SupabaseSession, require_roles
from ..database import get_session
from ..services import gig_pack

router = APIRouter(prefix="/api/gigs", tags=["gigs"])

logger = logging.getLogger(__name__)


def _parse_gig_id(gig_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(gig_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid gig id") from exc


@router.post("/pack", response_model=schemas.SaveGigPackResponse)
async def save_gig_pack(
    payload: schemas.SaveGigPackRequest,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.SaveGigPackResponse:
    try:
        return await gig_pack.save_gig_pack(session, current_session.user.id, payload)
    except gig_pack.GigPackError as exc:
        logger.warning(
            "Gig pack save rejected for user_id=%s (gig_id=%s): %s",
            current_session.user.id,
            payload.gig_id,
            exc,
        )
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.get("/{gig_id}/pack", response_model=schemas.GigPackRead)
async def get_gig_pack(
    gig_id: str,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.GigPackRead:
    gig_uuid = _parse_gig_id(gig_id)
    try:
        return await gig_pack.get_gig_pack(session, current_session.user.id, gig_uuid)
    except gig_pack.NotFoundError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.delete("/{gig_id}", status_code=204)
async def delete_gig(
    gig_id: str,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> None:
    gig_uuid = _parse_gig_id(gig_id)
    try:
        await gig_pack.delete_gig(session, current_session.user.id, gig_uuid)
    except gig_pack.NotFoundError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
