"""Invitation responses from musicians linked to a gig role."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import SupabaseSession, require_roles
from ..database import get_session
from ..services import notifications
from ..services.gig_pack import GigPackError

router = APIRouter(prefix="/api/gig-roles", tags=["gig-roles"])


@router.post("/{gig_role_id}/respond", response_model=schemas.GigRoleStatusRead)
async def respond_to_invitation(
    gig_role_id: str,
    payload: schemas.InvitationResponse,
    session: AsyncSession = Depends(get_session),
    current_session: SupabaseSession = Depends(require_roles("authenticated")),
) -> schemas.GigRoleStatusRead:
    try:
        role_uuid = uuid.UUID(gig_role_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid gig role id") from exc

    try:
        return await notifications.respond_to_invitation(
            session, current_session.user.id, role_uuid, payload
        )
    except GigPackError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
