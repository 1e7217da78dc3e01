"""Public, unauthenticated gig pack pages addressed by share slug."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..database import get_session
from ..services import gig_pack

router = APIRouter(prefix="/api/gigpack", tags=["gigpack"])


@router.get("/{slug}", response_model=schemas.PublicGigPackRead)
async def get_public_gig_pack(
    slug: str,
    session: AsyncSession = Depends(get_session),
) -> schemas.PublicGigPackRead:
    try:
        return await gig_pack.get_public_gig_pack(session, slug)
    except gig_pack.NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Not found") from exc
