"""
Active-NDR dependency

Ride endpoints and the phone room only work while an NDR is active; they take
the active NDR from here instead of looking it up themselves.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NoActiveNDRError
from app.db.database import get_db
from app.db.models.ndr import NDR
from app.domain.services.ndr_lifecycle_service import NDRLifecycleService


async def require_active_ndr(db: AsyncSession = Depends(get_db)) -> NDR:
    ndr = await NDRLifecycleService(db).get_active()
    if ndr is None:
        raise NoActiveNDRError()
    return ndr
