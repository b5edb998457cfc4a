import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.deps import get_current_user, group_member, require_group_admin
from volunteer_media.api.groups.models import UploadResponse
from volunteer_media.api.media.service import store_image
from volunteer_media.api.protocols.models import ProtocolRequest, ProtocolResponse
from volunteer_media.db import get_db_session
from volunteer_media.models import Group, Protocol, User
from volunteer_media.models.base import utcnow
from volunteer_media.storage import StorageProvider, get_storage_provider

logger = logging.getLogger(__name__)

router = APIRouter()

PROTOCOLS_DISABLED = "Protocols not enabled for this group"


def _require_protocols(group: Group, status_code: int = status.HTTP_404_NOT_FOUND):
    if not group.has_protocols:
        raise HTTPException(status_code=status_code, detail=PROTOCOLS_DISABLED)


async def _get_protocol_or_404(db: AsyncSession, group_id: int, protocol_id: int) -> Protocol:
    protocol = await db.scalar(
        select(Protocol).where(
            Protocol.id == protocol_id, Protocol.group_id == group_id, Protocol.deleted_at.is_(None)
        )
    )
    if protocol is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Protocol not found")
    return protocol


@router.get("/groups/{group_id}/protocols", response_model=List[ProtocolResponse])
async def list_protocols(group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    _require_protocols(group)
    result = await db.execute(
        select(Protocol)
        .where(Protocol.group_id == group.id, Protocol.deleted_at.is_(None))
        .order_by(Protocol.order_index.asc(), Protocol.created_at.asc())
    )
    return result.scalars().all()


@router.post("/groups/{group_id}/protocols/upload-image", response_model=UploadResponse)
async def upload_protocol_image(
    group_id: int,
    image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    await require_group_admin(db, current_user, group_id)
    stored = await store_image(db, storage, current_user, image)
    await db.commit()
    return UploadResponse(url=stored.image_url)


@router.get("/groups/{group_id}/protocols/{protocol_id}", response_model=ProtocolResponse)
async def get_protocol(protocol_id: int, group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    _require_protocols(group)
    return await _get_protocol_or_404(db, group.id, protocol_id)


@router.post("/groups/{group_id}/protocols", response_model=ProtocolResponse, status_code=status.HTTP_201_CREATED)
async def create_protocol(
    group_id: int,
    body: ProtocolRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    group = await require_group_admin(db, current_user, group_id)
    _require_protocols(group, status.HTTP_400_BAD_REQUEST)

    protocol = Protocol(group_id=group_id, **body.model_dump())
    db.add(protocol)
    await db.commit()
    logger.info(f"Protocol {protocol.id} created in group {group_id} by user {current_user.id}")
    return protocol


@router.put("/groups/{group_id}/protocols/{protocol_id}", response_model=ProtocolResponse)
async def update_protocol(
    group_id: int,
    protocol_id: int,
    body: ProtocolRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id)
    protocol = await _get_protocol_or_404(db, group_id, protocol_id)

    protocol.title = body.title
    protocol.content = body.content
    protocol.image_url = body.image_url
    protocol.order_index = body.order_index
    await db.commit()
    return protocol


@router.delete("/groups/{group_id}/protocols/{protocol_id}")
async def delete_protocol(
    group_id: int,
    protocol_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id)
    protocol = await _get_protocol_or_404(db, group_id, protocol_id)
    protocol.deleted_at = utcnow()
    await db.commit()
    logger.info(f"Protocol {protocol_id} deleted from group {group_id} by user {current_user.id}")
    return {"message": "Protocol deleted successfully"}
