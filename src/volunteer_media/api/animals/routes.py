import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.animals.models import (
    AdminAnimalUpdate,
    AnimalRequest,
    AnimalResponse,
    AssignTagsRequest,
    BulkUpdateAnimalsRequest,
    DuplicateNameInfo,
)
from volunteer_media.api.deps import (
    administered_group_ids,
    get_current_user,
    get_group_or_404,
    group_member,
    require_admin,
    require_group_admin,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalNameHistory, AnimalTag, Group, User
from volunteer_media.models.animal import DEFAULT_VISIBLE_STATUSES
from volunteer_media.models.base import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_status_filter(value: Optional[str], default=DEFAULT_VISIBLE_STATUSES) -> Optional[List[str]]:
    """
    Turn a ``status`` query value into the list of statuses to match.

    Returns None when no status filtering should happen. An empty value
    falls back to ``default``; ``all`` disables the filter.
    """
    value = (value or "").strip()
    if not value:
        return list(default) if default else None
    if value == "all":
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _filtered_animals(query, statuses: Optional[List[str]], name: Optional[str]):
    if statuses:
        query = query.where(Animal.status.in_(statuses))
    if name:
        query = query.where(func.lower(Animal.name).like(f"%{name.lower()}%"))
    return query


async def get_animal_or_404(db: AsyncSession, group_id: int, animal_id: int) -> Animal:
    animal = await db.scalar(
        select(Animal).where(Animal.id == animal_id, Animal.group_id == group_id, Animal.deleted_at.is_(None))
    )
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found")
    return animal


async def _reload(db: AsyncSession, animal_id: int) -> Animal:
    return await db.scalar(
        select(Animal).where(Animal.id == animal_id).execution_options(populate_existing=True)
    )


@router.get("/groups/{group_id}/animals", response_model=List[AnimalResponse])
async def list_animals(
    group: Group = Depends(group_member),
    status_filter: Optional[str] = Query(None, alias="status"),
    name: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
):
    query = select(Animal).where(Animal.group_id == group.id, Animal.deleted_at.is_(None))
    query = _filtered_animals(query, parse_status_filter(status_filter), name)
    result = await db.execute(query.order_by(Animal.name))
    return result.scalars().all()


@router.get("/groups/{group_id}/animals/check-duplicates", response_model=DuplicateNameInfo)
async def check_duplicate_names(
    group: Group = Depends(group_member),
    name: str = "",
    db: AsyncSession = Depends(get_db_session),
):
    """Look for animals of any status in the group sharing ``name``."""
    if not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name parameter is required")

    result = await db.execute(
        select(Animal).where(
            Animal.group_id == group.id,
            Animal.deleted_at.is_(None),
            func.lower(Animal.name) == name.strip().lower(),
        )
    )
    animals = result.scalars().all()
    return DuplicateNameInfo(
        name=name,
        count=len(animals),
        animals=[AnimalResponse.model_validate(a) for a in animals],
        has_duplicates=len(animals) > 1,
    )


@router.get("/groups/{group_id}/animals/{animal_id}", response_model=AnimalResponse)
async def get_animal(animal_id: int, group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    return await get_animal_or_404(db, group.id, animal_id)


@router.post("/groups/{group_id}/animals", response_model=AnimalResponse, status_code=status.HTTP_201_CREATED)
async def create_animal(
    group_id: int,
    body: AnimalRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Access denied")

    animal = Animal(
        group_id=group_id,
        name=body.name,
        species=body.species,
        breed=body.breed,
        age=body.age,
        estimated_birth_date=body.estimated_birth_date,
        description=body.description,
        trainer_notes=body.trainer_notes,
        image_url=body.image_url,
        status=body.status or "available",
        is_returned=body.is_returned,
    )
    if animal.estimated_birth_date is not None:
        animal.age = animal.age_years_from_birth_date()
    animal.start_status(utcnow(), body.quarantine_start_date)

    db.add(animal)
    await db.commit()

    logger.info(f"Animal {animal.id} ({animal.name}) created in group {group_id} by user {current_user.id}")
    return await _reload(db, animal.id)


@router.put("/groups/{group_id}/animals/{animal_id}", response_model=AnimalResponse)
async def update_animal(
    group_id: int,
    animal_id: int,
    body: AnimalRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Access denied")
    animal = await get_animal_or_404(db, group_id, animal_id)

    if body.name != animal.name:
        db.add(AnimalNameHistory(
            animal_id=animal.id, old_name=animal.name, new_name=body.name, changed_by=current_user.id,
        ))

    if body.status and body.status != animal.status:
        animal.change_status(body.status, utcnow(), body.quarantine_start_date)
    elif body.quarantine_start_date is not None and animal.status == "bite_quarantine":
        animal.quarantine_start_date = body.quarantine_start_date

    animal.name = body.name
    animal.species = body.species
    animal.breed = body.breed
    animal.age = body.age
    animal.estimated_birth_date = body.estimated_birth_date
    if animal.estimated_birth_date is not None:
        animal.age = animal.age_years_from_birth_date()
    animal.description = body.description
    animal.trainer_notes = body.trainer_notes
    animal.image_url = body.image_url
    animal.is_returned = body.is_returned

    await db.commit()
    return await _reload(db, animal.id)


@router.delete("/groups/{group_id}/animals/{animal_id}")
async def delete_animal(
    group_id: int,
    animal_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Access denied")
    animal = await get_animal_or_404(db, group_id, animal_id)
    animal.deleted_at = utcnow()
    await db.commit()
    logger.info(f"Animal {animal_id} deleted from group {group_id} by user {current_user.id}")
    return {"message": "Animal deleted successfully"}


@router.post("/groups/{group_id}/animals/{animal_id}/tags", response_model=AnimalResponse)
async def assign_animal_tags(
    group_id: int,
    animal_id: int,
    body: AssignTagsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can assign tags")
    animal = await db.scalar(
        select(Animal).where(Animal.id == animal_id, Animal.group_id == group_id, Animal.deleted_at.is_(None))
    )
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found in this group")

    tags = []
    if body.tag_ids:
        result = await db.execute(
            select(AnimalTag).where(AnimalTag.id.in_(body.tag_ids), AnimalTag.group_id == group_id)
        )
        tags = list(result.scalars().all())

    animal.tags = tags
    await db.commit()

    logger.info(f"Assigned {len(tags)} tags to animal {animal_id} in group {group_id}")
    return await _reload(db, animal.id)


# Site admin and bulk management


@router.get("/admin/animals", response_model=List[AnimalResponse])
async def list_all_animals(
    status_filter: Optional[str] = Query(None, alias="status"),
    group_id: Optional[int] = None,
    name: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    query = select(Animal).where(Animal.deleted_at.is_(None))
    query = _filtered_animals(query, parse_status_filter(status_filter, default=None), name)
    if group_id is not None:
        query = query.where(Animal.group_id == group_id)
    result = await db.execute(query.order_by(Animal.group_id, Animal.name))
    return result.scalars().all()


@router.put("/admin/animals/{animal_id}", response_model=AnimalResponse)
async def update_animal_admin(
    animal_id: int,
    body: AdminAnimalUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """Partial update: empty strings and zero values leave a field alone."""
    animal = await db.scalar(select(Animal).where(Animal.id == animal_id, Animal.deleted_at.is_(None)))
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found")

    updated = []
    for field in ("species", "breed", "description", "image_url"):
        value = getattr(body, field)
        if value:
            setattr(animal, field, value)
            updated.append(field)
    if body.name and body.name != animal.name:
        db.add(AnimalNameHistory(animal_id=animal.id, old_name=animal.name, new_name=body.name, changed_by=admin.id))
        animal.name = body.name
        updated.append("name")
    if body.age > 0:
        animal.age = body.age
        updated.append("age")
    if body.status and body.status != animal.status:
        animal.change_status(body.status, utcnow(), body.quarantine_start_date)
        updated.append("status")
    elif body.quarantine_start_date is not None and animal.status == "bite_quarantine":
        animal.quarantine_start_date = body.quarantine_start_date
        updated.append("quarantine_start_date")
    if body.group_id:
        await get_group_or_404(db, body.group_id)
        animal.group_id = body.group_id
        updated.append("group_id")

    if not updated:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates provided")

    await db.commit()
    logger.info(f"Animal {animal_id} updated by admin {admin.id}: {', '.join(updated)}")
    return await _reload(db, animal.id)


async def _bulk_update(db: AsyncSession, body: BulkUpdateAnimalsRequest, allowed_groups: Optional[List[int]]) -> dict:
    if not body.animal_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No animal IDs provided")
    if body.group_id is None and body.status is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates provided")

    if body.group_id is not None:
        await get_group_or_404(db, body.group_id)
        if allowed_groups is not None and body.group_id not in allowed_groups:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="You can only move animals into groups you administer"
            )

    result = await db.execute(select(Animal).where(Animal.id.in_(body.animal_ids), Animal.deleted_at.is_(None)))
    animals = result.scalars().all()
    if allowed_groups is not None and any(a.group_id not in allowed_groups for a in animals):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="You can only update animals in groups you administer"
        )

    now = utcnow()
    for animal in animals:
        if body.group_id is not None:
            animal.group_id = body.group_id
        if body.status is not None:
            animal.change_status(body.status, now)
    await db.commit()

    logger.info(f"Bulk updated {len(animals)} animals (group_id={body.group_id}, status={body.status})")
    return {"message": f"Successfully updated {len(animals)} animals", "count": len(animals)}


@router.post("/admin/animals/bulk-update")
async def bulk_update_animals_admin(
    body: BulkUpdateAnimalsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await _bulk_update(db, body, None)


async def _managed_groups(db: AsyncSession, user: User) -> Optional[List[int]]:
    """None for site admins (no restriction), else the administered group ids."""
    if user.is_admin:
        return None
    group_ids = await administered_group_ids(db, user)
    if not group_ids:
        logger.warning(f"Denied bulk animal access for user {user.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Group admin access required")
    return group_ids


@router.get("/bulk-animals", response_model=List[AnimalResponse])
async def list_bulk_animals(
    status_filter: Optional[str] = Query(None, alias="status"),
    group_id: Optional[int] = None,
    name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    allowed = await _managed_groups(db, current_user)
    query = select(Animal).where(Animal.deleted_at.is_(None))
    query = _filtered_animals(query, parse_status_filter(status_filter, default=None), name)
    if group_id is not None:
        if allowed is not None and group_id not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        query = query.where(Animal.group_id == group_id)
    elif allowed is not None:
        query = query.where(Animal.group_id.in_(allowed))
    result = await db.execute(query.order_by(Animal.group_id, Animal.name))
    return result.scalars().all()


@router.post("/bulk-animals/bulk-update")
async def bulk_update_animals(
    body: BulkUpdateAnimalsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    allowed = await _managed_groups(db, current_user)
    return await _bulk_update(db, body, allowed)
