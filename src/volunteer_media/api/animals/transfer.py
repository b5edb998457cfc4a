"""
CSV import and export of animals and their comments (site admin only).
"""

import csv
import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.deps import require_admin
from volunteer_media.api.media.service import read_upload
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalComment, CommentTag, Group, User
from volunteer_media.models.animal import ANIMAL_STATUSES
from volunteer_media.models.base import ensure_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

ANIMAL_COLUMNS = [
    "id", "group_id", "name", "species", "breed", "age",
    "estimated_birth_date", "description", "trainer_notes", "status", "image_url",
]
COMMENT_COLUMNS = [
    "comment_id", "animal_id", "animal_name", "animal_species", "animal_breed", "animal_status",
    "group_id", "group_name", "comment_content", "comment_author", "comment_tags", "created_at", "updated_at",
]
DATE_FORMAT = "%Y-%m-%d"


def _rfc3339(value: Optional[datetime]) -> str:
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ") if value else ""


def _csv_response(header: List[str], rows, filename: str) -> Response:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    writer.writerows(rows)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/admin/animals/export-csv")
async def export_animals_csv(
    group_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    query = select(Animal).where(Animal.deleted_at.is_(None))
    if group_id is not None:
        query = query.where(Animal.group_id == group_id)
    result = await db.execute(query.order_by(Animal.id))
    animals = result.scalars().all()

    rows = []
    for animal in animals:
        birth = ensure_utc(animal.estimated_birth_date)
        rows.append([
            animal.id,
            animal.group_id,
            animal.name,
            animal.species,
            animal.breed,
            animal.age,
            birth.strftime(DATE_FORMAT) if birth else "",
            animal.description,
            animal.trainer_notes,
            animal.status,
            animal.image_url,
        ])

    logger.info(f"Exporting {len(rows)} animals to CSV (group_id={group_id})")
    return _csv_response(ANIMAL_COLUMNS, rows, "animals.csv")


def _column(record: List[str], columns: dict, name: str) -> str:
    index = columns.get(name)
    if index is None or index >= len(record):
        return ""
    return record[index].strip()


@router.post("/admin/animals/import-csv")
async def import_animals_csv(
    file: Optional[UploadFile] = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Create animals from an uploaded CSV file.

    ``group_id`` and ``name`` columns are required, everything else is
    optional. Rows that cannot be imported are skipped and reported as
    line-numbered warnings.
    """
    if file is not None and file.filename and not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be a CSV")
    data = await read_upload(file)
    logger.info(f"Processing CSV import {file.filename!r} from admin {admin.id}")

    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded")

    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if not header:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to read CSV header")

    columns = {name.strip().lower(): index for index, name in enumerate(header)}
    for required in ("group_id", "name"):
        if required not in columns:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Missing required column: {required}")

    result = await db.execute(select(Group.id).where(Group.deleted_at.is_(None)))
    known_groups = set(result.scalars().all())

    animals = []
    errors = []
    now = utcnow()
    for line, record in enumerate(reader, start=2):
        if not any(field.strip() for field in record):
            continue

        raw_group = _column(record, columns, "group_id")
        try:
            group_id = int(raw_group)
        except ValueError:
            errors.append(f"Line {line}: Invalid group_id '{raw_group}'")
            continue
        if group_id not in known_groups:
            errors.append(f"Line {line}: Group {group_id} not found")
            continue

        name = _column(record, columns, "name")
        if not name:
            errors.append(f"Line {line}: Name is required")
            continue

        animal_status = _column(record, columns, "status") or "available"
        if animal_status not in ANIMAL_STATUSES:
            errors.append(f"Line {line}: Invalid status '{animal_status}'")
            continue

        animal = Animal(
            group_id=group_id,
            name=name,
            species=_column(record, columns, "species"),
            breed=_column(record, columns, "breed"),
            description=_column(record, columns, "description"),
            trainer_notes=_column(record, columns, "trainer_notes"),
            image_url=_column(record, columns, "image_url"),
            status=animal_status,
        )
        age = _column(record, columns, "age")
        if age.isdigit():
            animal.age = int(age)
        birth = _column(record, columns, "estimated_birth_date")
        if birth:
            try:
                animal.estimated_birth_date = datetime.strptime(birth, DATE_FORMAT).replace(tzinfo=timezone.utc)
                animal.age = animal.age_years_from_birth_date()
            except ValueError:
                errors.append(f"Line {line}: Invalid estimated_birth_date '{birth}', expected YYYY-MM-DD")
        animal.start_status(now)
        animals.append(animal)

    if not animals:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "No valid animals to import", "errors": errors},
        )

    db.add_all(animals)
    await db.commit()

    logger.info(f"Imported {len(animals)} animals from CSV with {len(errors)} warnings")
    response = {"message": f"Successfully imported {len(animals)} animals", "count": len(animals)}
    if errors:
        response["warnings"] = errors
    return response


@router.get("/admin/animals/export-comments-csv")
async def export_comments_csv(
    group_id: Optional[int] = None,
    animal_id: Optional[int] = None,
    tags: Optional[str] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    query = (
        select(AnimalComment, Animal, Group)
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .join(Group, Group.id == Animal.group_id)
        .where(AnimalComment.deleted_at.is_(None))
    )
    if animal_id is not None:
        query = query.where(AnimalComment.animal_id == animal_id)
    elif group_id is not None:
        query = query.where(Animal.group_id == group_id)

    tag_names = [name.strip() for name in (tags or "").split(",") if name.strip()]
    if tag_names:
        query = query.where(AnimalComment.tags.any(CommentTag.name.in_(tag_names)))

    result = await db.execute(query.order_by(AnimalComment.created_at.desc()))
    rows = []
    for comment, animal, group in result.all():
        rows.append([
            comment.id,
            animal.id,
            animal.name,
            animal.species,
            animal.breed,
            animal.status,
            animal.group_id,
            group.name,
            comment.content,
            comment.user.username if comment.user else "",
            "; ".join(tag.name for tag in comment.tags),
            _rfc3339(comment.created_at),
            _rfc3339(comment.updated_at),
        ])

    logger.info(f"Exporting {len(rows)} comments to CSV (group_id={group_id}, animal_id={animal_id}, tags={tags})")
    return _csv_response(COMMENT_COLUMNS, rows, "animal-comments.csv")
