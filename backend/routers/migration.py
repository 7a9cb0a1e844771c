# routers/migration.py — Import a full namespace/list/task structure
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import migration
from auth import get_current_user, CurrentUser
from database import get_db_session
from file_storage import FileStorage, get_file_storage

router = APIRouter(prefix="/api/v1/migration/structure", tags=["Migration"])


@router.post("/migrate")
async def migrate(
    structure: List[migration.NamespaceStructure],
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
    storage: FileStorage = Depends(get_file_storage),
):
    """Create everything in one transaction. Nothing is kept if any part fails."""
    await migration.insert_from_structure(db, structure, user, storage)
    return {"message": "Everything was migrated successfully."}


@router.get("/status")
async def migration_status(
    db: AsyncSession = Depends(get_db_session),
    user: CurrentUser = Depends(get_current_user),
):
    status = await migration.get_migration_status(db, user.id, migration.STRUCTURE_MIGRATOR)
    if status is None:
        return {"id": 0, "migrator_name": migration.STRUCTURE_MIGRATOR, "time": None}
    return {
        "id": status.id,
        "migrator_name": status.migrator_name,
        "time": status.created.isoformat() if status.created else None,
    }
