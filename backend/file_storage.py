# file_storage.py — File rows in the database, content on disk
import logging
import mimetypes
import os
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models import File

logger = logging.getLogger("donelist.files")

# Storage directory (configurable via env)
STORAGE_ROOT = os.getenv("FILE_STORAGE_ROOT", "/data/files")


class FileStorage:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or STORAGE_ROOT)
        self._batches: List[List[Path]] = []

    def path_for(self, file: File) -> Path:
        return self.root / str(file.id)

    async def create(
        self,
        db: AsyncSession,
        content: bytes,
        name: str,
        size: int,
        owner_id: Optional[int],
        mime: Optional[str] = None,
    ) -> File:
        file = File(
            name=name or "",
            mime=mime or (mimetypes.guess_type(name)[0] if name else None),
            size=size or len(content),
            created_by_id=owner_id if owner_id and owner_id > 0 else None,
        )
        db.add(file)
        await db.flush()

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(file)
        path.write_bytes(content)
        for batch in self._batches:
            batch.append(path)
        logger.debug(f"Stored file {file.id} ({file.size} bytes)")
        return file

    def read(self, file: File) -> bytes:
        return self.path_for(file).read_bytes()

    @contextmanager
    def batch(self):
        """Remove every file written inside the block if the block raises.

        Pairs with a database rollback so a failed bulk write leaves no orphaned content.
        """
        written: List[Path] = []
        self._batches.append(written)
        try:
            yield written
        except Exception:
            for path in written:
                path.unlink(missing_ok=True)
            logger.info(f"Removed {len(written)} stored files after a failed batch")
            raise
        finally:
            self._batches.remove(written)


def get_file_storage() -> FileStorage:
    """FastAPI dependency; tests override it to point at a temp directory."""
    return FileStorage()
