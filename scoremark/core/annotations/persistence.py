"""
Handles persistence of annotations to/from a local JSON file.
"""
import asyncio
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from scoremark.core.errors import PersistenceError
from .models import Annotation

logger = logging.getLogger(__name__)


class JsonAnnotationRepository:
    """
    Annotation repository backed by a single JSON file.

    Used when no shared backend is configured; every session on the same
    machine sees the same rows.
    """

    FILE_NAME = "annotations.json"

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            data_dir: Directory holding the JSON file, defaults to the app
                data directory
        """
        if data_dir is None:
            from scoremark.utils.resource_loader import get_app_data_dir
            data_dir = get_app_data_dir() / "annotations"
        self.data_dir = Path(data_dir)

    @property
    def json_path(self) -> Path:
        return self.data_dir / self.FILE_NAME

    async def select(self, document_ref: str) -> List[Annotation]:
        """
        Load the saved annotations of a piece, oldest first.

        Raises:
            PersistenceError: If the file cannot be read or decoded
        """
        rows = await asyncio.to_thread(self._read_rows, "select")
        try:
            annotations = [Annotation.from_dict(row) for row in rows
                           if row.get('piece_id') == document_ref]
        except (ValueError, TypeError) as e:
            raise PersistenceError(f"Corrupt annotation row: {e}", "select") from e
        annotations.sort(key=lambda ann: ann.created_at or datetime.min.replace(tzinfo=timezone.utc))
        return annotations

    async def insert(self, annotations: Sequence[Annotation]) -> List[Annotation]:
        """
        Commit new annotations, assigning identities.

        Args:
            annotations: Annotations without identity

        Returns:
            The committed annotations, in input order
        """
        now = datetime.now(timezone.utc)
        committed = [ann.with_identity(uuid.uuid4().hex, now) for ann in annotations]

        def _append() -> None:
            rows = self._read_rows("insert")
            rows.extend(ann.to_dict() for ann in committed)
            self._write_rows(rows, "insert")

        await asyncio.to_thread(_append)
        logger.debug("Inserted %d annotation(s) into %s", len(committed), self.json_path)
        return committed

    async def delete(self, identity: str) -> None:
        """Delete an annotation by identity. Unknown identities are ignored."""
        def _remove() -> None:
            rows = self._read_rows("delete")
            kept = [row for row in rows if row.get('id') != identity]
            if len(kept) != len(rows):
                self._write_rows(kept, "delete")

        await asyncio.to_thread(_remove)

    def _read_rows(self, operation: str) -> List[Dict[str, Any]]:
        if not self.json_path.exists():
            return []

        try:
            with open(self.json_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to load annotations: {e}", operation) from e

        return list(data.get('annotations', []))

    def _write_rows(self, rows: List[Dict[str, Any]], operation: str) -> None:
        tmp_path = self.json_path.with_suffix('.json.tmp')
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump({'annotations': rows}, f, indent=2)
            os.replace(tmp_path, self.json_path)
        except OSError as e:
            raise PersistenceError(f"Failed to save annotations: {e}", operation) from e
