"""
Sticker images kept on the local disk.
"""
import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Optional, Union

from scoremark.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Blob store writing files below a root directory."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        if root is None:
            from scoremark.utils.resource_loader import get_cache_dir
            root = get_cache_dir() / "stickers"
        self.root = Path(root)

    async def store(self, data: bytes, content_type: str, prefix: str = "") -> str:
        extension = mimetypes.guess_extension(content_type) or '.bin'
        name = f"{uuid.uuid4().hex}{extension}"
        reference = f"{prefix.strip('/')}/{name}" if prefix.strip('/') else name
        path = self.root / reference

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise PersistenceError(f"Failed to store blob: {e}", "upload") from e

        logger.debug("Stored %d bytes at %s", len(data), path)
        return reference

    async def fetch(self, reference: str) -> bytes:
        try:
            return await asyncio.to_thread((self.root / reference).read_bytes)
        except OSError as e:
            raise PersistenceError(f"Failed to read blob {reference}: {e}", "download") from e

    def public_url(self, reference: str) -> str:
        return (self.root / reference).resolve().as_uri()
