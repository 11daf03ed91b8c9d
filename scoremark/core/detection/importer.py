"""
Turns detected regions into pending sticker annotations.
"""
import logging
from typing import TYPE_CHECKING, Iterable, List

from scoremark.core.annotations.models import Annotation, Sticker
from scoremark.core.annotations.store import AnnotationStore
from scoremark.core.errors import PersistenceError
from .detector import DetectedRegion

if TYPE_CHECKING:
    from scoremark.core.collaborators import BlobStore

logger = logging.getLogger(__name__)


class StickerImporter:
    """
    Uploads region images and adds them to the store as pending stickers.

    The stickers are saved with the next save, so they go through conflict
    detection like any other new annotation.
    """

    def __init__(self, store: AnnotationStore, blobs: "BlobStore"):
        self.store = store
        self.blobs = blobs

    async def import_regions(self, regions: Iterable[DetectedRegion]) -> List[Annotation]:
        """
        Upload and add each region; regions that fail to upload are skipped.

        Returns:
            The sticker annotations that were added
        """
        session = self.store.session
        regions = list(regions)
        added: List[Annotation] = []

        for i, region in enumerate(regions):
            prefix = f"annotations/{session.document_ref}/{session.actor_id}-p{region.page}"
            try:
                reference = await self.blobs.store(region.image, "image/png", prefix=prefix)
            except PersistenceError as e:
                logger.warning("Upload failed for region %d of %d: %s", i + 1, len(regions), e)
                continue

            sticker = Annotation(
                document_ref=session.document_ref,
                owner=session.actor_id,
                x=region.x,
                y=region.y,
                kind=Sticker(reference, region.width, region.height),
                page=region.page,
                auto_detected=True,
            )
            self.store.add(sticker)
            added.append(sticker)

        logger.info("Imported %d of %d detected region(s)", len(added), len(regions))
        return added
