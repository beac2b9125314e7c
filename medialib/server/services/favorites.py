import logging

from ..constants import BucketContext
from ..exceptions import InvalidPath
from ..utils.paths import VirtualPath, to_key
from .metadata import MetadataIndex

logger = logging.getLogger(__name__)


class FavoritesService:
    """Per-user favorite marks.

    Toggles do not take part in the prefix guard. A mark left behind by a
    toggle racing a delete is removed by the reconciliation sweep.
    """

    def __init__(self, metadata_index: MetadataIndex) -> None:
        self.metadata_index = metadata_index

    async def toggle_favorite(
        self,
        user_id: str,
        bucket: BucketContext,
        file_path: str | VirtualPath,
        desired_state: bool,
    ) -> bool:
        """Set the favorite mark to ``desired_state`` and return it."""
        key = to_key(file_path)
        if not key:
            raise InvalidPath("Cannot favorite the root folder")
        if desired_state:
            await self.metadata_index.upsert_favorite(user_id, bucket, key)
        else:
            await self.metadata_index.delete_favorite(user_id, bucket, key)
        logger.debug(f"Favorite {bucket.value}:{key} for {user_id} -> {desired_state}")
        return desired_state

    async def list_favorites(self, user_id: str, bucket: BucketContext) -> list[str]:
        return await self.metadata_index.list_favorites(user_id, bucket)
