"""Apply a listing form's image list to the remote store on submit.

Pipeline (create and edit share it; create starts from an empty list):
1. reconcile() the working list
2. Delete removed images: storage objects first, then their rows
3. Upload staged images one at a time, in list order (plus thumbnails
   where the listing kind has them) and insert their rows unflagged
4. Pick the primary: the first image in list order that is still stored,
   skipping staged images whose upload failed
5. Clear the primary flag on every other kept image, then flag the primary
6. Release the staged previews
"""

from dataclasses import dataclass, field
from typing import Any

from assets.models import AssetListState, RemoteAsset, StagedAsset, UploadItem
from assets.reconciler import EncodeFn, discard, reconcile
from compression import profiles
from compression.encoder import encode_image
from config import settings
from exceptions import ShowroomError
from schemas import EncodedImage, SourceImage
from storage.base import AssetRecordStore, ObjectStorage
from storage.entities import EntitySpec
from storage.gcs import gcs_storage
from storage.paths import build_asset_paths, build_logo_path, extract_storage_path
from utils.logging import get_logger

logger = get_logger("submission.listing")


@dataclass
class SubmissionResult:
    deleted_ids: list[str] = field(default_factory=list)
    inserted_ids: list[str] = field(default_factory=list)
    primary_id: str | None = None
    failed_uploads: list[str] = field(default_factory=list)


async def _encode_thumbnail(source: SourceImage) -> EncodedImage:
    return await encode_image(source, profiles.THUMBNAIL)


async def _encode_logo(source: SourceImage) -> EncodedImage:
    return await encode_image(source, profiles.LOGO)


class ListingMediaSubmitter:
    def __init__(
        self,
        storage: ObjectStorage | None,
        records: AssetRecordStore,
        thumbnail_encode: EncodeFn = _encode_thumbnail,
        logo_encode: EncodeFn = _encode_logo,
    ):
        self.storage = storage if storage is not None else gcs_storage
        self.records = records
        self.thumbnail_encode = thumbnail_encode
        self.logo_encode = logo_encode

    async def submit(
        self,
        entity: EntitySpec,
        entity_id: str | int,
        state: AssetListState,
    ) -> SubmissionResult:
        """Persist the working list for one car / spare part.

        Raises:
            StorageError: Removing deleted images from storage failed.
            RecordStoreError: A metadata read or write failed.
        """
        plan = reconcile(state)
        log_extra = {"entity_id": str(entity_id)}
        result = SubmissionResult()

        if plan.to_delete:
            result.deleted_ids = await self._delete(entity, list(plan.to_delete))

        rows: list[dict[str, Any]] = []
        uploaded_positions: list[int] = []
        for item in plan.to_upload:
            try:
                rows.append(await self._upload(entity, entity_id, item))
            except ShowroomError as e:
                logger.error(
                    f"Upload failed for {item.image.filename}: {e.message}",
                    exc_info=True,
                    extra={**log_extra, "context": {"order_hint": item.order_hint, **e.details}},
                )
                result.failed_uploads.append(item.image.filename)
            else:
                uploaded_positions.append(item.order_hint)

        if rows:
            result.inserted_ids = await self.records.insert_asset_records(entity, rows)

        stored_ids = self._stored_ids_in_order(
            state, dict(zip(uploaded_positions, result.inserted_ids))
        )
        primary_id = stored_ids[0] if stored_ids else None

        for asset in state.items:
            if isinstance(asset, RemoteAsset) and asset.remote_id != primary_id:
                await self.records.update_asset_flag(entity, asset.remote_id, False)
        if primary_id is not None:
            await self.records.update_asset_flag(entity, primary_id, True)
        result.primary_id = primary_id

        discard(state)

        logger.info(
            f"Saved images for {entity.name} {entity_id}",
            extra={**log_extra, "context": {
                "deleted": len(result.deleted_ids),
                "uploaded": len(result.inserted_ids),
                "failed": len(result.failed_uploads),
                "primary_id": primary_id,
            }},
        )
        return result

    @staticmethod
    def _stored_ids_in_order(
        state: AssetListState, inserted_by_position: dict[int, str]
    ) -> list[str]:
        """Record ids of the images that made it to the store, in list order."""
        ids = []
        for position, asset in enumerate(state.items):
            if isinstance(asset, RemoteAsset):
                ids.append(asset.remote_id)
            elif isinstance(asset, StagedAsset) and position in inserted_by_position:
                ids.append(inserted_by_position[position])
        return ids

    async def _delete(self, entity: EntitySpec, ids: list[str]) -> list[str]:
        stored = await self.records.select_asset_records(entity, ids)

        for bucket in entity.buckets:
            paths = []
            for row in stored:
                for column in (entity.url_column, entity.thumbnail_column):
                    path = extract_storage_path(row.get(column) if column else None, bucket)
                    if path and path not in paths:
                        paths.append(path)
            if paths:
                await self.storage.remove(paths, bucket)

        await self.records.delete_asset_records(entity, ids)
        return ids

    async def _upload(
        self,
        entity: EntitySpec,
        entity_id: str | int,
        item: UploadItem,
    ) -> dict[str, Any]:
        """Upload one staged image (and thumbnail) and build its row."""
        paths = build_asset_paths(entity_id)
        image = item.image

        main_url = await self.storage.upload(
            image.data, paths.main, entity.bucket, image.content_type
        )
        row: dict[str, Any] = {
            entity.owner_column: entity_id,
            entity.url_column: main_url,
            entity.flag_column: False,
        }

        if entity.has_thumbnails:
            row[entity.thumbnail_column] = await self._upload_thumbnail(
                entity, paths.thumbnail, image, main_url
            )

        return row

    async def _upload_thumbnail(
        self,
        entity: EntitySpec,
        path: str,
        image: EncodedImage,
        fallback_url: str,
    ) -> str:
        """Thumbnail URL, or the main image URL if the thumbnail can't be made."""
        try:
            thumb = await self.thumbnail_encode(
                SourceImage(filename=image.filename, data=image.data)
            )
            return await self.storage.upload(thumb.data, path, entity.bucket, thumb.content_type)
        except ShowroomError as e:
            logger.warning(
                f"Thumbnail failed for {image.filename}, using full image: {e.message}",
                extra={"context": {"path": path, **e.details}},
            )
            return fallback_url

    async def upload_dealer_logo(self, source: SourceImage) -> str:
        """Encode a dealer logo with the logo profile and store it.

        Raises:
            DecodeError, CanvasError: The logo could not be encoded.
            StorageError: The upload failed.
        """
        logo = await self.logo_encode(source)
        return await self.storage.upload(
            logo.data, build_logo_path(), settings.logo_bucket, logo.content_type
        )
