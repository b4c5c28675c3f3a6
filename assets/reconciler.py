import uuid
from typing import Awaitable, Callable

from assets.models import (
    AssetListState,
    Direction,
    ReconcilePlan,
    RemoteAsset,
    StagedAsset,
    UploadItem,
)
from assets.preview import PreviewHandle
from exceptions import CapacityExceeded, IndexOutOfRange, ShowroomError
from schemas import EncodedImage, SourceImage
from utils.logging import get_logger

logger = get_logger("assets.reconciler")

EncodeFn = Callable[[SourceImage], Awaitable[EncodedImage]]


def _check_index(state: AssetListState, index: int) -> None:
    if not 0 <= index < len(state.items):
        raise IndexOutOfRange(
            f"No image at position {index}",
            index=index,
            length=len(state.items),
        )


async def add_staged(
    state: AssetListState,
    files: list[SourceImage],
    max_count: int,
    encode_fn: EncodeFn,
) -> AssetListState:
    """Encode and append newly selected files.

    Files are encoded one at a time, in input order: each encode holds a
    full-resolution image in memory. A file that fails to encode, or whose
    preview cannot be written, is logged and skipped.

    Raises:
        CapacityExceeded: The list would exceed max_count. Nothing is encoded.
    """
    if len(state.items) + len(files) > max_count:
        raise CapacityExceeded(
            f"Maximum {max_count} images allowed",
            max_count=max_count,
            current=len(state.items),
            requested=len(files),
        )

    staged: list[StagedAsset] = []
    try:
        for source in files:
            try:
                image = await encode_fn(source)
            except ShowroomError as e:
                logger.warning(
                    f"Skipping {source.filename}: {e.message}",
                    exc_info=True,
                    extra={"context": {
                        "filename": source.filename,
                        "error": e.error_code,
                        **e.details,
                    }},
                )
                continue

            try:
                preview = PreviewHandle.create(image)
            except OSError as e:
                logger.error(
                    f"Skipping {source.filename}: could not write preview: {e}",
                    exc_info=True,
                    extra={"context": {"filename": source.filename}},
                )
                continue

            staged.append(
                StagedAsset(local_id=uuid.uuid4().hex[:12], image=image, preview=preview)
            )
    except BaseException:
        # Nothing is returned, so nobody else can release these
        for asset in staged:
            asset.preview.release()
        raise

    return AssetListState(
        items=state.items + tuple(staged),
        removed_remote_ids=state.removed_remote_ids,
    )


def remove(state: AssetListState, index: int) -> AssetListState:
    """Drop the image at index.

    Remote images are remembered for deletion; staged previews are released.
    """
    _check_index(state, index)
    asset = state.items[index]
    removed = state.removed_remote_ids

    if isinstance(asset, RemoteAsset):
        if asset.remote_id not in removed:
            removed = removed + (asset.remote_id,)
    elif isinstance(asset, StagedAsset):
        asset.preview.release()
    else:
        raise TypeError(f"Unknown asset type: {type(asset).__name__}")

    return AssetListState(
        items=state.items[:index] + state.items[index + 1:],
        removed_remote_ids=removed,
    )


def move(state: AssetListState, index: int, direction: Direction) -> AssetListState:
    """Swap with the left or right neighbour. No-op at the list boundary."""
    _check_index(state, index)
    direction = Direction(direction)

    target = index - 1 if direction == Direction.LEFT else index + 1
    if not 0 <= target < len(state.items):
        return state

    items = list(state.items)
    items[index], items[target] = items[target], items[index]
    return AssetListState(items=tuple(items), removed_remote_ids=state.removed_remote_ids)


def promote_to_primary(state: AssetListState, index: int) -> AssetListState:
    """Move the image at index to position 0, shifting the rest right."""
    _check_index(state, index)
    if index == 0:
        return state

    items = list(state.items)
    items.insert(0, items.pop(index))
    return AssetListState(items=tuple(items), removed_remote_ids=state.removed_remote_ids)


def reconcile(state: AssetListState) -> ReconcilePlan:
    """Compute the delete / upload / primary operations for submit."""
    to_upload: list[UploadItem] = []
    demoted: list[str] = []

    for position, asset in enumerate(state.items):
        if isinstance(asset, StagedAsset):
            to_upload.append(UploadItem(image=asset.image, order_hint=position))
        elif isinstance(asset, RemoteAsset):
            if position > 0:
                demoted.append(asset.remote_id)
        else:
            raise TypeError(f"Unknown asset type: {type(asset).__name__}")

    primary = state.primary
    new_primary = primary.remote_id if isinstance(primary, RemoteAsset) else None

    return ReconcilePlan(
        to_delete=state.removed_remote_ids,
        to_upload=tuple(to_upload),
        new_primary_remote_id=new_primary,
        demoted_remote_ids=tuple(demoted),
    )


def discard(state: AssetListState) -> None:
    """Release every staged preview. Call on unmount, cancel or after submit."""
    for asset in state.items:
        if isinstance(asset, StagedAsset):
            asset.preview.release()
