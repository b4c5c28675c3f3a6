"""Working-list data model for a listing form's images.

Position 0 of AssetListState.items is the primary image. The is_primary
fields only carry what the remote store said when the list was loaded.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from assets.preview import PreviewHandle
from schemas import EncodedImage


class Direction(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class RemoteAsset:
    """An image already persisted by the remote store."""

    remote_id: str
    display_url: str
    is_primary: bool = False
    backing_record: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class StagedAsset:
    """A newly selected, already encoded image awaiting upload."""

    local_id: str
    image: EncodedImage = field(compare=False)
    preview: PreviewHandle = field(compare=False)
    is_primary: bool = False

    @property
    def preview_url(self) -> str:
        return self.preview.url


VisualAsset = Union[RemoteAsset, StagedAsset]


@dataclass(frozen=True)
class AssetListState:
    items: tuple[VisualAsset, ...] = ()
    removed_remote_ids: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    @property
    def primary(self) -> VisualAsset | None:
        return self.items[0] if self.items else None

    @classmethod
    def empty(cls) -> "AssetListState":
        return cls()

    @classmethod
    def from_remote(cls, assets: list[RemoteAsset]) -> "AssetListState":
        """Pre-populate from a listing's stored images, primary first.

        The sort is stable, so the store's order is kept otherwise.
        """
        ordered = sorted(assets, key=lambda a: not a.is_primary)
        return cls(items=tuple(ordered))


@dataclass(frozen=True)
class UploadItem:
    image: EncodedImage
    order_hint: int


@dataclass(frozen=True)
class ReconcilePlan:
    """Submit-time diff between the working list and the remote store.

    new_primary_remote_id=None means the first uploaded image becomes
    primary once the store has assigned it an id.
    """

    to_delete: tuple[str, ...]
    to_upload: tuple[UploadItem, ...]
    new_primary_remote_id: str | None
    demoted_remote_ids: tuple[str, ...]
