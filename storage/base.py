from abc import ABC, abstractmethod
from typing import Any

from storage.entities import EntitySpec


class ObjectStorage(ABC):
    """Bucket-addressed blob storage for listing images."""

    @abstractmethod
    async def upload(self, data: bytes, path: str, bucket: str, content_type: str) -> str:
        """Write data at path (overwriting any existing object).

        Returns:
            Public URL of the stored object.

        Raises:
            StorageError: If the write fails.
        """

    @abstractmethod
    async def remove(self, paths: list[str], bucket: str) -> None:
        """Delete objects by path. Missing objects are not an error.

        Raises:
            StorageError: If the deletion fails.
        """


class AssetRecordStore(ABC):
    """Relational metadata rows describing each stored image."""

    @abstractmethod
    async def select_asset_records(
        self, entity: EntitySpec, ids: list[str]
    ) -> list[dict[str, Any]]:
        """Fetch the rows with the given ids."""

    @abstractmethod
    async def insert_asset_records(
        self, entity: EntitySpec, records: list[dict[str, Any]]
    ) -> list[str]:
        """Insert rows, returning their new ids in insert order."""

    @abstractmethod
    async def delete_asset_records(self, entity: EntitySpec, ids: list[str]) -> None:
        """Delete the rows with the given ids."""

    @abstractmethod
    async def update_asset_flag(self, entity: EntitySpec, id: str, value: bool) -> None:
        """Set the primary/main flag of one row."""
