from typing import Any

import httpx

from config import settings
from exceptions import RecordStoreError
from storage.base import AssetRecordStore
from storage.entities import EntitySpec
from utils.logging import get_logger

logger = get_logger("storage.records")


def _in_filter(ids: list[str]) -> str:
    quoted = ",".join(f'"{i}"' for i in ids)
    return f"in.({quoted})"


class RestRecordStore(AssetRecordStore):
    """Image metadata over a PostgREST-style HTTP API.

    Rows are addressed as /{table}?id=eq.X or ?id=in.("a","b").
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.records_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.records_api_key
        self.timeout = timeout or settings.records_timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if not self.base_url:
            raise RecordStoreError("Record store URL is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, f"/{table}", params=params, json=json, headers=headers
                )
        except httpx.TimeoutException:
            raise RecordStoreError(
                f"Record store timed out after {self.timeout}s",
                table=table,
                method=method,
            )
        except httpx.RequestError as e:
            raise RecordStoreError(
                f"Record store request failed: {e}",
                table=table,
                method=method,
            )

        if not response.is_success:
            raise RecordStoreError(
                f"Record store returned HTTP {response.status_code}",
                table=table,
                method=method,
                http_status=response.status_code,
            )
        return response

    async def select_asset_records(
        self, entity: EntitySpec, ids: list[str]
    ) -> list[dict[str, Any]]:
        if not ids:
            return []
        response = await self._request(
            "GET", entity.table, params={"id": _in_filter(ids), "select": "*"}
        )
        return response.json()

    async def insert_asset_records(
        self, entity: EntitySpec, records: list[dict[str, Any]]
    ) -> list[str]:
        if not records:
            return []
        response = await self._request(
            "POST",
            entity.table,
            json=records,
            headers={"Prefer": "return=representation"},
        )
        inserted = [str(row["id"]) for row in response.json()]
        logger.info(
            f"Inserted {len(inserted)} rows into {entity.table}",
            extra={"context": {"table": entity.table, "ids": inserted}},
        )
        return inserted

    async def delete_asset_records(self, entity: EntitySpec, ids: list[str]) -> None:
        if not ids:
            return
        await self._request("DELETE", entity.table, params={"id": _in_filter(ids)})
        logger.info(
            f"Deleted {len(ids)} rows from {entity.table}",
            extra={"context": {"table": entity.table, "ids": ids}},
        )

    async def update_asset_flag(self, entity: EntitySpec, id: str, value: bool) -> None:
        await self._request(
            "PATCH",
            entity.table,
            params={"id": f"eq.{id}"},
            json={entity.flag_column: value},
        )
