"""Record persistence used by the business handlers."""

import asyncio
import uuid
from collections.abc import Mapping
from typing import Protocol


class RecordRepository(Protocol):
    """Opaque persistence for business records, scoped per blueprint."""

    async def get(self, blueprint_id: str, collection: str, record_id: str) -> dict[str, object] | None:
        ...

    async def create(self, blueprint_id: str, collection: str, data: Mapping[str, object]) -> str:
        ...

    async def delete(self, blueprint_id: str, collection: str, record_id: str) -> None:
        ...


class InMemoryRecordRepository(RecordRepository):
    """In-memory repository implementation."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], dict[str, dict[str, object]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, blueprint_id: str, collection: str, record_id: str) -> dict[str, object] | None:
        async with self._lock:
            record = self._records.get((blueprint_id, collection), {}).get(record_id)
            return dict(record) if record is not None else None

    async def create(self, blueprint_id: str, collection: str, data: Mapping[str, object]) -> str:
        async with self._lock:
            record_id = str(data.get("id") or uuid.uuid4().hex)
            self._records.setdefault((blueprint_id, collection), {})[record_id] = {**data, "id": record_id}
            return record_id

    async def delete(self, blueprint_id: str, collection: str, record_id: str) -> None:
        async with self._lock:
            self._records.get((blueprint_id, collection), {}).pop(record_id, None)

    def records(self, blueprint_id: str, collection: str) -> list[dict[str, object]]:
        return [dict(r) for r in self._records.get((blueprint_id, collection), {}).values()]
