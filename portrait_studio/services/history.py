from __future__ import annotations

import random
import string
from typing import Any, Dict, List, Optional

from portrait_studio.services.locks import UserLocks
from portrait_studio.services.records import (
    Failed,
    HistoryRecord,
    Outcome,
    Pending,
    Succeeded,
    outcome_fields,
)
from portrait_studio.services.storage import ObjectStore, read_json, write_json
from portrait_studio.utils.logging import get_logger
from portrait_studio.utils.time import now_ms


logger = get_logger('history')

IMMUTABLE_FIELDS = ('id', 'timestamp')


def history_key(user_id: str) -> str:
    return f'history/{user_id}.json'


def new_record_id(timestamp: int) -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = ''.join(random.choice(alphabet) for _ in range(6))
    return f'{timestamp}-{suffix}'


class HistoryService:
    """Per-user generation history, newest first, stored as `{"records": [...]}`."""

    def __init__(self, store: ObjectStore, locks: Optional[UserLocks] = None) -> None:
        self.store = store
        self.locks = locks or UserLocks()

    async def _load_raw(self, user_id: str) -> List[Dict[str, Any]]:
        data = await read_json(self.store, history_key(user_id))
        if not data:
            return []
        records = data.get('records') or []
        return [item for item in records if isinstance(item, dict)]

    async def _save_raw(self, user_id: str, records: List[Dict[str, Any]]) -> None:
        await write_json(self.store, history_key(user_id), {'records': records})

    async def list(self, user_id: str) -> List[HistoryRecord]:
        return [HistoryRecord.from_dict(item) for item in await self._load_raw(user_id)]

    async def get(self, user_id: str, record_id: str) -> Optional[HistoryRecord]:
        for item in await self._load_raw(user_id):
            if item.get('id') == record_id:
                return HistoryRecord.from_dict(item)
        return None

    async def append(
        self,
        user_id: str,
        *,
        style: str,
        original_url: str,
        lang: str,
        outcome: Outcome | None = None,
    ) -> HistoryRecord:
        timestamp = now_ms()
        record = HistoryRecord(
            id=new_record_id(timestamp),
            timestamp=timestamp,
            type=style,
            original_url=original_url,
            lang=lang,
            outcome=outcome or Pending(),
        )
        async with self.locks.get(user_id):
            records = await self._load_raw(user_id)
            records.insert(0, record.to_dict())
            await self._save_raw(user_id, records)
        logger.info('history_appended', user_id=user_id, record_id=record.id, style=style)
        return record

    async def update(self, user_id: str, record_id: str, updates: Dict[str, Any]) -> bool:
        changes = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}
        async with self.locks.get(user_id):
            records = await self._load_raw(user_id)
            for index, item in enumerate(records):
                if item.get('id') != record_id:
                    continue
                merged = {**item, **changes}
                records[index] = HistoryRecord.from_dict(merged, strict=True).to_dict()
                await self._save_raw(user_id, records)
                return True
        return False

    async def mark_success(self, user_id: str, record_id: str, generated_url: str) -> bool:
        return await self.update(user_id, record_id, outcome_fields(Succeeded(generated_url)))

    async def mark_failed(self, user_id: str, record_id: str, reason: str) -> bool:
        return await self.update(user_id, record_id, outcome_fields(Failed(reason)))

    async def delete(self, user_id: str, record_id: str) -> bool:
        async with self.locks.get(user_id):
            records = await self._load_raw(user_id)
            remaining = [item for item in records if item.get('id') != record_id]
            if len(remaining) == len(records):
                return False
            await self._save_raw(user_id, remaining)
        logger.info('history_deleted', user_id=user_id, record_id=record_id)
        return True
