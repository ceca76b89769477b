from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from portrait_studio.services.locks import UserLocks
from portrait_studio.services.records import QuotaRecord
from portrait_studio.services.storage import ObjectStore, read_json, write_json
from portrait_studio.utils.logging import get_logger
from portrait_studio.utils.time import now_ms


logger = get_logger('quota')


@dataclass
class Deduction:
    ok: bool
    remaining: int


@dataclass
class Credit:
    applied: bool
    remaining: int


def quota_key(user_id: str) -> str:
    return f'quotas/{user_id}.json'


class QuotaService:
    """Per-user generation credits kept as one JSON document per user.

    Every mutation reads the whole document, changes it and writes it back
    while holding the user's lock. Generations in flight hold a reservation,
    so concurrent attempts cannot pass the gate on the same credit.
    """

    def __init__(self, store: ObjectStore, locks: Optional[UserLocks] = None, free_credits: int = 1) -> None:
        self.store = store
        self.locks = locks or UserLocks()
        self.free_credits = free_credits
        self._reserved: Dict[str, int] = {}

    async def _save(self, record: QuotaRecord) -> None:
        record.last_updated = now_ms()
        await write_json(self.store, quota_key(record.user_id), record.to_dict())

    async def _load_or_init(self, user_id: str) -> QuotaRecord:
        data = await read_json(self.store, quota_key(user_id))
        if data is not None:
            return QuotaRecord.from_dict(data, user_id)
        record = QuotaRecord(user_id=user_id, remaining_quota=self.free_credits)
        await self._save(record)
        logger.info('quota_initialized', user_id=user_id, remaining=record.remaining_quota)
        return record

    async def get_or_init(self, user_id: str) -> QuotaRecord:
        async with self.locks.get(user_id):
            return await self._load_or_init(user_id)

    async def has(self, user_id: str) -> bool:
        record = await self.get_or_init(user_id)
        return record.remaining_quota > 0

    def reserved(self, user_id: str) -> int:
        return self._reserved.get(user_id, 0)

    async def reserve(self, user_id: str) -> bool:
        """Hold one credit for an attempt in flight; False when none is free."""
        async with self.locks.get(user_id):
            record = await self._load_or_init(user_id)
            if record.remaining_quota - self.reserved(user_id) <= 0:
                return False
            self._reserved[user_id] = self.reserved(user_id) + 1
        return True

    def release(self, user_id: str) -> None:
        count = self.reserved(user_id) - 1
        if count > 0:
            self._reserved[user_id] = count
        else:
            self._reserved.pop(user_id, None)

    async def deduct(self, user_id: str) -> Deduction:
        async with self.locks.get(user_id):
            record = await self._load_or_init(user_id)
            if record.remaining_quota <= 0:
                return Deduction(ok=False, remaining=0)
            record.remaining_quota -= 1
            record.total_generated += 1
            await self._save(record)
        logger.info('quota_deducted', user_id=user_id, remaining=record.remaining_quota)
        return Deduction(ok=True, remaining=record.remaining_quota)

    async def add(self, user_id: str, amount: int) -> int:
        return (await self.credit(user_id, amount)).remaining

    async def credit(self, user_id: str, amount: int, order_id: Optional[str] = None) -> Credit:
        """Add purchased credits; an order id already applied to this user is a no-op."""
        if amount <= 0:
            raise ValueError('amount')
        async with self.locks.get(user_id):
            record = await self._load_or_init(user_id)
            if order_id and order_id in record.processed_orders:
                logger.info('quota_order_already_applied', user_id=user_id, order_id=order_id)
                return Credit(applied=False, remaining=record.remaining_quota)
            record.remaining_quota += amount
            record.total_purchased += amount
            if order_id:
                record.processed_orders.append(order_id)
            await self._save(record)
        logger.info('quota_added', user_id=user_id, amount=amount, remaining=record.remaining_quota, order_id=order_id)
        return Credit(applied=True, remaining=record.remaining_quota)
