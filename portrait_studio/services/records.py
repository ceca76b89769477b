from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class QuotaRecord:
    user_id: str
    remaining_quota: int = 0
    total_purchased: int = 0
    total_generated: int = 0
    last_updated: int = 0
    processed_orders: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'userId': self.user_id,
            'remainingQuota': self.remaining_quota,
            'totalPurchased': self.total_purchased,
            'totalGenerated': self.total_generated,
            'lastUpdated': self.last_updated,
        }
        if self.processed_orders:
            data['processedOrders'] = list(self.processed_orders)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], user_id: str) -> 'QuotaRecord':
        orders = data.get('processedOrders')
        return cls(
            user_id=str(data.get('userId') or user_id),
            remaining_quota=max(0, _as_int(data.get('remainingQuota'))),
            total_purchased=max(0, _as_int(data.get('totalPurchased'))),
            total_generated=max(0, _as_int(data.get('totalGenerated'))),
            last_updated=_as_int(data.get('lastUpdated')),
            processed_orders=[str(item) for item in orders if item] if isinstance(orders, list) else [],
        )


@dataclass(frozen=True)
class Pending:
    """Record created before the provider call; persisted pessimistically as failed."""


@dataclass(frozen=True)
class Succeeded:
    generated_url: str


@dataclass(frozen=True)
class Failed:
    reason: str


Outcome = Union[Pending, Succeeded, Failed]


def outcome_fields(outcome: Outcome) -> Dict[str, Any]:
    if isinstance(outcome, Succeeded):
        return {'status': STATUS_SUCCESS, 'generatedUrl': outcome.generated_url}
    if isinstance(outcome, Failed):
        return {'status': STATUS_FAILED, 'generatedUrl': None, 'error': outcome.reason}
    return {'status': STATUS_FAILED, 'generatedUrl': None}


def outcome_from_fields(data: Dict[str, Any], strict: bool = False) -> Outcome:
    status = str(data.get('status') or STATUS_FAILED)
    generated_url = data.get('generatedUrl')
    if status == STATUS_SUCCESS:
        if generated_url:
            return Succeeded(str(generated_url))
        if strict:
            raise ValueError('success_requires_generated_url')
        return Failed('missing generated image reference')
    if status != STATUS_FAILED and strict:
        raise ValueError(f'unknown_status:{status}')
    error = data.get('error')
    if error:
        return Failed(str(error))
    return Pending()


@dataclass
class HistoryRecord:
    id: str
    timestamp: int
    type: str
    original_url: str
    lang: str
    outcome: Outcome = field(default_factory=Pending)

    @property
    def status(self) -> str:
        return STATUS_SUCCESS if isinstance(self.outcome, Succeeded) else STATUS_FAILED

    @property
    def generated_url(self) -> Optional[str]:
        if isinstance(self.outcome, Succeeded):
            return self.outcome.generated_url
        return None

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.outcome, Failed):
            return self.outcome.reason
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'timestamp': self.timestamp,
            'type': self.type,
            'originalUrl': self.original_url,
            'lang': self.lang,
        }
        data.update(outcome_fields(self.outcome))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], strict: bool = False) -> 'HistoryRecord':
        return cls(
            id=str(data.get('id') or ''),
            timestamp=_as_int(data.get('timestamp')),
            type=str(data.get('type') or 'id'),
            original_url=str(data.get('originalUrl') or ''),
            lang=str(data.get('lang') or ''),
            outcome=outcome_from_fields(data, strict=strict),
        )
