from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from portrait_studio.config import Settings
from portrait_studio.services.creem import CreemClient, CreemError
from portrait_studio.services.errors import InvalidInput, PaymentProviderError, ProductNotFound
from portrait_studio.services.locks import UserLocks
from portrait_studio.services.products import get_product
from portrait_studio.services.quota import QuotaService
from portrait_studio.services.storage import ObjectStore, read_json, write_json
from portrait_studio.utils.logging import get_logger
from portrait_studio.utils.time import now_ms


logger = get_logger('payments')

CHECKOUT_COMPLETED = 'checkout.completed'


def order_key(checkout_id: str) -> str:
    return f'orders/{checkout_id}.json'


@dataclass
class WebhookResult:
    handled: bool
    message: str
    user_id: Optional[str] = None
    credited: int = 0
    remaining: Optional[int] = None
    duplicate: bool = False


def _checkout_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = payload.get('data') if isinstance(payload.get('data'), dict) else {}
    for candidate in (data.get('checkout'), payload.get('checkout'), payload.get('object')):
        if isinstance(candidate, dict):
            return candidate
    return {}


def _product_id(checkout: Dict[str, Any]) -> str:
    product = checkout.get('product')
    if isinstance(product, dict):
        return str(product.get('id') or '').strip()
    return str(checkout.get('product_id') or product or '').strip()


class PaymentsService:
    def __init__(
        self,
        settings: Settings,
        store: ObjectStore,
        quota: QuotaService,
        creem: Optional[CreemClient] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.quota = quota
        self.creem = creem
        self._order_locks = UserLocks()

    async def create_checkout(self, user_id: str, product_id: str | None, base_url: str) -> Dict[str, Any]:
        if not product_id:
            raise InvalidInput('Product ID required')
        product = get_product(product_id)
        if not product:
            raise ProductNotFound('Product not found')
        if self.creem is None:
            raise PaymentProviderError('Payments are not configured')

        base_url = (self.settings.public_base_url or base_url).rstrip('/')
        try:
            result = await self.creem.create_checkout(
                product_id=product.id,
                success_url=f'{base_url}/quota?success=true',
                cancel_url=f'{base_url}/quota?canceled=true',
                metadata={'userId': user_id},
                request_id=f'{user_id}:{uuid.uuid4().hex}',
            )
        except CreemError as exc:
            logger.error('checkout_create_failed', user_id=user_id, product_id=product.id, error=str(exc))
            raise PaymentProviderError('Could not create checkout') from exc

        checkout_url = CreemClient.extract_checkout_url(result)
        if not checkout_url:
            raise PaymentProviderError('Checkout response had no URL')
        logger.info('checkout_created', user_id=user_id, product_id=product.id)
        return {
            'checkoutUrl': checkout_url,
            'product': {'id': product.id, 'name': product.name, 'quota': product.quota},
        }

    async def handle_webhook(self, payload: Dict[str, Any]) -> WebhookResult:
        event = str(payload.get('event') or payload.get('eventType') or '').strip()
        if event != CHECKOUT_COMPLETED:
            logger.info('webhook_ignored', event=event)
            return WebhookResult(handled=False, message='Event ignored')

        checkout = _checkout_from_payload(payload)
        metadata = checkout.get('metadata') if isinstance(checkout.get('metadata'), dict) else {}
        user_id = str(metadata.get('userId') or '').strip()
        if not user_id:
            logger.error('webhook_missing_user', checkout_id=checkout.get('id'))
            raise InvalidInput('No userId provided')

        product_id = _product_id(checkout)
        product = get_product(product_id)
        if not product:
            logger.error('webhook_unknown_product', product_id=product_id, user_id=user_id)
            raise ProductNotFound(f'Product {product_id} not found')

        checkout_id = str(checkout.get('id') or '').strip()
        if not checkout_id:
            remaining = await self.quota.add(user_id, product.quota)
            return self._credited(user_id, product.quota, remaining)

        async with self._order_locks.get(checkout_id):
            existing = await read_json(self.store, order_key(checkout_id))
            if existing is not None:
                logger.info('webhook_duplicate', checkout_id=checkout_id, user_id=user_id)
                return WebhookResult(handled=True, message='Already processed', user_id=user_id, duplicate=True)
            # The credit is keyed by checkout id, so a retry after a failed receipt write is not re-applied.
            credit = await self.quota.credit(user_id, product.quota, order_id=checkout_id)
            await write_json(
                self.store,
                order_key(checkout_id),
                {
                    'checkoutId': checkout_id,
                    'userId': user_id,
                    'productId': product.id,
                    'quota': product.quota,
                    'processedAt': now_ms(),
                },
            )
        if not credit.applied:
            logger.info('webhook_duplicate', checkout_id=checkout_id, user_id=user_id)
            return WebhookResult(
                handled=True,
                message='Already processed',
                user_id=user_id,
                remaining=credit.remaining,
                duplicate=True,
            )
        return self._credited(user_id, product.quota, credit.remaining)

    def _credited(self, user_id: str, amount: int, remaining: int) -> WebhookResult:
        logger.info('webhook_credited', user_id=user_id, amount=amount, remaining=remaining)
        return WebhookResult(
            handled=True,
            message=f'Added {amount} quota to user',
            user_id=user_id,
            credited=amount,
            remaining=remaining,
        )
