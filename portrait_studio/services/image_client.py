from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from portrait_studio.config import Settings
from portrait_studio.services.errors import MalformedProviderResponse, ProviderError, ProviderTimeout
from portrait_studio.utils.logging import get_logger
from portrait_studio.utils.text import preview


logger = get_logger('image_client')


class ImageProviderClient:
    """Single-shot image generation against an OpenAI-compatible multimodal gateway."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.base_url = settings.ai_api_url.rstrip('/')
        self.api_key = settings.ai_api_key.strip()
        self.model = settings.ai_model
        self.timeout = float(settings.provider_timeout_seconds)
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

    def build_request(self, prompt: str, image_url: str) -> Dict[str, Any]:
        return {
            'model': self.model,
            'messages': [
                {
                    'role': 'user',
                    'content': [
                        {'type': 'text', 'text': prompt},
                        {'type': 'image_url', 'image_url': {'url': image_url}},
                    ],
                }
            ],
            'modalities': ['text', 'image'],
            'size': self.settings.ai_output_size,
        }

    async def generate(self, prompt: str, image_url: str) -> Dict[str, Any]:
        if not self.settings.is_provider_configured():
            raise ProviderError('Image provider is not configured')

        url = f'{self.base_url}/v1/chat/completions'
        body = self.build_request(prompt, image_url)
        try:
            resp = await asyncio.wait_for(
                self._client.post(url, headers=self._headers(), json=body),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning('provider_timeout', model=self.model, timeout=self.timeout)
            raise ProviderTimeout(f'Provider did not answer within {self.timeout:g}s') from exc
        except httpx.RequestError as exc:
            logger.warning('provider_network_error', model=self.model, error=str(exc))
            raise ProviderError(f'Provider request failed: {type(exc).__name__}') from exc

        preview_length = self.settings.error_preview_length
        logger.info('provider_response', status_code=resp.status_code, size=len(resp.content))
        if resp.status_code >= 400:
            logger.warning(
                'provider_error_status',
                status_code=resp.status_code,
                body=preview(resp.text, preview_length),
            )
            raise ProviderError(f'Provider returned HTTP {resp.status_code}', resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedProviderResponse(
                f'Provider returned invalid JSON: {preview(resp.text, preview_length)}'
            ) from exc
        if not isinstance(data, dict):
            raise MalformedProviderResponse('Provider response is not a JSON object')
        return data
