from __future__ import annotations

import base64
import mimetypes
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from portrait_studio.config import Settings
from portrait_studio.services.errors import InsufficientQuota, InvalidInput, StudioError, Unauthorized
from portrait_studio.services.extractors import MIME_EXTENSIONS, ExtractedImage, extract_image
from portrait_studio.services.history import HistoryService
from portrait_studio.services.image_client import ImageProviderClient
from portrait_studio.services.presets import StylePreset, get_preset, normalize_lang
from portrait_studio.services.quota import QuotaService
from portrait_studio.services.storage import ObjectStore
from portrait_studio.utils.logging import get_logger
from portrait_studio.utils.text import clamp_text
from portrait_studio.utils.time import now_ms


logger = get_logger('generation')

DEFAULT_UPLOAD_TYPE = 'image/jpeg'
GENERIC_UPLOAD_TYPES = {'', 'application/octet-stream', 'binary/octet-stream'}

IMAGE_SIGNATURES = (
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'\xff\xd8\xff', 'image/jpeg'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
)


def sniff_image_type(data: bytes) -> Optional[str]:
    for signature, mime_type in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    return None


@dataclass
class GenerationResult:
    record_id: str
    image_url: str
    original_url: str
    style: str
    remaining_quota: int


class GenerationService:
    """Runs one generation attempt end to end.

    Validation and the quota gate run before anything is written. A failed
    history record is created before the provider is called and is finalised
    exactly once, as success or with a short error. The gate reserves a credit
    for the attempt; it is only deducted after the generated image is stored.
    """

    def __init__(
        self,
        settings: Settings,
        store: ObjectStore,
        quota: QuotaService,
        history: HistoryService,
        client: ImageProviderClient,
    ) -> None:
        self.settings = settings
        self.store = store
        self.quota = quota
        self.history = history
        self.client = client

    def validate_upload(
        self,
        image: Optional[bytes],
        content_type: Optional[str],
        filename: Optional[str] = None,
    ) -> str:
        if not image:
            raise InvalidInput('No image provided')
        limit = self.settings.max_upload_bytes
        if len(image) > limit:
            raise InvalidInput(f'Image is larger than {limit / (1024 * 1024):g} MB')
        mime_type = (content_type or '').split(';')[0].strip().lower()
        if mime_type in GENERIC_UPLOAD_TYPES:
            guessed = mimetypes.guess_type(filename)[0] if filename else None
            if not (guessed or '').startswith('image/'):
                guessed = None
            return sniff_image_type(image) or guessed or DEFAULT_UPLOAD_TYPE
        if not mime_type.startswith('image/'):
            raise InvalidInput('Uploaded file is not an image')
        return mime_type

    async def _original_reference(self, user_id: str, image: bytes, mime_type: str) -> Tuple[str, str]:
        data_url = f'data:{mime_type};base64,{base64.b64encode(image).decode("ascii")}'
        if not self.settings.store_uploads:
            return data_url, data_url
        ext = MIME_EXTENSIONS.get(mime_type, 'jpg')
        key = f'uploads/{user_id}/{now_ms()}-{uuid.uuid4().hex[:6]}.{ext}'
        original_url = await self.store.put(key, image, mime_type)
        return data_url, original_url

    async def _store_output(self, user_id: str, style: str, image: ExtractedImage) -> str:
        if image.data is None:
            return image.url or ''
        key = f'generated/{user_id}/{now_ms()}-{style}-{uuid.uuid4().hex[:6]}.{image.extension}'
        return await self.store.put(key, image.data, image.mime_type)

    async def generate(
        self,
        user_id: str,
        image: Optional[bytes],
        style: str | None = None,
        lang: str | None = None,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> GenerationResult:
        if not user_id:
            raise Unauthorized('Please sign in first')
        mime_type = self.validate_upload(image, content_type, filename)
        preset = get_preset(style)
        lang = normalize_lang(lang)

        if not await self.quota.reserve(user_id):
            raise InsufficientQuota('No generations left, please buy more credits')
        try:
            return await self._attempt(user_id, image, mime_type, preset, lang)
        finally:
            self.quota.release(user_id)

    async def _attempt(
        self, user_id: str, image: bytes, mime_type: str, preset: StylePreset, lang: str
    ) -> GenerationResult:
        data_url, original_url = await self._original_reference(user_id, image, mime_type)
        record = await self.history.append(user_id, style=preset.key, original_url=original_url, lang=lang)
        log = logger.bind(user_id=user_id, record_id=record.id, style=preset.key)
        log.info('generation_started', lang=lang, size=len(image))

        try:
            response = await self.client.generate(preset.prompt_for(lang), data_url)
            extracted = extract_image(response, self.settings.error_preview_length)
            image_url = await self._store_output(user_id, preset.key, extracted)
        except StudioError as exc:
            log.warning('generation_failed', code=exc.code, error=exc.message)
            await self.history.mark_failed(
                user_id, record.id, clamp_text(exc.message, self.settings.error_preview_length)
            )
            raise
        except Exception:
            log.exception('generation_crashed')
            await self.history.mark_failed(user_id, record.id, 'Internal error during generation')
            raise

        await self.history.mark_success(user_id, record.id, image_url)
        deduction = await self.quota.deduct(user_id)
        if not deduction.ok:
            log.warning('quota_deduct_refused')
        log.info('generation_succeeded', source=extracted.source, remaining=deduction.remaining)
        return GenerationResult(
            record_id=record.id,
            image_url=image_url,
            original_url=original_url,
            style=preset.key,
            remaining_quota=deduction.remaining,
        )
