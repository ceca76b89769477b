"""Locate the generated image in a provider reply.

Providers behind the OpenAI-compatible gateway answer in several shapes.
Each extractor understands one of them; `extract_image` tries them in
priority order and raises when none matches.
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from portrait_studio.services.errors import MalformedProviderResponse, NoImageReturned
from portrait_studio.utils.text import preview


# Payloads may be wrapped across lines (MIME style); padding only at the end.
DATA_URL_RE = re.compile(
    r'data:(image/[A-Za-z0-9.+-]+);base64,'
    r'([A-Za-z0-9+/]+(?:[ \t]*\r?\n[ \t]*[A-Za-z0-9+/]+)*={0,2})'
)

MIME_EXTENSIONS = {
    'image/png': 'png',
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/webp': 'webp',
    'image/gif': 'gif',
}


@dataclass
class ExtractedImage:
    mime_type: str
    data: Optional[bytes] = None
    url: Optional[str] = None
    source: str = ''

    @property
    def extension(self) -> str:
        return MIME_EXTENSIONS.get(self.mime_type.lower(), 'png')


def decode_image(payload: str, mime_type: str, source: str) -> ExtractedImage:
    cleaned = ''.join(payload.split())
    if len(cleaned) % 4 == 1:
        raise MalformedProviderResponse('Provider returned truncated image data')
    cleaned += '=' * (-len(cleaned) % 4)
    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedProviderResponse('Provider returned undecodable image data') from exc
    if not data:
        raise MalformedProviderResponse('Provider returned empty image data')
    return ExtractedImage(mime_type=mime_type.lower(), data=data, source=source)


def _from_blob(blob: Any, mime_key: str, source: str) -> Optional[ExtractedImage]:
    if not isinstance(blob, dict):
        return None
    mime_type = str(blob.get(mime_key) or '')
    payload = blob.get('data')
    if not mime_type.lower().startswith('image/') or not isinstance(payload, str) or not payload.strip():
        return None
    return decode_image(payload, mime_type, source)


def from_inline_data(part: Dict[str, Any]) -> Optional[ExtractedImage]:
    return _from_blob(part.get('inline_data'), 'mime_type', 'inline_data')


def from_inline_data_camel(part: Dict[str, Any]) -> Optional[ExtractedImage]:
    return _from_blob(part.get('inlineData'), 'mimeType', 'inlineData')


def from_image_url(part: Dict[str, Any]) -> Optional[ExtractedImage]:
    ref = part.get('image_url')
    url = ref.get('url') if isinstance(ref, dict) else ref
    if not isinstance(url, str):
        return None
    url = url.strip()
    if url.startswith('data:'):
        match = DATA_URL_RE.match(url)
        if not match:
            return None
        return decode_image(match.group(2), match.group(1), 'image_url_data')
    if url.startswith(('https://', 'http://')):
        return ExtractedImage(mime_type='image/png', url=url, source='image_url')
    return None


def from_text(text: str) -> Optional[ExtractedImage]:
    match = DATA_URL_RE.search(text)
    if not match:
        return None
    return decode_image(match.group(2), match.group(1), 'text_data_url')


PART_EXTRACTORS: Tuple[Callable[[Dict[str, Any]], Optional[ExtractedImage]], ...] = (
    from_inline_data,
    from_inline_data_camel,
    from_image_url,
)


def first_message(response: Any) -> Dict[str, Any]:
    if not isinstance(response, dict):
        raise MalformedProviderResponse('Provider response is not a JSON object')
    choices = response.get('choices')
    if not isinstance(choices, list):
        raise MalformedProviderResponse('Provider response has no choices')
    if not choices:
        raise MalformedProviderResponse('Provider returned an empty choice list')
    choice = choices[0]
    message = choice.get('message') if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise MalformedProviderResponse('Provider choice has no message')
    return message


def extract_image(response: Any, preview_length: int = 200) -> ExtractedImage:
    message = first_message(response)
    content = message.get('content')

    parts: List[Dict[str, Any]] = []
    if isinstance(content, list):
        parts.extend(item for item in content if isinstance(item, dict))
    images = message.get('images')
    if isinstance(images, list):
        parts.extend(item for item in images if isinstance(item, dict))

    for extractor in PART_EXTRACTORS:
        for part in parts:
            image = extractor(part)
            if image:
                return image

    texts: List[str] = [content] if isinstance(content, str) else []
    texts.extend(part['text'] for part in parts if isinstance(part.get('text'), str))
    for text in texts:
        image = from_text(text)
        if image:
            return image

    shown = content if content else message
    raise NoImageReturned(f'No image in provider response: {preview(shown, preview_length)}')
