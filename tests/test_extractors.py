"""
Tests for provider response classification
"""
import base64

import pytest

from conftest import PNG_B64, PNG_BYTES, chat_response
from portrait_studio.services.errors import MalformedProviderResponse, NoImageReturned
from portrait_studio.services.extractors import extract_image


LARGE_IMAGE = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4
# MIME-style base64: 76-character lines
WRAPPED_B64 = base64.encodebytes(LARGE_IMAGE).decode("ascii").strip()


class TestExtractImage:
    """Each supported reply shape, and the failures"""

    def test_inline_data_part(self):
        image = extract_image(chat_response([{"inline_data": {"mime_type": "image/png", "data": PNG_B64}}]))

        assert image.data == PNG_BYTES
        assert image.mime_type == "image/png"
        assert image.extension == "png"
        assert image.source == "inline_data"

    def test_camel_case_inline_data_part(self):
        image = extract_image(chat_response([{"inlineData": {"mimeType": "image/jpeg", "data": PNG_B64}}]))

        assert image.data == PNG_BYTES
        assert image.extension == "jpg"
        assert image.source == "inlineData"

    def test_image_url_with_data_url(self):
        part = {"type": "image_url", "image_url": {"url": f"data:image/webp;base64,{PNG_B64}"}}

        image = extract_image(chat_response([part]))

        assert image.data == PNG_BYTES
        assert image.mime_type == "image/webp"

    def test_image_url_with_remote_pointer(self):
        part = {"type": "image_url", "image_url": {"url": "https://files.provider.test/out.png"}}

        image = extract_image(chat_response([part]))

        assert image.data is None
        assert image.url == "https://files.provider.test/out.png"

    def test_message_images_list(self):
        response = chat_response("", images=[{"type": "image_url", "image_url": {"url": f"data:image/png;base64,{PNG_B64}"}}])

        assert extract_image(response).data == PNG_BYTES

    def test_data_url_embedded_in_string(self):
        content = f"Done! ![portrait](data:image/png;base64,{PNG_B64}) enjoy"

        image = extract_image(chat_response(content))

        assert image.data == PNG_BYTES
        assert image.source == "text_data_url"

    def test_data_url_inside_text_part(self):
        response = chat_response([{"type": "text", "text": f"data:image/jpeg;base64,{PNG_B64}"}])

        assert extract_image(response).mime_type == "image/jpeg"

    def test_line_wrapped_data_url_in_string(self):
        assert "\n" in WRAPPED_B64
        content = f"Here you go: ![portrait](data:image/png;base64,{WRAPPED_B64})"

        image = extract_image(chat_response(content))

        assert image.data == LARGE_IMAGE

    def test_line_wrapped_data_url_in_image_url_part(self):
        part = {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{WRAPPED_B64}"}}

        image = extract_image(chat_response([part]))

        assert image.data == LARGE_IMAGE
        assert image.source == "image_url_data"

    def test_truncated_base64_is_rejected(self):
        response = chat_response([{"inline_data": {"mime_type": "image/png", "data": PNG_B64[:-3]}}])

        with pytest.raises(MalformedProviderResponse):
            extract_image(response)

    def test_inline_data_preferred_over_image_url(self):
        response = chat_response(
            [
                {"type": "image_url", "image_url": {"url": "https://files.provider.test/low.png"}},
                {"inline_data": {"mime_type": "image/png", "data": PNG_B64}},
            ]
        )

        assert extract_image(response).source == "inline_data"

    def test_non_image_inline_data_is_skipped(self):
        response = chat_response(
            [
                {"inline_data": {"mime_type": "text/plain", "data": "aGVsbG8="}},
                {"inlineData": {"mimeType": "image/png", "data": PNG_B64}},
            ]
        )

        assert extract_image(response).source == "inlineData"

    def test_no_image_raises_with_preview(self):
        text = "I cannot edit photos of people. " * 40

        with pytest.raises(NoImageReturned) as exc_info:
            extract_image(chat_response(text), preview_length=80)

        message = exc_info.value.message
        assert message.startswith("No image in provider response:")
        assert len(message) < 150

    def test_undecodable_base64(self):
        response = chat_response([{"inline_data": {"mime_type": "image/png", "data": "@@@not-base64@@@"}}])

        with pytest.raises(MalformedProviderResponse):
            extract_image(response)

    @pytest.mark.parametrize(
        "response",
        [
            [],
            {"error": {"message": "bad"}},
            {"choices": []},
            {"choices": [{"index": 0}]},
            {"choices": ["text"]},
        ],
    )
    def test_malformed_envelopes(self, response):
        with pytest.raises(MalformedProviderResponse):
            extract_image(response)
