"""
Shared fixtures: a filesystem object store under tmp_path, ledgers on top of
it, and a provider client whose HTTP traffic goes to an httpx.MockTransport.
"""
import base64
import hashlib
import hmac
from typing import Any, Callable, Dict, List

import httpx
import pytest

from portrait_studio.config import Settings
from portrait_studio.services.generation import GenerationService
from portrait_studio.services.history import HistoryService
from portrait_studio.services.image_client import ImageProviderClient
from portrait_studio.services.quota import QuotaService
from portrait_studio.services.storage import LocalObjectStore


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x01\x02\x03" * 8
JPEG_UPLOAD = b"\xff\xd8\xff\xe0" + b"\x10" * 60
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")
SESSION_SECRET = "session-secret"


class RecordingStore(LocalObjectStore):
    """Local store that remembers every key written."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.puts: List[str] = []

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.puts.append(key)
        return await super().put(key, data, content_type)


def chat_response(content: Any, **message: Any) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content, **message}}],
    }


def inline_image_response() -> Dict[str, Any]:
    return chat_response(
        [
            {"type": "text", "text": "Here is your portrait"},
            {"inline_data": {"mime_type": "image/png", "data": PNG_B64}},
        ]
    )


def session_signature(user_id: str, secret: str = SESSION_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), user_id.encode("utf-8"), hashlib.sha256).hexdigest()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        AI_API_URL="https://provider.test",
        AI_API_KEY="test-key",
        AI_MODEL="test-image-model",
        PROVIDER_TIMEOUT_SECONDS=5,
        MAX_UPLOAD_BYTES=1024,
        STORE_UPLOADS=False,
        FREE_TRIAL_CREDITS=1,
        STORAGE_BACKEND="local",
        LOCAL_STORAGE_PATH=str(tmp_path / "store"),
        PUBLIC_FILE_BASE_URL="https://cdn.test/files",
        CREEM_API_KEY="",
        CREEM_WEBHOOK_SECRET="",
        CREEM_WEBHOOK_REQUIRE_SIGNATURE=False,
        AUTH_SHARED_SECRET=SESSION_SECRET,
        WEB_SECRET="test-web-secret",
    )


@pytest.fixture
def store(tmp_path) -> RecordingStore:
    return RecordingStore(tmp_path / "store", "https://cdn.test/files")


@pytest.fixture
def quota(store) -> QuotaService:
    return QuotaService(store)


@pytest.fixture
def history(store) -> HistoryService:
    return HistoryService(store)


@pytest.fixture
def provider_calls() -> List[httpx.Request]:
    return []


@pytest.fixture
def make_client(settings, provider_calls) -> Callable[..., ImageProviderClient]:
    def factory(handler, client_settings: Settings | None = None) -> ImageProviderClient:
        def recording_handler(request: httpx.Request):
            provider_calls.append(request)
            return handler(request)

        return ImageProviderClient(client_settings or settings, transport=httpx.MockTransport(recording_handler))

    return factory


@pytest.fixture
def make_service(settings, store, quota, history, make_client) -> Callable[..., GenerationService]:
    def factory(handler, service_settings: Settings | None = None) -> GenerationService:
        active = service_settings or settings
        return GenerationService(active, store, quota, history, make_client(handler, active))

    return factory
