from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from portrait_studio.config import Settings, get_settings
from portrait_studio.services.creem import CreemClient
from portrait_studio.services.errors import StorageError, StudioError
from portrait_studio.services.generation import GenerationService
from portrait_studio.services.history import HistoryService
from portrait_studio.services.image_client import ImageProviderClient
from portrait_studio.services.payments import PaymentsService
from portrait_studio.services.presets import list_presets, normalize_lang
from portrait_studio.services.products import list_products
from portrait_studio.services.quota import QuotaService
from portrait_studio.services.storage import LocalObjectStore, ObjectStore, create_store
from portrait_studio.utils.logging import get_logger


logger = get_logger('web')


def _current_user_id(request: Request) -> str:
    return str(request.session.get("user_id") or "")


def _unauthorized() -> JSONResponse:
    return JSONResponse({"error": "Unauthorized - Please sign in", "code": "unauthorized"}, status_code=401)


def _verify_session_signature(user_id: str, signature: str, secret: str) -> bool:
    expected = hmac.new(secret.encode("utf-8"), user_id.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, (signature or "").strip().lower())


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ObjectStore] = None,
    image_client: Optional[ImageProviderClient] = None,
    creem: Optional[CreemClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or create_store(settings)
    image_client = image_client or ImageProviderClient(settings)
    if creem is None and settings.is_creem_enabled():
        creem = CreemClient(settings.creem_api_key, settings.creem_api_url)

    app = FastAPI(title="Silver Portrait Studio")
    app.add_middleware(SessionMiddleware, secret_key=settings.web_secret)
    app.state.settings = settings
    app.state.store = store
    app.state.quota = QuotaService(store, free_credits=settings.free_trial_credits)
    app.state.history = HistoryService(store)
    app.state.image_client = image_client
    app.state.generation = GenerationService(
        settings, store, app.state.quota, app.state.history, image_client
    )
    app.state.payments = PaymentsService(settings, store, app.state.quota, creem)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.image_client.close()

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError):
        if isinstance(exc, StorageError):
            logger.error("storage_failure", path=request.url.path, error=exc.message)
        return JSONResponse({"error": exc.message, "code": exc.code}, status_code=exc.http_status)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.post("/auth/session")
    async def auth_session(request: Request):
        secret = settings.auth_shared_secret.strip()
        if not secret:
            return JSONResponse({"error": "auth_not_configured"}, status_code=503)
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "invalid_payload"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "invalid_payload"}, status_code=400)
        user_id = str(payload.get("userId") or "").strip()
        if not user_id:
            return JSONResponse({"error": "missing_user_id"}, status_code=400)
        if not _verify_session_signature(user_id, str(payload.get("signature") or ""), secret):
            return JSONResponse({"error": "invalid_signature"}, status_code=401)
        request.session["user_id"] = user_id
        if payload.get("lang"):
            request.session["lang"] = normalize_lang(str(payload["lang"]))
        return {"ok": True, "userId": user_id}

    @app.get("/logout")
    async def logout(request: Request):
        request.session.clear()
        return {"ok": True}

    @app.get("/api/me")
    async def api_me(request: Request):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        quota = await app.state.quota.get_or_init(user_id)
        return {
            "userId": user_id,
            "lang": request.session.get("lang", "zh"),
            "remainingQuota": quota.remaining_quota,
            "maxUploadBytes": settings.max_upload_bytes,
        }

    @app.get("/api/quota")
    async def api_quota(request: Request):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        quota = await app.state.quota.get_or_init(user_id)
        return {
            "remainingQuota": quota.remaining_quota,
            "totalPurchased": quota.total_purchased,
            "totalGenerated": quota.total_generated,
        }

    @app.get("/api/styles")
    async def api_styles(request: Request, lang: str = ""):
        lang = normalize_lang(lang or request.session.get("lang"))
        return {
            "styles": [
                {"type": preset.key, "name": preset.display_name, "prompt": preset.prompt_for(lang)}
                for preset in list_presets()
            ]
        }

    @app.get("/api/products")
    async def api_products(request: Request, currency: str = "USD", lang: str = ""):
        lang = normalize_lang(lang or request.session.get("lang"))
        return {"products": [product.to_dict(lang, currency) for product in list_products()]}

    @app.post("/api/checkout")
    async def api_checkout(request: Request):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        base_url = request.headers.get("origin") or str(request.base_url)
        return await app.state.payments.create_checkout(user_id, payload.get("productId"), base_url)

    @app.post("/api/webhooks/creem")
    async def api_creem_webhook(request: Request):
        raw_body = await request.body()
        signature = (request.headers.get("creem-signature") or "").strip()
        secret = settings.creem_webhook_secret.strip()
        require_signature = bool(settings.creem_webhook_require_signature)

        if require_signature and not secret:
            return JSONResponse({"error": "webhook_secret_not_configured"}, status_code=503)
        if require_signature or (signature and secret):
            if not signature:
                return JSONResponse({"error": "missing_signature"}, status_code=401)
            if not CreemClient.verify_webhook_signature(raw_body, signature, secret):
                logger.warning("webhook_invalid_signature")
                return JSONResponse({"error": "invalid_signature"}, status_code=401)

        try:
            payload: Any = json.loads(raw_body or b"{}")
        except ValueError:
            return JSONResponse({"error": "invalid_payload"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "invalid_payload"}, status_code=400)

        result = await app.state.payments.handle_webhook(payload)
        body: Dict[str, Any] = {"success": True, "message": result.message}
        if result.remaining is not None:
            body["remaining"] = result.remaining
        return body

    @app.post("/api/generate")
    async def api_generate(
        request: Request,
        image: Optional[UploadFile] = File(None),
        style: str = Form("id", alias="type"),
        lang: str = Form(""),
    ):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        content = b""
        content_type = None
        filename = None
        if image is not None:
            # One byte past the limit is enough to reject oversized uploads.
            content = await image.read(settings.max_upload_bytes + 1)
            content_type = image.content_type
            filename = image.filename
        result = await app.state.generation.generate(
            user_id,
            content,
            style=style,
            lang=lang or request.session.get("lang"),
            content_type=content_type,
            filename=filename,
        )
        return {
            "success": True,
            "recordId": result.record_id,
            "imageUrl": result.image_url,
            "originalUrl": result.original_url,
            "type": result.style,
            "remainingQuota": result.remaining_quota,
        }

    @app.get("/api/history")
    async def api_history(request: Request):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        records = await app.state.history.list(user_id)
        return {"success": True, "history": [record.to_dict() for record in records]}

    @app.delete("/api/history/{record_id}")
    async def api_delete_history(request: Request, record_id: str):
        user_id = _current_user_id(request)
        if not user_id:
            return _unauthorized()
        deleted = await app.state.history.delete(user_id, record_id)
        if not deleted:
            return JSONResponse({"error": "Record not found", "code": "not_found"}, status_code=404)
        return {"success": True, "message": "Record deleted"}

    @app.get("/files/{key:path}")
    async def files(key: str):
        if not isinstance(store, LocalObjectStore):
            return JSONResponse({"error": "not_found"}, status_code=404)
        try:
            path = store.path_for(key)
        except StorageError:
            return JSONResponse({"error": "not_found"}, status_code=404)
        if not path.is_file():
            return JSONResponse({"error": "not_found"}, status_code=404)
        return FileResponse(path)

    return app
