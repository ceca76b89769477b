from __future__ import annotations

import hashlib
import hmac
from typing import Any, Dict, Optional

import httpx


class CreemError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CreemClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.creem.io/v1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def create_checkout(
        self,
        product_id: str,
        success_url: str,
        metadata: Dict[str, Any],
        cancel_url: str | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        payload: Dict[str, Any] = {
            "product_id": product_id,
            "success_url": success_url,
            "metadata": metadata,
        }
        if cancel_url:
            payload["cancel_url"] = cancel_url
        if request_id:
            payload["request_id"] = request_id
        try:
            async with httpx.AsyncClient(timeout=20.0, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/checkouts",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.RequestError as exc:
            raise CreemError(f"create_checkout_request_failed:{type(exc).__name__}") from exc
        if resp.status_code >= 400:
            raise CreemError(f"create_checkout_failed:{resp.text[:200]}", resp.status_code)
        try:
            data = resp.json()
        except ValueError as exc:
            raise CreemError("create_checkout_invalid_response") from exc
        if not isinstance(data, dict):
            raise CreemError("create_checkout_invalid_response")
        return data

    @staticmethod
    def extract_checkout_url(data: Dict[str, Any]) -> str:
        session = data.get("session") if isinstance(data.get("session"), dict) else {}
        for candidate in (data.get("checkout_url"), session.get("checkout_url")):
            value = str(candidate or "").strip()
            if value:
                return value
        return ""

    @staticmethod
    def compute_webhook_signature(raw_body: bytes, webhook_secret: str) -> str:
        return hmac.new(webhook_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()

    @classmethod
    def verify_webhook_signature(cls, raw_body: bytes, received_signature: str, webhook_secret: str) -> bool:
        expected = cls.compute_webhook_signature(raw_body, webhook_secret)
        received = (received_signature or "").strip().lower()
        return hmac.compare_digest(expected, received)
