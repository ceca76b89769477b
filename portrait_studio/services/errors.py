from __future__ import annotations


class StudioError(Exception):
    code = 'internal_error'
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(StudioError):
    code = 'invalid_input'
    http_status = 400


class Unauthorized(StudioError):
    code = 'unauthorized'
    http_status = 401


class InsufficientQuota(StudioError):
    code = 'insufficient_quota'
    http_status = 402


class StorageError(StudioError):
    code = 'storage_error'
    http_status = 500


class GenerationError(StudioError):
    """Failure after the provider stage began; always recorded in history."""

    http_status = 502


class ProviderError(GenerationError):
    code = 'provider_error'

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeout(GenerationError):
    code = 'provider_timeout'
    http_status = 504


class MalformedProviderResponse(GenerationError):
    code = 'malformed_provider_response'


class NoImageReturned(GenerationError):
    code = 'no_image_returned'


class ProductNotFound(StudioError):
    code = 'product_not_found'
    http_status = 404


class PaymentProviderError(StudioError):
    code = 'payment_provider_error'
    http_status = 502
