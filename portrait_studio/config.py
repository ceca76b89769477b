from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # AI provider
    ai_api_url: str = Field('https://aihubmix.com', alias='AI_API_URL')
    ai_api_key: str = Field('', alias='AI_API_KEY')
    ai_model: str = Field('gemini-3-pro-image-preview', alias='AI_MODEL')
    ai_output_size: str = Field('1024x1024', alias='AI_OUTPUT_SIZE')
    provider_timeout_seconds: float = Field(120, alias='PROVIDER_TIMEOUT_SECONDS')

    # Generation
    max_upload_bytes: int = Field(8 * 1024 * 1024, alias='MAX_UPLOAD_BYTES')
    store_uploads: bool = Field(False, alias='STORE_UPLOADS')
    free_trial_credits: int = Field(1, alias='FREE_TRIAL_CREDITS')
    error_preview_length: int = Field(200, alias='ERROR_PREVIEW_LENGTH')

    # Object storage
    storage_backend: str = Field('local', alias='STORAGE_BACKEND')
    local_storage_path: str = Field('./data', alias='LOCAL_STORAGE_PATH')
    public_file_base_url: str = Field('http://127.0.0.1:9010/files', alias='PUBLIC_FILE_BASE_URL')
    r2_endpoint: str = Field('', alias='R2_ENDPOINT')
    r2_access_key: str = Field('', alias='R2_ACCESS_KEY')
    r2_secret_key: str = Field('', alias='R2_SECRET_KEY')
    r2_bucket: str = Field('', alias='R2_BUCKET')
    r2_public_url: str = Field('', alias='R2_PUBLIC_URL')

    # Payments (Creem)
    creem_api_key: str = Field('', alias='CREEM_API_KEY')
    creem_api_url: str = Field('https://api.creem.io/v1', alias='CREEM_API_URL')
    creem_webhook_secret: str = Field('', alias='CREEM_WEBHOOK_SECRET')
    creem_webhook_require_signature: bool = Field(False, alias='CREEM_WEBHOOK_REQUIRE_SIGNATURE')
    public_base_url: str = Field('', alias='PUBLIC_BASE_URL')

    # Web
    web_host: str = Field('127.0.0.1', alias='WEB_HOST')
    web_port: int = Field(9010, alias='WEB_PORT')
    web_secret: str = Field('change-me', alias='WEB_SECRET')
    auth_shared_secret: str = Field('', alias='AUTH_SHARED_SECRET')

    # Logging
    log_level: str = Field('INFO', alias='LOG_LEVEL')

    def is_provider_configured(self) -> bool:
        key = self.ai_api_key.strip()
        return bool(key) and key != 'demo' and 'your-' not in key

    def is_creem_enabled(self) -> bool:
        return bool(self.creem_api_key.strip())


@lru_cache

def get_settings() -> Settings:
    return Settings()
