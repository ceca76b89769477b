from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import aiobotocore.session
from botocore.exceptions import BotoCoreError, ClientError

from portrait_studio.config import Settings
from portrait_studio.services.errors import StorageError
from portrait_studio.utils.logging import get_logger


logger = get_logger('storage')

NOT_FOUND_CODES = {'NoSuchKey', '404', 'NotFound'}


class ObjectStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        ...

    async def get(self, key: str) -> Optional[bytes]:
        ...

    def public_url(self, key: str) -> str:
        ...


def _check_key(key: str) -> str:
    cleaned = key.strip().lstrip('/')
    if not cleaned or any(part in {'', '.', '..'} for part in cleaned.split('/')):
        raise StorageError(f'invalid object key: {key!r}')
    return cleaned


class LocalObjectStore:
    """Filesystem-backed store whose objects are served under a public base URL."""

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip('/')

    def path_for(self, key: str) -> Path:
        return self.root / _check_key(key)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f'.{path.name}.tmp')
            with open(tmp_path, 'wb') as f:
                f.write(data)
            tmp_path.replace(path)
        except OSError as exc:
            logger.error('local_put_failed', key=key, error=str(exc))
            raise StorageError(f'failed to write {key}') from exc
        return self.public_url(key)

    async def get(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error('local_get_failed', key=key, error=str(exc))
            raise StorageError(f'failed to read {key}') from exc

    def public_url(self, key: str) -> str:
        return f'{self.public_base_url}/{_check_key(key)}'


class S3ObjectStore:
    """S3-compatible store (Cloudflare R2 in production)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        public_base_url: str,
        region_name: str = 'auto',
    ) -> None:
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip('/')
        self._client_config = {
            'endpoint_url': endpoint_url or None,
            'region_name': region_name,
            'aws_access_key_id': access_key,
            'aws_secret_access_key': secret_key,
        }
        self._session = aiobotocore.session.get_session()

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        key = _check_key(key)
        try:
            async with self._session.create_client('s3', **self._client_config) as s3_client:
                await s3_client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error('s3_put_failed', bucket=self.bucket, key=key, error=str(exc))
            raise StorageError(f'failed to write {key}') from exc
        return self.public_url(key)

    async def get(self, key: str) -> Optional[bytes]:
        key = _check_key(key)
        try:
            async with self._session.create_client('s3', **self._client_config) as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=key)
                return await response['Body'].read()
        except ClientError as exc:
            error_code = str(exc.response.get('Error', {}).get('Code', ''))
            if error_code in NOT_FOUND_CODES:
                return None
            logger.error('s3_get_failed', bucket=self.bucket, key=key, error=str(exc))
            raise StorageError(f'failed to read {key}') from exc
        except BotoCoreError as exc:
            logger.error('s3_get_failed', bucket=self.bucket, key=key, error=str(exc))
            raise StorageError(f'failed to read {key}') from exc

    def public_url(self, key: str) -> str:
        return f'{self.public_base_url}/{_check_key(key)}'


def create_store(settings: Settings) -> ObjectStore:
    backend = settings.storage_backend.strip().lower()
    if backend == 's3':
        if not settings.r2_bucket.strip():
            raise StorageError('R2_BUCKET is not configured')
        return S3ObjectStore(
            bucket=settings.r2_bucket,
            endpoint_url=settings.r2_endpoint,
            access_key=settings.r2_access_key,
            secret_key=settings.r2_secret_key,
            public_base_url=settings.r2_public_url,
        )
    if backend == 'local':
        return LocalObjectStore(settings.local_storage_path, settings.public_file_base_url)
    raise StorageError(f'unknown storage backend: {settings.storage_backend}')


async def read_json(store: ObjectStore, key: str) -> Optional[Dict[str, Any]]:
    raw = await store.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f'corrupt document at {key}') from exc
    if not isinstance(data, dict):
        raise StorageError(f'corrupt document at {key}')
    return data


async def write_json(store: ObjectStore, key: str, data: Dict[str, Any]) -> None:
    body = json.dumps(data, indent=2, ensure_ascii=False).encode('utf-8')
    await store.put(key, body, 'application/json')
