from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.config import Config

from funnel_builder.config import settings

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class MediaStorageConfigurationError(RuntimeError):
    pass


class MediaStorage:
    """
    Thin wrapper around S3-compatible storage for generated slide imagery.

    Objects are written once under the configured prefix and served from the public base URL.
    """

    def __init__(self) -> None:
        if not settings.MEDIA_STORAGE_BUCKET:
            raise MediaStorageConfigurationError("MEDIA_STORAGE_BUCKET is required")
        if not settings.MEDIA_STORAGE_ACCESS_KEY or not settings.MEDIA_STORAGE_SECRET_KEY:
            raise MediaStorageConfigurationError(
                "MEDIA_STORAGE_ACCESS_KEY and MEDIA_STORAGE_SECRET_KEY are required"
            )
        if not settings.MEDIA_STORAGE_PUBLIC_BASE_URL:
            raise MediaStorageConfigurationError("MEDIA_STORAGE_PUBLIC_BASE_URL is required")

        addressing_style = "path" if settings.MEDIA_STORAGE_FORCE_PATH_STYLE else "auto"
        self.bucket = settings.MEDIA_STORAGE_BUCKET
        self.prefix = (settings.MEDIA_STORAGE_PREFIX or "").strip("/")
        self.public_base_url = settings.MEDIA_STORAGE_PUBLIC_BASE_URL.rstrip("/")

        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=settings.MEDIA_STORAGE_ENDPOINT,
            aws_access_key_id=settings.MEDIA_STORAGE_ACCESS_KEY,
            aws_secret_access_key=settings.MEDIA_STORAGE_SECRET_KEY,
            region_name=settings.MEDIA_STORAGE_REGION or "us-east-1",
            use_ssl=bool(settings.MEDIA_STORAGE_USE_SSL),
            config=Config(
                s3={"addressing_style": addressing_style},
                signature_version="s3v4",
            ),
        )

    def build_key(self, path: str) -> str:
        return "/".join(part for part in (self.prefix, path.lstrip("/")) if part)

    def upload_bytes(
        self,
        *,
        key: str,
        data: bytes,
        content_type: Optional[str],
        cache_control: Optional[str] = IMMUTABLE_CACHE_CONTROL,
    ) -> str:
        kwargs = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
        }
        if content_type:
            kwargs["ContentType"] = content_type
        if cache_control:
            kwargs["CacheControl"] = cache_control
        self.client.put_object(**kwargs)
        logger.debug("Uploaded media object", extra={"key": key, "bytes": len(data)})
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"
