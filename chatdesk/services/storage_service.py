"""
services/storage_service.py
---------------------------
Object storage locators (S3 pre-signed URLs).

File bytes never pass through this service: browsers PUT directly to S3 with
an upload locator and read back through short-lived download locators.

Lifetimes (settings):
  upload        UPLOAD_URL_EXPIRES_SECONDS      (15 min)
  end-user read DOWNLOAD_URL_EXPIRES_SECONDS    (1 h)
  processor     PROCESSOR_URL_EXPIRES_SECONDS   (2 days; processing queues lag)
"""

import re
import uuid
from dataclasses import dataclass
from typing import Any

from chatdesk.core.config import settings
from chatdesk.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(frozen=True)
class UploadLocator:
    key: str
    put_url: str
    public_url: str


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


class S3Storage:

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._bucket = bucket or settings.AWS_S3_BUCKET
        self._region = region or settings.AWS_REGION
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        import boto3

        kwargs: dict[str, Any] = {"region_name": self._region}
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
            kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
        self._client = boto3.client("s3", **kwargs)
        return self._client

    def public_url(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    def issue_upload_locator(
        self, tenant_id: str, filename: str, content_type: str | None = None
    ) -> UploadLocator:
        key = f"{tenant_id}/{uuid.uuid4()}-{sanitize_filename(filename)}"
        put_url = self._get_client().generate_presigned_url(
            "put_object",
            Params={
                "Bucket": self._bucket,
                "Key": key,
                "ContentType": content_type or "application/octet-stream",
            },
            ExpiresIn=settings.UPLOAD_URL_EXPIRES_SECONDS,
        )
        logger.info("Upload locator issued", tenant_id=tenant_id, key=key)
        return UploadLocator(key=key, put_url=put_url, public_url=self.public_url(key))

    def issue_download_locator(self, key: str, expires_in: int | None = None) -> str:
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=expires_in or settings.DOWNLOAD_URL_EXPIRES_SECONDS,
        )


# Singleton — boto3 clients are thread-safe and expensive to build
storage = S3Storage()


def get_storage() -> S3Storage:
    return storage
