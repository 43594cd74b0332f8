"""Blob storage for uploaded source files."""

import abc
import re

from ragkb.config.supabase import supabase_admin
from ragkb.settings import settings
from ragkb.utils.logging_config import logger


class BlobStore(abc.ABC):
    """Minimal key/value blob interface the pipeline depends on."""

    @abc.abstractmethod
    async def get(self, key: str) -> bytes: ...

    @abc.abstractmethod
    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None: ...


class SupabaseBlobStore(BlobStore):
    """Blob store backed by a Supabase Storage bucket."""

    def __init__(self, bucket: str = settings.KNOWLEDGE_BASE_BUCKET):
        self.bucket = bucket

    async def get(self, key: str) -> bytes:
        supabase_client = await supabase_admin()
        try:
            return await supabase_client.storage.from_(self.bucket).download(key)
        except Exception as exc:
            logger.error(f"Failed to download {key} from storage: {exc}")
            raise

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        supabase_client = await supabase_admin()
        file_options = {"content-type": content_type} if content_type else None
        try:
            await supabase_client.storage.from_(self.bucket).upload(
                path=key,
                file=data,
                file_options=file_options,
            )
            logger.info(f"File uploaded to storage at path: {key}")
        except Exception as exc:
            logger.error(f"Failed to upload file to storage: {exc}", exc_info=True)
            raise

    async def delete(self, key: str) -> None:
        supabase_client = await supabase_admin()
        try:
            await supabase_client.storage.from_(self.bucket).remove([key])
            logger.info(f"File removed from storage at path: {key}")
        except Exception as exc:
            logger.error(f"Failed to remove file from storage: {exc}", exc_info=True)
            raise


def extract_key_from_url(url: str, bucket: str = settings.KNOWLEDGE_BASE_BUCKET) -> str:
    """
    Returns the object key for a stored file URL of the form
    `<endpoint>/<bucket>/<key>`. Values that do not match are treated as keys.
    """
    match = re.search(rf"/{re.escape(bucket)}/(.+)$", url)
    return match.group(1) if match else url
