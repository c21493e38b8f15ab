"""HTTP client for the external file storage service"""

import logging
from datetime import datetime, timezone

import httpx

from event_registration.errors import StorageError
from event_registration.models.files import FileReference, FileUpload

logger = logging.getLogger(__name__)


class StorageClient:
    """Uploads registration files and returns references to them.

    The storage service answers ``POST /files`` with ``{"id", "url"}``.
    """

    def __init__(self, config: dict, timeout: float = 30.0):
        self.base_url = (config["storage_base_url"] or "").rstrip("/")
        self.api_key = config.get("storage_api_key")
        self.timeout = timeout

    async def upload(self, field_id: str, upload: FileUpload) -> FileReference:
        """
        Upload one file

        Args:
            field_id: Form field the file answers
            upload: File contents and metadata

        Returns:
            FileReference pointing at the stored file

        Raises:
            StorageError: If the storage service is unreachable or rejects the file
        """
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/files",
                    headers=headers,
                    data={"field_id": field_id},
                    files={"file": (upload.filename, upload.data, upload.content_type)},
                )
                response.raise_for_status()
                stored = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Upload of {upload.filename} for field {field_id} failed: {e}")
            raise StorageError() from e

        return FileReference(
            file_id=str(stored["id"]),
            field_id=field_id,
            original_name=upload.filename,
            url=stored["url"],
            size=upload.size,
            mimetype=upload.content_type,
            uploaded_at=datetime.now(timezone.utc),
        )
