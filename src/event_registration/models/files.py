"""File upload and stored-file reference types"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class FileUpload(BaseModel):
    """A file received with a submission, not yet handed to storage"""

    filename: str
    content_type: str
    size: int
    data: bytes = Field(default=b"", repr=False)


class FileReference(BaseModel):
    """Reference to a file held by the external storage service"""

    file_id: str
    field_id: str
    original_name: str
    url: str
    size: int
    mimetype: str
    uploaded_at: Optional[datetime] = None
