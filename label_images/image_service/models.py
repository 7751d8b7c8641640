from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from uuid import uuid4

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def utc_now_iso() -> str:
    return to_iso(utc_now())

def expires_at_iso(seconds: int, now: Optional[datetime] = None) -> str:
    return to_iso((now or utc_now()) + timedelta(seconds=seconds))

def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parses a stored timestamp; returns None when missing or unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire and in DynamoDB."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# -------------------------
# Persisted record
# -------------------------
class ImageRecord(CamelModel):
    id: str = Field(default_factory=new_image_id)
    file_name: str
    user_id: Optional[str] = None
    s3_key: Optional[str] = None
    url: Optional[str] = None
    signed_url_expires_at: Optional[str] = None
    label: str = ""
    is_external: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    created_by: str = "Unknown"
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None

    def to_item(self) -> Dict[str, Any]:
        """DynamoDB item; unset optional attributes are left out."""
        return self.model_dump(by_alias=True, exclude_none=True)

class ImageItem(CamelModel):
    """One gallery entry as served to clients."""
    id: str
    file_name: Optional[str] = None
    url: Optional[str] = None
    label: str = ""
    is_external: bool = False
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None

class LabelledImageResponse(ImageItem):
    """A stored record after a label edit, served exactly as stored."""
    user_id: Optional[str] = None
    s3_key: Optional[str] = None
    signed_url_expires_at: Optional[str] = None

# -------------------------
# Requests
# -------------------------
class UploadRequest(CamelModel):
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    label: Optional[str] = None

class BulkUploadRequest(CamelModel):
    images: Optional[List[UploadRequest]] = None

class ExternalImageRequest(CamelModel):
    image_url: Optional[str] = None
    label: Optional[str] = None

class DirectUploadRequest(CamelModel):
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    base64_image: Optional[str] = None
    label: Optional[str] = None

class LabelRequest(CamelModel):
    id: Optional[str] = None
    label: Optional[str] = None

class BulkDeleteRequest(CamelModel):
    ids: Optional[List[str]] = None

# -------------------------
# Responses
# -------------------------
class ItemFailure(CamelModel):
    id: str
    message: str

class UploadSlotResponse(CamelModel):
    id: str
    upload_url: str

class BulkUploadResponse(CamelModel):
    upload_urls: List[str]

class CreatedImageResponse(CamelModel):
    id: str
    file_name: str

class ListImagesResponse(CamelModel):
    images: List[ImageItem]
    last_key: Optional[str] = None
    failures: Optional[List[ItemFailure]] = None

class BulkDeleteResponse(CamelModel):
    message: str
    deleted: List[str]
    failures: Optional[List[ItemFailure]] = None
