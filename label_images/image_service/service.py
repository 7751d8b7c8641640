from typing import Any, Dict, List, Optional
from io import BytesIO
import base64
import binascii
import logging
import xml.etree.ElementTree as ET
from PIL import Image
from botocore.exceptions import BotoCoreError, ClientError

from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.auth_service.models import Actor
from label_images.image_service.keys import build_storage_key
from label_images.image_service.models import (
    BulkDeleteResponse,
    BulkUploadResponse,
    CreatedImageResponse,
    ImageRecord,
    ItemFailure,
    UploadRequest,
    UploadSlotResponse,
    new_image_id,
    utc_now_iso,
)
from label_images.concurrency import fan_out, failed
from label_images.exceptions import (
    DynamoDBException,
    ImageNotFoundException,
    InvalidImageException,
    S3Exception,
    UpstreamException,
    ValidationException,
)

log = logging.getLogger(__name__)

# Allowed content types
ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/svg+xml",
    "image/webp"
}

MIME_MAP = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

def validate_image_bytes(file_bytes: bytes, content_type: str) -> str:
    """Validate that the uploaded file is a real image. Returns the detected content type."""
    if content_type in {"image/png", "image/jpeg", "image/gif", "image/webp"}:
        try:
            img = Image.open(BytesIO(file_bytes))
            img.load()
        except (OSError, SyntaxError, ValueError):
            raise InvalidImageException("Invalid image file")
        mime_type = MIME_MAP.get((img.format or "").upper())
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise InvalidImageException(f"Unsupported image type: {img.format}")
        return mime_type
    elif content_type == "image/svg+xml":
        try:
            root = ET.fromstring(file_bytes.decode("utf-8"))
        except (ET.ParseError, UnicodeDecodeError):
            raise InvalidImageException("Invalid SVG file")
        # Check if root tag is svg (with or without namespace)
        tag_name = root.tag.split("}")[-1].lower() if "}" in root.tag else root.tag.lower()
        if tag_name != "svg":
            raise InvalidImageException("Invalid SVG root element")
        return "image/svg+xml"
    else:
        raise InvalidImageException(f"Unsupported content type: {content_type}")

def decode_base64_image(data: str) -> bytes:
    """Decodes a base64 payload, with or without a data:<mime>;base64, prefix."""
    if "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImageException("Invalid base64 image data")

def _validate_intent(file_name: Optional[str], content_type: Optional[str]):
    if not file_name or not content_type:
        raise ValidationException("Invalid image data")
    # The file name is the last segment of the userId/imageId/fileName key
    if "/" in file_name:
        raise ValidationException("fileName must not contain '/'")

def _upload_metadata(actor: Actor, label: Optional[str]) -> Dict[str, str]:
    return {"label": label or "", "username": actor.username}

# ------------------------------
# Upload paths
# ------------------------------

def request_upload_slot(
    s3: S3Service,
    actor: Actor,
    file_name: Optional[str],
    content_type: Optional[str],
    label: Optional[str] = None,
) -> UploadSlotResponse:
    """
        Issues a presigned PUT for one new image.

        No metadata is written here: the record is created by the ingestion
        listener once the object actually lands in the bucket.
    """
    _validate_intent(file_name, content_type)
    image_id = new_image_id()
    key = build_storage_key(actor.user_id, image_id, file_name)
    try:
        upload_url = s3.generate_presigned_upload_url(
            key,
            content_type=content_type,
            metadata=_upload_metadata(actor, label),
            expires_in=s3.config.upload_url_expire_seconds,
        )
    except (BotoCoreError, ClientError) as e:
        log.error(f"Presigning upload for {key} failed: {e}")
        raise S3Exception("Failed to generate upload URL")

    log.info("Issued upload slot %s for %s", image_id, actor.username)
    return UploadSlotResponse(id=image_id, upload_url=upload_url)

def request_bulk_upload_slots(
    s3: S3Service,
    actor: Actor,
    images: Optional[List[UploadRequest]],
) -> BulkUploadResponse:
    """Issues one presigned PUT per image; URLs come back in request order."""
    if not isinstance(images, list) or not images:
        raise ValidationException("Invalid request: No images provided")
    for index, image in enumerate(images):
        try:
            _validate_intent(image.file_name, image.content_type)
        except ValidationException as e:
            raise ValidationException(f"{e.detail} (image {index})")

    def presign(image: UploadRequest) -> str:
        key = build_storage_key(actor.user_id, new_image_id(), image.file_name)
        return s3.generate_presigned_upload_url(
            key,
            content_type=image.content_type,
            metadata=_upload_metadata(actor, image.label),
            expires_in=s3.config.bulk_upload_url_expire_seconds,
        )

    results = fan_out(presign, images)
    if failed(results):
        for result in failed(results):
            log.error(f"Presigning upload for {result.item.file_name} failed: {result.error}")
        raise S3Exception("Failed to generate upload URLs")

    log.info("Issued %d upload slots for %s", len(results), actor.username)
    return BulkUploadResponse(upload_urls=[r.value for r in results])

def external_file_name(image_url: str, image_id: str) -> str:
    return image_url.split("/")[-1].split("?")[0] or f"image-{image_id}.jpg"

def store_external_reference(
    db: DynamoDBService,
    actor: Actor,
    image_url: Optional[str],
    label: Optional[str] = None,
) -> CreatedImageResponse:
    """Records a hotlinked image. The URL is kept as-is and never re-signed."""
    if not image_url:
        raise ValidationException("Invalid image URL")

    image_id = new_image_id()
    record = ImageRecord(
        id=image_id,
        file_name=external_file_name(image_url, image_id),
        user_id=actor.user_id,
        url=image_url,
        label=label or "",
        is_external=True,
        created_by=actor.username,
    )
    try:
        db.put_metadata(record.to_item())
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB put_metadata failed: {e}")
        raise DynamoDBException("Failed to store external image")

    log.info("Saved external image %s", image_id)
    return CreatedImageResponse(id=image_id, file_name=record.file_name)

def upload_direct(
    db: DynamoDBService,
    s3: S3Service,
    actor: Actor,
    file_name: Optional[str],
    content_type: Optional[str],
    base64_image: Optional[str],
    label: Optional[str] = None,
) -> CreatedImageResponse:
    """Saves image to S3 and metadata to DynamoDB."""
    _validate_intent(file_name, content_type)
    if not base64_image:
        raise ValidationException("Invalid image data")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(f"Unsupported content type: {content_type}")

    contents = decode_base64_image(base64_image)
    # Validate actual file content
    content_type = validate_image_bytes(contents, content_type)

    image_id = new_image_id()
    key = build_storage_key(actor.user_id, image_id, file_name)

    # upload to s3
    try:
        s3.upload(fileobj=BytesIO(contents), key=key, content_type=content_type)
    except (BotoCoreError, ClientError) as e:
        log.error(f"S3 upload failed: {e}")
        raise S3Exception("Failed to upload image")

    # persist metadata in dynamodb
    record = ImageRecord(
        id=image_id,
        file_name=file_name,
        user_id=actor.user_id,
        s3_key=key,
        label=label or "",
        is_external=False,
        created_by=actor.username,
    )
    try:
        db.put_metadata(record.to_item())
    except (BotoCoreError, ClientError) as e:
        # The object stays in the bucket without metadata
        log.error(f"DynamoDB put_metadata failed, orphaned object {key}: {e}")
        raise DynamoDBException("Failed to save image metadata")

    log.info("Saved image metadata %s", image_id)
    return CreatedImageResponse(id=image_id, file_name=file_name)

# ------------------------------
# Label & delete
# ------------------------------

def set_label(
    db: DynamoDBService,
    actor: Actor,
    image_id: Optional[str],
    label: Optional[str],
) -> Dict[str, Any]:
    """Replaces the label of an image and returns the updated record."""
    if not image_id or label is None:
        raise ValidationException("Invalid image data")
    try:
        item = db.update_label(image_id, label, updated_by=actor.username, updated_at=utc_now_iso())
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB update_label failed: {e}")
        raise DynamoDBException("Failed to save label")
    if not item:
        raise ImageNotFoundException(image_id)

    log.info("Labelled image %s", image_id)
    return item

def remove_image(db: DynamoDBService, s3: S3Service, image_id: str) -> str:
    """Removes image from S3 and metadata from DynamoDB. A missing image is a no-op."""
    item = db.get_metadata(image_id)
    if not item:
        log.debug("Image %s already deleted", image_id)
        return image_id

    s3_key = item.get("s3Key")
    if s3_key:
        s3.delete(s3_key)
    db.delete_metadata(image_id)
    log.info("Deleted image %s", image_id)
    return image_id

def bulk_delete(
    db: DynamoDBService,
    s3: S3Service,
    actor: Actor,
    image_ids: Optional[List[str]],
) -> BulkDeleteResponse:
    """
        Deletes every listed image concurrently.

        Failures are reported per id; the call as a whole only fails when
        no id could be deleted.
    """
    if not isinstance(image_ids, list) or not image_ids or not all(
        isinstance(i, str) and i for i in image_ids
    ):
        raise ValidationException("Please provide a valid list of image IDs")

    ids = list(dict.fromkeys(image_ids))
    results = fan_out(lambda image_id: remove_image(db, s3, image_id), ids)

    failures = []
    for result in failed(results):
        log.error(f"Deleting image {result.item} for {actor.username} failed: {result.error}")
        failures.append(ItemFailure(id=result.item, message="Failed to delete image"))

    if len(failures) == len(ids):
        raise UpstreamException("Failed to delete images")

    deleted = [r.value for r in results if r.ok]
    return BulkDeleteResponse(
        message="Images deleted successfully",
        deleted=deleted,
        failures=failures or None,
    )
