"""
Paginated gallery listing.

Object-store-backed records cache a presigned GET URL together with its
expiry. Whenever a page contains a record whose URL is missing or expired,
a fresh URL is signed and written back before the page is returned, so the
next read finds a warm cache and clients never receive a dead link.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
from botocore.exceptions import BotoCoreError, ClientError

from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.image_service.keys import InvalidCursorError, decode_cursor, encode_cursor
from label_images.image_service.models import (
    ImageItem,
    ItemFailure,
    ListImagesResponse,
    expires_at_iso,
    parse_iso,
    utc_now,
)
from label_images.concurrency import fan_out, failed
from label_images.exceptions import DynamoDBException, ImageNotFoundException, S3Exception, ValidationException

log = logging.getLogger(__name__)

def parse_limit(raw: Optional[Any], default: int) -> int:
    """Page size from the query string; anything but a positive integer means the default."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return default
    return limit if limit > 0 else default

def needs_refresh(item: Dict[str, Any], now: datetime) -> bool:
    if item.get("isExternal"):
        return False
    expires_at = parse_iso(item.get("signedUrlExpiresAt"))
    return not item.get("url") or expires_at is None or expires_at <= now

def refresh_signed_url(db: DynamoDBService, s3: S3Service, item: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
        Signs a new download URL for item and persists it.

        item is updated in place. If signing fails its url is cleared; if only
        the write-back fails the fresh URL is kept and the error still raised.
        Raises ImageNotFoundException when the item was deleted meanwhile.
    """
    s3_key = item.get("s3Key")
    expires_in = s3.config.download_url_expire_seconds
    try:
        if not s3_key:
            raise S3Exception("Image has no storage key")
        url = s3.generate_presigned_url(s3_key, expires_in=expires_in)
    except (BotoCoreError, ClientError, S3Exception):
        item["url"] = None
        raise

    expires_at = expires_at_iso(expires_in, now=now)
    item["url"] = url
    item["signedUrlExpiresAt"] = expires_at
    if not db.update_signed_url(item["id"], url, expires_at):
        raise ImageNotFoundException(item["id"])
    return item

def to_image_item(item: Dict[str, Any]) -> ImageItem:
    return ImageItem(
        id=item["id"],
        file_name=item.get("fileName"),
        url=item.get("url"),
        label=item.get("label") or "",
        is_external=bool(item.get("isExternal", False)),
        created_at=item.get("createdAt"),
        created_by=item.get("createdBy"),
        updated_at=item.get("updatedAt"),
        updated_by=item.get("updatedBy"),
    )

def list_images(
    db: DynamoDBService,
    s3: S3Service,
    limit: Optional[Any] = None,
    cursor: Optional[str] = None,
) -> ListImagesResponse:
    """One page of images, most recently edited first."""
    page_size = parse_limit(limit, db.config.default_page_size)
    try:
        exclusive_start_key = decode_cursor(cursor)
    except InvalidCursorError:
        raise ValidationException("Invalid lastKey")

    try:
        resp = db.scan_metadata(limit=page_size, exclusive_start_key=exclusive_start_key)
    except (BotoCoreError, ClientError) as e:
        log.error(f"DynamoDB scan_metadata failed: {e}")
        raise DynamoDBException("Failed to get images")

    items: List[Dict[str, Any]] = resp.get("Items", [])
    now = utc_now()
    stale = [item for item in items if needs_refresh(item, now)]
    results = fan_out(lambda item: refresh_signed_url(db, s3, item, now), stale)

    failures = []
    deleted = set()
    for result in failed(results):
        if isinstance(result.error, ImageNotFoundException):
            log.info("Image %s was deleted while listing", result.item.get("id"))
            deleted.add(result.item.get("id"))
            continue
        log.error(f"Refreshing url of image {result.item.get('id')} failed: {result.error}")
        failures.append(ItemFailure(id=result.item.get("id"), message="Failed to refresh image URL"))
    if results:
        log.info("Refreshed %d of %d stale urls", len(results) - len(failures) - len(deleted), len(results))

    images = [to_image_item(item) for item in items if item.get("id") not in deleted]
    images.sort(key=lambda image: image.updated_at or "", reverse=True)

    return ListImagesResponse(
        images=images,
        last_key=encode_cursor(resp.get("LastEvaluatedKey")),
        failures=failures or None,
    )
