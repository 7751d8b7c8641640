"""
S3 "object created" notifications → image metadata records.

Objects uploaded through presigned URLs reach the bucket without the service
seeing them. Each notification record is turned into an ImageRecord: owner,
image id and file name come from the key layout, label and username from the
metadata that was signed into the upload URL.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple
import logging
from botocore.exceptions import BotoCoreError, ClientError

from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.image_service.keys import MalformedKeyError, decode_event_key, parse_storage_key
from label_images.image_service.models import ImageRecord, ItemFailure
from label_images.concurrency import fan_out
from label_images.exceptions import APIException, DynamoDBException, S3Exception, UpstreamException

log = logging.getLogger(__name__)

# HEAD responses meaning the object was deleted before it could be ingested
MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}

@dataclass
class IngestionReport:
    written: List[str] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)
    batches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "written": self.written,
            "failures": [f.model_dump() for f in self.failures],
            "batches": self.batches,
        }

def object_refs(event: Dict[str, Any]) -> List[Tuple[str, str]]:
    """(bucket, decoded key) of every ObjectCreated record in the event."""
    refs = []
    for record in event.get("Records") or []:
        if not record.get("eventName", "ObjectCreated").startswith("ObjectCreated"):
            continue
        s3_info = record.get("s3", {})
        bucket = s3_info.get("bucket", {}).get("name")
        raw_key = s3_info.get("object", {}).get("key")
        if raw_key:
            refs.append((bucket, decode_event_key(raw_key)))
    return refs

def build_record(s3: S3Service, bucket: str, key: str) -> ImageRecord:
    try:
        storage_key = parse_storage_key(key)
    except MalformedKeyError as e:
        log.error("Refusing to ingest object with malformed key %s", key)
        raise UpstreamException(str(e))

    try:
        metadata = s3.get_object_metadata(key, bucket=bucket)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") not in MISSING_OBJECT_CODES:
            raise
        log.error(f"Object {key} is gone: {e}")
        raise S3Exception("Object no longer exists")

    return ImageRecord(
        id=storage_key.image_id,
        file_name=storage_key.file_name,
        user_id=storage_key.user_id,
        s3_key=key,
        label=metadata.get("label") or "",
        is_external=False,
        created_by=metadata.get("username") or "Unknown",
    )

def ingest_object_created_event(
    event: Dict[str, Any],
    s3: S3Service,
    db: DynamoDBService,
) -> IngestionReport:
    """
        Upserts one metadata record per created object.

        Objects that can never be ingested (malformed key, object already gone)
        are reported and skipped. Any other failure raises after the records
        that did build are written, so the notification is retried; writes are
        upserts and a retry simply overwrites them.
    """
    refs = object_refs(event)
    report = IngestionReport()
    if not refs:
        return report

    results = fan_out(lambda ref: build_record(s3, *ref), refs)
    records = []
    retryable = []
    for result in results:
        bucket, key = result.item
        if result.ok:
            records.append(result.value)
        elif isinstance(result.error, APIException):
            report.failures.append(ItemFailure(id=key, message=result.error.detail))
        else:
            log.error(f"Reading metadata of {key} failed: {result.error}")
            retryable.append(key)

    if records:
        try:
            report.batches = db.batch_put([r.to_item() for r in records])
        except (BotoCoreError, ClientError) as e:
            log.error(f"DynamoDB batch_put failed: {e}")
            raise DynamoDBException("Failed to write image metadata")
        report.written = [r.id for r in records]

    if retryable:
        raise S3Exception(f"Failed to read object metadata for {len(retryable)} objects")

    log.info(
        "Ingested %d of %d objects in %d batches",
        len(report.written), len(refs), report.batches,
    )
    return report
