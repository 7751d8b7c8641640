"""
    Entry point for the bucket's ObjectCreated notifications.
"""
from functools import lru_cache
from typing import Tuple
import logging

from label_images.settings import settings
from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.ingestion.listener import ingest_object_created_event

logging.basicConfig(level=settings.log_level)
log = logging.getLogger("label-images-ingestion")

@lru_cache(maxsize=None)
def get_services() -> Tuple[S3Service, DynamoDBService]:
    """Clients are created once per process and reused across invocations."""
    return S3Service(settings), DynamoDBService(settings)

def lambda_handler(event, context):
    s3, db = get_services()
    report = ingest_object_created_event(event, s3, db)
    if report.failures:
        log.warning("Skipped %d objects: %s", len(report.failures), [f.id for f in report.failures])
    return report.to_dict()
