from fastapi import APIRouter, Depends, Query
from typing import Optional

from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.dependencies.dependencies import get_s3_service, get_dynamodb_service, get_current_actor
from label_images.auth_service.models import Actor
from label_images.image_service import gallery
from label_images.image_service.service import (
    bulk_delete,
    request_bulk_upload_slots,
    request_upload_slot,
    set_label,
    store_external_reference,
    upload_direct,
)
from label_images.image_service.models import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkUploadRequest,
    BulkUploadResponse,
    CreatedImageResponse,
    DirectUploadRequest,
    ExternalImageRequest,
    LabelRequest,
    LabelledImageResponse,
    ListImagesResponse,
    UploadRequest,
    UploadSlotResponse,
)

router = APIRouter(
    prefix="/label-images",
    tags=["label-images"]
)

@router.get("", response_model=ListImagesResponse)
def list_images_handler(
    limit: Optional[str] = Query(None),
    last_key: Optional[str] = Query(None, alias="lastKey"),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Lists one page of images, refreshing expired download URLs."""
    return gallery.list_images(db, s3, limit=limit, cursor=last_key)

@router.post("/upload", response_model=UploadSlotResponse)
def upload_image(
    body: UploadRequest,
    actor: Actor = Depends(get_current_actor),
    s3: S3Service = Depends(get_s3_service),
):
    """Returns a presigned URL the client PUTs the image bytes to."""
    return request_upload_slot(s3, actor, body.file_name, body.content_type, body.label)

@router.post("/bulk-upload", response_model=BulkUploadResponse)
def bulk_upload_images(
    body: BulkUploadRequest,
    actor: Actor = Depends(get_current_actor),
    s3: S3Service = Depends(get_s3_service),
):
    return request_bulk_upload_slots(s3, actor, body.images)

@router.post("/external", response_model=CreatedImageResponse)
def store_external_image(
    body: ExternalImageRequest,
    actor: Actor = Depends(get_current_actor),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Stores a reference to an image hosted elsewhere."""
    return store_external_reference(db, actor, body.image_url, body.label)

@router.post("/direct", response_model=CreatedImageResponse)
def upload_image_direct(
    body: DirectUploadRequest,
    actor: Actor = Depends(get_current_actor),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Uploads a base64 encoded image through the service, with content verification."""
    return upload_direct(db, s3, actor, body.file_name, body.content_type, body.base64_image, body.label)

@router.post("/bulk-delete", response_model=BulkDeleteResponse, response_model_exclude_none=True)
def delete_images(
    body: BulkDeleteRequest,
    actor: Actor = Depends(get_current_actor),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Deletes images and their metadata."""
    return bulk_delete(db, s3, actor, body.ids)

@router.put("", response_model=LabelledImageResponse, response_model_exclude_none=True)
def label_image(
    body: LabelRequest,
    actor: Actor = Depends(get_current_actor),
    db: DynamoDBService = Depends(get_dynamodb_service),
):
    """Sets the label of an image."""
    return set_label(db, actor, body.id, body.label)
