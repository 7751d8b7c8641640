import boto3
from typing import Dict, Optional
from botocore.exceptions import ClientError
from label_images.settings import Settings, settings
import logging

log = logging.getLogger(__name__)

def session_kwargs(config: Settings) -> dict:
    """Client kwargs shared by every boto3 client/resource of the service."""
    kwargs = {
        "aws_access_key_id": config.aws_access_key_id,
        "aws_secret_access_key": config.aws_secret_access_key,
    }
    if config.aws_endpoint_url:
        kwargs["endpoint_url"] = config.aws_endpoint_url
    return kwargs

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, config: Settings = settings):
        self.config = config
        self.bucket = config.s3_bucket
        session = boto3.session.Session(region_name=config.aws_region)
        self.client = session.client("s3", **session_kwargs(config))
        log.info("Initialized S3 client")

        if config.ensure_resources:
            self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("404", "NoSuchBucket"):
                kwargs = {"Bucket": self.bucket}
                if self.config.aws_region != "us-east-1":
                    kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.config.aws_region}
                self.client.create_bucket(**kwargs)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def upload(self, fileobj, key: str, content_type: str):
        self.client.upload_fileobj(
            Fileobj=fileobj,
            Bucket=self.bucket,
            Key=key,
            ExtraArgs={"ContentType": content_type},
        )
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)

    def _external(self, url: str) -> str:
        if self.config.external_endpoint and self.config.aws_endpoint_url:
            url = url.replace(self.config.aws_endpoint_url, self.config.external_endpoint)
        return url

    def generate_presigned_url(self, key: str, expires_in: Optional[int] = None) -> str:
        """Presigned GET for downloading an object."""
        expires = expires_in or self.config.download_url_expire_seconds
        url = self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires,
        )
        return self._external(url)

    def generate_presigned_upload_url(
        self,
        key: str,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
        expires_in: Optional[int] = None,
    ) -> str:
        """
            Presigned PUT for uploading an object.

            The metadata is signed into the URL, so the uploader must send the
            matching x-amz-meta-* headers and it is stored with the object.
        """
        expires = expires_in or self.config.upload_url_expire_seconds
        params = {"Bucket": self.bucket, "Key": key, "ContentType": content_type}
        if metadata:
            params["Metadata"] = metadata
        url = self.client.generate_presigned_url(
            "put_object",
            Params=params,
            ExpiresIn=expires,
        )
        return self._external(url)

    def get_object_metadata(self, key: str, bucket: Optional[str] = None) -> Dict[str, str]:
        """User metadata (x-amz-meta-*) stored with an object."""
        resp = self.client.head_object(Bucket=bucket or self.bucket, Key=key)
        return resp.get("Metadata") or {}

    def delete(self, key: str):
        self.client.delete_object(Bucket=self.bucket, Key=key)
        log.debug("Deleted s3://%s/%s", self.bucket, key)

    def close(self):
        log.info("Closed S3 client")
