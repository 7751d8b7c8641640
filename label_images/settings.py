from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",  # tolerate unknown vars if needed
    )

    aws_region: str = "us-east-1"
    aws_endpoint_url: Optional[str] = None
    # Public host to put in presigned URLs when aws_endpoint_url is internal (e.g. localstack)
    external_endpoint: Optional[str] = None

    aws_access_key_id: str = "test"
    aws_secret_access_key: str = "test"

    s3_bucket: str = "label-images-bucket"
    dynamodb_table: str = "ImageTable"
    cognito_client_id: str = ""
    cognito_user_pool_id: str = ""
    # Issuer of ID tokens; derived from region and pool id when unset
    cognito_issuer: Optional[str] = None

    upload_url_expire_seconds: int = 300
    bulk_upload_url_expire_seconds: int = 1800
    download_url_expire_seconds: int = 3600

    default_page_size: int = 10
    fanout_max_workers: int = 10

    # Create the bucket and table on startup when they are missing
    ensure_resources: bool = True

    app_title: str = "Label Images Service"
    log_level: str = "INFO"

settings = Settings()
