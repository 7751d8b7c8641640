import math
import boto3
from typing import Optional, Dict, Any, List
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from label_images.settings import Settings, settings
from label_images.storage.s3 import session_kwargs
import logging

log = logging.getLogger(__name__)

# Group size of BatchWriteItem, and of boto3's batch writer
BATCH_WRITE_LIMIT = 25

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    def __init__(self, config: Settings = settings):
        self.config = config
        self.table_name = config.dynamodb_table
        session = boto3.session.Session(region_name=config.aws_region)
        self.resource = session.resource("dynamodb", **session_kwargs(config))
        log.info("Initialized DynamoDB resource")

        if config.ensure_resources:
            self.ensure_table()

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self):
        try:
            table = self.resource.Table(self.table_name)
            table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=self.table_name,
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()
            log.info("Created table %s", self.table_name)

    def table(self):
        return self.resource.Table(self.table_name)

    def put_metadata(self, item: Dict[str, Any]):
        self.table().put_item(Item=item)
        log.debug("Inserted metadata %s", item.get("id"))

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        resp = self.table().get_item(Key={"id": image_id})
        return resp.get("Item")

    def delete_metadata(self, image_id: str):
        self.table().delete_item(Key={"id": image_id})
        log.debug("Deleted metadata %s", image_id)

    def scan_metadata(
        self,
        limit: int = 10,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        scan_kwargs = {"Limit": limit}
        if exclusive_start_key:
            scan_kwargs["ExclusiveStartKey"] = exclusive_start_key
        return self.table().scan(**scan_kwargs)

    def update_label(
        self,
        image_id: str,
        label: str,
        updated_by: str,
        updated_at: str,
    ) -> Optional[Dict[str, Any]]:
        """Sets the label of an existing item. Returns None when no item has that id."""
        try:
            resp = self.table().update_item(
                Key={"id": image_id},
                UpdateExpression="SET #label = :label, updatedAt = :updatedAt, updatedBy = :updatedBy",
                ConditionExpression=Attr("id").exists(),
                ExpressionAttributeNames={"#label": "label"},
                ExpressionAttributeValues={
                    ":label": label,
                    ":updatedAt": updated_at,
                    ":updatedBy": updated_by,
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise
        log.debug("Updated label of %s", image_id)
        return resp.get("Attributes")

    def update_signed_url(self, image_id: str, url: str, expires_at: str) -> bool:
        """Caches a download URL on an existing item. Returns False when the item is gone."""
        try:
            self.table().update_item(
                Key={"id": image_id},
                UpdateExpression="SET #url = :url, signedUrlExpiresAt = :expiresAt",
                ConditionExpression=Attr("id").exists(),
                ExpressionAttributeNames={"#url": "url"},
                ExpressionAttributeValues={":url": url, ":expiresAt": expires_at},
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise
        log.debug("Refreshed signed url of %s", image_id)
        return True

    def batch_put(self, items: List[Dict[str, Any]]) -> int:
        """
            Puts items through boto3's batch writer, which flushes them in
            groups of 25 and resends unprocessed items.

            Groups are committed one after another; an error in a later group
            leaves the earlier ones written. Duplicate ids collapse to the last
            item. Returns the number of groups.
        """
        with self.table().batch_writer(overwrite_by_pkeys=["id"]) as batch:
            for item in items:
                batch.put_item(Item=item)
        groups = math.ceil(len({item["id"] for item in items}) / BATCH_WRITE_LIMIT)
        log.debug("Wrote %d items in %d groups", len(items), groups)
        return groups

    def close(self):
        log.info("Closed DynamoDB resource")
