import os
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
from botocore.exceptions import ClientError
import boto3

# Set test environment variable BEFORE importing app modules
os.environ["TESTING"] = "true"

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "label-images-bucket"
os.environ["DYNAMODB_TABLE"] = "ImageTable"
os.environ["COGNITO_CLIENT_ID"] = "test-client"
os.environ["COGNITO_USER_POOL_ID"] = "us-east-1_testpool"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from label_images.main import app
from label_images.settings import settings
from label_images.storage.s3 import S3Service
from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.cognito import CognitoService
from label_images.auth_service.models import Actor

BUCKET = "label-images-bucket"
TABLE = "ImageTable"
VALID_TOKEN = "valid-token"


def client_error(code: str, operation: str = "Operation", message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def aws(aws_credentials):
    with mock_aws():
        # Create S3 bucket
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=BUCKET)

        # Create DynamoDB table
        dynamodb = boto3.client("dynamodb", region_name="us-east-1")
        dynamodb.create_table(
            TableName=TABLE,
            KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield


@pytest.fixture
def s3_client(aws):
    return boto3.client("s3", region_name="us-east-1")


@pytest.fixture
def table(aws):
    return boto3.resource("dynamodb", region_name="us-east-1").Table(TABLE)


@pytest.fixture
def s3_service(aws):
    return S3Service(settings)


@pytest.fixture
def db_service(aws):
    return DynamoDBService(settings)


@pytest.fixture
def actor():
    return Actor(user_id="U1", username="alice")


@pytest.fixture
def cognito_service(mocker):
    """Cognito stand-in that accepts VALID_TOKEN as alice (sub U1)."""
    cognito = mocker.Mock(spec=CognitoService)

    def get_user(token):
        if token != VALID_TOKEN:
            raise client_error("NotAuthorizedException", "GetUser", "Invalid Access Token")
        return {
            "Username": "alice",
            "UserAttributes": [
                {"Name": "sub", "Value": "U1"},
                {"Name": "email", "Value": "alice@example.com"},
            ],
        }

    cognito.get_user.side_effect = get_user
    return cognito


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {VALID_TOKEN}"}


@pytest.fixture(scope="function")
def test_client(s3_service, db_service, cognito_service):
    # Replace the original services with mocked ones
    app.state.s3 = s3_service
    app.state.db = db_service
    app.state.cognito = cognito_service

    with TestClient(app) as client:
        yield client
