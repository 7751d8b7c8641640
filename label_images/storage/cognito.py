import boto3
import jwt
from typing import Any, Dict
from label_images.settings import Settings, settings
from label_images.storage.s3 import session_kwargs
import logging

log = logging.getLogger(__name__)

# -------------------------
# Cognito Service
# -------------------------
class CognitoService:
    """
        User pool app client operations.

        Pool calls raise botocore ClientError; ID token checks raise
        jwt.PyJWTError.
    """

    def __init__(self, config: Settings = settings):
        self.client_id = config.cognito_client_id
        session = boto3.session.Session(region_name=config.aws_region)
        self.client = session.client("cognito-idp", **session_kwargs(config))
        self.issuer = config.cognito_issuer or (
            f"https://cognito-idp.{config.aws_region}.amazonaws.com/{config.cognito_user_pool_id}"
        )
        # Keys are fetched on first use and cached by the client
        self.jwks_client = jwt.PyJWKClient(f"{self.issuer}/.well-known/jwks.json")
        log.info("Initialized Cognito client")

    def sign_up(self, email: str, password: str):
        self.client.sign_up(
            ClientId=self.client_id,
            Username=email,
            Password=password,
            UserAttributes=[{"Name": "email", "Value": email}],
        )
        log.debug("Signed up %s", email)

    def confirm_sign_up(self, email: str, code: str):
        self.client.confirm_sign_up(
            ClientId=self.client_id,
            Username=email,
            ConfirmationCode=code,
        )

    def resend_confirmation_code(self, email: str):
        self.client.resend_confirmation_code(ClientId=self.client_id, Username=email)

    def initiate_auth(self, email: str, password: str) -> Dict[str, Any]:
        resp = self.client.initiate_auth(
            AuthFlow="USER_PASSWORD_AUTH",
            AuthParameters={"USERNAME": email, "PASSWORD": password},
            ClientId=self.client_id,
        )
        return resp.get("AuthenticationResult") or {}

    def get_user(self, access_token: str) -> Dict[str, Any]:
        """Validates an access token and returns the user it was issued to."""
        return self.client.get_user(AccessToken=access_token)

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """Claims of an ID token signed by the pool for this app client."""
        signing_key = self.jwks_client.get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.client_id,
            issuer=self.issuer,
        )
        if claims.get("token_use") != "id":
            raise jwt.InvalidTokenError("Token is not an ID token")
        return claims

    def close(self):
        log.info("Closed Cognito client")
