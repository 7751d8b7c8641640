from typing import Optional
import logging
import jwt
from jwt.exceptions import PyJWKClientConnectionError
from botocore.exceptions import BotoCoreError, ClientError

from label_images.storage.cognito import CognitoService
from label_images.auth_service.models import Actor, TokenResponse
from label_images.exceptions import (
    AuthException,
    CognitoException,
    ConflictException,
    ValidationException,
)

log = logging.getLogger(__name__)

# Cognito rejections whose message is safe to show to the user
CLIENT_ERROR_CODES = {"InvalidPasswordException", "InvalidParameterException"}

def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")

def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", "")

def _require(**fields):
    if not all(fields.values()):
        raise ValidationException("Missing required fields")

def signup(cognito: CognitoService, email: Optional[str], password: Optional[str]) -> str:
    """Registers a user in the pool; Cognito sends the verification code."""
    _require(email=email, password=password)
    try:
        cognito.sign_up(email, password)
    except ClientError as e:
        code = _error_code(e)
        if code == "UsernameExistsException":
            raise ConflictException("User already exists")
        if code in CLIENT_ERROR_CODES:
            raise ValidationException(_error_message(e) or "Failed to create user")
        log.error(f"Cognito sign_up failed: {e}")
        raise CognitoException("Failed to create user")
    except BotoCoreError as e:
        log.error(f"Cognito sign_up failed: {e}")
        raise CognitoException("Failed to create user")
    log.info("User %s signed up", email)
    return "User created successfully. Please verify your email."

def verify_user(cognito: CognitoService, email: Optional[str], code: Optional[str]) -> str:
    _require(email=email, code=code)
    try:
        cognito.confirm_sign_up(email, code)
    except ClientError as e:
        error_code = _error_code(e)
        if error_code == "CodeMismatchException":
            raise ValidationException("Invalid verification code. Please try again.")
        if error_code == "ExpiredCodeException":
            raise ValidationException("Verification code has expired. Request a new one.")
        if error_code in CLIENT_ERROR_CODES:
            raise ValidationException(_error_message(e) or "Failed to verify user")
        log.error(f"Cognito confirm_sign_up failed: {e}")
        raise CognitoException("Failed to verify user")
    except BotoCoreError as e:
        log.error(f"Cognito confirm_sign_up failed: {e}")
        raise CognitoException("Failed to verify user")
    log.info("User %s verified", email)
    return "User verified successfully. You can now log in."

def resend_verification(cognito: CognitoService, email: Optional[str]) -> str:
    _require(email=email)
    try:
        cognito.resend_confirmation_code(email)
    except ClientError as e:
        if _error_code(e) in CLIENT_ERROR_CODES:
            raise ValidationException(_error_message(e) or "Failed to resend verification code")
        log.error(f"Cognito resend_confirmation_code failed: {e}")
        raise CognitoException("Failed to resend verification code")
    except BotoCoreError as e:
        log.error(f"Cognito resend_confirmation_code failed: {e}")
        raise CognitoException("Failed to resend verification code")
    return "Verification code resent successfully."

def login(cognito: CognitoService, email: Optional[str], password: Optional[str]) -> TokenResponse:
    _require(email=email, password=password)
    try:
        result = cognito.initiate_auth(email, password)
    except ClientError as e:
        if _error_code(e) in ("NotAuthorizedException", "UserNotFoundException"):
            raise AuthException("Incorrect email or password")
        if _error_code(e) == "UserNotConfirmedException":
            raise AuthException("User is not verified")
        log.error(f"Cognito initiate_auth failed: {e}")
        raise CognitoException("Failed to login user")
    except BotoCoreError as e:
        log.error(f"Cognito initiate_auth failed: {e}")
        raise CognitoException("Failed to login user")

    if not result:
        # Challenge responses (e.g. NEW_PASSWORD_REQUIRED) carry no tokens
        raise AuthException("Failed to authenticate user")

    log.info("User %s logged in", email)
    return TokenResponse(
        access_token=result.get("AccessToken"),
        id_token=result.get("IdToken"),
        refresh_token=result.get("RefreshToken"),
    )

def token_use(token: str) -> Optional[str]:
    """The unverified token_use claim; None when token is not a JWT."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    return claims.get("token_use")

def _actor_from_id_token(cognito: CognitoService, token: str) -> Actor:
    try:
        claims = cognito.verify_id_token(token)
    except PyJWKClientConnectionError as e:
        log.error(f"Fetching Cognito signing keys failed: {e}")
        raise CognitoException("Failed to verify token")
    except jwt.PyJWTError as e:
        log.info(f"Rejected ID token: {e}")
        raise AuthException("Invalid or expired token")

    sub = claims.get("sub")
    username = claims.get("cognito:username")
    if not sub or not username:
        raise AuthException("Token does not identify a user")
    return Actor(user_id=sub, username=username)

def _actor_from_access_token(cognito: CognitoService, token: str) -> Actor:
    try:
        user = cognito.get_user(token)
    except ClientError as e:
        if _error_code(e) in ("NotAuthorizedException", "UserNotFoundException"):
            raise AuthException("Invalid or expired token")
        log.error(f"Cognito get_user failed: {e}")
        raise CognitoException("Failed to verify token")
    except BotoCoreError as e:
        log.error(f"Cognito get_user failed: {e}")
        raise CognitoException("Failed to verify token")

    attributes = {a["Name"]: a["Value"] for a in user.get("UserAttributes", [])}
    sub = attributes.get("sub")
    username = user.get("Username")
    if not sub or not username:
        raise AuthException("Token does not identify a user")
    return Actor(user_id=sub, username=username)

def authenticate(cognito: CognitoService, token: Optional[str]) -> Actor:
    """
        Resolves a bearer token to the caller's sub and username.

        ID tokens (what the web client sends) are verified locally against the
        pool's signing keys. Anything else is treated as an access token and
        checked with GetUser, which also rejects revoked tokens.
    """
    if not token:
        raise AuthException("Missing authorization token")
    if token_use(token) == "id":
        return _actor_from_id_token(cognito, token)
    return _actor_from_access_token(cognito, token)
