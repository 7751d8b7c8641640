import time
import boto3
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import PyJWKClientConnectionError
from botocore.exceptions import ClientError, EndpointConnectionError

from label_images.auth_service import service
from label_images.exceptions import AuthException, CognitoException, ConflictException, ValidationException
from label_images.dependencies.dependencies import bearer_token
from label_images.settings import Settings
from label_images.storage.cognito import CognitoService


def client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ------------------------------
# auth service with a mocked user pool
# ------------------------------

@pytest.mark.parametrize("email,password", [(None, "pw"), ("a@b.c", None), ("", "")])
def test_signup_requires_fields(cognito_service, email, password):
    with pytest.raises(ValidationException, match="Missing required fields"):
        service.signup(cognito_service, email, password)
    cognito_service.sign_up.assert_not_called()


def test_signup(cognito_service):
    message = service.signup(cognito_service, "a@b.c", "Passw0rd!")
    assert message == "User created successfully. Please verify your email."
    cognito_service.sign_up.assert_called_once_with("a@b.c", "Passw0rd!")


@pytest.mark.parametrize("code,expected", [
    ("UsernameExistsException", ConflictException),
    ("InvalidPasswordException", ValidationException),
    ("InvalidParameterException", ValidationException),
    ("InternalErrorException", CognitoException),
])
def test_signup_error_mapping(cognito_service, code, expected):
    cognito_service.sign_up.side_effect = client_error(code, "SignUp")
    with pytest.raises(expected):
        service.signup(cognito_service, "a@b.c", "pw")


def test_signup_connection_error(cognito_service):
    cognito_service.sign_up.side_effect = EndpointConnectionError(endpoint_url="http://cognito")
    with pytest.raises(CognitoException):
        service.signup(cognito_service, "a@b.c", "pw")


@pytest.mark.parametrize("code,expected", [
    ("CodeMismatchException", ValidationException),
    ("ExpiredCodeException", ValidationException),
    ("LimitExceededException", CognitoException),
])
def test_verify_error_mapping(cognito_service, code, expected):
    cognito_service.confirm_sign_up.side_effect = client_error(code, "ConfirmSignUp")
    with pytest.raises(expected):
        service.verify_user(cognito_service, "a@b.c", "123456")


def test_resend_verification(cognito_service):
    assert service.resend_verification(cognito_service, "a@b.c") == "Verification code resent successfully."
    with pytest.raises(ValidationException):
        service.resend_verification(cognito_service, None)


@pytest.mark.parametrize("code,message", [
    ("NotAuthorizedException", "Incorrect email or password"),
    ("UserNotFoundException", "Incorrect email or password"),
    ("UserNotConfirmedException", "User is not verified"),
])
def test_login_rejections(cognito_service, code, message):
    cognito_service.initiate_auth.side_effect = client_error(code, "InitiateAuth")
    with pytest.raises(AuthException, match=message):
        service.login(cognito_service, "a@b.c", "pw")


def test_login_challenge_without_tokens(cognito_service):
    cognito_service.initiate_auth.return_value = {}
    with pytest.raises(AuthException):
        service.login(cognito_service, "a@b.c", "pw")


def test_authenticate(cognito_service):
    actor = service.authenticate(cognito_service, "valid-token")
    assert (actor.user_id, actor.username) == ("U1", "alice")


@pytest.mark.parametrize("token", [None, "", "expired"])
def test_authenticate_rejects(cognito_service, token):
    with pytest.raises(AuthException):
        service.authenticate(cognito_service, token)


def test_authenticate_upstream_failure(cognito_service):
    cognito_service.get_user.side_effect = client_error("InternalErrorException", "GetUser")
    with pytest.raises(CognitoException):
        service.authenticate(cognito_service, "valid-token")


@pytest.mark.parametrize("header,expected", [
    (None, None),
    ("Bearer abc", "abc"),
    ("bearer abc", "abc"),
    ("abc", "abc"),
    ("Bearer ", None),
    ("Bearer", None),
    ("Basic abc", None),
    ("Token abc", None),
])
def test_bearer_token(header, expected):
    assert bearer_token(header) == expected


# ------------------------------
# /auth routes
# ------------------------------

def test_signup_route(test_client, cognito_service):
    resp = test_client.post("/auth/signup", json={"email": "a@b.c", "password": "Passw0rd!"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "User created successfully. Please verify your email."}


def test_signup_route_existing_user(test_client, cognito_service):
    cognito_service.sign_up.side_effect = client_error("UsernameExistsException", "SignUp")
    resp = test_client.post("/auth/signup", json={"email": "a@b.c", "password": "Passw0rd!"})
    assert resp.status_code == 409
    assert resp.json() == {"message": "User already exists"}


def test_signup_route_missing_fields(test_client):
    resp = test_client.post("/auth/signup", json={"email": "a@b.c"})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Missing required fields"}


def test_verify_route_bad_code(test_client, cognito_service):
    cognito_service.confirm_sign_up.side_effect = client_error("CodeMismatchException", "ConfirmSignUp")
    resp = test_client.post("/auth/verify-user", json={"email": "a@b.c", "code": "000000"})
    assert resp.status_code == 400


def test_login_route(test_client, cognito_service):
    cognito_service.initiate_auth.return_value = {"AccessToken": "at", "IdToken": "it", "RefreshToken": "rt"}
    resp = test_client.post("/auth/login", json={"email": "a@b.c", "password": "pw"})
    assert resp.status_code == 200
    assert resp.json() == {"accessToken": "at", "idToken": "it", "refreshToken": "rt"}
    assert resp.headers["access-control-allow-origin"] == "*"


def test_login_route_wrong_password(test_client, cognito_service):
    cognito_service.initiate_auth.side_effect = client_error("NotAuthorizedException", "InitiateAuth")
    resp = test_client.post("/auth/login", json={"email": "a@b.c", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Incorrect email or password"}


# ------------------------------
# CognitoService against moto
# ------------------------------

@pytest.fixture
def user_pool(aws):
    client = boto3.client("cognito-idp", region_name="us-east-1")
    pool_id = client.create_user_pool(PoolName="label-images")["UserPool"]["Id"]
    client_id = client.create_user_pool_client(
        UserPoolId=pool_id,
        ClientName="web",
        ExplicitAuthFlows=["ALLOW_USER_PASSWORD_AUTH", "ALLOW_REFRESH_TOKEN_AUTH"],
    )["UserPoolClient"]["ClientId"]
    return CognitoService(Settings(cognito_client_id=client_id))


def test_signup_verify_login_flow(user_pool):
    service.signup(user_pool, "carol@example.com", "Passw0rd!")

    with pytest.raises(ConflictException):
        service.signup(user_pool, "carol@example.com", "Passw0rd!")

    service.verify_user(user_pool, "carol@example.com", "123456")
    tokens = service.login(user_pool, "carol@example.com", "Passw0rd!")
    assert tokens.access_token
    assert tokens.id_token


# ------------------------------
# ID tokens
# ------------------------------

ISSUER = "https://cognito-idp.us-east-1.amazonaws.com/us-east-1_testpool"


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def id_token_claims(**overrides):
    now = int(time.time())
    claims = {
        "sub": "U1",
        "cognito:username": "alice",
        "aud": "test-client",
        "iss": ISSUER,
        "token_use": "id",
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    return claims


@pytest.fixture
def pool_gateway(signing_key, mocker):
    """CognitoService whose JWKS lookup returns the test signing key."""
    gateway = CognitoService(Settings(cognito_client_id="test-client", cognito_user_pool_id="us-east-1_testpool"))
    mocker.patch.object(
        gateway.jwks_client, "get_signing_key_from_jwt", return_value=mocker.Mock(key=signing_key.public_key())
    )
    return gateway


def sign(signing_key, claims):
    return jwt.encode(claims, signing_key, algorithm="RS256", headers={"kid": "test-kid"})


def test_verify_id_token(pool_gateway, signing_key):
    claims = pool_gateway.verify_id_token(sign(signing_key, id_token_claims()))
    assert claims["sub"] == "U1"
    assert claims["cognito:username"] == "alice"


@pytest.mark.parametrize("overrides,error", [
    ({"aud": "other-client"}, jwt.InvalidAudienceError),
    ({"iss": "https://cognito-idp.us-east-1.amazonaws.com/other"}, jwt.InvalidIssuerError),
    ({"exp": int(time.time()) - 10}, jwt.ExpiredSignatureError),
    ({"token_use": "access"}, jwt.InvalidTokenError),
])
def test_verify_id_token_rejects(pool_gateway, signing_key, overrides, error):
    with pytest.raises(error):
        pool_gateway.verify_id_token(sign(signing_key, id_token_claims(**overrides)))


def test_verify_id_token_rejects_foreign_signature(pool_gateway):
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(jwt.InvalidSignatureError):
        pool_gateway.verify_id_token(sign(other_key, id_token_claims()))


def unsigned_id_token(**overrides):
    return jwt.encode(id_token_claims(**overrides), "a-test-secret-that-is-long-enough-for-hs256", algorithm="HS256")


def test_token_use():
    assert service.token_use(unsigned_id_token()) == "id"
    assert service.token_use(unsigned_id_token(token_use="access")) == "access"
    assert service.token_use("valid-token") is None


def test_authenticate_id_token(cognito_service):
    token = unsigned_id_token()
    cognito_service.verify_id_token.return_value = id_token_claims()

    actor = service.authenticate(cognito_service, token)

    assert (actor.user_id, actor.username) == ("U1", "alice")
    cognito_service.verify_id_token.assert_called_once_with(token)
    cognito_service.get_user.assert_not_called()


def test_authenticate_access_token_uses_get_user(cognito_service):
    token = unsigned_id_token(token_use="access")
    with pytest.raises(AuthException):
        service.authenticate(cognito_service, token)
    cognito_service.get_user.assert_called_once_with(token)
    cognito_service.verify_id_token.assert_not_called()


def test_authenticate_rejected_id_token(cognito_service):
    cognito_service.verify_id_token.side_effect = jwt.ExpiredSignatureError("Signature has expired")
    with pytest.raises(AuthException, match="Invalid or expired token"):
        service.authenticate(cognito_service, unsigned_id_token())


def test_authenticate_id_token_without_username(cognito_service):
    claims = id_token_claims()
    del claims["cognito:username"]
    cognito_service.verify_id_token.return_value = claims
    with pytest.raises(AuthException):
        service.authenticate(cognito_service, unsigned_id_token())


def test_authenticate_jwks_unreachable(cognito_service):
    cognito_service.verify_id_token.side_effect = PyJWKClientConnectionError("Fail to fetch data from the url")
    with pytest.raises(CognitoException):
        service.authenticate(cognito_service, unsigned_id_token())


def test_id_token_route(test_client, cognito_service):
    cognito_service.verify_id_token.return_value = id_token_claims(sub="U9", **{"cognito:username": "bob"})
    resp = test_client.post(
        "/label-images/upload",
        json={"fileName": "a.png", "contentType": "image/png"},
        headers={"Authorization": f"Bearer {unsigned_id_token()}"},
    )
    assert resp.status_code == 200
    assert resp.json()["uploadUrl"]
