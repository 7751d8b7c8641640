from fastapi import APIRouter, Depends

from label_images.storage.cognito import CognitoService
from label_images.dependencies.dependencies import get_cognito_service
from label_images.auth_service import service
from label_images.auth_service.models import (
    LoginRequest,
    MessageResponse,
    ResendRequest,
    SignupRequest,
    TokenResponse,
    VerifyRequest,
)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

@router.post("/signup", response_model=MessageResponse)
def signup(body: SignupRequest, cognito: CognitoService = Depends(get_cognito_service)):
    return MessageResponse(message=service.signup(cognito, body.email, body.password))

@router.post("/verify-user", response_model=MessageResponse)
def verify_user(body: VerifyRequest, cognito: CognitoService = Depends(get_cognito_service)):
    return MessageResponse(message=service.verify_user(cognito, body.email, body.code))

@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(body: ResendRequest, cognito: CognitoService = Depends(get_cognito_service)):
    return MessageResponse(message=service.resend_verification(cognito, body.email))

@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, cognito: CognitoService = Depends(get_cognito_service)):
    return service.login(cognito, body.email, body.password)
