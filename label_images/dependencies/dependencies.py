from typing import Optional
from fastapi import Depends, Header, Request
from label_images.storage.cognito import CognitoService
from label_images.storage.dynamodb import DynamoDBService
from label_images.storage.s3 import S3Service
from label_images.auth_service.models import Actor
from label_images.auth_service.service import authenticate

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """Dependency provider for DynamoDBService"""
    return request.app.state.db

def get_cognito_service(request: Request) -> CognitoService:
    """Dependency provider for CognitoService"""
    return request.app.state.cognito

def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Accepts "Bearer <token>" or a bare token; any other scheme carries no token."""
    candidate = (authorization or "").strip()
    if not candidate or candidate.lower() == "bearer":
        return None
    scheme, sep, token = candidate.partition(" ")
    if not sep:
        return candidate
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None

def get_current_actor(
    authorization: Optional[str] = Header(None),
    cognito: CognitoService = Depends(get_cognito_service),
) -> Actor:
    """The caller identified by the Authorization header."""
    return authenticate(cognito, bearer_token(authorization))
