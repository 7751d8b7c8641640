from typing import Optional
from pydantic import BaseModel

from label_images.image_service.models import CamelModel

class Actor(BaseModel):
    """The authenticated caller."""
    user_id: str
    username: str

class SignupRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None

class VerifyRequest(CamelModel):
    email: Optional[str] = None
    code: Optional[str] = None

class ResendRequest(CamelModel):
    email: Optional[str] = None

class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None

class TokenResponse(CamelModel):
    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

class MessageResponse(BaseModel):
    message: str
