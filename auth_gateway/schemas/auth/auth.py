# auth_gateway/schemas/auth/auth.py
from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional, Dict, Any, List
import re

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "ResendOTPRequest",
    "VerifyOTPRequest",
    "UserResponse",
    "AuthResponse",
]

def _lower_email(v: str) -> str:
    # Accounts are looked up by exact email
    return v.lower()


class RegisterRequest(BaseModel):
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    contact_number: Optional[str] = Field(None, description="Philippine mobile number, any common format")
    address: Optional[str] = Field(None, max_length=255)

    @validator('email')
    def validate_email(cls, v):
        return _lower_email(v)

    @validator('first_name', 'last_name', 'middle_name')
    def validate_name(cls, v):
        if v is None:
            return v
        if not re.match(r"^[^\W\d_](?:[^\W\d_]|[\s'.\-])*$", v.strip()):
            raise ValueError('Name can only contain letters, spaces, apostrophes, periods and hyphens')
        return v.strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @validator('email')
    def validate_email(cls, v):
        return _lower_email(v)


class ResendOTPRequest(BaseModel):
    challenge_token: str = Field(..., description="Challenge token returned by /login")


class VerifyOTPRequest(BaseModel):
    challenge_token: str = Field(..., description="Challenge token returned by /login")
    code: str = Field(..., description="6-digit OTP")

    @validator('code')
    def validate_code(cls, v):
        v = v.strip()
        if not v.isdigit() or len(v) != 6:
            raise ValueError('OTP must be 6 digits')
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    status: str
    roles: List[str] = []
    otp_enabled: bool = False


class AuthResponse(BaseModel):
    success: bool
    message: str
    data: Dict[str, Any]
