"""
classwork/schemas/user.py
Pydantic DTOs for Registration, Login, Profile
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from classwork.schemas.common import CamelModel


class UserCreate(CamelModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=8, description="Minimum 8 characters")
    full_name: str = Field(..., min_length=2, max_length=255)
    role: Literal["teacher", "student"] = "student"
    department: Optional[str] = Field(None, max_length=100)
    year: Optional[str] = Field(None, max_length=20)

    @field_validator("department", "year")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class UserLogin(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class UserProfile(CamelModel):
    id: str
    email: str
    full_name: str
    role: str
    department: Optional[str] = None
    year: Optional[str] = None
    created_at: Optional[datetime] = None


class UserResponse(BaseModel):
    success: bool = True
    message: str
    data: UserProfile


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    token: Token
    user: UserProfile
