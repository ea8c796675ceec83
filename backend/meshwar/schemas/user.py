"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from meshwar.models.user import UserRole


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    display_name: str = Field(..., min_length=1, max_length=255)
    dob: Optional[date] = None
    role: UserRole = UserRole.USER
    profile_image: Optional[str] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    dob: Optional[date] = None
    role: Optional[UserRole] = None
    profile_image: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8, max_length=72)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserSummary(BaseModel):
    id: str
    email: str
    display_name: str

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: UserRole
    dob: Optional[date]
    age: Optional[int] = None
    profile_image: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
