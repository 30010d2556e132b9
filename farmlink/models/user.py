from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional

from farmlink.config.constants import MIN_PASSWORD_LENGTH


class Location(BaseModel):
    state: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = None


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    role: Optional[Literal["buyer", "seller"]] = "buyer"
    phone: Optional[str] = None
    location: Optional[Location] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RoleSelect(BaseModel):
    role: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
