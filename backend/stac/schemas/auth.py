from __future__ import annotations
from pydantic import BaseModel, Field
from datetime import datetime

USERNAME_PATTERN = r"^@?[A-Za-z0-9_]{3,32}$"

class RegisterRequest(BaseModel):
    username: str = Field(pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    first_name: str | None = Field(default=None, max_length=64)
    last_name: str | None = Field(default=None, max_length=64)

class LoginRequest(BaseModel):
    username: str
    password: str

class UserPublic(BaseModel):
    id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime

class TokenPair(BaseModel):
    access: str
    refresh: str
