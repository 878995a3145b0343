# tokenline/app/schemas/user.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
import re

# Função de validação de senha
def password_strength_validator(password: str) -> str:
    if len(password) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not re.search(r"[a-z]", password):
        raise ValueError('Password must contain a lowercase letter')
    if not re.search(r"[A-Z]", password):
        raise ValueError('Password must contain an uppercase letter')
    if not re.search(r"[0-9]", password):
        raise ValueError('Password must contain a digit')
    if not re.search(r"[\W_]", password): # \W corresponde a não-alfanumérico
        raise ValueError('Password must contain a special character')
    return password

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return password_strength_validator(v)


class LoginRequest(BaseModel):
    # Sem validação de força aqui: uma senha fraca deve falhar como credencial inválida
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    auth_provider: Optional[str] = None
    is_active: bool
    created_at: datetime
