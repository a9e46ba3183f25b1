from pydantic import BaseModel, EmailStr, ConfigDict, Field
from typing import Optional
from datetime import datetime

# --- USER ---
class UserBase(BaseModel):
    email: EmailStr
    name: str

class RegisterRequest(UserBase):
    """Registro público de clientes."""
    password: str = Field(..., min_length=6)
    address: str

class UserUpdate(BaseModel):
    """Campos editables del perfil. `role` solo lo cambia un admin."""
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    address: Optional[str] = None
    phone: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- AUTH ---
class SessionInfo(BaseModel):
    id: str
    user_id: str
    expires_at: datetime

class Token(BaseModel):
    access_token: str
    token_type: str
    expires_at: datetime
    user: UserResponse

class CurrentSessionResponse(BaseModel):
    """Sesión actual y perfil resuelto; ambos nulos sin sesión válida."""
    session: Optional[SessionInfo] = None
    user: Optional[UserResponse] = None
