from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from datetime import datetime
import enum
import uuid

from ..database import Base

def new_uuid() -> str:
    return str(uuid.uuid4())

# --- ENUMS ---
class UserRole(str, enum.Enum):
    ADMIN = "admin"
    OFICINISTA = "oficinista"
    BODEGUERO = "bodeguero"
    DOMICILIARIO = "domiciliario"
    CLIENTE = "cliente"

# --- PROVEEDOR DE IDENTIDAD ---
class AuthIdentity(Base):
    """
    Identidad de autenticación (email + contraseña).

    Vive separada del perfil (`users`): el registro crea primero la identidad
    y después el perfil, por lo que puede existir una identidad sin perfil.

    Attributes:
        user_metadata: Datos capturados en el registro (name, role, address).
        failed_attempts: Intentos fallidos consecutivos desde el último ingreso.
        locked_until: Fin del bloqueo temporal por exceso de intentos.
    """
    __tablename__ = "auth_identities"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    user_metadata = Column(JSON, default=dict)

    email_confirmed_at = Column(DateTime, nullable=True)
    failed_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_sign_in_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class AuthSession(Base):
    """Sesión emitida en un ingreso. El token JWT lleva su id en `sid`."""
    __tablename__ = "auth_sessions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    identity_id = Column(String(36), ForeignKey("auth_identities.id"), index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

# --- PERFILES ---
class User(Base):
    """Perfil de usuario. Comparte id con su AuthIdentity."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    # Cadena libre: la capa de datos no valida contra UserRole
    role = Column(String, default=UserRole.CLIENTE.value, index=True, nullable=False)
    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
