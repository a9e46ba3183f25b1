from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from datetime import datetime, timedelta
import os
from typing import Iterable, Optional

# Configuración Criptográfica
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "SECRET_SUPER_SECRETO_CAMBIAME")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# --- UTILIDADES ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Crea un JWT firmado.
    DATA debe incluir: 'sub' (email), 'role', 'user_id' y 'sid' (sesión).
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

def decode_token(token: str):
    """Decodifica el token. Devuelve None si la firma o la expiración no son válidas."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None

# --- PERMISOS ---
class Permissions:
    # INVENTARIO
    PRODUCT_READ = "product:read"
    PRODUCT_CREATE = "product:create"
    PRODUCT_UPDATE = "product:update"
    PRODUCT_DELETE = "product:delete"
    STOCK_ADJUST = "stock:adjust"
    STOCK_TRANSFER = "stock:transfer"
    WAREHOUSE_MANAGE = "warehouse:manage"

    # PEDIDOS
    ORDER_READ = "order:read"
    ORDER_READ_OWN = "order:read_own"
    ORDER_CREATE = "order:create"
    ORDER_UPDATE = "order:update"

    # FACTURAS
    INVOICE_READ = "invoice:read"
    INVOICE_READ_OWN = "invoice:read_own"
    INVOICE_CREATE = "invoice:create"
    INVOICE_PAY = "invoice:pay"

    # ENTREGAS
    DELIVERY_READ = "delivery:read"
    DELIVERY_UPDATE = "delivery:update"

    # CLIENTES
    CUSTOMER_READ = "customer:read"

    # SISTEMA
    USER_MANAGE = "user:manage"

ROLE_PERMISSIONS = {
    "admin": ["*"],

    "oficinista": [
        Permissions.PRODUCT_READ,
        Permissions.ORDER_READ,
        Permissions.ORDER_CREATE,
        Permissions.ORDER_UPDATE,
        Permissions.INVOICE_READ,
        Permissions.INVOICE_CREATE,
        Permissions.INVOICE_PAY,
        Permissions.DELIVERY_READ,
        Permissions.DELIVERY_UPDATE,
        Permissions.CUSTOMER_READ,
    ],

    "bodeguero": [
        Permissions.PRODUCT_READ,
        Permissions.PRODUCT_CREATE,
        Permissions.PRODUCT_UPDATE,
        Permissions.STOCK_ADJUST,
        Permissions.STOCK_TRANSFER,
        Permissions.ORDER_READ,
    ],

    "domiciliario": [
        Permissions.ORDER_READ,
        Permissions.DELIVERY_READ,
        Permissions.DELIVERY_UPDATE,
    ],

    "cliente": [
        Permissions.PRODUCT_READ,
        Permissions.ORDER_READ_OWN,
        Permissions.ORDER_CREATE,
        Permissions.INVOICE_READ_OWN,
    ],
}

class UserPayload:
    """Identidad resuelta a partir de un token válido y una sesión vigente."""
    def __init__(self, sub: str, role: str, user_id: str, session_id: str):
        self.sub = sub
        self.role = role
        self.user_id = user_id
        self.session_id = session_id
        self.permissions = ROLE_PERMISSIONS.get(role, [])

    def has_permission(self, required_perm: str) -> bool:
        if "*" in self.permissions: return True
        return required_perm in self.permissions

def has_access(user, allowed_roles: Iterable[str]) -> bool:
    """
    Control de acceso por lista blanca de roles.

    Prueba de pertenencia pura: sin jerarquía ni caché. Acepta cualquier
    objeto con atributo `role` (UserPayload, perfil ORM o esquema).
    """
    if user is None:
        return False
    role = getattr(user, "role", None)
    return role is not None and role in allowed_roles
