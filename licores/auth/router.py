from typing import List, Optional
from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from licores_common.security import oauth2_scheme, Permissions, UserPayload
from ..database import get_db
from ..exceptions import ErrorKind, ServiceError
from . import models, schemas
from .deps import get_current_user, RequirePermission, RequireRoles
from .services import AuthService, UserService

router = APIRouter(prefix="/auth", tags=["Auth"])
users_router = APIRouter(prefix="/users", tags=["Users"])

# --- ENDPOINTS PÚBLICOS ---

@router.post("/register", response_model=schemas.UserResponse, status_code=201)
async def register(request: schemas.RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Registro de clientes. El rol queda fijo en 'cliente'."""
    return await AuthService.register_client(db, request)

@router.post("/login", response_model=schemas.Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    """Ingreso con email (campo `username`) y contraseña."""
    return await AuthService.sign_in(db, email=form_data.username, password=form_data.password)

@router.get("/session", response_model=schemas.CurrentSessionResponse)
async def read_session(token: Optional[str] = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)):
    """
    **Sesión actual**

    Nunca responde 401: sin sesión válida devuelve `session` y `user` nulos.
    """
    session, user = await AuthService.get_current_session(db, token)
    if session is None:
        return {"session": None, "user": None}
    return {
        "session": {"id": session.id, "user_id": session.identity_id, "expires_at": session.expires_at},
        "user": user,
    }

# --- ENDPOINTS PROTEGIDOS ---

@router.post("/logout", status_code=204)
async def logout(current_user: UserPayload = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await AuthService.sign_out(db, current_user.session_id)
    return

@router.get("/me", response_model=schemas.UserResponse)
async def read_users_me(current_user: UserPayload = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await UserService.get_user_by_id(db, current_user.user_id)

@router.post("/confirm/{identity_id}", status_code=204)
async def confirm_email(
    identity_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: UserPayload = Depends(RequireRoles(models.UserRole.ADMIN.value))
):
    """Confirma manualmente el email de una identidad."""
    await AuthService.confirm_email(db, identity_id)
    return

# --- USUARIOS ---

@users_router.get("", response_model=List[schemas.UserResponse])
async def read_users(current_user: UserPayload = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Lista todos los perfiles. Para roles distintos de admin la lista viene vacía."""
    return await UserService.get_all_users(db, current_user.role)

@users_router.post("", response_model=schemas.UserResponse, status_code=201)
async def create_staff_user(
    request: schemas.RegisterRequest,
    role: models.UserRole,
    db: AsyncSession = Depends(get_db),
    current_user: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    """Alta de personal (oficinista, bodeguero, domiciliario) o de otro admin."""
    return await AuthService.create_staff_user(db, request, role.value)

@users_router.get("/{user_id}", response_model=schemas.UserResponse)
async def read_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: UserPayload = Depends(get_current_user)
):
    if user_id != current_user.user_id and not current_user.has_permission(Permissions.CUSTOMER_READ):
        raise ServiceError(ErrorKind.FORBIDDEN)
    user = await UserService.get_user_by_id(db, user_id)
    if user is None:
        raise ServiceError(ErrorKind.USER_NOT_FOUND)
    return user

@users_router.patch("/{user_id}", response_model=schemas.UserResponse)
async def update_user(
    user_id: str,
    changes: schemas.UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPayload = Depends(get_current_user)
):
    return await UserService.update_user(db, user_id, changes, current_user)
