from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from licores_common.security import oauth2_scheme, has_access, UserPayload
from ..database import get_db
from .services import AuthService

# --- DEPENDENCIAS FASTAPI ---
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserPayload:
    """
    Sesión explícita de la petición.

    El rol se toma del perfil vigente, no del token, para que un cambio de rol
    aplique sin esperar a que el token expire.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciales inválidas o expiradas",
        headers={"WWW-Authenticate": "Bearer"},
    )
    session, user = await AuthService.get_current_session(db, token)
    if session is None or user is None:
        raise credentials_exception

    return UserPayload(sub=user.email, role=user.role, user_id=user.id, session_id=session.id)

class RequirePermission:
    def __init__(self, permission: str):
        self.permission = permission

    def __call__(self, user: UserPayload = Depends(get_current_user)):
        if not user.has_permission(self.permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. Requieres permiso: {self.permission}"
            )
        return user

class RequireRoles:
    """Restringe un endpoint a una lista blanca de roles."""
    def __init__(self, *roles: str):
        self.roles = roles

    def __call__(self, user: UserPayload = Depends(get_current_user)):
        if not has_access(user, self.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. Roles permitidos: {', '.join(self.roles)}"
            )
        return user
