import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from licores_common import security
from ..exceptions import ErrorKind, ServiceError
from . import crud, models, schemas

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
LOGIN_LOCKOUT_MINUTES = int(os.getenv("LOGIN_LOCKOUT_MINUTES", "15"))
REQUIRE_EMAIL_CONFIRMATION = os.getenv("REQUIRE_EMAIL_CONFIRMATION", "false").lower() == "true"


class UserService:
    """Consulta y mantenimiento de perfiles."""

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[models.User]:
        """
        Obtiene el perfil de un usuario.

        Si no existe fila en `users` (p. ej. el registro falló después de crear
        la identidad), sintetiza el perfil a partir de los metadatos de la
        identidad. El objeto sintetizado no se agrega a la sesión.
        """
        user = await crud.get_user_by_id(db, user_id)
        if user:
            return user

        logger.warning(f"⚠️ Perfil {user_id} no encontrado, usando metadatos de la identidad")
        identity = await crud.get_identity_by_id(db, user_id)
        if not identity:
            return None

        metadata = identity.user_metadata or {}
        return models.User(
            id=identity.id,
            email=identity.email,
            name=metadata.get("name", ""),
            role=metadata.get("role", models.UserRole.CLIENTE.value),
            address=metadata.get("address", ""),
        )

    @staticmethod
    async def get_all_users(db: AsyncSession, requesting_role: Optional[str]):
        """Solo un admin puede listar todos los perfiles; el resto recibe una lista vacía."""
        if requesting_role != models.UserRole.ADMIN.value:
            return []
        return await crud.get_users(db)

    @staticmethod
    async def get_customers(db: AsyncSession, search: Optional[str] = None):
        return await crud.get_users(db, role=models.UserRole.CLIENTE.value, search=search)

    @staticmethod
    async def get_delivery_people(db: AsyncSession):
        return await crud.get_users(db, role=models.UserRole.DOMICILIARIO.value)

    @staticmethod
    async def update_last_login(db: AsyncSession, user_id: str) -> bool:
        """
        Marca el último ingreso. Nunca propaga errores: devuelve False si falló.

        Tras un fallo la sesión se revierte y sus objetos quedan expirados.
        """
        try:
            await crud.set_last_login(db, user_id)
            return True
        except Exception as e:
            logger.error(f"❌ Error actualizando último ingreso de {user_id}: {e}")
            await db.rollback()
            return False

    @staticmethod
    async def update_user(db: AsyncSession, user_id: str, data: schemas.UserUpdate, current_user: security.UserPayload):
        # Solo el propio usuario o un admin pueden editar el perfil
        is_admin = security.has_access(current_user, [models.UserRole.ADMIN.value])
        if user_id != current_user.user_id and not is_admin:
            raise ServiceError(ErrorKind.FORBIDDEN, "No puedes editar el perfil de otro usuario")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "role" in changes and not is_admin:
            raise ServiceError(ErrorKind.FORBIDDEN, "Solo un administrador puede cambiar roles")

        user = await crud.get_user_by_id(db, user_id)
        if not user:
            raise ServiceError(ErrorKind.USER_NOT_FOUND)

        user = await crud.update_user(db, user, changes)
        logger.info(f"👤 Perfil {user_id} actualizado: {sorted(changes)}")
        return user


class AuthService:
    """Proveedor de identidad: registro, ingreso, sesiones."""

    @staticmethod
    async def register_client(db: AsyncSession, data: schemas.RegisterRequest):
        # 1. Verificar duplicados
        if await crud.get_identity_by_email(db, data.email):
            raise ServiceError(ErrorKind.USER_ALREADY_REGISTERED)

        # 2. Crear la identidad (se confirma sola, no se revierte si falla el perfil)
        identity = await crud.create_identity(db, {
            "email": data.email,
            "hashed_password": security.get_password_hash(data.password),
            "user_metadata": {
                "name": data.name,
                "role": models.UserRole.CLIENTE.value,
                "address": data.address,
            },
            "email_confirmed_at": None if REQUIRE_EMAIL_CONFIRMATION else datetime.utcnow(),
        })
        identity_id = identity.id
        logger.info(f"🆕 Identidad registrada: {identity_id}")

        # 3. Crear el perfil con rol fijo 'cliente'
        try:
            user = await crud.create_user(db, {
                "id": identity_id,
                "email": data.email,
                "name": data.name,
                "role": models.UserRole.CLIENTE.value,
                "address": data.address,
            })
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ Error creando perfil para {identity_id}: {e}")
            raise ServiceError(ErrorKind.PROFILE_WRITE_FAILED, str(e))

        return user

    @staticmethod
    async def create_staff_user(db: AsyncSession, data: schemas.RegisterRequest, role: str):
        """Alta de personal interno (admin). Igual que el registro pero con rol elegido."""
        if await crud.get_identity_by_email(db, data.email):
            raise ServiceError(ErrorKind.USER_ALREADY_REGISTERED)

        identity = await crud.create_identity(db, {
            "email": data.email,
            "hashed_password": security.get_password_hash(data.password),
            "user_metadata": {"name": data.name, "role": role, "address": data.address},
            "email_confirmed_at": datetime.utcnow(),
        })
        return await crud.create_user(db, {
            "id": identity.id,
            "email": data.email,
            "name": data.name,
            "role": role,
            "address": data.address,
        })

    @staticmethod
    async def ensure_admin(db: AsyncSession, email: str, password: str) -> bool:
        """Crea el administrador inicial si su email aún no existe. Devuelve True si lo creó."""
        if await crud.get_identity_by_email(db, email):
            return False
        data = schemas.RegisterRequest(email=email, password=password, name="Administrador", address="")
        await AuthService.create_staff_user(db, data, models.UserRole.ADMIN.value)
        logger.info(f"🛡️ Administrador inicial creado: {email}")
        return True

    @staticmethod
    async def sign_in(db: AsyncSession, email: str, password: str):
        """
        Valida credenciales y abre una sesión.

        Returns:
            Dict con access_token, token_type, expires_at y el perfil resuelto.

        Raises:
            ServiceError: INVALID_CREDENTIALS, RATE_LIMITED o EMAIL_NOT_CONFIRMED.
        """
        now = datetime.utcnow()

        # 1. Validar Credenciales
        identity = await crud.get_identity_by_email(db, email)
        if not identity:
            raise ServiceError(ErrorKind.INVALID_CREDENTIALS)

        if identity.locked_until and identity.locked_until > now:
            raise ServiceError(ErrorKind.RATE_LIMITED)

        if not security.verify_password(password, identity.hashed_password):
            identity.failed_attempts = (identity.failed_attempts or 0) + 1
            if identity.failed_attempts >= MAX_LOGIN_ATTEMPTS:
                identity.locked_until = now + timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
                identity.failed_attempts = 0
                logger.warning(f"🔒 Identidad {identity.id} bloqueada por intentos fallidos")
            await db.commit()
            raise ServiceError(ErrorKind.INVALID_CREDENTIALS)

        if REQUIRE_EMAIL_CONFIRMATION and identity.email_confirmed_at is None:
            raise ServiceError(ErrorKind.EMAIL_NOT_CONFIRMED)

        # 2. Abrir sesión
        expires_at = now + timedelta(minutes=security.ACCESS_TOKEN_EXPIRE_MINUTES)
        session = await crud.create_session(db, identity.id, expires_at)
        identity.failed_attempts = 0
        identity.locked_until = None
        identity.last_sign_in_at = now
        await db.commit()

        identity_id, identity_email, session_id = identity.id, identity.email, session.id

        # 3. Resolver perfil (copia desacoplada de la sesión de BD)
        user = await UserService.get_user_by_id(db, identity_id)
        profile = schemas.UserResponse.model_validate(user)
        if await UserService.update_last_login(db, identity_id):
            profile.last_login = datetime.utcnow()

        # 4. Generar Token
        access_token = security.create_access_token(
            data={
                "sub": identity_email,
                "role": profile.role,
                "user_id": identity_id,
                "sid": session_id,
            },
            expires_delta=timedelta(minutes=security.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        logger.info(f"🔑 Ingreso de {identity_id} (sesión {session_id})")
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_at": expires_at,
            "user": profile,
        }

    @staticmethod
    async def sign_out(db: AsyncSession, session_id: str) -> bool:
        await crud.revoke_session(db, session_id)
        logger.info(f"👋 Sesión {session_id} cerrada")
        return True

    @staticmethod
    async def get_current_session(
        db: AsyncSession, token: Optional[str]
    ) -> Tuple[Optional[models.AuthSession], Optional[models.User]]:
        """
        Resuelve la sesión de un token y el perfil asociado.

        Devuelve (None, None) si no hay token, si es inválido o expiró, o si la
        sesión fue cerrada.
        """
        if not token:
            return None, None

        payload = security.decode_token(token)
        if not payload or not payload.get("sid"):
            return None, None

        session = await crud.get_session(db, payload["sid"])
        if not session or session.revoked_at is not None or session.expires_at <= datetime.utcnow():
            return None, None

        user = await UserService.get_user_by_id(db, session.identity_id)
        return session, user

    @staticmethod
    async def confirm_email(db: AsyncSession, identity_id: str):
        identity = await crud.get_identity_by_id(db, identity_id)
        if not identity:
            raise ServiceError(ErrorKind.USER_NOT_FOUND)
        if identity.email_confirmed_at is None:
            identity.email_confirmed_at = datetime.utcnow()
            await db.commit()
        return identity
