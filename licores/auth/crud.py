from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update
from datetime import datetime
from typing import Optional
from . import models

# --- IDENTIDADES ---
async def get_identity_by_email(db: AsyncSession, email: str):
    query = select(models.AuthIdentity).filter(models.AuthIdentity.email == email)
    result = await db.execute(query)
    return result.scalars().first()

async def get_identity_by_id(db: AsyncSession, identity_id: str):
    query = select(models.AuthIdentity).filter(models.AuthIdentity.id == identity_id)
    result = await db.execute(query)
    return result.scalars().first()

async def create_identity(db: AsyncSession, identity_data: dict):
    """Crea la identidad y confirma la transacción de inmediato."""
    db_identity = models.AuthIdentity(**identity_data)
    db.add(db_identity)
    await db.commit()
    await db.refresh(db_identity)
    return db_identity

# --- SESIONES ---
async def create_session(db: AsyncSession, identity_id: str, expires_at: datetime):
    db_session = models.AuthSession(identity_id=identity_id, expires_at=expires_at)
    db.add(db_session)
    await db.flush()
    return db_session

async def get_session(db: AsyncSession, session_id: str):
    query = select(models.AuthSession).filter(models.AuthSession.id == session_id)
    result = await db.execute(query)
    return result.scalars().first()

async def revoke_session(db: AsyncSession, session_id: str):
    stmt = (
        update(models.AuthSession)
        .where(models.AuthSession.id == session_id, models.AuthSession.revoked_at.is_(None))
        .values(revoked_at=datetime.utcnow())
    )
    await db.execute(stmt)
    await db.commit()

# --- PERFILES ---
async def get_user_by_id(db: AsyncSession, user_id: str):
    """Busca un perfil por ID (sin respaldo en la identidad)."""
    query = select(models.User).filter(models.User.id == user_id)
    result = await db.execute(query)
    return result.scalars().first()

async def get_users(db: AsyncSession, role: Optional[str] = None, search: Optional[str] = None):
    """Lista perfiles en orden alfabético. Filtra por rol o por nombre/email."""
    conditions = []
    if role:
        conditions.append(models.User.role == role)
    if search:
        term = f"%{search}%"
        conditions.append(models.User.name.ilike(term) | models.User.email.ilike(term))

    query = select(models.User).filter(*conditions).order_by(models.User.name.asc())
    result = await db.execute(query)
    return result.scalars().all()

async def create_user(db: AsyncSession, user_data: dict):
    """Crea un perfil de usuario."""
    db_user = models.User(**user_data)
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

async def update_user(db: AsyncSession, user: models.User, changes: dict):
    for key, value in changes.items():
        setattr(user, key, value)
    await db.commit()
    await db.refresh(user)
    return user

async def set_last_login(db: AsyncSession, user_id: str):
    stmt = (
        update(models.User)
        .where(models.User.id == user_id)
        .values(last_login=datetime.utcnow())
    )
    await db.execute(stmt)
    await db.commit()
