import os
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

# Base declarativa común para todos los modelos
Base = declarative_base()

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

class DatabaseManager:
    def __init__(self, database_url: str, **engine_kwargs):
        self.database_url = database_url
        # Detectar si estamos en modo debug
        self.debug = os.getenv("ENV_MODE", "dev") == "dev"

        self.engine = create_async_engine(
            self.database_url,
            echo=self.debug,
            future=True,
            **engine_kwargs
        )
        if self.database_url.startswith("sqlite"):
            # SQLite no aplica llaves foráneas si no se pide en cada conexión
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def get_db(self):
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def create_all(self):
        """Crea las tablas registradas en la Base (solo desarrollo y pruebas)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
