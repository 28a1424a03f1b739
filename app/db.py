import asyncio
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from .config import get_settings
from .migrations import run_migrations

_settings = get_settings()
_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None
# Un solo cliente y una sola migración aunque lleguen varias peticiones a la vez
_init_lock = asyncio.Lock()

async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is not None:
        return _db
    async with _init_lock:
        if _db is None:
            client = AsyncIOMotorClient(
                _settings.mongodb_uri,
                serverSelectionTimeoutMS=_settings.mongo_timeout_ms,
            )
            db = client[_settings.db_name]
            try:
                # Crear la colección messages con su validador si no existe
                await run_migrations(db)
                # Usuarios: email único
                await db.users.create_index("email", unique=True)
            except Exception:
                client.close()
                raise
            _client = client
            _db = db
    return _db

def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None
