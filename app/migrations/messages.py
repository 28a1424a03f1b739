# app/migrations/messages.py
# Colección "messages" con validación $jsonSchema
import logging
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import CollectionInvalid

logger = logging.getLogger(__name__)

MESSAGES_COLLECTION = "messages"

MESSAGES_SCHEMA = {
    "bsonType": "object",
    "required": ["sender_id", "receiver_id", "content", "created_at"],
    "properties": {
        "sender_id": {
            "bsonType": "string",
            "description": "must be a string and is required",
        },
        "receiver_id": {
            "bsonType": "string",
            "description": "must be a string and is required",
        },
        "content": {
            "bsonType": "string",
            "description": "must be a string and is required",
        },
        "created_at": {
            "bsonType": "date",
            "description": "must be a date and is required",
        },
    },
}

MESSAGES_VALIDATOR = {"$jsonSchema": MESSAGES_SCHEMA}


async def create_messages_collection(db: AsyncIOMotorDatabase):
    """
    Crea la colección con el validador adjunto.
    Si ya existe, Mongo/pymongo lanza CollectionInvalid y no se captura aquí.
    """
    collection = await db.create_collection(MESSAGES_COLLECTION, validator=MESSAGES_VALIDATOR)
    logger.info(f"Colección {MESSAGES_COLLECTION} creada con validación de esquema")
    return collection


async def run_migrations(db: AsyncIOMotorDatabase) -> bool:
    """Devuelve True si se creó la colección, False si ya existía."""
    try:
        names = await db.list_collection_names(filter={"name": MESSAGES_COLLECTION})
    except Exception as e:
        logger.error(f"No se pudieron listar las colecciones: {e}")
        raise

    if MESSAGES_COLLECTION in names:
        logger.info(f"La colección '{MESSAGES_COLLECTION}' ya existe, se omite la migración")
        return False

    try:
        await create_messages_collection(db)
    except CollectionInvalid:
        # Otro proceso la creó entre el listado y la creación
        logger.info(f"La colección '{MESSAGES_COLLECTION}' ya existe, se omite la migración")
        return False
    except Exception as e:
        logger.error(f"Fallo al crear la colección {MESSAGES_COLLECTION}: {e}")
        raise

    logger.info("Migración completada: colección messages creada con validación")
    return True
