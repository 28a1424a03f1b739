# app/repositories/messages.py
# Acceso a la colección messages (validada por $jsonSchema)
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..migrations.messages import MESSAGES_COLLECTION

# Ciclo de vida: stored (guardado) -> sent (empujado al receptor) -> received (acuse del receptor)
STATUS_STORED = "stored"
STATUS_SENT = "sent"
STATUS_RECEIVED = "received"


def _collection(db: AsyncIOMotorDatabase):
    return db[MESSAGES_COLLECTION]


async def save_message(db: AsyncIOMotorDatabase, doc: Dict[str, Any]) -> ObjectId:
    """Inserta un mensaje nuevo. Fija created_at, delivered=False y status=stored."""
    data = dict(doc)
    data["created_at"] = datetime.utcnow()
    data["delivered"] = False
    data["status"] = STATUS_STORED
    res = await _collection(db).insert_one(data)
    return res.inserted_id


async def get_message(db: AsyncIOMotorDatabase, message_id: ObjectId) -> Optional[Dict[str, Any]]:
    return await _collection(db).find_one({"_id": message_id})


async def get_conversation(
    db: AsyncIOMotorDatabase,
    user_a: str,
    user_b: str,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Mensajes entre dos usuarios en ambos sentidos, del más antiguo al más reciente."""
    query = {
        "$or": [
            {"sender_id": user_a, "receiver_id": user_b},
            {"sender_id": user_b, "receiver_id": user_a},
        ]
    }
    cursor = _collection(db).find(query).sort([("created_at", 1), ("_id", 1)]).skip(offset).limit(limit)
    return [doc async for doc in cursor]


async def get_undelivered(
    db: AsyncIOMotorDatabase,
    receiver_id: str,
    window_days: int = 5,
) -> List[Dict[str, Any]]:
    since = datetime.utcnow() - timedelta(days=window_days)
    query = {
        "receiver_id": receiver_id,
        "delivered": False,
        "created_at": {"$gte": since},
    }
    cursor = _collection(db).find(query).sort([("created_at", 1), ("_id", 1)])
    return [doc async for doc in cursor]


async def mark_delivered(db: AsyncIOMotorDatabase, message_id: ObjectId) -> bool:
    res = await _collection(db).update_one(
        {"_id": message_id},
        {"$set": {"delivered": True, "delivered_at": datetime.utcnow()}},
    )
    return res.matched_count > 0


async def update_status(db: AsyncIOMotorDatabase, message_id: ObjectId, status: str) -> bool:
    res = await _collection(db).update_one({"_id": message_id}, {"$set": {"status": status}})
    return res.matched_count > 0


async def mark_ack_pending(db: AsyncIOMotorDatabase, message_id: ObjectId, pending: bool = True) -> bool:
    """Marca que el emisor tiene un acuse sin recibir (estaba desconectado)."""
    res = await _collection(db).update_one({"_id": message_id}, {"$set": {"ack_pending": pending}})
    return res.matched_count > 0


async def get_pending_acks(db: AsyncIOMotorDatabase, sender_id: str) -> List[Dict[str, Any]]:
    cursor = _collection(db).find({"sender_id": sender_id, "ack_pending": True}).sort([("created_at", 1), ("_id", 1)])
    return [doc async for doc in cursor]


async def mark_sent(db: AsyncIOMotorDatabase, message_id: ObjectId) -> bool:
    """stored -> sent y entregado. No retrocede un mensaje que ya está en received."""
    res = await _collection(db).update_one(
        {"_id": message_id, "status": STATUS_STORED},
        {"$set": {"status": STATUS_SENT, "delivered": True, "delivered_at": datetime.utcnow()}},
    )
    return res.modified_count > 0
