# app/routers/websocket.py
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from typing import Any, Dict
from bson import ObjectId
from datetime import datetime
from motor.motor_asyncio import AsyncIOMotorDatabase
import json
import logging

from ..config import get_settings
from ..db import get_db
from ..repositories import messages as repo
from ..security import decode_user_id
from ..utils import to_id

logger = logging.getLogger(__name__)

router = APIRouter()

class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.active_connections[user_id] = websocket

    def disconnect(self, user_id: str, websocket: WebSocket):
        # Una conexión antigua no debe quitar la conexión más reciente del mismo usuario
        if self.active_connections.get(user_id) is websocket:
            del self.active_connections[user_id]

    def is_connected(self, user_id: str) -> bool:
        return user_id in self.active_connections

    async def send_personal_message(self, message: dict, user_id: str) -> bool:
        """Devuelve True si el mensaje llegó al socket del usuario."""
        connection = self.active_connections.get(user_id)
        if connection is None:
            return False
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.error(f"Error sending to {user_id}: {e}", exc_info=True)
            self.disconnect(user_id, connection)
            return False

manager = ConnectionManager()

def acknowledgment(doc: Dict[str, Any], status: str) -> dict:
    return {
        "type": "acknowledgment",
        "status": status,
        "temp_id": doc.get("temp_id"),
        "message": to_id(doc),
    }

async def deliver(db: AsyncIOMotorDatabase, doc: Dict[str, Any]) -> bool:
    """Empuja un mensaje guardado a su receptor; si llega pasa a status=sent y entregado."""
    sent = await manager.send_personal_message(
        {"type": "receive_message", "message": to_id(doc)},
        doc["receiver_id"],
    )
    if sent:
        await repo.mark_sent(db, doc["_id"])
    return sent

async def deliver_pending(db: AsyncIOMotorDatabase, user_id: str) -> int:
    pending = await repo.get_undelivered(db, user_id, get_settings().undelivered_window_days)
    delivered = 0
    for doc in pending:
        if not await deliver(db, doc):
            break
        delivered += 1
    return delivered

async def acknowledge_received(db: AsyncIOMotorDatabase, doc: Dict[str, Any]) -> bool:
    """
    Acuse del receptor: status=received y entregado.
    Si el emisor no está conectado el acuse queda pendiente (ack_pending)
    y se reenvía cuando vuelva a conectarse.
    """
    await repo.update_status(db, doc["_id"], repo.STATUS_RECEIVED)
    await repo.mark_delivered(db, doc["_id"])
    doc = await repo.get_message(db, doc["_id"])

    sent = await manager.send_personal_message(
        acknowledgment(doc, repo.STATUS_RECEIVED),
        doc["sender_id"],
    )
    if not sent:
        await repo.mark_ack_pending(db, doc["_id"])
        logger.info(f"Emisor {doc['sender_id']} desconectado; acuse {doc['_id']} pendiente")
    return sent

async def replay_pending_acks(db: AsyncIOMotorDatabase, user_id: str) -> int:
    """Reenvía al emisor los acuses que no pudo recibir mientras estaba desconectado"""
    replayed = 0
    for doc in await repo.get_pending_acks(db, user_id):
        if not await manager.send_personal_message(acknowledgment(doc, doc.get("status", repo.STATUS_RECEIVED)), user_id):
            break
        await repo.mark_ack_pending(db, doc["_id"], pending=False)
        replayed += 1
    return replayed

async def error_frame(websocket: WebSocket, message: str):
    await websocket.send_json({"type": "error", "message": message})

async def handle_send_message(db: AsyncIOMotorDatabase, websocket: WebSocket, user_id: str, data: dict):
    receiver_id = data.get("receiver_id")
    content = data.get("content")
    temp_id = data.get("temp_id")
    if not isinstance(receiver_id, str) or not isinstance(content, str) \
            or not receiver_id or not content.strip():
        await error_frame(websocket, "Faltan campos requeridos")
        return
    if temp_id is not None and not isinstance(temp_id, str):
        await error_frame(websocket, "temp_id debe ser un string")
        return

    doc = {
        "sender_id": user_id,
        "receiver_id": receiver_id,
        "content": content.strip(),
    }
    if temp_id:
        doc["temp_id"] = temp_id
    message_id = await repo.save_message(db, doc)
    doc = await repo.get_message(db, message_id)

    # Acuse al emisor: mensaje guardado
    await websocket.send_json(acknowledgment(doc, repo.STATUS_STORED))

    await deliver(db, doc)

async def handle_ack_received(db: AsyncIOMotorDatabase, websocket: WebSocket, user_id: str, data: dict):
    message_id = data.get("message_id")
    if not isinstance(message_id, str) or not ObjectId.is_valid(message_id):
        await error_frame(websocket, "message_id inválido")
        return

    doc = await repo.get_message(db, ObjectId(message_id))
    if not doc:
        await error_frame(websocket, "Mensaje no encontrado")
        return
    if doc.get("receiver_id") != user_id:
        await error_frame(websocket, "Solo el receptor puede confirmar el mensaje")
        return

    await acknowledge_received(db, doc)

HANDLERS = {
    "send_message": handle_send_message,
    "ack_received": handle_ack_received,
}

@router.websocket("/ws/{token}")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Endpoint WebSocket para mensajería en tiempo real.
    El token se pasa como parámetro en la URL.

    Eventos del cliente:
      - send_message: {receiver_id, content, temp_id?}
      - ack_received: {message_id}
    Eventos del servidor: connected, receive_message, acknowledgment, error.
    """
    user_id = decode_user_id(token)
    if not user_id:
        await websocket.close(code=1008, reason="Invalid token")
        return

    await manager.connect(websocket, user_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "message": "Conectado al chat",
            "user_id": user_id,
            "connected_at": datetime.utcnow().isoformat(),
        })

        count = await deliver_pending(db, user_id)
        if count:
            logger.info(f"Entregados {count} mensajes pendientes a {user_id}")
        await replay_pending_acks(db, user_id)

        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await error_frame(websocket, "JSON inválido")
                continue

            if not isinstance(data, dict):
                await error_frame(websocket, "El mensaje debe ser un objeto JSON")
                continue

            handler = HANDLERS.get(data.get("type"))
            if handler is None:
                await error_frame(websocket, "Tipo de mensaje no soportado")
                continue

            await handler(db, websocket, user_id, data)

    except WebSocketDisconnect:
        manager.disconnect(user_id, websocket)
    except Exception as e:
        logger.error(f"Error en WebSocket: {e}", exc_info=True)
        manager.disconnect(user_id, websocket)
