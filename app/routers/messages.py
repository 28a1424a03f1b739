from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from typing import List
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ..config import get_settings
from ..db import get_db
from ..middleware.rate_limit import apply_rate_limit
from ..repositories import messages as repo
from ..schemas.message import MessageCreate, MessageOut
from ..security import get_current_user_id
from ..utils import to_id, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

@router.post("", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def create_message(
    request: Request,
    payload: MessageCreate,
    db: AsyncIOMotorDatabase = Depends(get_db),
    current_id: str = Depends(get_current_user_id),
):
    """Enviar un mensaje (también se puede hacer vía WebSocket)"""
    apply_rate_limit(request, settings.message_rate_limit)

    if payload.receiver_id == current_id:
        raise HTTPException(400, "No puedes enviarte mensajes a ti mismo")

    data = payload.model_dump(exclude_none=True)
    data["sender_id"] = current_id
    message_id = await repo.save_message(db, data)
    doc = await repo.get_message(db, message_id)
    logger.info(f"Mensaje {message_id} de {current_id} a {payload.receiver_id}")
    return to_id(doc)

@router.get("", response_model=List[MessageOut])
async def list_conversation(
    with_user: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncIOMotorDatabase = Depends(get_db),
    current_id: str = Depends(get_current_user_id),
):
    """Conversación entre el usuario actual y `with_user`, paginada"""
    docs = await repo.get_conversation(db, current_id, with_user, limit=limit, offset=offset)
    return [to_id(d) for d in docs]

@router.get("/undelivered", response_model=List[MessageOut])
async def list_undelivered(
    db: AsyncIOMotorDatabase = Depends(get_db),
    current_id: str = Depends(get_current_user_id),
):
    """Mensajes pendientes de entrega para el usuario actual"""
    docs = await repo.get_undelivered(db, current_id, settings.undelivered_window_days)
    return [to_id(d) for d in docs]

@router.get("/{message_id}", response_model=MessageOut)
async def get_message(
    message_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    current_id: str = Depends(get_current_user_id),
):
    doc = await repo.get_message(db, to_object_id(message_id, "message_id"))
    if not doc:
        raise HTTPException(404, "Mensaje no encontrado")
    if current_id not in (doc.get("sender_id"), doc.get("receiver_id")):
        raise HTTPException(403, "No tienes acceso a este mensaje")
    return to_id(doc)

@router.patch("/{message_id}/delivered", response_model=MessageOut)
async def mark_message_delivered(
    message_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    current_id: str = Depends(get_current_user_id),
):
    """Acuse del receptor por HTTP: entregado y status=received"""
    oid = to_object_id(message_id, "message_id")
    doc = await repo.get_message(db, oid)
    if not doc:
        raise HTTPException(404, "Mensaje no encontrado")
    if doc.get("receiver_id") != current_id:
        raise HTTPException(403, "Solo el receptor puede marcar el mensaje como entregado")

    await repo.mark_delivered(db, oid)
    await repo.update_status(db, oid, repo.STATUS_RECEIVED)
    updated = await repo.get_message(db, oid)
    return to_id(updated)
