from fastapi import APIRouter, Depends, HTTPException, status, Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import datetime
import logging

from ..db import get_db
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.user import Login, Signup, Token, UserOut
from ..security import create_access_token, get_current_user, hash_password, verify_password
from ..utils import to_id

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def signup(request: Request, payload: Signup, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 5 registros por minuto por IP
    apply_rate_limit(request, "5/minute")

    email = payload.email.lower()
    if await db.users.find_one({"email": email}):
        raise HTTPException(409, "Email ya registrado")

    doc = {
        "name": payload.name.strip(),
        "email": email,
        "password_hash": hash_password(payload.password),
        "created_at": datetime.utcnow(),
    }
    res = await db.users.insert_one(doc)
    logger.info(f"Usuario registrado: {res.inserted_id}")
    return to_id(await db.users.find_one({"_id": res.inserted_id}))

@router.post("/login", response_model=Token)
async def login(request: Request, payload: Login, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 10 intentos de login por minuto por IP
    apply_rate_limit(request, "10/minute")

    user = await db.users.find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(401, "Credenciales inválidas")
    return {"access_token": create_access_token(str(user["_id"])), "token_type": "bearer"}

@router.get("/profile", response_model=UserOut)
async def profile(current=Depends(get_current_user)):
    return current
