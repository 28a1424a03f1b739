from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Literal, Optional

class MessageCreate(BaseModel):
    receiver_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)
    file_url: Optional[str] = None
    temp_id: Optional[str] = Field(None, max_length=100, description="ID temporal del cliente, se devuelve en los acuses")

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("El mensaje no puede estar vacío")
        return v

class MessageOut(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    file_url: Optional[str] = None
    temp_id: Optional[str] = None
    status: Literal["stored", "sent", "received"] = "stored"
    delivered: bool = False
    delivered_at: Optional[datetime] = None
