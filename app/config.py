from pydantic import BaseModel
import os
from dotenv import load_dotenv
load_dotenv()  # carga el archivo .env de la raíz

class Settings(BaseModel):
    app_name: str = os.getenv("APP_NAME", "Messages")
    env: str = os.getenv("APP_ENV", "dev")
    mongodb_uri: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    db_name: str = os.getenv("DB_NAME", "messages")
    # 10s, mismo límite que la migración al arrancar
    mongo_timeout_ms: int = int(os.getenv("MONGO_TIMEOUT_MS", "10000"))
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me")
    jwt_expires_hours: int = int(os.getenv("JWT_EXPIRES_HOURS", "8"))
    frontend_base_url: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")
    undelivered_window_days: int = int(os.getenv("UNDELIVERED_WINDOW_DAYS", "5"))
    message_rate_limit: str = os.getenv("MESSAGE_RATE_LIMIT", "30/minute")


_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
