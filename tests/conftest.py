"""
Configuración de pytest para tests
"""
import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient, ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import ServerSelectionTimeoutError
import os
from dotenv import load_dotenv

load_dotenv()

# Configuración de test database
TEST_DB_NAME = os.getenv("TEST_DB_NAME", "messages_test")
TEST_MONGODB_URI = os.getenv("TEST_MONGODB_URI", os.getenv("MONGODB_URI", "mongodb://localhost:27017"))

# Deshabilitar rate limiting en la app durante la sesión de tests
@pytest.fixture(scope="session", autouse=True)
def disable_rate_limiting():
    """Deshabilita rate limiting para todos los tests y lo restaura al final"""
    from app.main import app
    limiter = app.state.limiter
    app.state.limiter = None
    yield
    app.state.limiter = limiter

@pytest.fixture
async def test_db():
    """Base de datos de test; se salta el test si no hay MongoDB disponible"""
    client = AsyncIOMotorClient(TEST_MONGODB_URI, serverSelectionTimeoutMS=2000)
    try:
        await client.server_info()
    except ServerSelectionTimeoutError:
        client.close()
        pytest.skip("MongoDB no disponible")
    db = client[TEST_DB_NAME]
    await db.drop_collection("messages")
    await db.drop_collection("users")
    yield db
    try:
        await client.drop_database(TEST_DB_NAME)
    finally:
        client.close()

@pytest.fixture
async def messages_db(test_db):
    """Base de datos con la colección messages ya migrada"""
    from app.migrations import run_migrations
    await run_migrations(test_db)
    yield test_db

@pytest.fixture
async def client(messages_db):
    """Cliente HTTP contra la app, usando la base de datos de test"""
    from app.main import app
    from app.db import get_db

    async def _get_test_db():
        return messages_db

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers():
    """Devuelve una función que genera cabeceras Bearer para un user_id"""
    from app.security import create_access_token

    def _headers(user_id: str):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers

@pytest.fixture
def sync_db():
    """Base de datos (pymongo síncrono) para los tests de WebSocket con TestClient"""
    from app.migrations.messages import MESSAGES_COLLECTION, MESSAGES_VALIDATOR

    client = MongoClient(TEST_MONGODB_URI, serverSelectionTimeoutMS=2000)
    try:
        client.server_info()
    except ServerSelectionTimeoutError:
        client.close()
        pytest.skip("MongoDB no disponible")
    db = client[TEST_DB_NAME]
    db.drop_collection(MESSAGES_COLLECTION)
    db.create_collection(MESSAGES_COLLECTION, validator=MESSAGES_VALIDATOR)
    yield db
    try:
        client.drop_database(TEST_DB_NAME)
    finally:
        client.close()

@pytest.fixture
def ws_client():
    """
    TestClient para el endpoint WebSocket.
    El cliente Motor se crea dentro del event loop del TestClient.
    """
    from app.main import app
    from app.db import get_db

    async def _get_test_db():
        motor_client = AsyncIOMotorClient(TEST_MONGODB_URI, serverSelectionTimeoutMS=2000)
        try:
            yield motor_client[TEST_DB_NAME]
        finally:
            motor_client.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as tc:
        yield tc
    app.dependency_overrides.clear()
