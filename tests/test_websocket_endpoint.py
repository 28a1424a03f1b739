"""
Tests del endpoint /ws/{token} con el TestClient de Starlette
"""
import pytest
from bson import ObjectId
from starlette.websockets import WebSocketDisconnect

from app.security import create_access_token

def ws_url(user_id: str) -> str:
    return f"/ws/{create_access_token(user_id)}"

def test_invalid_token_closes_with_policy_violation(ws_client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with ws_client.websocket_connect("/ws/not-a-token"):
            pass
    assert exc.value.code == 1008

def test_error_frames(ws_client, sync_db):
    with ws_client.websocket_connect(ws_url("u1")) as ws:
        assert ws.receive_json()["type"] == "connected"

        ws.send_json([])
        assert ws.receive_json()["type"] == "error"

        ws.send_text("no es json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "unknown"})
        assert ws.receive_json() == {"type": "error", "message": "Tipo de mensaje no soportado"}

        ws.send_json({"type": "send_message", "content": "sin receptor"})
        assert ws.receive_json() == {"type": "error", "message": "Faltan campos requeridos"}

        ws.send_json({"type": "ack_received", "message_id": "bad"})
        assert ws.receive_json()["type"] == "error"

    assert sync_db.messages.count_documents({}) == 0

def test_send_and_ack_lifecycle(ws_client, sync_db):
    with ws_client.websocket_connect(ws_url("u2")) as receiver:
        assert receiver.receive_json()["type"] == "connected"
        with ws_client.websocket_connect(ws_url("u1")) as sender:
            assert sender.receive_json()["type"] == "connected"

            sender.send_json({"type": "send_message", "receiver_id": "u2", "content": "hola", "temp_id": "t1"})
            stored = sender.receive_json()
            assert stored["type"] == "acknowledgment"
            assert stored["status"] == "stored"
            assert stored["temp_id"] == "t1"
            message_id = stored["message"]["id"]

            incoming = receiver.receive_json()
            assert incoming["type"] == "receive_message"
            assert incoming["message"]["id"] == message_id
            assert incoming["message"]["content"] == "hola"

            receiver.send_json({"type": "ack_received", "message_id": message_id})
            received = sender.receive_json()
            assert received["type"] == "acknowledgment"
            assert received["status"] == "received"
            assert received["temp_id"] == "t1"

    doc = sync_db.messages.find_one({"_id": ObjectId(message_id)})
    assert doc["status"] == "received"
    assert doc["delivered"] is True
    assert doc["sender_id"] == "u1"

def test_only_receiver_can_ack(ws_client, sync_db):
    with ws_client.websocket_connect(ws_url("u1")) as sender:
        sender.receive_json()
        sender.send_json({"type": "send_message", "receiver_id": "u2", "content": "hola"})
        message_id = sender.receive_json()["message"]["id"]

        sender.send_json({"type": "ack_received", "message_id": message_id})
        assert sender.receive_json() == {
            "type": "error",
            "message": "Solo el receptor puede confirmar el mensaje",
        }

    assert sync_db.messages.find_one({"_id": ObjectId(message_id)})["status"] == "stored"

def test_offline_delivery_and_pending_ack(ws_client, sync_db):
    # u2 desconectado: el mensaje queda guardado sin entregar
    with ws_client.websocket_connect(ws_url("u1")) as sender:
        sender.receive_json()
        sender.send_json({"type": "send_message", "receiver_id": "u2", "content": "luego", "temp_id": "t2"})
        message_id = sender.receive_json()["message"]["id"]

    doc = sync_db.messages.find_one({"_id": ObjectId(message_id)})
    assert doc["status"] == "stored"
    assert doc["delivered"] is False

    # u2 se conecta: recibe el pendiente y confirma con u1 desconectado
    with ws_client.websocket_connect(ws_url("u2")) as receiver:
        assert receiver.receive_json()["type"] == "connected"
        incoming = receiver.receive_json()
        assert incoming["type"] == "receive_message"
        assert incoming["message"]["id"] == message_id
        receiver.send_json({"type": "ack_received", "message_id": message_id})

    doc = sync_db.messages.find_one({"_id": ObjectId(message_id)})
    assert doc["status"] == "received"
    assert doc["ack_pending"] is True

    # u1 vuelve: recibe el acuse pendiente con su temp_id
    with ws_client.websocket_connect(ws_url("u1")) as sender:
        assert sender.receive_json()["type"] == "connected"
        ack = sender.receive_json()
        assert ack["type"] == "acknowledgment"
        assert ack["status"] == "received"
        assert ack["temp_id"] == "t2"

    assert sync_db.messages.find_one({"_id": ObjectId(message_id)})["ack_pending"] is False
