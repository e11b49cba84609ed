"""Tests for message endpoints."""

from fastapi import status

from huddle_chat.services.store import PersistenceError

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


def _conversation(client, auth_headers) -> str:
    response = client.post(
        "/api/v1/conversations/", json={"peer_id": BOB}, headers=auth_headers(ALICE)
    )
    return response.json()["conversation_id"]


def _send(client, auth_headers, conversation_id: str, content: str = "hello", **extra):
    return client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "receiver_id": BOB, "content": content, **extra},
        headers=auth_headers(ALICE),
    )


def test_send_message(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)

    response = _send(client, auth_headers, conversation_id, "hello bob")

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["content"] == "hello bob"
    assert data["sender_id"] == ALICE
    assert data["delivery_status"] == "sent"
    assert data["provisional"] is False
    assert data["encrypted_content"] != "hello bob"


def test_send_media_metadata(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)

    response = _send(
        client,
        auth_headers,
        conversation_id,
        "🎵 Audio message",
        message_type="audio",
        media={"file_url": "https://media.test/a.m4a", "file_name": "a.m4a", "duration": 3.5},
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["message_type"] == "audio"
    assert data["duration"] == 3.5


def test_send_empty_message_is_rejected(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)

    assert _send(client, auth_headers, conversation_id, "").status_code == (
        422
    )
    assert _send(client, auth_headers, conversation_id, "   ").status_code == (
        status.HTTP_400_BAD_REQUEST
    )


def test_send_to_non_participant_receiver(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)

    response = client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "receiver_id": CAROL, "content": "hi"},
        headers=auth_headers(ALICE),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_send_by_outsider_is_forbidden(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)

    response = client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "receiver_id": BOB, "content": "hi"},
        headers=auth_headers(CAROL),
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_send_failure_maps_to_service_unavailable(client, auth_headers, mocker) -> None:
    conversation_id = _conversation(client, auth_headers)
    store = client.app.state.chat_client.context.store
    mocker.patch.object(store, "append_message", side_effect=PersistenceError("offline"))

    response = _send(client, auth_headers, conversation_id)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["detail"] == "Message could not be sent"


def test_unread_count_and_mark_read(client, auth_headers) -> None:
    conversation_id = _conversation(client, auth_headers)
    message_id = _send(client, auth_headers, conversation_id).json()["id"]

    unread = client.get("/api/v1/messages/unread-count", headers=auth_headers(BOB))
    assert unread.json() == {"unread_count": 1}

    by_sender = client.post(f"/api/v1/messages/{message_id}/read", headers=auth_headers(ALICE))
    assert by_sender.status_code == status.HTTP_404_NOT_FOUND

    by_receiver = client.post(f"/api/v1/messages/{message_id}/read", headers=auth_headers(BOB))
    assert by_receiver.status_code == status.HTTP_200_OK
    assert by_receiver.json() == {"status": "marked_as_read"}

    unread = client.get("/api/v1/messages/unread-count", headers=auth_headers(BOB))
    assert unread.json() == {"unread_count": 0}
