"""Tests for conversation endpoints."""

from fastapi import status

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


def _open(client, auth_headers, user_id: str, peer_id: str) -> str:
    response = client.post(
        "/api/v1/conversations/", json={"peer_id": peer_id}, headers=auth_headers(user_id)
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()["conversation_id"]


def test_open_conversation_is_idempotent(client, auth_headers) -> None:
    conversation_id = _open(client, auth_headers, ALICE, BOB)
    assert _open(client, auth_headers, ALICE, BOB) == conversation_id
    assert _open(client, auth_headers, BOB, ALICE) == conversation_id


def test_requires_authentication(client) -> None:
    response = client.get("/api/v1/conversations/")
    assert response.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}


def test_invalid_token(client) -> None:
    response = client.get(
        "/api/v1/conversations/", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_list_conversations_with_unread(client, auth_headers) -> None:
    conversation_id = _open(client, auth_headers, ALICE, BOB)
    client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "receiver_id": BOB, "content": "hey"},
        headers=auth_headers(ALICE),
    )

    response = client.get("/api/v1/conversations/", headers=auth_headers(BOB))

    assert response.status_code == status.HTTP_200_OK
    [summary] = response.json()
    assert summary["id"] == conversation_id
    assert summary["participants"] == sorted([ALICE, BOB])
    assert summary["unread_count"] == 1
    assert summary["last_message"]["content"] == "hey"


def test_list_messages_for_participants_only(client, auth_headers) -> None:
    conversation_id = _open(client, auth_headers, ALICE, BOB)
    for text in ("one", "two"):
        client.post(
            "/api/v1/messages/",
            json={"conversation_id": conversation_id, "receiver_id": BOB, "content": text},
            headers=auth_headers(ALICE),
        )

    response = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(BOB)
    )
    assert response.status_code == status.HTTP_200_OK
    assert [m["content"] for m in response.json()] == ["one", "two"]

    outsider = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(CAROL)
    )
    assert outsider.status_code == status.HTTP_403_FORBIDDEN

    missing = client.get("/api/v1/conversations/missing/messages", headers=auth_headers(BOB))
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_mark_conversation_read(client, auth_headers) -> None:
    conversation_id = _open(client, auth_headers, ALICE, BOB)
    client.post(
        "/api/v1/messages/",
        json={"conversation_id": conversation_id, "receiver_id": BOB, "content": "read me"},
        headers=auth_headers(ALICE),
    )

    response = client.post(
        f"/api/v1/conversations/{conversation_id}/read", headers=auth_headers(BOB)
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "marked_as_read"}
    messages = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(ALICE)
    ).json()
    assert [m["delivery_status"] for m in messages] == ["read"]
