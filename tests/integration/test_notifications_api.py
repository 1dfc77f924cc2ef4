def _register_and_login(client, email: str, role: str = "sales") -> tuple[int, dict[str, str]]:
    user = client.post("/auth/register", json={"email": email, "password": "StrongPass123", "role": role}).json()
    login = client.post("/auth/login", json={"email": email, "password": "StrongPass123"})
    return user["id"], {"Authorization": f"Bearer {login.json()['access_token']}"}


def _send_test(client, headers, message: str = "hello"):
    return client.post("/notifications/test", headers=headers, json={"message": message})


def test_test_notification_lands_in_own_inbox_and_is_pushed(client, push_delivery):
    user_id, headers = _register_and_login(client, "inbox@example.com")

    response = client.post("/notifications/test", headers=headers, json={})

    assert response.status_code == 201
    body = response.json()
    assert body["recipient_id"] == user_id
    assert body["type"] == "test"
    assert body["message"] == "This is a realtime test!"
    assert body["read"] is False
    assert push_delivery.deliveries[0]["recipient_id"] == user_id


def test_blank_test_message_is_rejected(client):
    _, headers = _register_and_login(client, "blank@example.com")

    response = _send_test(client, headers, message="   ")

    assert response.status_code == 422


def test_mark_one_then_all_read(client):
    _, headers = _register_and_login(client, "reader@example.com")
    first = _send_test(client, headers, "one").json()
    _send_test(client, headers, "two")
    _send_test(client, headers, "three")

    marked = client.patch(f"/notifications/{first['id']}/read", headers=headers)
    unread = client.get("/notifications/me?unread_only=true", headers=headers).json()
    bulk = client.patch("/notifications/read-all", headers=headers)
    unread_after = client.get("/notifications/me?unread_only=true", headers=headers).json()

    assert marked.status_code == 200
    assert marked.json()["read"] is True
    assert sorted(n["message"] for n in unread) == ["three", "two"]
    assert bulk.json() == {"count": 2}
    assert unread_after == []


def test_cannot_mark_someone_elses_notification(client):
    _, owner_headers = _register_and_login(client, "owner@example.com")
    _, other_headers = _register_and_login(client, "other@example.com")
    notification_id = _send_test(client, owner_headers).json()["id"]

    response = client.patch(f"/notifications/{notification_id}/read", headers=other_headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "Notification not found"


def test_clear_only_removes_own_notifications(client):
    _, headers = _register_and_login(client, "clearer@example.com")
    _, other_headers = _register_and_login(client, "keeper@example.com")
    _send_test(client, headers, "mine")
    _send_test(client, other_headers, "theirs")

    cleared = client.delete("/notifications/me", headers=headers)

    assert cleared.json() == {"count": 1}
    assert client.get("/notifications/me", headers=headers).json() == []
    assert [n["message"] for n in client.get("/notifications/me", headers=other_headers).json()] == ["theirs"]


def test_inbox_pagination(client):
    _, headers = _register_and_login(client, "pager@example.com")
    for index in range(3):
        _send_test(client, headers, f"message {index}")

    page = client.get("/notifications/me?limit=2&offset=0", headers=headers)
    invalid = client.get("/notifications/me?limit=0", headers=headers)

    assert len(page.json()) == 2
    assert invalid.status_code == 422
