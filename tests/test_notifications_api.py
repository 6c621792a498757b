def make(client, user_id, **overrides):
    payload = {"userId": user_id, "title": "Heads up", "message": "Shift starts at 6"}
    payload.update(overrides)
    resp = client.post("/api/notifications", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_and_list_newest_first(client):
    first = make(client, 1, title="First")
    second = make(client, 1, title="Second", priority="urgent")
    make(client, 2)

    assert first["type"] == "info"
    assert first["isRead"] is False
    assert second["priority"] == "urgent"
    listed = client.get("/api/users/1/notifications").json()
    assert [n["id"] for n in listed] == [second["id"], first["id"]]


def test_unread_flow(client):
    a = make(client, 1)
    make(client, 1)
    assert client.get("/api/users/1/notifications/unread-count").json() == {"total": 2}

    resp = client.patch(f"/api/notifications/{a['id']}/read")
    assert resp.status_code == 200
    assert resp.json()["isRead"] is True

    unread = client.get("/api/users/1/notifications/unread").json()
    assert a["id"] not in [n["id"] for n in unread]
    assert client.get("/api/users/1/notifications/unread-count").json() == {"total": 1}


def test_delete_and_missing(client):
    n = make(client, 3)
    assert client.delete(f"/api/notifications/{n['id']}").status_code == 204
    assert client.delete(f"/api/notifications/{n['id']}").status_code == 404
    assert client.patch(f"/api/notifications/{n['id']}/read").status_code == 404
    assert client.get("/api/users/3/notifications").json() == []


def test_rejects_unknown_priority_and_blank_title(client):
    assert client.post("/api/notifications", json={"userId": 1, "title": "x", "message": "y", "priority": "meh"}).status_code == 422
    assert client.post("/api/notifications", json={"userId": 1, "title": "", "message": "y"}).status_code == 422


def test_users_endpoints(client):
    resp = client.post("/api/users", json={"username": "officer.kim", "fullName": "Alex Kim"})
    assert resp.status_code == 201
    user = resp.json()
    assert client.post("/api/users", json={"username": "officer.kim", "fullName": "Dup"}).status_code == 400
    assert client.get(f"/api/users/{user['id']}").json()["fullName"] == "Alex Kim"
    assert [u["username"] for u in client.get("/api/users", params={"q": "kim"}).json()] == ["officer.kim"]
    assert client.get("/api/users/999").status_code == 404
