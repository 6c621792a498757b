def open_session(ws, user_id, entity="team_schedule", entity_id=1):
    assert ws.receive_json()["type"] == "info"
    ws.send_json({"type": "auth", "userId": user_id, "userName": f"Officer {user_id}"})
    assert ws.receive_json()["type"] == "authenticated"
    ws.send_json({"type": "subscribe", "entity": entity, "entityId": entity_id})
    return [ws.receive_json() for _ in range(3)]


def test_chat_fan_out_replay_and_leave(client):
    with client.websocket_connect("/ws") as alice:
        subscribed, history, users = open_session(alice, 1)
        assert subscribed["type"] == "subscribed"
        assert history["type"] == "history" and history["data"] == []
        assert [u["userId"] for u in users["data"]] == [1]

        alice.send_json({"type": "chat", "entity": "team_schedule", "entityId": 1, "message": "on scene"})
        echoed = alice.receive_json()
        assert echoed["type"] == "chat" and echoed["userName"] == "Officer 1"

        with client.websocket_connect("/ws") as bob:
            _, history, users = open_session(bob, 2)
            assert [m["message"] for m in history["data"]] == ["on scene"]
            assert [u["userId"] for u in users["data"]] == [1, 2]

            bob.send_json({"type": "chat", "entity": "team_schedule", "entityId": 1, "message": "copy"})
            assert bob.receive_json()["message"] == "copy"
            assert alice.receive_json()["message"] == "copy"

        leave = alice.receive_json()
        assert leave["type"] == "presence"
        assert leave["action"] == "leave"
        assert leave["userId"] == 2


def test_bad_frames_do_not_close_the_socket(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "info"
        ws.send_text("definitely not json")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["message"] == "Invalid JSON"

        ws.send_json({"type": "subscribe", "entity": "team_schedule"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert "entityId" in error["message"] or "entity_id" in error["message"]

        ws.send_json({"type": "subscribe", "entity": "team_schedule", "entityId": 3})
        assert ws.receive_json()["type"] == "subscribed"


def test_status_change_is_pushed_to_job_channel(client, seeded_team):
    job = client.post("/api/teamSchedules", json={"teamId": seeded_team["team_id"], "title": "Escort"}).json()

    with client.websocket_connect("/ws") as ws:
        open_session(ws, seeded_team["member_ids"][0], entity_id=job["id"])

        resp = client.patch(f"/api/schedules/{job['id']}", json={"status": "active"})
        assert resp.status_code == 200

        frame = ws.receive_json()
        assert frame["type"] == "broadcast"
        assert frame["action"] == "status_change"
        assert frame["entity"] == "team_schedule"
        assert frame["entityId"] == job["id"]
        assert frame["data"]["status"] == "active"
        assert frame["data"]["previousStatus"] == "pending"


def test_snapshot_endpoint(client):
    with client.websocket_connect("/ws") as ws:
        open_session(ws, 4, entity="team", entity_id=2)
        ws.send_json({"type": "chat", "entity": "team", "entityId": 2, "message": "briefing at 6"})
        ws.receive_json()

        snap = client.get("/api/collab/team/2").json()
        assert [m["message"] for m in snap["history"]] == ["briefing at 6"]
        assert [u["userId"] for u in snap["users"]] == [4]
