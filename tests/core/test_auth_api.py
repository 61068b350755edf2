def test_login_me_logout(client, root_user):
    resp = client.post("/auth/login", json={"username": "root", "password": "secret"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["role"] == "root"

    me = client.get("/auth/me").get_json()["data"]
    assert me["username"] == "root"
    assert me["company_id"] == root_user.company_id

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_bad_credentials(client, root_user):
    resp = client.post("/auth/login", json={"username": "root", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "invalid_credentials"

    resp = client.post("/auth/login", json={"username": "root"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "password"


def test_anonymous_requests_get_json_401(client):
    for path in ("/", "/parts", "/repairs", "/transactions", "/reports/history"):
        resp = client.get(path)
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Authentication required", "code": "unauthorized"}


def test_forbidden_and_unknown_routes_are_json(client, make_user):
    user = make_user("mechanic")
    with client.session_transaction() as s:
        s["_user_id"] = str(user.id)
        s["_fresh"] = True

    resp = client.post("/containers", json={"name": "Shelf"})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "forbidden"

    resp = client.get("/no/such/route")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "not_found"


def test_dashboard_counts(auth_client):
    auth_client.post("/parts", json={"name": "Belt", "article": "B-1", "quantity": 2})
    auth_client.post("/parts", json={"name": "Anchor", "article": "A-1", "quantity": 40})
    equipment = auth_client.post("/equipment", json={"type": "truck", "model": "KAMAZ"}).get_json()["data"]
    auth_client.post("/equipment", json={"type": "tractor", "model": "MTZ"})
    auth_client.post("/repairs", json={"equipment_id": equipment["id"], "description": "Brakes", "start": True})
    auth_client.post("/repairs", json={"equipment_id": equipment["id"], "description": "Paint"})

    data = auth_client.get("/").get_json()["data"]
    assert data == {
        "parts_count": 2,
        "low_stock_parts": 1,
        "equipment_count": 2,
        "equipment_in_repair": 1,
        "active_repairs": 2,
    }
